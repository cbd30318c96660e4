"""
Web Push: шифрование aes128gcm и VAPID авторизация
"""
from .ece import KeySchedule, PayloadEncryptor, PushRecord, decrypt, encrypt
from .exceptions import (
    CryptoError,
    InputError,
    InvalidKeyError,
    PayloadTooLargeError,
    UpstreamError,
    WebPushError,
)
from .models import DeliveryOutcome, OutcomeKind, PushSubscription
from .vapid import (
    ApplicationKeyPair,
    AuthAssertion,
    audience_from_endpoint,
    build_assertion,
    generate_application_key_pair,
)

__all__ = [
    "ApplicationKeyPair",
    "AuthAssertion",
    "CryptoError",
    "DeliveryOutcome",
    "InputError",
    "InvalidKeyError",
    "KeySchedule",
    "OutcomeKind",
    "PayloadEncryptor",
    "PayloadTooLargeError",
    "PushRecord",
    "PushSubscription",
    "UpstreamError",
    "WebPushError",
    "audience_from_endpoint",
    "build_assertion",
    "decrypt",
    "encrypt",
    "generate_application_key_pair",
]
