"""
Pydantic schemas для Push Relay API
"""
import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from pushrelay.core.config import settings
from pushrelay.webpush import base64url
from pushrelay.webpush.ecdh import PUBLIC_KEY_LENGTH
from pushrelay.webpush.ece import AUTH_SECRET_LENGTH
from pushrelay.webpush.exceptions import InputError
from pushrelay.webpush.models import PushSubscription
from pushrelay.webpush.vapid import SUBJECT_PREFIXES, ApplicationKeyPair


def _decode(value: str, error: str) -> bytes:
    try:
        return base64url.decode(value)
    except InputError:
        raise ValueError(error)


class VapidConfig(BaseModel):
    """🔑 VAPID ключи приложения"""
    subject: str = Field(..., min_length=1, description="mailto:admin@example.com или https://example.com")
    public_key: str = Field(..., min_length=1, description="Публичный ключ (base64url, 65 байт)")
    private_key: str = Field(..., min_length=1, description="Приватный ключ (base64url PKCS#8/raw или PEM)")

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v):
        if not v.startswith(SUBJECT_PREFIXES):
            raise ValueError('VAPID subject must start with mailto: or https://')
        return v

    @field_validator('public_key')
    @classmethod
    def validate_public_key(cls, v):
        if len(_decode(v, 'Invalid VAPID public key format')) != PUBLIC_KEY_LENGTH:
            raise ValueError('Invalid VAPID public key length')
        return v

    @field_validator('private_key')
    @classmethod
    def validate_private_key(cls, v):
        if "-----BEGIN" not in v:
            _decode(v, 'Invalid VAPID private key format')
        return v

    def to_key_pair(self) -> ApplicationKeyPair:
        return ApplicationKeyPair.from_base64(self.subject, self.public_key, self.private_key)

    def __repr__(self) -> str:
        return f"VapidConfig(subject={self.subject!r}, public_key={self.public_key!r}, private_key='****')"


class PushSubscriptionKeys(BaseModel):
    """Ключи шифрования от браузера"""
    p256dh: str = Field(..., min_length=1, description="P256DH public key (base64url)")
    auth: str = Field(..., min_length=1, description="Auth secret (base64url)")

    @field_validator('p256dh')
    @classmethod
    def validate_p256dh(cls, v):
        if len(_decode(v, 'Invalid subscription keys.p256dh format')) != PUBLIC_KEY_LENGTH:
            raise ValueError('Invalid subscription keys.p256dh length')
        return v

    @field_validator('auth')
    @classmethod
    def validate_auth(cls, v):
        if len(_decode(v, 'Invalid subscription keys.auth format')) != AUTH_SECRET_LENGTH:
            raise ValueError('Invalid subscription keys.auth length')
        return v


class PushSubscriptionData(BaseModel):
    """PushSubscription объект от браузера"""
    endpoint: str = Field(..., min_length=1, description="Push service endpoint URL")
    keys: PushSubscriptionKeys

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        if not v.startswith('https://'):
            raise ValueError('Subscription endpoint must use HTTPS')
        return v

    def to_subscription(self) -> PushSubscription:
        return PushSubscription.from_base64(self.endpoint, self.keys.p256dh, self.keys.auth)


class SendPushRequest(BaseModel):
    """📨 Запрос на отправку push notification"""
    site_key: str = Field(..., min_length=1, description="Идентификатор сайта")
    vapid: VapidConfig
    subscription: PushSubscriptionData
    payload: Union[dict, list, str, int, float, bool] = Field(..., description="Данные уведомления")
    ttl: Optional[int] = Field(None, ge=0, le=2419200, description="TTL в секундах (по умолчанию из настроек)")
    urgency: Optional[Literal["very-low", "low", "normal", "high"]] = None
    topic: Optional[str] = Field(None, max_length=32, pattern=r'^[A-Za-z0-9\-_]+$')

    @field_validator('payload')
    @classmethod
    def validate_payload(cls, v):
        if not isinstance(v, (dict, list)) and not v:
            raise ValueError('Missing required fields')
        if isinstance(v, dict) and not v.get('title') and not v.get('body'):
            raise ValueError('Payload must contain at least title or body')
        return v

    @model_validator(mode='after')
    def validate_payload_size(self) -> 'SendPushRequest':
        size = len(self.serialized_payload())
        if size > settings.MAX_PAYLOAD_BYTES:
            raise ValueError(
                f'Payload size ({size} bytes) exceeds maximum allowed ({settings.MAX_PAYLOAD_BYTES} bytes)'
            )
        return self

    def serialized_payload(self) -> bytes:
        """Payload так, как он будет зашифрован (компактный JSON)"""
        return json.dumps(self.payload, ensure_ascii=False, separators=(',', ':')).encode('utf-8')


class SendPushResponse(BaseModel):
    """Ответ об успешной отправке"""
    success: bool = True
    message: str
    outcome: str


class ErrorResponse(BaseModel):
    """Ответ с ошибкой"""
    error: str
    details: Optional[Any] = None
    outcome: Optional[str] = None
