"""
VAPID (RFC 8292): подписанный ES256 JWT для push сервиса

Токен привязан к origin push сервиса (aud), имеет ограниченный срок жизни (exp)
и контакт отправителя (sub). Передаётся вместе с публичным ключом приложения
в заголовке Authorization: vapid t=<jwt>, k=<public key>.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwk, jws, jwt
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from . import base64url
from .ecdh import CURVE, encode_public_key, load_public_key
from .exceptions import CryptoError, InputError, InvalidKeyError

logger = logging.getLogger(__name__)

ALGORITHM = ALGORITHMS.ES256
DEFAULT_EXPIRY_SECONDS = 12 * 60 * 60
MAX_EXPIRY_SECONDS = 24 * 60 * 60
PRIVATE_SCALAR_LENGTH = 32
SUBJECT_PREFIXES = ("mailto:", "https://")


def audience_from_endpoint(endpoint: str) -> str:
    """
    Origin push сервиса из endpoint подписки

    https://fcm.googleapis.com/fcm/send/abc -> https://fcm.googleapis.com
    """
    try:
        parts = urlsplit(endpoint)
        port = parts.port
    except (TypeError, ValueError, AttributeError):
        raise InputError("Malformed subscription endpoint")

    if parts.scheme != "https" or not parts.hostname:
        raise InputError("Subscription endpoint must be an absolute https URL")

    host = parts.hostname
    if ":" in host:
        # IPv6 литерал
        host = f"[{host}]"

    origin = f"{parts.scheme}://{host}"
    if port is not None and port != 443:
        origin += f":{port}"
    return origin


def validate_audience(audience: str) -> str:
    """aud должен быть чистым origin: схема и хост без пути"""
    try:
        parts = urlsplit(audience)
        parts.port
    except (TypeError, ValueError, AttributeError):
        raise InputError("Malformed audience origin")

    if parts.scheme not in ("https", "http") or not parts.hostname:
        raise InputError("Audience must be an absolute origin (scheme://host)")
    if parts.path not in ("", "/") or parts.query or parts.fragment or parts.username:
        raise InputError("Audience must not contain path, query or credentials")
    return audience.rstrip("/")


def validate_subject(subject: str) -> str:
    if not isinstance(subject, str) or not subject.startswith(SUBJECT_PREFIXES):
        raise InputError("VAPID subject must start with mailto: or https://")
    return subject


def load_private_key(value: str) -> ec.EllipticCurvePrivateKey:
    """
    Загрузить приватный ключ VAPID

    Поддерживаемые форматы:
        - PEM (PKCS#8 или SEC1)
        - base64url сырого скаляра (32 байта)
        - base64url DER PKCS#8 (экспорт Web Crypto)
    """
    if not isinstance(value, str) or not value.strip():
        raise InputError("VAPID private key is required")

    try:
        if "-----BEGIN" in value:
            key = serialization.load_pem_private_key(value.encode("ascii"), password=None)
        else:
            raw = base64url.decode(value)
            if len(raw) == PRIVATE_SCALAR_LENGTH:
                key = ec.derive_private_key(int.from_bytes(raw, "big"), CURVE)
            else:
                key = serialization.load_der_private_key(raw, password=None)
    except InputError:
        raise InputError("Invalid VAPID private key format")
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm):
        raise InputError("Invalid VAPID private key format")

    if not isinstance(key, ec.EllipticCurvePrivateKey) or key.curve.name != CURVE.name:
        raise InputError("VAPID private key must be a P-256 key")
    return key


@dataclass(frozen=True)
class ApplicationKeyPair:
    """
    Ключи приложения (VAPID)

    Соответствие public_key и private_key здесь не проверяется:
    несовпадение обнаруживается при подписи токена.
    """
    subject: str
    public_key: bytes
    private_key: ec.EllipticCurvePrivateKey

    @classmethod
    def from_base64(cls, subject: str, public_key: str, private_key: str) -> "ApplicationKeyPair":
        public_bytes = base64url.decode(public_key)
        try:
            load_public_key(public_bytes)
        except InvalidKeyError:
            raise InputError("Invalid VAPID public key")

        return cls(
            subject=validate_subject(subject),
            public_key=public_bytes,
            private_key=load_private_key(private_key),
        )

    @property
    def public_key_b64(self) -> str:
        return base64url.encode(self.public_key)

    def export_private_key(self, fmt: str = "pkcs8") -> str:
        """Приватный ключ в base64url: pkcs8 (DER) или raw (скаляр)"""
        if fmt == "raw":
            value = self.private_key.private_numbers().private_value
            return base64url.encode(value.to_bytes(PRIVATE_SCALAR_LENGTH, "big"))
        if fmt == "pkcs8":
            der = self.private_key.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
            return base64url.encode(der)
        raise ValueError(f"Unknown private key format: {fmt}")

    def __repr__(self) -> str:
        return f"ApplicationKeyPair(subject={self.subject!r}, public_key={self.public_key_b64!r})"


def generate_application_key_pair(subject: str) -> ApplicationKeyPair:
    """Новая пара ключей VAPID"""
    private_key = ec.generate_private_key(CURVE)
    return ApplicationKeyPair(
        subject=validate_subject(subject),
        public_key=encode_public_key(private_key.public_key()),
        private_key=private_key,
    )


@dataclass(frozen=True)
class AuthAssertion:
    """Подписанный VAPID токен и публичный ключ приложения"""
    token: str
    public_key: str
    audience: str
    expires_at: int

    def authorization_header(self) -> str:
        return f"vapid t={self.token}, k={self.public_key}"

    def headers(self, legacy: bool = False) -> Dict[str, str]:
        """
        Заголовки авторизации

        legacy=True - устаревшая раздельная форма (WebPush + Crypto-Key)
        для push сервисов, которые не понимают схему vapid.
        """
        if legacy:
            return {
                "Authorization": f"WebPush {self.token}",
                "Crypto-Key": f"p256ecdsa={self.public_key}",
            }
        return {"Authorization": self.authorization_header()}

    def is_expired(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = time.time()
        return now >= self.expires_at

    def __repr__(self) -> str:
        return f"AuthAssertion(audience={self.audience!r}, expires_at={self.expires_at}, token=<redacted>)"


def build_assertion(
    key_pair: ApplicationKeyPair,
    audience: str,
    expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
    clock: Callable[[], float] = time.time,
) -> AuthAssertion:
    """
    Построить и подписать VAPID токен

    Args:
        key_pair: Ключи приложения
        audience: Origin push сервиса (scheme://host)
        expiry_seconds: Срок жизни токена, не более 24 часов
        clock: Источник текущего времени (секунды epoch)

    Raises:
        InputError: неверный срок жизни, audience или subject
        CryptoError: подпись не удалась или не сходится с публичным ключом
    """
    if isinstance(expiry_seconds, bool) or not isinstance(expiry_seconds, int):
        raise InputError("VAPID expiry must be an integer number of seconds")
    if expiry_seconds <= 0 or expiry_seconds > MAX_EXPIRY_SECONDS:
        raise InputError(f"VAPID expiry must be between 1 and {MAX_EXPIRY_SECONDS} seconds")

    audience = validate_audience(audience)
    subject = validate_subject(key_pair.subject)
    expires_at = int(clock()) + expiry_seconds

    try:
        public_key = load_public_key(key_pair.public_key)
    except InvalidKeyError:
        raise InputError("Invalid VAPID public key")

    claims = {"aud": audience, "exp": expires_at, "sub": subject}
    try:
        signing_key = jwk.construct(key_pair.private_key, ALGORITHM)
        token = jwt.encode(claims, signing_key, algorithm=ALGORITHM)
    except (JOSEError, ValueError, TypeError):
        raise CryptoError("Failed to sign VAPID token")

    try:
        jws.verify(token, jwk.construct(public_key, ALGORITHM), algorithms=[ALGORITHM])
    except JOSEError:
        raise CryptoError("VAPID signature does not verify against the application public key")

    logger.debug(f"VAPID token issued for {audience}, expires at {expires_at}")
    return AuthAssertion(
        token=token,
        public_key=key_pair.public_key_b64,
        audience=audience,
        expires_at=expires_at,
    )
