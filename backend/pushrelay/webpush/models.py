"""
Модели отправки: подписка и результат доставки
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from . import base64url
from .ecdh import load_public_key
from .exceptions import InputError, InvalidKeyError
from .ece import AUTH_SECRET_LENGTH
from .vapid import audience_from_endpoint


@dataclass(frozen=True)
class PushSubscription:
    """PushSubscription браузера (endpoint + p256dh + auth)"""
    endpoint: str
    p256dh: bytes
    auth: bytes

    @classmethod
    def from_base64(cls, endpoint: str, p256dh: str, auth: str) -> "PushSubscription":
        """Собрать подписку из JSON представления браузера"""
        subscription = cls(
            endpoint=endpoint,
            p256dh=base64url.decode(p256dh),
            auth=base64url.decode(auth),
        )
        subscription.validate()
        return subscription

    def validate(self) -> None:
        audience_from_endpoint(self.endpoint)
        try:
            load_public_key(self.p256dh)
        except InvalidKeyError as e:
            raise InputError(f"Invalid subscription p256dh key: {e.message}")
        if len(self.auth) != AUTH_SECRET_LENGTH:
            raise InputError(f"Subscription auth secret must be {AUTH_SECRET_LENGTH} bytes")

    @property
    def origin(self) -> str:
        return audience_from_endpoint(self.endpoint)

    def __repr__(self) -> str:
        return f"PushSubscription(origin={self.origin!r})"


class OutcomeKind(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"
    GONE = "gone"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Результат одной отправки"""
    kind: OutcomeKind
    message: str
    status_code: Optional[int] = None
    details: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.kind == OutcomeKind.DELIVERED

    @property
    def is_gone(self) -> bool:
        """Подписка больше не действительна, её нужно удалить"""
        return self.kind == OutcomeKind.GONE

    @property
    def is_retryable(self) -> bool:
        return self.kind == OutcomeKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }

    @classmethod
    def delivered(cls, status_code: int) -> "DeliveryOutcome":
        return cls(OutcomeKind.DELIVERED, "Push notification sent successfully", status_code)

    @classmethod
    def gone(cls, status_code: int, details: str = "") -> "DeliveryOutcome":
        return cls(OutcomeKind.GONE, "Push subscription has expired or is no longer valid", status_code, details)

    @classmethod
    def transient(cls, message: str, status_code: Optional[int] = None, details: str = "") -> "DeliveryOutcome":
        return cls(OutcomeKind.TRANSIENT, message, status_code, details)

    @classmethod
    def rejected(cls, status_code: int, details: str = "") -> "DeliveryOutcome":
        return cls(OutcomeKind.REJECTED, f"Push service error: {status_code}", status_code, details)
