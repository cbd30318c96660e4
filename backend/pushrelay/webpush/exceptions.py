"""
Исключения Web Push пайплайна

Сообщения исключений никогда не содержат ключевой материал
(private key, auth secret, производные ключи).
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DeliveryOutcome


class WebPushError(Exception):
    """Базовая ошибка отправки Web Push"""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(WebPushError):
    """Некорректные входные данные: ключи, длины, URL, origin"""

    kind = "input_error"


class PayloadTooLargeError(InputError):
    """Payload не помещается в одну запись aes128gcm"""

    kind = "payload_too_large"


class CryptoError(WebPushError):
    """Ошибка криптографии: ECDH, HKDF, AEAD, подпись"""

    kind = "crypto_error"


class InvalidKeyError(CryptoError):
    """Публичный ключ не является валидной точкой P-256"""

    kind = "invalid_key"


class UpstreamError(WebPushError):
    """Push сервис отклонил запрос или недоступен"""

    kind = "upstream_error"

    def __init__(self, outcome: "DeliveryOutcome"):
        super().__init__(outcome.message)
        self.outcome = outcome

    @property
    def status_code(self) -> Optional[int]:
        return self.outcome.status_code

    @property
    def is_permanent(self) -> bool:
        """Подписку нужно удалить, повтор бессмыслен"""
        return self.outcome.is_gone
