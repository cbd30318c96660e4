"""
Base64url без padding (RFC 4648 §5) для ключей, секретов и токенов
"""
import base64
import binascii

from .exceptions import InputError


def encode(data: bytes) -> str:
    """Кодирует байты в base64url без '='"""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def decode(text: str) -> bytes:
    """
    Декодирует base64url с padding или без него

    Браузеры и утилиты иногда отдают стандартный алфавит (+ и /),
    поэтому он тоже принимается.
    """
    if not isinstance(text, str):
        raise InputError("base64url value must be a string")

    value = text.strip().replace("+", "-").replace("/", "_").rstrip("=")
    if len(value) % 4 == 1:
        raise InputError("Invalid base64url length")

    try:
        return base64.b64decode(value + "=" * (-len(value) % 4), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        raise InputError("Invalid base64url value")
