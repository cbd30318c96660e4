"""
HKDF-SHA256 (RFC 5869): extract по salt, затем expand с info-меткой
"""
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .exceptions import CryptoError

HASH_LENGTH = 32
MAX_OUTPUT_LENGTH = 255 * HASH_LENGTH


def derive(input_key_material: bytes, salt: bytes, info: bytes, length: int) -> bytes:
    """
    Вывести length байт ключевого материала

    Детерминирована: одинаковые входы дают одинаковый результат.

    Raises:
        CryptoError: length вне диапазона 1..8160
    """
    if length <= 0 or length > MAX_OUTPUT_LENGTH:
        raise CryptoError(f"HKDF output length must be in 1..{MAX_OUTPUT_LENGTH}, got {length}")

    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(input_key_material)
