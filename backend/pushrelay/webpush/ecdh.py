"""
ECDH на кривой P-256

Эфемерная пара ключей создаётся заново для каждого сообщения
и никогда не переиспользуется.
"""
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .exceptions import InvalidKeyError

CURVE = ec.SECP256R1()
PUBLIC_KEY_LENGTH = 65
SHARED_SECRET_LENGTH = 32
UNCOMPRESSED_POINT_PREFIX = 0x04


@dataclass(frozen=True)
class EphemeralKeyPair:
    """Одноразовая пара ключей отправителя"""
    public_key: bytes
    private_key: ec.EllipticCurvePrivateKey

    def __repr__(self) -> str:
        return f"EphemeralKeyPair(public_key=<{len(self.public_key)} bytes>)"


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Несжатая точка X9.62: 0x04 ‖ X ‖ Y"""
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def load_public_key(point: bytes) -> ec.EllipticCurvePublicKey:
    """
    Загрузить публичный ключ P-256 из несжатой точки

    Raises:
        InvalidKeyError: неверная длина, префикс или точка не на кривой
    """
    if not isinstance(point, (bytes, bytearray)) or len(point) != PUBLIC_KEY_LENGTH:
        raise InvalidKeyError(f"Public key must be a {PUBLIC_KEY_LENGTH}-byte uncompressed P-256 point")
    if point[0] != UNCOMPRESSED_POINT_PREFIX:
        raise InvalidKeyError("Public key is not an uncompressed P-256 point")

    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(point))
    except ValueError:
        raise InvalidKeyError("Public key is not a valid P-256 point")


def generate_ephemeral_key_pair() -> EphemeralKeyPair:
    """Новая пара ключей из CSPRNG ОС"""
    private_key = ec.generate_private_key(CURVE)
    return EphemeralKeyPair(
        public_key=encode_public_key(private_key.public_key()),
        private_key=private_key,
    )


def compute_shared_secret(private_key: ec.EllipticCurvePrivateKey, counterpart_public_key: bytes) -> bytes:
    """
    Общий секрет ECDH (32 байта, X-координата)

    Raises:
        InvalidKeyError: counterpart_public_key не валидная точка P-256
    """
    peer = load_public_key(counterpart_public_key)
    try:
        secret = private_key.exchange(ec.ECDH(), peer)
    except ValueError:
        raise InvalidKeyError("ECDH key agreement failed for the supplied public key")

    if len(secret) != SHARED_SECRET_LENGTH:
        raise InvalidKeyError("Unexpected ECDH shared secret length")
    return secret
