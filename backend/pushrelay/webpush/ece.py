"""
Шифрование payload для Web Push (aes128gcm, одна запись)

Формат записи:
    salt (16) ‖ rs (4, big-endian) ‖ idlen (1) ‖ keyid (65, эфемерный ключ) ‖ ciphertext+tag

Поддерживаются два расписания ключей:
    - rfc8291 (по умолчанию): "WebPush: info" ‖ ua ‖ as для PRK, info для CEK и nonce без контекста
    - context: "Content-Encoding: auth" для PRK, контекст "P-256" в info для CEK и nonce
Формат записи, padding и AEAD у них общие.
"""
import logging
import secrets
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from . import hkdf
from .ecdh import (
    PUBLIC_KEY_LENGTH,
    EphemeralKeyPair,
    compute_shared_secret,
    encode_public_key,
    generate_ephemeral_key_pair,
)
from .exceptions import CryptoError, InputError, PayloadTooLargeError

logger = logging.getLogger(__name__)

CONTENT_ENCODING = "aes128gcm"
RECORD_SIZE = 4096
SALT_LENGTH = 16
AUTH_SECRET_LENGTH = 16
PRK_LENGTH = 32
KEY_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16
PADDING_DELIMITER = b"\x02"
HEADER_LENGTH = SALT_LENGTH + 4 + 1 + PUBLIC_KEY_LENGTH
MAX_PLAINTEXT_LENGTH = RECORD_SIZE - TAG_LENGTH - len(PADDING_DELIMITER)

AUTH_INFO = b"Content-Encoding: auth\x00"
WEBPUSH_INFO = b"WebPush: info\x00"
CEK_INFO = b"Content-Encoding: aes128gcm\x00"
NONCE_INFO = b"Content-Encoding: nonce\x00"
KEY_LABEL = b"P-256"


class KeySchedule(str, Enum):
    CONTEXT = "context"
    RFC8291 = "rfc8291"


@dataclass(frozen=True)
class PushRecord:
    """Бинарное тело push запроса"""
    salt: bytes
    record_size: int
    key_id: bytes
    ciphertext: bytes

    @property
    def header(self) -> bytes:
        return self.salt + struct.pack("!IB", self.record_size, len(self.key_id)) + self.key_id

    @property
    def ephemeral_public_key(self) -> bytes:
        return self.key_id

    def to_bytes(self) -> bytes:
        return self.header + self.ciphertext

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __len__(self) -> int:
        return len(self.header) + len(self.ciphertext)

    @classmethod
    def from_bytes(cls, data: bytes) -> "PushRecord":
        """Разобрать запись aes128gcm"""
        if len(data) < SALT_LENGTH + 5:
            raise InputError("Push record is shorter than its header")

        salt = data[:SALT_LENGTH]
        record_size, key_id_length = struct.unpack("!IB", data[SALT_LENGTH:SALT_LENGTH + 5])
        offset = SALT_LENGTH + 5
        if len(data) < offset + key_id_length:
            raise InputError("Push record key id is truncated")

        return cls(
            salt=salt,
            record_size=record_size,
            key_id=data[offset:offset + key_id_length],
            ciphertext=data[offset + key_id_length:],
        )


@dataclass(frozen=True)
class EncryptionContext:
    """Ключевой материал одного сообщения. Не кэшируется и не переиспользуется"""
    salt: bytes
    ephemeral: EphemeralKeyPair
    prk: bytes
    content_encryption_key: bytes
    nonce: bytes

    def __repr__(self) -> str:
        return "EncryptionContext(<redacted>)"


def build_context(receiver_public_key: bytes, sender_public_key: bytes) -> bytes:
    """"P-256" ‖ 0x00 ‖ len(ua) ‖ ua ‖ len(as) ‖ as, длины 2 байта big-endian"""
    return (
        KEY_LABEL + b"\x00"
        + struct.pack("!H", len(receiver_public_key)) + receiver_public_key
        + struct.pack("!H", len(sender_public_key)) + sender_public_key
    )


def derive_keys(
    key_schedule: KeySchedule,
    shared_secret: bytes,
    auth_secret: bytes,
    salt: bytes,
    receiver_public_key: bytes,
    sender_public_key: bytes,
) -> Tuple[bytes, bytes, bytes]:
    """Вернуть (prk, cek, nonce) по выбранному расписанию ключей"""
    if key_schedule == KeySchedule.RFC8291:
        prk = hkdf.derive(
            shared_secret, auth_secret, WEBPUSH_INFO + receiver_public_key + sender_public_key, PRK_LENGTH
        )
        cek_info, nonce_info = CEK_INFO, NONCE_INFO
    else:
        prk = hkdf.derive(shared_secret, auth_secret, AUTH_INFO, PRK_LENGTH)
        context = build_context(receiver_public_key, sender_public_key)
        cek_info, nonce_info = CEK_INFO + context, NONCE_INFO + context

    cek = hkdf.derive(prk, salt, cek_info, KEY_LENGTH)
    nonce = hkdf.derive(prk, salt, nonce_info, NONCE_LENGTH)
    return prk, cek, nonce


def _check_auth_secret(auth_secret: bytes) -> None:
    if not isinstance(auth_secret, (bytes, bytearray)) or len(auth_secret) != AUTH_SECRET_LENGTH:
        raise InputError(f"Auth secret must be exactly {AUTH_SECRET_LENGTH} bytes")


class PayloadEncryptor:
    """
    Пайплайн шифрования payload

    Источник случайности и фабрика эфемерных ключей передаются
    снаружи, чтобы в тестах их можно было заменить детерминированными.
    """

    def __init__(
        self,
        key_schedule: Union[KeySchedule, str] = KeySchedule.RFC8291,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
        key_pair_factory: Callable[[], EphemeralKeyPair] = generate_ephemeral_key_pair,
        record_size: int = RECORD_SIZE,
    ):
        self.key_schedule = KeySchedule(key_schedule)
        self.random_bytes = random_bytes
        self.key_pair_factory = key_pair_factory
        self.record_size = record_size

    @property
    def max_plaintext_length(self) -> int:
        return self.record_size - TAG_LENGTH - len(PADDING_DELIMITER)

    def create_context(self, subscriber_public_key: bytes, auth_secret: bytes) -> EncryptionContext:
        """Соль, эфемерные ключи, ECDH и HKDF для одного сообщения"""
        _check_auth_secret(auth_secret)

        salt = self.random_bytes(SALT_LENGTH)
        if len(salt) != SALT_LENGTH:
            raise CryptoError("Random source returned a salt of unexpected length")

        ephemeral = self.key_pair_factory()
        shared_secret = compute_shared_secret(ephemeral.private_key, subscriber_public_key)
        prk, cek, nonce = derive_keys(
            self.key_schedule,
            shared_secret,
            bytes(auth_secret),
            salt,
            bytes(subscriber_public_key),
            ephemeral.public_key,
        )
        return EncryptionContext(
            salt=salt,
            ephemeral=ephemeral,
            prk=prk,
            content_encryption_key=cek,
            nonce=nonce,
        )

    def encrypt(self, subscriber_public_key: bytes, auth_secret: bytes, plaintext: bytes) -> PushRecord:
        """
        Зашифровать plaintext в одну запись aes128gcm

        Raises:
            InputError: неверный auth secret или plaintext не bytes
            PayloadTooLargeError: запись не помещается в record size
            InvalidKeyError: ключ подписчика не валидная точка P-256
            CryptoError: сбой HKDF или AEAD
        """
        if not isinstance(plaintext, (bytes, bytearray)):
            raise InputError("Plaintext must be bytes")
        if len(plaintext) > self.max_plaintext_length:
            raise PayloadTooLargeError(
                f"Payload size ({len(plaintext)} bytes) exceeds single record maximum "
                f"({self.max_plaintext_length} bytes)"
            )

        context = self.create_context(subscriber_public_key, auth_secret)
        padded = bytes(plaintext) + PADDING_DELIMITER

        try:
            ciphertext = AESGCM(context.content_encryption_key).encrypt(context.nonce, padded, None)
        except (ValueError, OverflowError):
            raise CryptoError("AES-128-GCM encryption failed")

        record = PushRecord(
            salt=context.salt,
            record_size=self.record_size,
            key_id=context.ephemeral.public_key,
            ciphertext=ciphertext,
        )
        logger.debug(f"Encrypted payload: {len(plaintext)} bytes -> record {len(record)} bytes")
        return record


def encrypt(
    subscriber_public_key: bytes,
    auth_secret: bytes,
    plaintext: bytes,
    key_schedule: Union[KeySchedule, str] = KeySchedule.RFC8291,
) -> PushRecord:
    """Зашифровать payload со случайностью ОС"""
    return PayloadEncryptor(key_schedule=key_schedule).encrypt(subscriber_public_key, auth_secret, plaintext)


def decrypt(
    record: Union[PushRecord, bytes],
    private_key: ec.EllipticCurvePrivateKey,
    auth_secret: bytes,
    key_schedule: Union[KeySchedule, str] = KeySchedule.RFC8291,
) -> bytes:
    """
    Расшифровать запись на стороне подписчика

    Используется для проверки записей (тесты, диагностика).
    """
    if not isinstance(record, PushRecord):
        record = PushRecord.from_bytes(record)
    _check_auth_secret(auth_secret)

    if len(record.ciphertext) > record.record_size:
        raise InputError("Push record exceeds its declared record size")
    if len(record.ciphertext) <= TAG_LENGTH:
        raise InputError("Push record has no ciphertext")

    receiver_public_key = encode_public_key(private_key.public_key())
    shared_secret = compute_shared_secret(private_key, record.key_id)
    _, cek, nonce = derive_keys(
        KeySchedule(key_schedule),
        shared_secret,
        bytes(auth_secret),
        record.salt,
        receiver_public_key,
        record.key_id,
    )

    try:
        padded = AESGCM(cek).decrypt(nonce, record.ciphertext, None)
    except InvalidTag:
        raise CryptoError("AES-128-GCM authentication failed")

    data = padded.rstrip(b"\x00")
    if not data or data[-1:] != PADDING_DELIMITER:
        raise CryptoError("Invalid record padding delimiter")
    return data[:-1]
