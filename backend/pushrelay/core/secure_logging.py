"""
Безопасное логирование с маскированием ключевого материала Web Push
"""
import re
import logging
from typing import Any, Dict
from urllib.parse import urlsplit


class SecureFormatter(logging.Formatter):
    """Форматтер для маскирования чувствительных данных в логах"""

    # Паттерны для чувствительных данных
    PATTERNS = {
        # Authorization: vapid t=<jwt>, k=<key>
        'vapid': re.compile(r'\bvapid\s+t=[^\s,]+,\s*k=[A-Za-z0-9\-_=]+', re.IGNORECASE),
        # Устаревшая форма: WebPush <jwt> / Crypto-Key: p256ecdsa=<key>
        'webpush': re.compile(r'\b(WebPush|Bearer)\s+[A-Za-z0-9\-_.=]{20,}', re.IGNORECASE),
        'crypto_key': re.compile(r'\b(p256ecdsa|dh)=[A-Za-z0-9\-_=]{20,}', re.IGNORECASE),
        # Компактный JWS (три base64url сегмента)
        'jwt': re.compile(r'\beyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+'),
        # Ключи в виде key=value / "key": "value"
        'key_value': re.compile(
            r'(["\']?\b(?:private_key|p256dh|auth|auth_secret|secret)\b["\']?\s*[:=]\s*["\']?)([A-Za-z0-9\-_+/=]{8,})',
            re.IGNORECASE,
        ),
        # PEM блоки
        'pem': re.compile(r'-----BEGIN [A-Z ]+-----.*?-----END [A-Z ]+-----', re.DOTALL),
    }

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует лог запись с маскированием"""
        msg = super().format(record)
        return mask_sensitive_data(msg)


def mask_sensitive_data(text: str) -> str:
    """Маскирует чувствительные данные в тексте"""
    patterns = SecureFormatter.PATTERNS
    text = patterns['pem'].sub('-----PEM REDACTED-----', text)
    text = patterns['vapid'].sub('vapid t=****, k=****', text)
    text = patterns['webpush'].sub(lambda m: m.group(1) + ' ****', text)
    text = patterns['crypto_key'].sub(lambda m: m.group(1) + '=****', text)
    text = patterns['jwt'].sub('****.****.****', text)
    text = patterns['key_value'].sub(lambda m: m.group(1) + '****', text)
    return text


def mask_endpoint(endpoint: str) -> str:
    """
    Оставляет только origin endpoint подписки

    Путь endpoint - это capability токен конкретного браузера.
    """
    try:
        parts = urlsplit(endpoint)
    except (TypeError, ValueError, AttributeError):
        return "<invalid endpoint>"
    if not parts.scheme or not parts.netloc:
        return "<invalid endpoint>"
    return f"{parts.scheme}://{parts.hostname}/…"


def sanitize_dict(data: Dict[str, Any], sensitive_keys: set = None) -> Dict[str, Any]:
    """
    Рекурсивно маскирует чувствительные данные в словаре

    Args:
        data: Словарь для обработки
        sensitive_keys: Множество ключей для маскирования

    Returns:
        Словарь с замаскированными значениями
    """
    if sensitive_keys is None:
        sensitive_keys = {
            'private_key', 'p256dh', 'auth', 'secret', 'token',
            'authorization', 'crypto-key', 'cek', 'nonce', 'prk'
        }

    sanitized = {}

    for key, value in data.items():
        lower_key = str(key).lower()

        if any(sensitive in lower_key for sensitive in sensitive_keys):
            sanitized[key] = "****"
        elif lower_key == "endpoint" and isinstance(value, str):
            sanitized[key] = mask_endpoint(value)
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_dict(item, sensitive_keys) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized
