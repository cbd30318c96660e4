import logging
import logging.config
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional
import sys
from contextvars import ContextVar

from .secure_logging import mask_sensitive_data, sanitize_dict

# Context variable для correlation ID
correlation_id: ContextVar[str] = ContextVar('correlation_id', default='')


class StructuredFormatter(logging.Formatter):
    """Форматтер для структурированных JSON логов с маскированием ключей"""

    # Дополнительные поля из extra=...
    EXTRA_FIELDS = [
        'method', 'path', 'client_ip', 'status_code', 'process_time',
        'site_key', 'push_origin', 'outcome', 'upstream_status',
        'payload_bytes', 'record_bytes', 'event_type'
    ]

    def _safe_serialize(self, obj: Any) -> Any:
        """Безопасная сериализация объектов для JSON"""
        if obj is None:
            return None
        elif isinstance(obj, (str, int, float, bool)):
            return obj
        elif isinstance(obj, bytes):
            # Сырые байты в логах - почти всегда ключевой материал
            return f"<{len(obj)} bytes>"
        elif isinstance(obj, (list, tuple)):
            return [self._safe_serialize(item) for item in obj]
        elif isinstance(obj, dict):
            return {k: self._safe_serialize(v) for k, v in sanitize_dict(obj).items()}
        else:
            return str(obj)

    def format(self, record):
        """Форматирует лог запись в JSON"""
        try:
            log_data = {
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "logger": record.name,
                "message": mask_sensitive_data(record.getMessage()),
                "correlation_id": correlation_id.get(),
                "module": getattr(record, 'module', record.name.split('.')[-1]),
                "function": getattr(record, 'funcName', ''),
                "line": getattr(record, 'lineno', 0)
            }

            for field in self.EXTRA_FIELDS:
                if hasattr(record, field):
                    log_data[field] = self._safe_serialize(getattr(record, field))

            if record.exc_info:
                log_data["exception"] = mask_sensitive_data(self.formatException(record.exc_info))

            return json.dumps(log_data, ensure_ascii=False, separators=(',', ':'))

        except Exception as e:
            # Fallback в случае ошибки сериализации
            return json.dumps({
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "level": "ERROR",
                "logger": "logging_system",
                "message": f"Logging error: {str(e)}",
                "correlation_id": correlation_id.get()
            }, ensure_ascii=False)


def build_logging_config(level: str = "INFO", log_file: str = "", log_format: str = "json") -> dict:
    """Конфигурация для logging.config.dictConfig

    log_format: json (структурированные логи) или text (для локальной разработки)
    """
    console_formatter = "simple" if log_format == "text" else "structured"
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": console_formatter,
            "stream": sys.stdout
        }
    }
    root_handlers = ["console"]

    if log_file:
        handlers["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "structured",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
        root_handlers.append("error_file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "simple": {
                "()": "pushrelay.core.secure_logging.SecureFormatter",
                "fmt": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": handlers,
        "loggers": {
            "": {  # Root logger
                "level": level,
                "handlers": root_handlers
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
            # httpx логирует полный URL endpoint (capability токен подписки)
            "httpx": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            },
            "httpcore": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False
            }
        }
    }


def setup_logging(level: str = "INFO", log_file: str = "", log_format: str = "json"):
    """Настройка системы логирования"""
    logging.config.dictConfig(build_logging_config(level.upper(), log_file, log_format))


def set_correlation_id(cid: Optional[str] = None) -> str:
    """Установить correlation ID"""
    if cid is None:
        cid = str(uuid.uuid4())
    correlation_id.set(cid)
    return cid


def log_push_event(event_type: str, push_origin: str = None, level: int = logging.INFO, **kwargs):
    """Логирование событий отправки (без ключевого материала)"""
    logger = logging.getLogger("push")

    event_data = {
        "event_type": event_type,
        "push_origin": push_origin,
        **sanitize_dict(kwargs)
    }

    logger.log(level, f"Push event: {event_type}", extra=event_data)


def log_security_event(event_type: str, source_ip: str = None, **kwargs):
    """Логирование событий безопасности"""
    logger = logging.getLogger("security")

    event_data = {
        "event_type": event_type,
        "client_ip": source_ip,
        **sanitize_dict(kwargs)
    }

    logger.warning(f"Security event: {event_type}", extra=event_data)
