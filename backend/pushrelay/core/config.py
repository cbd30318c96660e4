import os
from typing import List
from pydantic_settings import BaseSettings
from pydantic import model_validator

from pushrelay.webpush.ece import KeySchedule
from pushrelay.webpush.vapid import DEFAULT_EXPIRY_SECONDS, MAX_EXPIRY_SECONDS


class Settings(BaseSettings):
    # API settings
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Web Push Relay"

    # App settings
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8788"))
    ENABLE_SWAGGER: bool = os.getenv("ENABLE_SWAGGER", "true").lower() == "true"

    # Разрешённые site_key через запятую (пусто - разрешены все)
    ALLOWED_SITE_KEYS: str = os.getenv("ALLOWED_SITE_KEYS", "")

    # CORS для сайтов, вызывающих relay из браузера
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Web Push
    PUSH_TTL: int = int(os.getenv("PUSH_TTL", "86400"))
    PUSH_TIMEOUT_SECONDS: float = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))
    MAX_PAYLOAD_BYTES: int = int(os.getenv("MAX_PAYLOAD_BYTES", "4096"))
    WEBPUSH_KEY_SCHEDULE: str = os.getenv("WEBPUSH_KEY_SCHEDULE", KeySchedule.RFC8291.value)

    # VAPID
    VAPID_TOKEN_EXPIRE_SECONDS: int = int(os.getenv("VAPID_TOKEN_EXPIRE_SECONDS", str(DEFAULT_EXPIRY_SECONDS)))
    VAPID_LEGACY_AUTH_HEADER: bool = os.getenv("VAPID_LEGACY_AUTH_HEADER", "false").lower() == "true"

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json или text

    # Environment
    APP_ENV: str = os.getenv("APP_ENV", "development")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def allowed_site_keys(self) -> List[str]:
        """Список разрешённых site_key (пустой - проверка отключена)"""
        return [key.strip() for key in self.ALLOWED_SITE_KEYS.split(",") if key.strip()]

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip().rstrip("/") for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def key_schedule(self) -> KeySchedule:
        return KeySchedule(self.WEBPUSH_KEY_SCHEDULE)

    @model_validator(mode='after')
    def validate_settings(self) -> 'Settings':
        """Валидация согласованности настроек"""
        errors = []

        if self.WEBPUSH_KEY_SCHEDULE not in {schedule.value for schedule in KeySchedule}:
            errors.append(f"WEBPUSH_KEY_SCHEDULE must be one of: {', '.join(s.value for s in KeySchedule)}")

        if not 0 < self.VAPID_TOKEN_EXPIRE_SECONDS <= MAX_EXPIRY_SECONDS:
            errors.append(f"VAPID_TOKEN_EXPIRE_SECONDS must be in 1..{MAX_EXPIRY_SECONDS}")

        if self.PUSH_TTL < 0:
            errors.append("PUSH_TTL must not be negative")

        if self.PUSH_TIMEOUT_SECONDS <= 0:
            errors.append("PUSH_TIMEOUT_SECONDS must be positive")

        if self.MAX_PAYLOAD_BYTES <= 0:
            errors.append("MAX_PAYLOAD_BYTES must be positive")

        if errors:
            raise ValueError(f"❌ Некорректные настройки: {'; '.join(errors)}")

        return self

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
