"""
Сервис для отправки Web Push Notifications

Использует Web Push API (RFC 8030), шифрование aes128gcm (RFC 8188)
и VAPID (RFC 8292). Ретраев внутри нет: политика повторов - забота вызывающего.
"""
from typing import Any, Dict, Optional, Union
import json
import logging
import time
import httpx

from pushrelay.core.config import settings
from pushrelay.core.logging_config import log_push_event
from pushrelay.webpush.ece import CONTENT_ENCODING, KeySchedule, PayloadEncryptor, PushRecord
from pushrelay.webpush.exceptions import InputError, UpstreamError
from pushrelay.webpush.models import DeliveryOutcome, OutcomeKind, PushSubscription
from pushrelay.webpush.vapid import (
    ApplicationKeyPair,
    AuthAssertion,
    audience_from_endpoint,
    build_assertion,
)

logger = logging.getLogger(__name__)

URGENCY_VALUES = ("very-low", "low", "normal", "high")
MAX_DETAILS_LENGTH = 1024


def classify_response(status_code: int, body: str = "") -> DeliveryOutcome:
    """
    Классифицировать ответ push сервиса

    2xx - доставлено, 404/410 - подписка мертва,
    429/5xx - временный сбой, прочие 4xx - отказ.
    """
    details = (body or "")[:MAX_DETAILS_LENGTH]

    if 200 <= status_code < 300:
        return DeliveryOutcome.delivered(status_code)
    if status_code in (404, 410):
        return DeliveryOutcome.gone(status_code, details)
    if status_code == 429 or 500 <= status_code < 600:
        return DeliveryOutcome.transient(f"Push service error: {status_code}", status_code, details)
    return DeliveryOutcome.rejected(status_code, details)


class WebPushDispatcher:
    """
    Отправка готовой записи в push сервис

    HTTP клиент можно передать снаружи (общий пул, MockTransport в тестах);
    иначе на каждую отправку создаётся свой httpx.AsyncClient.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        legacy_auth_header: bool = False,
    ):
        self.client = client
        self.timeout = timeout
        self.legacy_auth_header = legacy_auth_header

    def build_headers(
        self,
        assertion: AuthAssertion,
        ttl: int,
        urgency: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> Dict[str, str]:
        """Заголовки push запроса"""
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
            raise InputError("TTL must be a non-negative integer")
        if urgency is not None and urgency not in URGENCY_VALUES:
            raise InputError(f"Urgency must be one of: {', '.join(URGENCY_VALUES)}")

        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Encoding": CONTENT_ENCODING,
            "TTL": str(ttl),
        }
        headers.update(assertion.headers(legacy=self.legacy_auth_header))

        if urgency:
            headers["Urgency"] = urgency
        if topic:
            headers["Topic"] = topic
        return headers

    async def send(
        self,
        subscription: PushSubscription,
        record: PushRecord,
        assertion: AuthAssertion,
        ttl: int,
        urgency: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> DeliveryOutcome:
        """
        Отправить запись на endpoint подписки

        Args:
            subscription: Подписка получателя
            record: Зашифрованная запись aes128gcm
            assertion: VAPID токен для origin endpoint
            ttl: Время хранения сообщения push сервисом (секунды)
            urgency: Urgency заголовок (very-low, low, normal, high)
            topic: Topic заголовок для замены неотправленных сообщений

        Returns:
            DeliveryOutcome
        """
        origin = audience_from_endpoint(subscription.endpoint)
        if assertion.audience != origin:
            raise InputError("VAPID assertion audience does not match the subscription origin")
        if assertion.is_expired():
            raise InputError("VAPID assertion has expired")

        headers = self.build_headers(assertion, ttl, urgency, topic)
        body = record.to_bytes()

        try:
            if self.client is not None:
                response = await self.client.post(subscription.endpoint, content=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(subscription.endpoint, content=body, headers=headers)
        except httpx.TimeoutException:
            logger.warning(f"[WebPush] Таймаут при отправке на {origin}")
            return DeliveryOutcome.transient("Push service timed out")
        except httpx.TransportError as e:
            logger.warning(f"[WebPush] Push сервис {origin} недоступен: {type(e).__name__}")
            return DeliveryOutcome.transient("Push service unreachable")

        outcome = classify_response(response.status_code, response.text)
        if outcome.success:
            logger.info(f"[WebPush] Доставлено в {origin}: HTTP {response.status_code}")
        else:
            logger.warning(f"[WebPush] {origin} ответил HTTP {response.status_code} ({outcome.kind.value})")
        return outcome


class PushRelayService:
    """
    Полный цикл отправки: шифрование, VAPID, доставка

    Состояния между вызовами нет - отправки можно выполнять параллельно.
    """

    def __init__(
        self,
        ttl: int = 86400,
        token_expiry_seconds: int = 12 * 60 * 60,
        timeout: float = 10.0,
        key_schedule: Union[KeySchedule, str] = KeySchedule.RFC8291,
        legacy_auth_header: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        encryptor: Optional[PayloadEncryptor] = None,
    ):
        self.ttl = ttl
        self.token_expiry_seconds = token_expiry_seconds
        self.encryptor = encryptor or PayloadEncryptor(key_schedule=key_schedule)
        self.dispatcher = WebPushDispatcher(
            client=client,
            timeout=timeout,
            legacy_auth_header=legacy_auth_header,
        )

    @classmethod
    def from_settings(cls, **overrides) -> "PushRelayService":
        """Сервис с параметрами из settings"""
        params = {
            "ttl": settings.PUSH_TTL,
            "token_expiry_seconds": settings.VAPID_TOKEN_EXPIRE_SECONDS,
            "timeout": settings.PUSH_TIMEOUT_SECONDS,
            "key_schedule": settings.key_schedule,
            "legacy_auth_header": settings.VAPID_LEGACY_AUTH_HEADER,
        }
        params.update(overrides)
        return cls(**params)

    @staticmethod
    def serialize_payload(payload: Union[Dict[str, Any], list, str, bytes]) -> bytes:
        """Payload в байты: dict/list - компактный JSON, str - UTF-8"""
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        if isinstance(payload, str):
            return payload.encode("utf-8")
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    async def send_notification(
        self,
        key_pair: ApplicationKeyPair,
        subscription: PushSubscription,
        payload: Union[Dict[str, Any], list, str, bytes],
        ttl: Optional[int] = None,
        urgency: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> DeliveryOutcome:
        """
        Отправить push notification на одну подписку

        Args:
            key_pair: VAPID ключи приложения
            subscription: Подписка получателя
            payload: Данные уведомления
            ttl: TTL в секундах (по умолчанию из настроек сервиса)
            urgency: Urgency заголовок
            topic: Topic заголовок

        Returns:
            DeliveryOutcome

        Raises:
            InputError: некорректные входные данные
            CryptoError: сбой шифрования или подписи
        """
        started = time.monotonic()
        origin = audience_from_endpoint(subscription.endpoint)
        plaintext = self.serialize_payload(payload)

        record = self.encryptor.encrypt(subscription.p256dh, subscription.auth, plaintext)
        assertion = build_assertion(key_pair, origin, self.token_expiry_seconds)

        outcome = await self.dispatcher.send(
            subscription,
            record,
            assertion,
            self.ttl if ttl is None else ttl,
            urgency=urgency,
            topic=topic,
        )

        log_push_event(
            "push_sent" if outcome.success else "push_failed",
            push_origin=origin,
            level=logging.INFO if outcome.success else logging.WARNING,
            outcome=outcome.kind.value,
            upstream_status=outcome.status_code,
            payload_bytes=len(plaintext),
            record_bytes=len(record),
            process_time=round(time.monotonic() - started, 3),
        )
        return outcome

    async def send_or_raise(self, *args, **kwargs) -> DeliveryOutcome:
        """То же, что send_notification, но недоставка - UpstreamError"""
        outcome = await self.send_notification(*args, **kwargs)
        if outcome.kind != OutcomeKind.DELIVERED:
            raise UpstreamError(outcome)
        return outcome


# Singleton instance
push_service = PushRelayService.from_settings()


def get_push_service() -> PushRelayService:
    """Dependency для FastAPI (переопределяется в тестах)"""
    return push_service
