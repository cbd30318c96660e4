"""
Тесты для сервиса отправки push notifications
"""
import json
import time
from unittest.mock import patch

import http_ece
import httpx
import pytest
from jose import jwt

from pushrelay.services.push_service import (
    PushRelayService,
    WebPushDispatcher,
    classify_response,
)
from pushrelay.webpush.ece import KeySchedule, decrypt
from pushrelay.webpush.exceptions import InputError, UpstreamError
from pushrelay.webpush.models import OutcomeKind, PushSubscription
from pushrelay.webpush.vapid import build_assertion

ORIGIN = "https://fcm.googleapis.com"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class RecordingHandler:
    """Запоминает запросы и отвечает заданным статусом"""

    def __init__(self, status_code: int = 201, text: str = ""):
        self.status_code = status_code
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.text)


class TestClassifyResponse:
    """Тесты для классификации ответов push сервиса"""

    @pytest.mark.parametrize("status_code, kind", [
        (200, OutcomeKind.DELIVERED),
        (201, OutcomeKind.DELIVERED),
        (202, OutcomeKind.DELIVERED),
        (404, OutcomeKind.GONE),
        (410, OutcomeKind.GONE),
        (429, OutcomeKind.TRANSIENT),
        (500, OutcomeKind.TRANSIENT),
        (503, OutcomeKind.TRANSIENT),
        (400, OutcomeKind.REJECTED),
        (401, OutcomeKind.REJECTED),
        (403, OutcomeKind.REJECTED),
        (413, OutcomeKind.REJECTED),
        (301, OutcomeKind.REJECTED),
    ])
    def test_classification(self, status_code, kind):
        assert classify_response(status_code).kind == kind

    def test_details_truncated(self):
        outcome = classify_response(400, "x" * 5000)
        assert len(outcome.details) == 1024
        assert outcome.message == "Push service error: 400"

    def test_gone_outcome(self):
        outcome = classify_response(410, "expired")
        assert outcome.is_gone
        assert not outcome.is_retryable
        assert outcome.to_dict()["outcome"] == "gone"


class TestWebPushDispatcher:
    """Тесты для HTTP отправки записи"""

    @pytest.fixture
    def assertion(self, vapid_key_pair):
        return build_assertion(vapid_key_pair, ORIGIN)

    @pytest.fixture
    def record(self, subscription):
        return PushRelayService().encryptor.encrypt(subscription.p256dh, subscription.auth, b"hello")

    def test_headers(self, assertion):
        headers = WebPushDispatcher().build_headers(assertion, 3600, urgency="high", topic="news")

        assert headers["Content-Type"] == "application/octet-stream"
        assert headers["Content-Encoding"] == "aes128gcm"
        assert headers["TTL"] == "3600"
        assert headers["Urgency"] == "high"
        assert headers["Topic"] == "news"
        assert headers["Authorization"].startswith("vapid t=")
        assert headers["Authorization"].endswith(f", k={assertion.public_key}")

    def test_optional_headers_omitted(self, assertion):
        headers = WebPushDispatcher().build_headers(assertion, 0)

        assert headers["TTL"] == "0"
        assert "Urgency" not in headers
        assert "Topic" not in headers
        assert "Crypto-Key" not in headers

    def test_legacy_headers(self, assertion):
        headers = WebPushDispatcher(legacy_auth_header=True).build_headers(assertion, 60)

        assert headers["Authorization"] == f"WebPush {assertion.token}"
        assert headers["Crypto-Key"] == f"p256ecdsa={assertion.public_key}"

    @pytest.mark.parametrize("ttl", [-1, "60", True])
    def test_invalid_ttl(self, assertion, ttl):
        with pytest.raises(InputError):
            WebPushDispatcher().build_headers(assertion, ttl)

    def test_invalid_urgency(self, assertion):
        with pytest.raises(InputError):
            WebPushDispatcher().build_headers(assertion, 60, urgency="urgent")

    @pytest.mark.asyncio
    async def test_posts_record_to_endpoint(self, subscription, record, assertion):
        handler = RecordingHandler(201)
        dispatcher = WebPushDispatcher(client=mock_client(handler))

        outcome = await dispatcher.send(subscription, record, assertion, 60)

        assert outcome.success
        assert outcome.status_code == 201
        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == subscription.endpoint
        assert request.content == record.to_bytes()
        assert request.headers["ttl"] == "60"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, subscription, record, assertion):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = await WebPushDispatcher(client=mock_client(handler)).send(subscription, record, assertion, 60)

        assert outcome.kind == OutcomeKind.TRANSIENT
        assert outcome.status_code is None
        assert outcome.message == "Push service timed out"

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, subscription, record, assertion):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        outcome = await WebPushDispatcher(client=mock_client(handler)).send(subscription, record, assertion, 60)

        assert outcome.is_retryable
        assert outcome.message == "Push service unreachable"

    @pytest.mark.asyncio
    async def test_audience_mismatch(self, subscription, record, vapid_key_pair):
        assertion = build_assertion(vapid_key_pair, "https://updates.push.services.mozilla.com")
        handler = RecordingHandler(201)

        with pytest.raises(InputError):
            await WebPushDispatcher(client=mock_client(handler)).send(subscription, record, assertion, 60)
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_expired_assertion(self, subscription, record, vapid_key_pair):
        assertion = build_assertion(vapid_key_pair, ORIGIN, 60, clock=lambda: time.time() - 3600)

        with pytest.raises(InputError):
            await WebPushDispatcher(client=mock_client(RecordingHandler())).send(subscription, record, assertion, 60)


class TestPushRelayService:
    """Тесты для полного цикла отправки"""

    @pytest.mark.asyncio
    async def test_subscriber_can_decrypt(self, subscription, subscriber_private_key, vapid_key_pair):
        handler = RecordingHandler(201)
        service = PushRelayService(ttl=120, client=mock_client(handler))

        payload = {"title": "Привет", "body": "Новое сообщение"}
        outcome = await service.send_notification(vapid_key_pair, subscription, payload, urgency="normal")

        assert outcome.success
        request = handler.requests[0]
        assert request.headers["ttl"] == "120"
        assert request.headers["urgency"] == "normal"

        plaintext = decrypt(request.content, subscriber_private_key, subscription.auth)
        assert json.loads(plaintext.decode("utf-8")) == payload

    @pytest.mark.asyncio
    async def test_default_body_decrypts_with_http_ece(self, subscription, subscriber_private_key, vapid_key_pair):
        handler = RecordingHandler(201)
        service = PushRelayService(client=mock_client(handler))

        await service.send_notification(vapid_key_pair, subscription, {"title": "H"})

        decrypted = http_ece.decrypt(
            handler.requests[0].content,
            private_key=subscriber_private_key,
            auth_secret=subscription.auth,
            version="aes128gcm",
        )
        assert decrypted == b'{"title":"H"}'

    @pytest.mark.asyncio
    async def test_context_schedule(self, subscription, subscriber_private_key, vapid_key_pair):
        handler = RecordingHandler(201)
        service = PushRelayService(key_schedule=KeySchedule.CONTEXT, client=mock_client(handler))

        await service.send_notification(vapid_key_pair, subscription, "plain text")

        content = handler.requests[0].content
        assert decrypt(content, subscriber_private_key, subscription.auth, KeySchedule.CONTEXT) == b"plain text"

    @pytest.mark.asyncio
    async def test_configured_timeout_reaches_client(self, subscription, vapid_key_pair):
        transport = httpx.MockTransport(RecordingHandler(201))
        real_client = httpx.AsyncClient

        def client_factory(**kwargs):
            return real_client(transport=transport, **kwargs)

        service = PushRelayService(timeout=3.5)
        with patch("pushrelay.services.push_service.httpx.AsyncClient", side_effect=client_factory) as factory:
            outcome = await service.send_notification(vapid_key_pair, subscription, {"title": "Hi"})

        assert outcome.success
        factory.assert_called_once_with(timeout=3.5)

    @pytest.mark.asyncio
    async def test_token_bound_to_endpoint_origin(self, subscription, vapid_key_pair):
        handler = RecordingHandler(201)
        await PushRelayService(client=mock_client(handler)).send_notification(
            vapid_key_pair, subscription, {"title": "Hi"}
        )

        authorization = handler.requests[0].headers["authorization"]
        token = authorization[len("vapid t="):].split(",")[0]
        assert jwt.get_unverified_claims(token)["aud"] == ORIGIN

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self, subscription, vapid_key_pair):
        handler = RecordingHandler(201)
        service = PushRelayService(ttl=86400, client=mock_client(handler))

        await service.send_notification(vapid_key_pair, subscription, {"title": "Hi"}, ttl=0)

        assert handler.requests[0].headers["ttl"] == "0"

    @pytest.mark.asyncio
    async def test_gone_subscription(self, subscription, vapid_key_pair):
        service = PushRelayService(client=mock_client(RecordingHandler(410, "subscription expired")))

        outcome = await service.send_notification(vapid_key_pair, subscription, {"title": "Hi"})

        assert outcome.is_gone
        assert outcome.status_code == 410
        assert outcome.details == "subscription expired"

    @pytest.mark.asyncio
    async def test_send_or_raise(self, subscription, vapid_key_pair):
        service = PushRelayService(client=mock_client(RecordingHandler(404)))

        with pytest.raises(UpstreamError) as exc_info:
            await service.send_or_raise(vapid_key_pair, subscription, {"title": "Hi"})

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_permanent

    @pytest.mark.asyncio
    async def test_push_event_logged(self, subscription, vapid_key_pair):
        service = PushRelayService(client=mock_client(RecordingHandler(201)))

        with patch("pushrelay.services.push_service.log_push_event") as log_event:
            await service.send_notification(vapid_key_pair, subscription, {"title": "Hi"})

        args, kwargs = log_event.call_args
        assert args[0] == "push_sent"
        assert kwargs["push_origin"] == ORIGIN
        assert kwargs["outcome"] == "delivered"
        assert kwargs["payload_bytes"] == len(b'{"title":"Hi"}')

    @pytest.mark.asyncio
    async def test_non_https_endpoint_rejected(self, subscriber_public_key, auth_secret, vapid_key_pair):
        subscription = PushSubscription(
            endpoint="http://push.example.com/abc", p256dh=subscriber_public_key, auth=auth_secret
        )
        handler = RecordingHandler(201)

        with pytest.raises(InputError):
            await PushRelayService(client=mock_client(handler)).send_notification(
                vapid_key_pair, subscription, {"title": "Hi"}
            )
        assert handler.requests == []

    def test_serialize_payload(self):
        assert PushRelayService.serialize_payload({"title": "Привет"}) == '{"title":"Привет"}'.encode("utf-8")
        assert PushRelayService.serialize_payload("text") == b"text"
        assert PushRelayService.serialize_payload(b"\x00\x01") == b"\x00\x01"


class TestPushSubscription:
    """Тесты для модели подписки"""

    def test_from_base64(self, subscription_json):
        subscription = PushSubscription.from_base64(
            subscription_json["endpoint"],
            subscription_json["keys"]["p256dh"],
            subscription_json["keys"]["auth"],
        )

        assert subscription.origin == ORIGIN
        assert len(subscription.auth) == 16
        assert "keys" not in repr(subscription)

    def test_bad_auth_length(self, subscription_json):
        with pytest.raises(InputError):
            PushSubscription.from_base64(subscription_json["endpoint"], subscription_json["keys"]["p256dh"], "AAAA")

    def test_bad_p256dh(self, subscription_json):
        with pytest.raises(InputError):
            PushSubscription.from_base64(
                subscription_json["endpoint"], "B" + "A" * 86, subscription_json["keys"]["auth"]
            )
