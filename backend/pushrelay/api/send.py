"""
Push Relay API
Endpoint для отправки зашифрованного push notification на подписку
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from pushrelay.core.config import settings
from pushrelay.core.logging_config import log_security_event
from pushrelay.core.secure_logging import mask_endpoint
from pushrelay.schemas.push import ErrorResponse, SendPushRequest, SendPushResponse
from pushrelay.services.push_service import PushRelayService, get_push_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def require_json_content_type(request: Request):
    """Тело запроса должно быть application/json"""
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type.lower():
        raise HTTPException(status_code=400, detail="Content-Type must be application/json")


@router.post(
    "/send",
    response_model=SendPushResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    dependencies=[Depends(require_json_content_type)],
)
async def send_push(
    body: SendPushRequest,
    request: Request,
    service: PushRelayService = Depends(get_push_service),
):
    """
    📨 Отправить push notification

    Шифрует payload ключами подписки (aes128gcm), подписывает VAPID токен
    ключами сайта и отправляет запись в push сервис браузера.

    **Параметры:**
    - site_key: Идентификатор сайта (проверяется по ALLOWED_SITE_KEYS)
    - vapid: subject, public_key, private_key
    - subscription: PushSubscription объект от браузера
    - payload: Данные уведомления (title и/или body)
    - ttl, urgency, topic: необязательные заголовки Web Push

    **Возвращает:**
    - 200 и success: true, если push сервис принял сообщение
    - статус push сервиса (или 504) и описание ошибки в остальных случаях
    """
    allowed_site_keys = settings.allowed_site_keys
    if allowed_site_keys and body.site_key not in allowed_site_keys:
        log_security_event(
            "invalid_site_key",
            source_ip=request.client.host if request.client else None,
            site_key=body.site_key,
        )
        return JSONResponse(status_code=403, content={"error": "Invalid site key"})

    key_pair = body.vapid.to_key_pair()
    subscription = body.subscription.to_subscription()

    logger.info(f"Sending push for site {body.site_key} to {mask_endpoint(subscription.endpoint)}")

    outcome = await service.send_notification(
        key_pair,
        subscription,
        body.serialized_payload(),
        ttl=body.ttl,
        urgency=body.urgency,
        topic=body.topic,
    )

    if outcome.success:
        return SendPushResponse(message=outcome.message, outcome=outcome.kind.value)

    if outcome.status_code is None:
        status_code, error = 504, outcome.message
    else:
        status_code, error = outcome.status_code, f"Push service error: {outcome.status_code}"

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=outcome.details, outcome=outcome.kind.value).model_dump(),
    )
