from contextlib import asynccontextmanager
import logging
import uvicorn

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from pushrelay import __version__
from pushrelay.api import router as api_router
from pushrelay.core.config import settings
from pushrelay.core.logging_config import setup_logging
from pushrelay.core.security_middleware import SecurityMiddleware
from pushrelay.webpush.exceptions import CryptoError, InputError, InvalidKeyError, WebPushError

# Настройка логирования
setup_logging(settings.LOG_LEVEL, settings.LOG_FILE, settings.LOG_FORMAT)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting {settings.PROJECT_NAME} v{__version__} ({settings.APP_ENV})")
    logger.info(f"  - Key schedule: {settings.key_schedule.value}")
    logger.info(f"  - Site key allow-list: {len(settings.allowed_site_keys) or 'disabled'}")
    if settings.VAPID_LEGACY_AUTH_HEADER:
        logger.warning("⚠️ Legacy WebPush/Crypto-Key authorization headers enabled")
    yield
    logger.info("🛑 Shutting down Web Push Relay")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Relay для отправки зашифрованных Web Push уведомлений с VAPID авторизацией",
    version=__version__,
    lifespan=lifespan,
    docs_url=("/docs" if settings.ENABLE_SWAGGER else None),
    redoc_url=("/redoc" if settings.ENABLE_SWAGGER else None)
)

# ============================================================================
# ОБРАБОТЧИКИ ОШИБОК
# ============================================================================


def _validation_message(exc: RequestValidationError) -> str:
    """Первое сообщение валидации в формате {"error": "..."}"""
    for error in exc.errors():
        message = str(error.get("msg", "Invalid request"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        if error.get("type") == "missing":
            return f"Missing required field: {location}"
        if error.get("type") == "json_invalid":
            return "Invalid JSON body"
        return f"{location}: {message}" if location else message
    return "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError):
    logger.info(f"Rejected push request: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(InvalidKeyError)
async def invalid_key_handler(request: Request, exc: InvalidKeyError):
    logger.info(f"Rejected push request: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(CryptoError)
async def crypto_error_handler(request: Request, exc: CryptoError):
    logger.error(f"❌ Crypto failure: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": exc.message})


@app.exception_handler(WebPushError)
async def webpush_error_handler(request: Request, exc: WebPushError):
    logger.error(f"❌ Web Push failure: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "details": exc.message})


# ============================================================================
# MIDDLEWARE
# ============================================================================

# Security Middleware (correlation ID, rate limiting, заголовки)
security_middleware = SecurityMiddleware()
app.middleware("http")(security_middleware)

cors_origins = settings.cors_origins or ["*"]
if "*" in cors_origins and settings.is_production:
    logger.warning("⚠️ CORS wildcard (*) in production - relay accepts requests from any site")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
    max_age=86400  # 24 часа кэш для preflight запросов
)

# ============================================================================
# ПОДКЛЮЧЕНИЕ API РОУТЕРОВ
# ============================================================================

app.include_router(api_router)


@app.get("/health", summary="Проверка здоровья relay")
async def health_check():
    """Проверка состояния сервиса"""
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": __version__,
        "key_schedule": settings.key_schedule.value,
        "endpoints": [f"POST {settings.API_PREFIX}/send", "GET /health"]
    }


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
