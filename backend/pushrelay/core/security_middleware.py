import time
from typing import Callable, Dict
from fastapi import Request
from fastapi.responses import JSONResponse
import logging
from collections import defaultdict, deque

from .logging_config import set_correlation_id, log_security_event
from pushrelay.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """Rate limiter с использованием sliding window"""

    def __init__(self, max_requests: int = 60, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.requests: Dict[str, deque] = defaultdict(deque)
        self._last_sweep = clock()

    def is_allowed(self, identifier: str) -> bool:
        """Проверяет, разрешен ли запрос"""
        now = self.clock()
        window_start = now - self.window_seconds

        # Раз в окно удаляем IP без запросов в текущем окне
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(window_start)
            self._last_sweep = now

        # Очищаем старые запросы
        timestamps = self.requests[identifier]
        while timestamps and timestamps[0] < window_start:
            timestamps.popleft()

        # Проверяем лимит
        if len(timestamps) >= self.max_requests:
            return False

        # Добавляем текущий запрос
        timestamps.append(now)
        return True

    def _sweep(self, window_start: float) -> None:
        for identifier in list(self.requests):
            timestamps = self.requests[identifier]
            while timestamps and timestamps[0] < window_start:
                timestamps.popleft()
            if not timestamps:
                del self.requests[identifier]

    def reset(self) -> None:
        self.requests.clear()


class SecurityMiddleware:
    """Middleware для безопасности: correlation ID, rate limiting, заголовки"""

    def __init__(self, max_requests_per_minute: int = None):
        rpm = max_requests_per_minute or settings.RATE_LIMIT_PER_MINUTE
        self.rate_limiter = RateLimiter(max_requests=rpm, window_seconds=60)

    async def __call__(self, request: Request, call_next):
        # Correlation ID из заголовка клиента или новый
        correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID") or None)

        client_ip = self._get_client_ip(request)

        # Лимитируем только отправку, preflight и health не трогаем
        if request.method.upper() == "POST" and not self.rate_limiter.is_allowed(client_ip):
            log_security_event("rate_limit_exceeded", source_ip=client_ip, path=str(request.url.path))
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded"},
                headers={"X-Correlation-ID": correlation_id}
            )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(f"Request failed: {type(e).__name__}",
                         extra={
                             "method": request.method,
                             "path": str(request.url.path),
                             "client_ip": client_ip,
                             "process_time": round(process_time, 3)
                         })
            raise

        process_time = time.time() - start_time
        logger.info("Request processed",
                    extra={
                        "method": request.method,
                        "path": str(request.url.path),
                        "client_ip": client_ip,
                        "status_code": response.status_code,
                        "process_time": round(process_time, 3)
                    })

        # Добавляем security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Correlation-ID"] = correlation_id

        return response

    def _get_client_ip(self, request: Request) -> str:
        """Получает реальный IP клиента"""
        # Проверяем заголовки от прокси
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # Берем первый IP из списка
            return forwarded_for.split(',')[0].strip()

        cf_connecting_ip = request.headers.get("CF-Connecting-IP")
        if cf_connecting_ip:
            return cf_connecting_ip

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"
