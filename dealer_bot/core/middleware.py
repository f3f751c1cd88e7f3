"""
FastAPI Middleware

- Correlation ID injection
- Request logging (phone numbers masked)
- Exception handlers rendering AppException as JSON
- Sliding-window rate limiting for webhook endpoints
"""
import re
import time
from collections import defaultdict
from typing import Callable
from urllib.parse import unquote

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from dealer_bot.core.logging import (
    get_logger,
    set_correlation_id,
    get_correlation_id
)
from dealer_bot.core.exceptions import AppException, ErrorCode

logger = get_logger(__name__)

# +15873066133 / 5873066133 in a path segment
_PHONE_IN_PATH_RE = re.compile(r"(\+?1?\d{3})\d{3}(\d{4})")


def mask_path_pii(path: str) -> str:
    """Replace the exchange digits of any phone number in a URL path."""
    return _PHONE_IN_PATH_RE.sub(r"\1***\2", unquote(path))


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Adds X-Correlation-ID to the logging context and the response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with timing"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        safe_path = mask_path_pii(request.url.path)

        logger.info(
            f"Request started: {request.method} {safe_path}",
            extra_data={
                "method": request.method,
                "path": safe_path,
                "client_host": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {safe_path}",
                extra_data={
                    "method": request.method,
                    "path": safe_path,
                    "duration_seconds": round(time.perf_counter() - start_time, 4),
                    "error": str(e),
                },
                exc_info=True
            )
            raise

        log = logger.info if response.status_code < 400 else logger.warning
        log(
            f"Request completed: {request.method} {safe_path}",
            extra_data={
                "method": request.method,
                "path": safe_path,
                "status_code": response.status_code,
                "duration_seconds": round(time.perf_counter() - start_time, 4),
            }
        )
        return response


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"Application exception: {exc.error_code.value}",
        extra_data={
            "error_code": exc.error_code.value,
            "message": exc.message,
            "path": mask_path_pii(request.url.path),
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"X-Correlation-ID": get_correlation_id()}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra_data={
            "exception_type": type(exc).__name__,
            "message": str(exc),
            "path": mask_path_pii(request.url.path),
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "details": {}
            }
        },
        headers={"X-Correlation-ID": get_correlation_id()}
    )


class WebhookRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP sliding window limit on paths containing /webhook.

    Returns 429 with Retry-After once a client exceeds ``max_requests``
    within ``window_seconds``.
    """

    def __init__(self, app: FastAPI, *, max_requests: int = 100, window_seconds: int = 60) -> None:
        super().__init__(app)
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._requests: dict[str, list[float]] = defaultdict(list)

    def _prune(self, ip: str, now: float) -> int:
        cutoff = now - self._window_seconds
        recent = [ts for ts in self._requests.get(ip, []) if ts >= cutoff]
        if recent:
            self._requests[ip] = recent
        else:
            self._requests.pop(ip, None)
        return len(recent)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if "/webhook" not in path:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()

        if self._prune(client_ip, now) >= self._max_requests:
            logger.warning(
                "Rate limit exceeded for webhook",
                extra_data={
                    "client_ip": client_ip,
                    "path": path,
                    "limit": self._max_requests,
                    "window_seconds": self._window_seconds,
                },
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": {
                        "code": ErrorCode.RATE_LIMITED.value,
                        "message": "Too many requests. Please try again later.",
                        "details": {},
                    }
                },
                headers={
                    "Retry-After": str(self._window_seconds),
                    "X-Correlation-ID": get_correlation_id(),
                },
            )

        self._requests[client_ip].append(now)
        return await call_next(request)


def setup_middleware(app: FastAPI) -> None:
    """
    Register middleware. The last one added is the outermost, so a request
    passes CorrelationId, then RequestLogging, then RateLimit.
    """
    from dealer_bot.core.config import settings

    app.add_middleware(
        WebhookRateLimitMiddleware,
        max_requests=settings.WEBHOOK_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.WEBHOOK_RATE_LIMIT_WINDOW_SECONDS,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
