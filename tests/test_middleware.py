"""
Middleware tests - dealer_bot/core/middleware.py

Covers:
- CorrelationIdMiddleware: correlation ID propagation
- RequestLoggingMiddleware: request logging with masked paths
- WebhookRateLimitMiddleware: per-IP webhook limit
- Exception handlers for AppException and unexpected errors
- mask_path_pii
"""
import time
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from dealer_bot.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    WebhookRateLimitMiddleware,
    mask_path_pii,
    app_exception_handler,
    generic_exception_handler,
)
from dealer_bot.core.exceptions import (
    AppException,
    ErrorCode,
    NotFoundException,
    ValidationException,
)


def _hello(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def _webhook(request: Request) -> PlainTextResponse:
    return PlainTextResponse("<Response></Response>")


def _error(request: Request) -> PlainTextResponse:
    raise ValueError("boom")


def _build_app(*, middlewares: list[tuple] | None = None) -> Starlette:
    app = Starlette(routes=[
        Route("/test", _hello),
        Route("/api/sms/webhook", _webhook, methods=["GET", "POST"]),
        Route("/error", _error),
    ])
    for mw_class, kwargs in middlewares or []:
        app.add_middleware(mw_class, **kwargs)
    return app


class TestMaskPathPii:

    @pytest.mark.unit
    def test_masks_e164_phone_in_path(self) -> None:
        masked = mask_path_pii("/api/conversations/+15873066133")
        assert masked == "/api/conversations/+1587***6133"

    @pytest.mark.unit
    def test_masks_ten_digit_phone(self) -> None:
        masked = mask_path_pii("/api/conversations/5873066133/reply")
        assert "306" not in masked
        assert "***" in masked

    @pytest.mark.unit
    def test_masks_url_encoded_plus(self) -> None:
        masked = mask_path_pii("/api/conversations/%2B15873066133")
        assert "3066133" not in masked

    @pytest.mark.unit
    def test_no_phone_no_change(self) -> None:
        assert mask_path_pii("/api/bulk/status") == "/api/bulk/status"

    @pytest.mark.unit
    def test_short_number_not_masked(self) -> None:
        assert mask_path_pii("/api/conversations/appointments/12345") == (
            "/api/conversations/appointments/12345"
        )


class TestCorrelationIdMiddleware:

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")
            assert response.status_code == 200
            assert response.headers["x-correlation-id"]

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "lead-42"})
            assert response.headers["x-correlation-id"] == "lead-42"

    @pytest.mark.unit
    def test_correlation_id_unique_per_request(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            first = client.get("/test").headers["x-correlation-id"]
            second = client.get("/test").headers["x-correlation-id"]
            assert first != second


class TestRequestLoggingMiddleware:

    @pytest.mark.unit
    def test_successful_request_passes_through(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app) as client:
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_exception_in_handler_reraised(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=False) as client:
            assert client.get("/error").status_code == 500


class TestWebhookRateLimitMiddleware:

    @pytest.mark.unit
    def test_allows_requests_under_limit(self) -> None:
        app = _build_app(middlewares=[
            (WebhookRateLimitMiddleware, {"max_requests": 5, "window_seconds": 60}),
        ])
        with TestClient(app) as client:
            for _ in range(5):
                assert client.post("/api/sms/webhook").status_code == 200

    @pytest.mark.unit
    def test_blocks_requests_over_limit(self) -> None:
        app = _build_app(middlewares=[
            (WebhookRateLimitMiddleware, {"max_requests": 3, "window_seconds": 60}),
        ])
        with TestClient(app) as client:
            for _ in range(3):
                client.post("/api/sms/webhook")

            response = client.post("/api/sms/webhook")
            assert response.status_code == 429
            assert response.headers["Retry-After"] == "60"
            assert response.json()["error"]["code"] == ErrorCode.RATE_LIMITED.value

    @pytest.mark.unit
    def test_non_webhook_paths_not_limited(self) -> None:
        app = _build_app(middlewares=[
            (WebhookRateLimitMiddleware, {"max_requests": 1, "window_seconds": 60}),
        ])
        with TestClient(app) as client:
            client.post("/api/sms/webhook")
            assert client.post("/api/sms/webhook").status_code == 429

            assert client.get("/test").status_code == 200
            assert client.get("/test").status_code == 200

    @pytest.mark.unit
    def test_prune_drops_entries_outside_window(self) -> None:
        mw = WebhookRateLimitMiddleware(_build_app(), max_requests=100, window_seconds=60)
        now = time.monotonic()
        mw._requests["1.2.3.4"] = [now - 120, now - 90, now - 30, now]

        assert mw._prune("1.2.3.4", now) == 2
        assert len(mw._requests["1.2.3.4"]) == 2

    @pytest.mark.unit
    def test_prune_deletes_idle_ip(self) -> None:
        mw = WebhookRateLimitMiddleware(_build_app(), max_requests=100, window_seconds=60)
        now = time.monotonic()
        mw._requests["1.2.3.4"] = [now - 120]

        assert mw._prune("1.2.3.4", now) == 0
        assert "1.2.3.4" not in mw._requests

    @pytest.mark.unit
    def test_prune_keeps_ips_separate(self) -> None:
        mw = WebhookRateLimitMiddleware(_build_app(), max_requests=2, window_seconds=60)
        now = time.monotonic()
        mw._requests["1.2.3.4"] = [now, now]
        mw._requests["5.6.7.8"] = [now]

        assert mw._prune("1.2.3.4", now) == 2
        assert mw._prune("5.6.7.8", now) == 1

    @pytest.mark.unit
    def test_429_response_includes_correlation_id(self) -> None:
        app = _build_app(middlewares=[
            (WebhookRateLimitMiddleware, {"max_requests": 1, "window_seconds": 60}),
            (CorrelationIdMiddleware, {}),
        ])
        with TestClient(app) as client:
            client.post("/api/sms/webhook")
            response = client.post("/api/sms/webhook")

            assert response.status_code == 429
            assert "x-correlation-id" in response.headers


class TestAppExceptionHandler:

    @pytest.mark.asyncio
    async def test_handles_not_found(self) -> None:
        exc = NotFoundException("Campaign", "spring", error_code=ErrorCode.CAMPAIGN_NOT_FOUND)
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/bulk/campaigns/spring"

        response = await app_exception_handler(mock_request, exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 404
        assert "x-correlation-id" in response.headers
        assert ErrorCode.CAMPAIGN_NOT_FOUND.value in response.body.decode()

    @pytest.mark.asyncio
    async def test_handles_validation_exception(self) -> None:
        exc = ValidationException("Invalid phone", field="phone")
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/conversations/start"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_custom_status_code_kept(self) -> None:
        exc = AppException("Already active", error_code=ErrorCode.CONVERSATION_ALREADY_ACTIVE, status_code=409)
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/conversations/start"

        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 409


class TestGenericExceptionHandler:

    @pytest.mark.asyncio
    async def test_handles_unexpected_exception(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/dashboard"

        response = await generic_exception_handler(mock_request, RuntimeError("unexpected"))

        assert response.status_code == 500
        assert "x-correlation-id" in response.headers

    @pytest.mark.asyncio
    async def test_does_not_leak_internal_details(self) -> None:
        exc = RuntimeError("database connection failed on host 10.0.0.1")
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/analytics"

        response = await generic_exception_handler(mock_request, exc)

        body = response.body.decode()
        assert "10.0.0.1" not in body
        assert "database connection" not in body
        assert ErrorCode.INTERNAL_ERROR.value in body


class TestSetupMiddleware:

    @pytest.mark.asyncio
    async def test_full_middleware_stack(self, test_client) -> None:
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert "x-correlation-id" in response.headers
