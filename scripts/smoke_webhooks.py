"""
Smoke tests against a running instance.

- GET /health and /health/ready
- POST /api/sms/webhook without a sender (acknowledged, no funnel turn)
- POST /api/sms/voice/keypress with digit 2 (hang-up TwiML, no forward)

None of the requests sends an SMS or places a call. When
TWILIO_VALIDATE_SIGNATURE is on for the target, pass the same
TWILIO_AUTH_TOKEN and PUBLIC_BASE_URL so the requests are signed.

    python scripts/smoke_webhooks.py
    BASE_URL=https://dealer.example.com python scripts/smoke_webhooks.py
"""
from __future__ import annotations

import os
import sys

import httpx

from dealer_bot.api.dependencies.webhook_auth import compute_twilio_signature
from dealer_bot.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _signed_headers(path: str, params: dict[str, str]) -> dict[str, str]:
    auth_token = os.environ.get("TWILIO_AUTH_TOKEN")
    if not auth_token:
        return {}
    public_url = os.environ.get("PUBLIC_BASE_URL") or _base_url()
    signature = compute_twilio_signature(auth_token, f"{public_url.rstrip('/')}{path}", params)
    return {"X-Twilio-Signature": signature}


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    if resp.status_code // 100 != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def _post_twilio(client: httpx.Client, path: str, params: dict[str, str]) -> httpx.Response:
    url = f"{_base_url()}{path}"
    logger.info("Posting Twilio form", extra_data={"url": url})
    return client.post(url, data=params, headers=_signed_headers(path, params))


def main() -> int:
    setup_logging(level="INFO", json_format=False, app_name="dealer-bot-smoke")

    base_url = _base_url()
    timeout = _timeout_seconds()
    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    try:
        with httpx.Client(timeout=timeout) as client:
            _check_status(client.get(f"{base_url}/health"))

            ready = client.get(f"{base_url}/health/ready")
            if ready.status_code != 200:
                logger.warning("Readiness degraded", extra_data=ready.json())

            resp = _post_twilio(client, "/api/sms/webhook", {"Body": "smoke"})
            _check_status(resp)
            if "<Response" not in resp.text:
                raise RuntimeError(f"SMS webhook did not return TwiML: {resp.text[:200]}")

            resp = _post_twilio(client, "/api/sms/voice/keypress", {"Digits": "2"})
            _check_status(resp)
            if "<Hangup/>" not in resp.text:
                raise RuntimeError(f"Keypress did not hang up: {resp.text[:200]}")
    except (httpx.HTTPError, RuntimeError) as e:
        logger.error("Smoke tests failed", extra_data={"error": str(e)})
        return 1

    logger.info("Smoke tests completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
