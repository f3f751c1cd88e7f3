"""
Twilio webhook signature check.

Twilio signs every webhook with ``X-Twilio-Signature``: base64 of
HMAC-SHA1(auth token, full URL + each POST param name and value sorted by
name). Checked only when TWILIO_VALIDATE_SIGNATURE is on.
"""
import base64
import hashlib
import hmac
from collections.abc import Mapping

from fastapi import Header, HTTPException, Request, status

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger

logger = get_logger(__name__)


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def _signed_url(request: Request) -> str:
    # Behind a proxy the public URL differs from the one uvicorn sees
    if settings.PUBLIC_BASE_URL:
        url = f"{settings.PUBLIC_BASE_URL}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url
    return str(request.url)


async def verify_twilio_signature(
    request: Request,
    x_twilio_signature: str | None = Header(None),
) -> None:
    if not settings.TWILIO_VALIDATE_SIGNATURE:
        return

    if not x_twilio_signature:
        logger.warning("Twilio webhook without X-Twilio-Signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing Twilio signature",
        )

    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    expected = compute_twilio_signature(settings.TWILIO_AUTH_TOKEN, _signed_url(request), params)

    if not hmac.compare_digest(x_twilio_signature, expected):
        logger.warning("Twilio webhook with invalid signature", extra_data={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid Twilio signature",
        )
