"""
Admin token check for the staff endpoints (bulk, conversations, voice,
analytics).

Usage:
    @router.post("/pause")
    async def pause(_: None = Depends(require_admin_token)):
        ...
"""
import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger

logger = get_logger(__name__)

_admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


async def require_admin_token(
    token: str | None = Depends(_admin_token_header),
) -> None:
    """
    401 when the header is missing, 403 when it does not match.
    With ADMIN_API_TOKEN unset the admin surface is closed.
    """
    if not settings.ADMIN_API_TOKEN:
        logger.warning("Admin endpoint refused: ADMIN_API_TOKEN not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_API_TOKEN is not configured",
        )

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin token (X-Admin-Token header)",
        )

    if not hmac.compare_digest(token, settings.ADMIN_API_TOKEN):
        logger.warning("Admin endpoint refused: wrong token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )
