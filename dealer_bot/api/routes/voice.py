"""
Voice Drop API Routes
"""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.api.dependencies.admin_auth import require_admin_token
from dealer_bot.api.dependencies.services import get_provider
from dealer_bot.db.database import get_db
from dealer_bot.domain.services.sms import BaseSmsProvider
from dealer_bot.domain.services.voice_service import VoiceService

router = APIRouter(dependencies=[Depends(require_admin_token)])


class VoiceDropRequest(BaseModel):
    phone: str
    message: str = Field(..., min_length=1, max_length=1600)


class VoiceContact(BaseModel):
    name: str | None = None
    phone: str


class VoiceCampaignRequest(BaseModel):
    contacts: list[VoiceContact] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1600)
    delay_seconds: int | None = Field(None, ge=1, le=3600)


@router.post(
    "/drop",
    summary="Place one voice drop",
    responses={400: {"description": "Invalid phone"}, 503: {"description": "Call failed"}},
)
async def voice_drop(
    data: VoiceDropRequest,
    db: AsyncSession = Depends(get_db),
    provider: BaseSmsProvider = Depends(get_provider),
) -> dict[str, Any]:
    result = await VoiceService(db, provider).place_drop(data.phone, data.message)
    return {"success": True, **result}


@router.post(
    "/campaign",
    summary="Queue staggered voice drops",
    description="One Celery task per contact; {name} in the message is personalised.",
)
async def voice_campaign(data: VoiceCampaignRequest) -> dict[str, Any]:
    result = VoiceService.schedule_campaign(
        [c.model_dump() for c in data.contacts], data.message, data.delay_seconds
    )
    return {"success": True, **result}
