"""
Bulk Campaign API Routes
"""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.api.dependencies.admin_auth import require_admin_token
from dealer_bot.api.dependencies.services import get_drain_control, get_provider
from dealer_bot.core.logging import get_logger
from dealer_bot.db.database import get_db
from dealer_bot.domain.services.bulk_campaign_service import BulkCampaignService
from dealer_bot.domain.services.contact_import import parse_csv
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.sms import BaseSmsProvider

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_token)])


class CampaignCreate(BaseModel):
    """Contacts are ``{name, phone}`` objects, from a parsed CSV or a CRM export"""
    campaign_name: str = Field(..., min_length=1, max_length=200)
    message_template: Any = None
    contacts: Any = None


class CsvParseRequest(BaseModel):
    csv_data: str


class CancelPendingRequest(BaseModel):
    reason: str = "Cancelled by user"


def get_bulk_service(
    db: AsyncSession = Depends(get_db),
    control: DrainControl = Depends(get_drain_control),
    provider: BaseSmsProvider = Depends(get_provider),
) -> BulkCampaignService:
    return BulkCampaignService(db, control, provider)


@router.post(
    "/campaigns",
    summary="Create a bulk campaign",
    description="Schedules one SMS per valid contact, 60s out and 15s apart.",
    responses={
        200: {"description": "Campaign scheduled"},
        400: {"description": "Invalid template or no valid contacts"},
    },
)
async def create_campaign(
    data: CampaignCreate,
    service: BulkCampaignService = Depends(get_bulk_service),
) -> dict[str, Any]:
    return await service.create_campaign(data.campaign_name, data.message_template, data.contacts)


@router.get("/campaigns", summary="List campaigns")
async def list_campaigns(
    service: BulkCampaignService = Depends(get_bulk_service),
) -> list[dict[str, Any]]:
    return await service.list_campaigns()


@router.get(
    "/campaigns/{campaign_name}",
    summary="Campaign progress",
    responses={404: {"description": "Campaign not found"}},
)
async def get_campaign(
    campaign_name: str,
    service: BulkCampaignService = Depends(get_bulk_service),
) -> dict[str, Any]:
    return await service.get_campaign_stats(campaign_name)


@router.post(
    "/parse-csv",
    summary="Parse a name,phone CSV",
    description="Returns the valid contacts and a per-row error list.",
)
async def parse_contacts_csv(data: CsvParseRequest) -> dict[str, Any]:
    result = parse_csv(data.csv_data)
    logger.info(
        "Contact CSV parsed",
        extra_data={"contacts": len(result.contacts), "errors": len(result.errors)}
    )
    return result.to_dict()


@router.post("/pause", summary="Pause the drain")
async def pause(service: BulkCampaignService = Depends(get_bulk_service)) -> dict[str, Any]:
    await service.pause_drain()
    return {"success": True, "paused": True}


@router.post("/resume", summary="Resume a paused drain")
async def resume(service: BulkCampaignService = Depends(get_bulk_service)) -> dict[str, Any]:
    await service.resume_drain()
    return {"success": True, "paused": False}


@router.post("/restart", summary="Restart the drain after an emergency stop")
async def restart(service: BulkCampaignService = Depends(get_bulk_service)) -> dict[str, Any]:
    await service.restart_drain()
    return {"success": True, "running": True}


@router.post(
    "/cancel-pending",
    summary="Cancel pending messages",
    description="Soft stop: pending jobs are cancelled and the drain keeps running.",
)
async def cancel_pending(
    data: CancelPendingRequest | None = None,
    service: BulkCampaignService = Depends(get_bulk_service),
) -> dict[str, Any]:
    reason = data.reason if data else CancelPendingRequest().reason
    return {"success": True, "cancelled": await service.cancel_pending(reason)}


@router.post(
    "/emergency-stop",
    summary="Emergency stop",
    description="Cancels every pending job and halts the drain until restart.",
)
async def emergency_stop(service: BulkCampaignService = Depends(get_bulk_service)) -> dict[str, Any]:
    result = await service.emergency_stop_all()
    return {"success": True, **result}


@router.get("/status", summary="Drain status and job counts")
async def drain_status(service: BulkCampaignService = Depends(get_bulk_service)) -> dict[str, Any]:
    return await service.get_drain_status()
