"""
Conversation API Routes - staff view of the SMS funnel
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.api.dependencies.admin_auth import require_admin_token
from dealer_bot.api.dependencies.services import get_conversation_manager
from dealer_bot.core.exceptions import NotFoundException, ErrorCode
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator, TextSanitizer
from dealer_bot.db.database import get_db
from dealer_bot.db.models.booking import Appointment, Callback
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.state_machine.manager import ConversationManager

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_token)])


class StartConversationRequest(BaseModel):
    phone: str
    message: str | None = Field(None, max_length=1600)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        normalized = PhoneNumberValidator.normalize(v)
        if normalized is None:
            raise ValueError("Invalid phone number")
        return normalized

    @field_validator("message")
    @classmethod
    def sanitize_message(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return TextSanitizer.sanitize(v) or None


class ManualReplyRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1600)

    @field_validator("message")
    @classmethod
    def sanitize_message(cls, v: str) -> str:
        cleaned = TextSanitizer.sanitize(v)
        if not cleaned:
            raise ValueError("Message is empty")
        return cleaned


class ConversationResponse(BaseModel):
    id: int
    customer_phone: str
    status: str
    stage: str
    vehicle_type: str | None
    budget: str | None
    budget_amount: int | None
    intent: str | None
    customer_name: str | None
    preferred_time: str | None
    started_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True, "use_enum_values": True}


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    role: str
    content: str
    created_at: datetime | None

    model_config = {"from_attributes": True, "use_enum_values": True}


class ConversationHistoryResponse(BaseModel):
    phone: str
    customer_name: str | None
    conversation: ConversationResponse | None
    messages: list[MessageResponse]


@router.post(
    "/start",
    response_model=ConversationResponse,
    summary="Send the opening SMS to a new lead",
    responses={
        409: {"description": "Customer already has an active conversation"},
        503: {"description": "SMS transport failure"},
    },
)
async def start_conversation(
    data: StartConversationRequest,
    manager: ConversationManager = Depends(get_conversation_manager),
) -> ConversationResponse:
    conversation = await manager.start_conversation(data.phone, data.message)
    return ConversationResponse.model_validate(conversation)


@router.post(
    "/{phone}/reply",
    response_model=ConversationResponse,
    summary="Send a staff reply into the conversation",
)
async def manual_reply(
    phone: str,
    data: ManualReplyRequest,
    manager: ConversationManager = Depends(get_conversation_manager),
) -> ConversationResponse:
    canonical = PhoneNumberValidator.require(phone)
    conversation = await manager.send_manual_reply(canonical, data.message)
    return ConversationResponse.model_validate(conversation)


@router.get(
    "",
    response_model=list[ConversationResponse],
    summary="Most recent conversations",
)
async def list_conversations(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
) -> list[ConversationResponse]:
    conversations = await ConversationStore(db).list_conversations(limit=min(max(limit, 1), 500))
    return [ConversationResponse.model_validate(c) for c in conversations]


@router.get(
    "/{phone}",
    response_model=ConversationHistoryResponse,
    summary="Transcript for one phone",
    responses={404: {"description": "No conversation for this phone"}},
)
async def get_conversation(
    phone: str,
    db: AsyncSession = Depends(get_db),
) -> ConversationHistoryResponse:
    canonical = PhoneNumberValidator.require(phone)
    store = ConversationStore(db)
    conversation = await store.get_latest_conversation(canonical)
    if conversation is None:
        raise NotFoundException("Conversation", canonical, error_code=ErrorCode.CONVERSATION_NOT_FOUND)

    customer = await store.get_customer(canonical)
    messages = await store.get_history(canonical)
    return ConversationHistoryResponse(
        phone=canonical,
        customer_name=customer.name if customer else None,
        conversation=ConversationResponse.model_validate(conversation),
        messages=[MessageResponse.model_validate(m) for m in messages],
    )


@router.delete(
    "/{phone}",
    summary="Delete a phone's conversations, messages and bookings",
)
async def delete_conversation(
    phone: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    canonical = PhoneNumberValidator.require(phone)
    deleted = await ConversationStore(db).delete_conversation_cascade(canonical)
    return {"success": True, "deleted": deleted}


@router.delete("/appointments/{booking_id}", summary="Delete one appointment")
async def delete_appointment(booking_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    if not await ConversationStore(db).delete_booking(Appointment, booking_id):
        raise NotFoundException("Appointment", booking_id)
    return {"success": True}


@router.delete("/callbacks/{booking_id}", summary="Delete one callback request")
async def delete_callback(booking_id: int, db: AsyncSession = Depends(get_db)) -> dict:
    if not await ConversationStore(db).delete_booking(Callback, booking_id):
        raise NotFoundException("Callback", booking_id)
    return {"success": True}
