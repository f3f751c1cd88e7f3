"""
Twilio Webhook Handlers - SMS Gateway Layer

Twilio gets its acknowledgement before any database work; the funnel turn
runs afterwards as a background task with its own session.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import Response

from dealer_bot.api.dependencies.webhook_auth import verify_twilio_signature
from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.domain.services.inbound_service import process_inbound_sms
from dealer_bot.domain.services.sms import twiml

logger = get_logger(__name__)

router = APIRouter()

_TWIML_MEDIA_TYPE = "text/xml"


@router.post(
    "/webhook",
    summary="Inbound SMS webhook",
    description="Twilio messaging webhook. Replies are sent asynchronously through the REST API.",
    responses={200: {"description": "Empty TwiML acknowledgement"}},
    dependencies=[Depends(verify_twilio_signature)],
)
async def sms_webhook(
    background_tasks: BackgroundTasks,
    from_: str = Form("", alias="From"),
    body: str = Form("", alias="Body"),
) -> Response:
    logger.info(
        "Inbound SMS received",
        extra_data={"phone": PhoneNumberValidator.mask(from_), "length": len(body)}
    )
    if from_:
        background_tasks.add_task(process_inbound_sms, from_, body)
    return Response(content=twiml.EMPTY_RESPONSE, media_type=_TWIML_MEDIA_TYPE)


@router.post(
    "/voice/keypress",
    summary="Voice drop keypress",
    description="Press 1 forwards the caller to FORWARD_PHONE; any other digit ends the call.",
    dependencies=[Depends(verify_twilio_signature)],
)
async def voice_keypress(digits: str = Form("", alias="Digits")) -> Response:
    logger.info("Voice keypress received", extra_data={"digit": digits})
    document = twiml.keypress(digits, settings.FORWARD_PHONE, settings.TWILIO_VOICE)
    return Response(content=document, media_type=_TWIML_MEDIA_TYPE)
