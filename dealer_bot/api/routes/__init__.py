"""
API Routes
"""
from fastapi import APIRouter

from dealer_bot.api.routes.analytics import router as analytics_router
from dealer_bot.api.routes.bulk import router as bulk_router
from dealer_bot.api.routes.conversations import router as conversations_router
from dealer_bot.api.routes.voice import router as voice_router
from dealer_bot.api.webhooks.sms import router as sms_router

router = APIRouter()

router.include_router(sms_router, prefix="/sms", tags=["webhooks"])
router.include_router(conversations_router, prefix="/conversations", tags=["conversations"])
router.include_router(bulk_router, prefix="/bulk", tags=["bulk"])
router.include_router(voice_router, prefix="/voice", tags=["voice"])
router.include_router(analytics_router, tags=["analytics"])
