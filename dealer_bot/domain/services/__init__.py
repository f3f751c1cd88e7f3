"""
Domain Services
"""
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.domain.services.staff_notification_service import StaffNotificationService
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.bulk_campaign_service import BulkCampaignService
from dealer_bot.domain.services.analytics_service import AnalyticsService

__all__ = [
    "ConversationStore",
    "OutboundDispatcher",
    "StaffNotificationService",
    "DrainControl",
    "BulkCampaignService",
    "AnalyticsService",
]
