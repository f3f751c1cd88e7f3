"""
Analytics Service - funnel metrics for the dashboard
"""
from datetime import timedelta
from typing import Any

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.core.logging import get_logger
from dealer_bot.db.database import utcnow
from dealer_bot.db.models.analytics_event import AnalyticsEvent
from dealer_bot.db.models.booking import Appointment, Callback
from dealer_bot.db.models.conversation import Conversation, ConversationStatus
from dealer_bot.db.models.customer import Customer
from dealer_bot.db.models.message import Message, MessageRole

logger = get_logger(__name__)

RECENT_BOOKINGS_LIMIT = 25
TOP_VEHICLES_LIMIT = 5


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class AnalyticsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, query) -> int:
        return (await self.db.execute(query)).scalar() or 0

    async def get_summary(self) -> dict[str, Any]:
        """Conversion and response rates, weekly counts and slot distributions."""
        week_ago = utcnow() - timedelta(days=7)

        total = await self._count(select(func.count(Conversation.id)))
        converted = await self._count(
            select(func.count(Conversation.id))
            .where(Conversation.status == ConversationStatus.CONVERTED)
        )
        responded = await self._count(
            select(func.count(func.distinct(Message.conversation_id)))
            .where(Message.role == MessageRole.USER)
        )

        per_conversation = (
            select(func.count(Message.id).label("n"))
            .group_by(Message.conversation_id)
            .subquery()
        )
        avg_messages = (await self.db.execute(select(func.avg(per_conversation.c.n)))).scalar()

        week_conversations = await self._count(
            select(func.count(Conversation.id)).where(Conversation.started_at >= week_ago)
        )
        week_converted = await self._count(
            select(func.count(Conversation.id)).where(
                Conversation.status == ConversationStatus.CONVERTED,
                Conversation.started_at >= week_ago,
            )
        )

        vehicle_count = func.count(Conversation.id).label("count")
        top_vehicles = await self.db.execute(
            select(Conversation.vehicle_type, vehicle_count)
            .where(Conversation.vehicle_type.is_not(None), Conversation.vehicle_type != "")
            .group_by(Conversation.vehicle_type)
            .order_by(vehicle_count.desc())
            .limit(TOP_VEHICLES_LIMIT)
        )
        budget_count = func.count(Conversation.id).label("count")
        budgets = await self.db.execute(
            select(Conversation.budget, budget_count)
            .where(Conversation.budget.is_not(None), Conversation.budget != "")
            .group_by(Conversation.budget)
            .order_by(budget_count.desc())
        )

        return {
            "conversion_rate": _percent(converted, total),
            "total_converted": converted,
            "total_conversations": total,
            "response_rate": _percent(responded, total),
            "total_responded": responded,
            "avg_messages": round(float(avg_messages or 0), 1),
            "week_conversations": week_conversations,
            "week_converted": week_converted,
            "top_vehicles": [
                {"vehicle_type": vehicle, "count": count} for vehicle, count in top_vehicles.all()
            ],
            "budget_distribution": [
                {"budget": budget, "count": count} for budget, count in budgets.all()
            ],
        }

    async def _recent(self, model) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(model).order_by(model.created_at.desc(), model.id.desc()).limit(RECENT_BOOKINGS_LIMIT)
        )
        return [
            {
                "id": row.id,
                "customer_phone": row.customer_phone,
                "customer_name": row.customer_name,
                "vehicle_type": row.vehicle_type,
                "budget": row.budget,
                "budget_amount": row.budget_amount,
                "preferred_time": row.preferred_time,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in result.scalars().all()
        ]

    async def get_dashboard(self) -> dict[str, Any]:
        return {
            "stats": {
                "total_customers": await self._count(select(func.count(Customer.id))),
                "total_conversations": await self._count(select(func.count(Conversation.id))),
                "total_messages": await self._count(select(func.count(Message.id))),
                "total_appointments": await self._count(select(func.count(Appointment.id))),
                "total_callbacks": await self._count(select(func.count(Callback.id))),
            },
            "recent_appointments": await self._recent(Appointment),
            "recent_callbacks": await self._recent(Callback),
        }

    async def cleanup_old_events(self, retention_days: int) -> int:
        cutoff = utcnow() - timedelta(days=retention_days)
        result = await self.db.execute(delete(AnalyticsEvent).where(AnalyticsEvent.created_at < cutoff))
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info(
            "Old analytics events removed",
            extra_data={"deleted": deleted, "retention_days": retention_days}
        )
        return deleted
