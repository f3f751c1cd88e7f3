"""
Bulk Campaign Service - scheduled outbound SMS campaigns

Campaigns are expanded into one BulkMessage job per contact at creation
time. The Celery beat task calls ``drain_once`` which sends the due jobs
in small sequential batches.
"""
import math
import re
import time
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import AppException, ErrorCode, NotFoundException, ValidationException
from dealer_bot.core.logging import get_logger, log_async_operation
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.db.database import utcnow
from dealer_bot.db.models.bulk_message import BulkMessage, BulkMessageStatus
from dealer_bot.db.models.message import MessageRole
from dealer_bot.domain.services.contact_import import is_blacklisted, normalize_contacts
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.domain.services.sms import BaseSmsProvider

logger = get_logger(__name__)

NAME_PLACEHOLDER = "{name}"
NAME_FALLBACK = "there"
EMERGENCY_STOP_REASON = "Emergency stop by user"

_PLACEHOLDER = re.compile(r"\{[^{}]+\}")
_MAX_PLACEHOLDERS = 3


def render_template(template: str, recipient_name: str | None) -> str:
    return template.replace(NAME_PLACEHOLDER, recipient_name or NAME_FALLBACK)


class BulkCampaignService:
    """Campaign creation, drain pass and drain control"""

    def __init__(
        self,
        db: AsyncSession,
        control: DrainControl,
        provider: BaseSmsProvider | None = None,
    ):
        self.db = db
        self.control = control
        self._provider = provider
        self._dispatcher: OutboundDispatcher | None = None

    @property
    def dispatcher(self) -> OutboundDispatcher:
        if self._dispatcher is None:
            self._dispatcher = OutboundDispatcher(ConversationStore(self.db), self._provider)
        return self._dispatcher

    # ---- creation ----

    @staticmethod
    def validate_template(template: Any) -> str:
        if not isinstance(template, str) or not template.strip():
            raise ValidationException(
                "Message template is required",
                field="message_template",
                error_code=ErrorCode.CAMPAIGN_INVALID_TEMPLATE,
            )
        if NAME_PLACEHOLDER not in template:
            raise ValidationException(
                "Message template must include the {name} placeholder",
                field="message_template",
                error_code=ErrorCode.CAMPAIGN_INVALID_TEMPLATE,
            )
        if len(template) > settings.BULK_MAX_TEMPLATE_LENGTH:
            raise ValidationException(
                f"Message template exceeds {settings.BULK_MAX_TEMPLATE_LENGTH} characters",
                field="message_template",
                details={"length": len(template)},
                error_code=ErrorCode.CAMPAIGN_INVALID_TEMPLATE,
            )
        placeholders = _PLACEHOLDER.findall(template)
        if len(placeholders) > _MAX_PLACEHOLDERS:
            logger.warning(
                "Template has many placeholders",
                extra_data={"placeholders": placeholders}
            )
        return template

    async def create_campaign(self, name: str, template: Any, contacts: Any) -> dict[str, Any]:
        """
        Schedule one job per valid contact.

        The first job goes out BULK_FIRST_DELAY_SECONDS from now and each
        next one BULK_SPACING_SECONDS later. Invalid and duplicate contacts
        are reported in ``skipped`` and do not consume a slot.
        """
        campaign_name = (name or "").strip()
        if not campaign_name:
            raise ValidationException("Campaign name is required", field="campaign_name")
        if not isinstance(contacts, list):
            raise ValidationException("Contacts must be a list", field="contacts")
        if not contacts:
            raise ValidationException(
                "Contacts list is empty",
                field="contacts",
                error_code=ErrorCode.CAMPAIGN_NO_CONTACTS,
            )
        template = self.validate_template(template)

        parsed = normalize_contacts(contacts)
        if not parsed.contacts:
            raise ValidationException(
                "No valid contacts",
                field="contacts",
                details={"skipped": [e.to_dict() for e in parsed.errors]},
                error_code=ErrorCode.CAMPAIGN_NO_CONTACTS,
            )

        first_at = utcnow() + timedelta(seconds=settings.BULK_FIRST_DELAY_SECONDS)
        spacing = timedelta(seconds=settings.BULK_SPACING_SECONDS)
        jobs = [
            BulkMessage(
                campaign_name=campaign_name,
                message_template=template,
                recipient_name=contact["name"],
                recipient_phone=contact["phone"],
                status=BulkMessageStatus.PENDING,
                scheduled_at=first_at + spacing * index,
            )
            for index, contact in enumerate(parsed.contacts)
        ]
        self.db.add_all(jobs)
        await self.db.commit()

        total = len(jobs)
        logger.info(
            "Bulk campaign scheduled",
            extra_data={
                "campaign": campaign_name,
                "messages": total,
                "skipped": len(parsed.errors),
            }
        )
        return {
            "campaign_name": campaign_name,
            "total": total,
            "skipped": [e.to_dict() for e in parsed.errors],
            "first_send_at": first_at.isoformat(),
            "estimated_minutes": math.ceil(total * settings.BULK_SPACING_SECONDS / 60),
        }

    # ---- drain ----

    async def _due_jobs(self) -> list[BulkMessage]:
        result = await self.db.execute(
            select(BulkMessage)
            .where(
                BulkMessage.status == BulkMessageStatus.PENDING,
                BulkMessage.scheduled_at <= utcnow(),
            )
            .order_by(BulkMessage.scheduled_at, BulkMessage.id)
            .limit(settings.BULK_BATCH_SIZE)
        )
        return list(result.scalars().all())

    async def _record_transcript(self, job: BulkMessage, body: str) -> None:
        store = self.dispatcher.store
        await store.get_or_create_customer(job.recipient_phone)
        conversation = await store.get_or_create_active_conversation(job.recipient_phone)
        if job.recipient_name and not conversation.customer_name:
            await store.update_conversation(conversation, {"customer_name": job.recipient_name})
        await store.append_message(conversation, MessageRole.ASSISTANT, body)

    async def _process_job(self, job: BulkMessage) -> BulkMessageStatus:
        phone_masked = PhoneNumberValidator.mask(job.recipient_phone)

        if is_blacklisted(job.recipient_phone):
            job.status = BulkMessageStatus.BLOCKED
            job.error_message = "Blacklisted number"
            await self.db.commit()
            logger.warning(
                "Bulk message blocked",
                extra_data={"job_id": job.id, "phone": phone_masked}
            )
            return BulkMessageStatus.BLOCKED

        body = render_template(job.message_template, job.recipient_name)
        try:
            await self.dispatcher.send(job.recipient_phone, body)
        except AppException as e:
            job.status = BulkMessageStatus.FAILED
            job.error_message = e.message[:1000]
            await self.db.commit()
            logger.error(
                "Bulk message failed",
                extra_data={"job_id": job.id, "phone": phone_masked, "error": e.message}
            )
            return BulkMessageStatus.FAILED

        job.status = BulkMessageStatus.SENT
        job.sent_at = utcnow()
        await self.db.commit()
        await self._record_transcript(job, body)
        logger.info(
            "Bulk message sent",
            extra_data={"job_id": job.id, "campaign": job.campaign_name, "phone": phone_masked}
        )
        return BulkMessageStatus.SENT

    @log_async_operation("bulk drain pass")
    async def drain_once(self) -> dict[str, Any]:
        """
        Send up to BULK_BATCH_SIZE due jobs.

        A transport failure marks that job failed and the batch continues.
        A persistence error aborts the pass; the job in flight stays pending
        unless its sent mark was already committed. The lock is renewed before
        each job, and no job starts once it could overrun the pass budget.
        """
        if await self.control.is_halted():
            return {"skipped": "halted"}
        if await self.control.is_paused():
            return {"skipped": "paused"}

        token = await self.control.acquire_lock()
        if token is None:
            logger.debug("Bulk drain already running elsewhere")
            return {"skipped": "locked"}

        counts = {status.value: 0 for status in (
            BulkMessageStatus.SENT, BulkMessageStatus.FAILED, BulkMessageStatus.BLOCKED,
        )}
        started = time.monotonic()
        try:
            for job in await self._due_jobs():
                # Stop mid-batch when an emergency stop lands during the pass
                if await self.control.is_halted() or await self.control.is_paused():
                    break
                elapsed = time.monotonic() - started
                if elapsed + settings.send_ceiling_seconds > settings.BULK_DRAIN_PASS_BUDGET_SECONDS:
                    logger.info(
                        "Bulk drain pass budget reached",
                        extra_data={"elapsed_seconds": round(elapsed, 1), "next_job_id": job.id}
                    )
                    break
                if not await self.control.extend_lock(token):
                    logger.warning(
                        "Bulk drain lock lost, stopping pass",
                        extra_data={"next_job_id": job.id}
                    )
                    break
                try:
                    status = await self._process_job(job)
                except SQLAlchemyError:
                    await self.db.rollback()
                    logger.error(
                        "Bulk drain persistence error",
                        extra_data={"job_id": job.id},
                        exc_info=True,
                    )
                    raise
                counts[status.value] += 1
        finally:
            await self.control.release_lock(token)

        return counts

    # ---- control ----

    async def pause_drain(self) -> None:
        await self.control.pause()

    async def resume_drain(self) -> None:
        await self.control.resume()

    async def restart_drain(self) -> None:
        await self.control.restart()

    async def cancel_pending(self, reason: str = EMERGENCY_STOP_REASON) -> int:
        """Cancel every pending job; the drain keeps running."""
        result = await self.db.execute(
            update(BulkMessage)
            .where(BulkMessage.status == BulkMessageStatus.PENDING)
            .values(status=BulkMessageStatus.CANCELLED, error_message=reason)
        )
        await self.db.commit()
        cancelled = result.rowcount or 0
        logger.warning("Pending bulk messages cancelled", extra_data={"cancelled": cancelled})
        return cancelled

    async def emergency_stop_all(self) -> dict[str, Any]:
        """Cancel pending jobs and halt the drain until restart."""
        await self.control.halt()
        cancelled = await self.cancel_pending(EMERGENCY_STOP_REASON)
        return {"cancelled": cancelled, "processor_stopped": True}

    # ---- reporting ----

    async def _status_counts(self, campaign_name: str | None = None) -> dict[str, int]:
        query = select(BulkMessage.status, func.count(BulkMessage.id)).group_by(BulkMessage.status)
        if campaign_name is not None:
            query = query.where(BulkMessage.campaign_name == campaign_name)
        rows = (await self.db.execute(query)).all()

        counts = {status.value: 0 for status in BulkMessageStatus}
        for status, count in rows:
            counts[BulkMessageStatus(status).value] = count
        return counts

    async def get_campaign_stats(self, campaign_name: str) -> dict[str, Any]:
        counts = await self._status_counts(campaign_name)
        total = sum(counts.values())
        if total == 0:
            raise NotFoundException(
                "Campaign", campaign_name, error_code=ErrorCode.CAMPAIGN_NOT_FOUND
            )
        return {"campaign_name": campaign_name, "total": total, **counts}

    async def list_campaigns(self) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(
                BulkMessage.campaign_name,
                func.count(BulkMessage.id),
                func.min(BulkMessage.created_at),
            )
            .group_by(BulkMessage.campaign_name)
            .order_by(func.min(BulkMessage.created_at).desc())
        )
        return [
            {
                "campaign_name": name,
                "total": total,
                "created_at": created_at.isoformat() if created_at else None,
            }
            for name, total, created_at in result.all()
        ]

    async def get_drain_status(self) -> dict[str, Any]:
        halted = await self.control.is_halted()
        paused = await self.control.is_paused()
        return {
            "running": not halted,
            "paused": paused,
            "counts": await self._status_counts(),
        }
