"""
Outbox dispatcher: delivers side effects staged by lifecycle transitions.

Transitions only insert OutboxMessage rows in their own transaction. This
dispatcher drains those rows later, outside any transition, so a mail or
invoice failure is recorded on the message and retried but can never roll
back an order.
"""
import asyncio
from datetime import datetime, timezone
from typing import List

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.invoice_service.service import InvoicePort
from services.notification_service.service import NotificationPort
from shared.exceptions import UpstreamUnavailable
from shared.observability import dispatch_outbox_messages_total

from .models import OutboxKind, OutboxMessage, OutboxStatus
from .repository import OutboxRepository

logger = structlog.get_logger(__name__)


class OutboxDispatcher:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: NotificationPort,
        invoices: InvoicePort,
        batch_size: int = 20,
        max_attempts: int = 5,
        poll_interval: float = 5.0,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.invoices = invoices
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval

    async def _deliver(self, message: OutboxMessage) -> None:
        kind = OutboxKind(message.kind)
        payload = message.payload or {}

        if kind is OutboxKind.ASSIGNMENT_NOTIFICATION:
            await self.notifier.notify_assignment(message.order_id, payload["distributor_id"])
        elif kind is OutboxKind.STATUS_NOTIFICATION:
            await self.notifier.notify_status(message.order_id, payload["status"])
        elif kind is OutboxKind.INVOICE:
            # Reuse an invoice rendered by an earlier attempt
            handle = await self.invoices.latest(message.order_id) or await self.invoices.generate(message.order_id)
            if not await self.invoices.send(message.order_id, handle):
                raise UpstreamUnavailable(f"Invoice for order {message.order_id} was not sent")

    def _record_failure(self, message: OutboxMessage, error: Exception) -> None:
        message.attempts += 1
        message.last_error = str(error)
        if message.attempts >= self.max_attempts:
            message.status = OutboxStatus.FAILED.value
            dispatch_outbox_messages_total.labels(kind=message.kind, status="failed").inc()
            logger.error(
                "outbox_message_failed",
                message_id=message.id, kind=message.kind, order_id=message.order_id,
                attempts=message.attempts, error=str(error),
            )
        else:
            dispatch_outbox_messages_total.labels(kind=message.kind, status="retry").inc()
            logger.warning(
                "outbox_message_retry",
                message_id=message.id, kind=message.kind, order_id=message.order_id,
                attempts=message.attempts, error=str(error),
            )

    async def _handle_next(self, seen: List[int]) -> bool:
        """Claim, deliver and record one message in its own transaction. False when none is left."""
        async with self.session_factory() as db:
            async with db.begin():
                message = await OutboxRepository.claim_next(db, exclude=seen)
                if message is None:
                    return False
                seen.append(message.id)

                try:
                    await self._deliver(message)
                except Exception as e:
                    self._record_failure(message, e)
                    return True

                message.attempts += 1
                message.status = OutboxStatus.SENT.value
                message.dispatched_at = datetime.now(timezone.utc)
                message.last_error = None
                dispatch_outbox_messages_total.labels(kind=message.kind, status="sent").inc()
                logger.info("outbox_message_sent", message_id=message.id, kind=message.kind, order_id=message.order_id)
        return True

    async def drain_once(self) -> int:
        """
        Handle up to `batch_size` pending messages and return how many were handled.

        Every message is claimed and recorded in its own transaction. A message
        that fails is not picked up again in the same drain.
        """
        seen: List[int] = []
        while len(seen) < self.batch_size:
            if not await self._handle_next(seen):
                break
        return len(seen)

    async def run(self) -> None:
        logger.info("outbox_dispatcher_started", interval=self.poll_interval)
        while True:
            try:
                handled = await self.drain_once()
            except Exception as e:
                logger.error("outbox_drain_failed", error=str(e))
                handled = 0
            if handled < self.batch_size:
                await asyncio.sleep(self.poll_interval)
