"""
OrderLifecycle: the order/assignment state machine.

    new -> assigned -> accepted -> picked_up -> delivered
    assigned --reject--> new                  (reservation released)
    new | assigned | accepted | picked_up -> cancelled

Each transition is one atomic unit over the order row, its open assignment
and the distributor's capacity counter. Status changes are compare-and-set
on the status the transition was validated against, so a concurrent
transition on the same order makes the loser fail with CommitConflict
instead of both applying. Customer notifications and invoicing are staged in
the outbox inside the same unit and delivered later.
"""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.distributor_service.repository import DistributorRepository
from services.outbox_service.models import OutboxKind
from services.outbox_service.repository import OutboxRepository
from shared.config.database import atomic
from shared.exceptions import CommitConflict, InvalidTransition, NotFound
from shared.observability import dispatch_transitions_total

from .models import RESERVING_STATUSES, AssignmentStatus, Order, OrderStatus
from .policy import AccessPolicy, Caller, build_access_predicate
from .repository import AssignmentRepository, OrderRepository

logger = structlog.get_logger(__name__)

ADVANCE_TARGETS = frozenset({OrderStatus.PICKED_UP, OrderStatus.DELIVERED, OrderStatus.CANCELLED})

_ADVANCE_TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.CANCELLED},
    OrderStatus.ASSIGNED: {OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.PICKED_UP, OrderStatus.CANCELLED},
    OrderStatus.PICKED_UP: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}

DEFAULT_REJECTION_REASON = "No reason provided"
CANCELLATION_REASON = "order cancelled"


class OrderLifecycle:

    def __init__(self, policy: AccessPolicy | str = AccessPolicy.OWNER_ONLY):
        self.policy = AccessPolicy(policy)
        self.may_act = build_access_predicate(self.policy)

    async def _load(self, db: AsyncSession, order_id: int, caller: Caller, for_update: bool = False) -> Order:
        order = await OrderRepository.get_order(db, order_id, for_update=for_update)
        if not order or not self.may_act(caller, order):
            raise NotFound(f"Order {order_id} not found or not assigned to you")
        return order

    async def get_order(self, db: AsyncSession, order_id: int, caller: Caller) -> Order:
        return await self._load(db, order_id, caller)

    async def list_orders(self, db: AsyncSession, caller: Caller, limit: int = 50) -> List[Order]:
        if self.policy is AccessPolicy.ALL_ACCESS:
            return await OrderRepository.list_orders(db, limit=limit)
        if caller.distributor_id is None:
            return []
        return await OrderRepository.list_orders(db, distributor_id=caller.distributor_id, limit=limit)

    async def accept(self, db: AsyncSession, order_id: int, caller: Caller) -> Order:
        now = datetime.now(timezone.utc)
        async with atomic(db):
            order = await self._load(db, order_id, caller, for_update=True)
            if order.status != OrderStatus.ASSIGNED.value:
                raise InvalidTransition(f"Order {order_id} cannot be accepted while {order.status}")

            if not await OrderRepository.transition(db, order_id, OrderStatus.ASSIGNED, OrderStatus.ACCEPTED, now):
                raise CommitConflict(f"Order {order_id} changed while being accepted")
            if not await AssignmentRepository.resolve_pending(
                db, order_id, AssignmentStatus.ACCEPTED, accepted_at=now
            ):
                raise CommitConflict(f"Order {order_id} has no open offer to accept")

            OutboxRepository.enqueue(
                db, OutboxKind.STATUS_NOTIFICATION, order_id, status=OrderStatus.ACCEPTED.value
            )

        dispatch_transitions_total.labels(transition="accept").inc()
        logger.info("order_accepted", order_id=order_id, distributor_id=caller.distributor_id)
        return await OrderRepository.get_order(db, order_id)

    async def reject(
        self, db: AsyncSession, order_id: int, caller: Caller, reason: Optional[str] = None
    ) -> Order:
        now = datetime.now(timezone.utc)
        async with atomic(db):
            order = await self._load(db, order_id, caller, for_update=True)
            if order.status != OrderStatus.ASSIGNED.value:
                raise InvalidTransition(f"Order {order_id} cannot be rejected while {order.status}")
            distributor_id = order.assigned_distributor_id

            if not await AssignmentRepository.resolve_pending(
                db, order_id, AssignmentStatus.REJECTED,
                rejected_at=now, rejection_reason=reason or DEFAULT_REJECTION_REASON,
            ):
                raise CommitConflict(f"Order {order_id} has no open offer to reject")
            if not await OrderRepository.transition(
                db, order_id, OrderStatus.ASSIGNED, OrderStatus.NEW, now, assigned_distributor_id=None
            ):
                raise CommitConflict(f"Order {order_id} changed while being rejected")
            await DistributorRepository.release_slot(db, distributor_id)

        # Back to `new`; a new offer needs an explicit assign call
        dispatch_transitions_total.labels(transition="reject").inc()
        logger.info("order_rejected", order_id=order_id, distributor_id=distributor_id, reason=reason)
        return await OrderRepository.get_order(db, order_id)

    async def advance(
        self,
        db: AsyncSession,
        order_id: int,
        caller: Caller,
        new_status: OrderStatus | str,
        proof_of_delivery_url: Optional[str] = None,
    ) -> Order:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise InvalidTransition(f"Unknown status {new_status!r}") from None
        if target not in ADVANCE_TARGETS:
            allowed = ", ".join(sorted(s.value for s in ADVANCE_TARGETS))
            raise InvalidTransition(f"Status must be one of: {allowed}")

        now = datetime.now(timezone.utc)
        async with atomic(db):
            order = await self._load(db, order_id, caller, for_update=True)
            current = OrderStatus(order.status)

            if current is OrderStatus.DELIVERED and target is OrderStatus.DELIVERED:
                # Repeated delivery confirmation: nothing to release twice
                logger.info("order_already_delivered", order_id=order_id)
                return order

            if target not in _ADVANCE_TRANSITIONS[current]:
                raise InvalidTransition(f"Order {order_id} cannot move from {current.value} to {target.value}")

            values = {}
            if target is OrderStatus.DELIVERED:
                values["delivered_at"] = now
                if proof_of_delivery_url:
                    values["proof_of_delivery_url"] = proof_of_delivery_url

            distributor_id = order.assigned_distributor_id
            if not await OrderRepository.transition(db, order_id, current, target, now, **values):
                raise CommitConflict(f"Order {order_id} changed while moving to {target.value}")

            if current is OrderStatus.ASSIGNED:
                # Cancelling an open offer closes it
                await AssignmentRepository.resolve_pending(
                    db, order_id, AssignmentStatus.REJECTED,
                    rejected_at=now, rejection_reason=CANCELLATION_REASON,
                )
            if current in RESERVING_STATUSES and target in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
                await DistributorRepository.release_slot(db, distributor_id)

            OutboxRepository.enqueue(db, OutboxKind.STATUS_NOTIFICATION, order_id, status=target.value)
            if target is OrderStatus.DELIVERED:
                OutboxRepository.enqueue(db, OutboxKind.INVOICE, order_id)

        dispatch_transitions_total.labels(transition=target.value).inc()
        logger.info("order_status_changed", order_id=order_id, status_from=current.value, status_to=target.value)
        return await OrderRepository.get_order(db, order_id)
