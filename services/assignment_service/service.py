"""
AssignmentEngine: picks a distributor for an order and commits the offer.

selection  -> read the directory, measure every candidate concurrently,
              score, pick the strictly highest (earliest wins a tie)
commit     -> one atomic unit: order new->assigned, +1 capacity, pending
              Assignment row, assignment notification staged in the outbox
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.distributor_service.models import Distributor
from services.distributor_service.repository import DistributorRepository
from services.geo_service.schemas import Coordinates
from services.geo_service.service import GeoService
from services.order_service.models import Assignment, OrderStatus
from services.order_service.repository import AssignmentRepository, OrderRepository
from services.outbox_service.models import OutboxKind
from services.outbox_service.repository import OutboxRepository
from shared.config.database import atomic
from shared.exceptions import CommitConflict, InvalidTransition, NotFound
from shared.observability import dispatch_assignments_total, dispatch_commit_conflicts_total

from .scoring import CandidateScore, pick_best, score_candidate

logger = structlog.get_logger(__name__)

# Recorded on offers an operator forces onto a specific distributor
OPERATOR_OVERRIDE_SCORE = 0.0


@dataclass(frozen=True)
class Selection:
    distributor_id: int
    score: float


class AssignmentEngine:

    def __init__(self, geo: GeoService, geo_timeout: float = 5.0, max_attempts: int = 3):
        self.geo = geo
        self.geo_timeout = geo_timeout
        self.max_attempts = max(1, max_attempts)

    async def _score(self, distributor: Distributor, destination: Coordinates) -> CandidateScore:
        origin = Coordinates(lat=distributor.lat, lng=distributor.lng)
        try:
            measurement = await asyncio.wait_for(
                self.geo.distance(origin, destination), timeout=self.geo_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("distance_timeout", distributor_id=distributor.id, timeout=self.geo_timeout)
            measurement = None
        except Exception as e:
            # One broken lookup only removes its own candidate
            logger.error("distance_failed", distributor_id=distributor.id, error=str(e))
            measurement = None

        return score_candidate(
            distributor.id, distributor.current_capacity, distributor.max_capacity, measurement
        )

    async def select_distributor(self, db: AsyncSession, location: Coordinates) -> Optional[Selection]:
        candidates = await DistributorRepository.list_available(db)
        if not candidates:
            logger.warning("no_available_distributors")
            dispatch_assignments_total.labels(outcome="no_candidates").inc()
            return None

        # Fan out, then join: every lookup finishes (or times out) before ranking
        scores = await asyncio.gather(*(self._score(d, location) for d in candidates))

        best = pick_best(list(scores))
        if best is None:
            logger.warning("no_valid_routes", candidates=len(candidates))
            dispatch_assignments_total.labels(outcome="no_valid_route").inc()
            return None

        logger.info(
            "distributor_selected",
            distributor_id=best.distributor_id,
            score=round(best.value, 2),
            candidates=len(candidates),
            valid=sum(1 for s in scores if s.is_valid),
        )
        return Selection(distributor_id=best.distributor_id, score=best.value)

    async def commit_assignment(
        self, db: AsyncSession, order_id: int, distributor_id: int, score: float
    ) -> Assignment:
        now = datetime.now(timezone.utc)
        try:
            async with atomic(db):
                moved = await OrderRepository.transition(
                    db, order_id, OrderStatus.NEW, OrderStatus.ASSIGNED, now,
                    assigned_distributor_id=distributor_id,
                )
                if not moved:
                    raise CommitConflict(f"Order {order_id} is no longer awaiting assignment")

                if not await DistributorRepository.reserve_slot(db, distributor_id):
                    raise CommitConflict(f"Distributor {distributor_id} has no free capacity")

                assignment = await AssignmentRepository.add_offer(db, order_id, distributor_id, score, now)
                OutboxRepository.enqueue(
                    db, OutboxKind.ASSIGNMENT_NOTIFICATION, order_id, distributor_id=distributor_id
                )
        except IntegrityError as e:
            dispatch_commit_conflicts_total.inc()
            raise CommitConflict(f"Order {order_id} already has an open offer") from e
        except CommitConflict as e:
            dispatch_commit_conflicts_total.inc()
            logger.warning("commit_conflict", order_id=order_id, distributor_id=distributor_id, reason=e.detail)
            raise

        logger.info("order_assigned", order_id=order_id, distributor_id=distributor_id, score=round(score, 2))
        return assignment

    async def assign_order(
        self, db: AsyncSession, order_id: int, distributor_id: Optional[int] = None
    ) -> Optional[Assignment]:
        """
        (Re-)assign a `new` order. With distributor_id the operator's choice is
        committed as-is; otherwise selection runs and is retried on
        CommitConflict with a fresh directory snapshot. None means nobody
        could take the order and it stays `new`.
        """
        for attempt in range(1, self.max_attempts + 1):
            order = await OrderRepository.get_order(db, order_id)
            if not order:
                raise NotFound(f"Order {order_id} not found")
            if order.status != OrderStatus.NEW.value:
                raise InvalidTransition(f"Order {order_id} is {order.status}, only new orders can be assigned")

            if distributor_id is not None:
                if not await DistributorRepository.get(db, distributor_id):
                    raise NotFound(f"Distributor {distributor_id} not found")
                return await self.commit_assignment(db, order_id, distributor_id, OPERATOR_OVERRIDE_SCORE)

            if not order.has_location:
                raise InvalidTransition(
                    f"Order {order_id} has no coordinates; choose a distributor explicitly"
                )

            location = Coordinates(lat=order.lat, lng=order.lng)
            selection = await self.select_distributor(db, location)
            if selection is None:
                return None

            try:
                assignment = await self.commit_assignment(db, order_id, selection.distributor_id, selection.score)
            except CommitConflict:
                if attempt == self.max_attempts:
                    dispatch_assignments_total.labels(outcome="conflict").inc()
                    raise
                logger.info("assignment_retry", order_id=order_id, attempt=attempt)
                continue

            dispatch_assignments_total.labels(outcome="assigned").inc()
            return assignment

        return None
