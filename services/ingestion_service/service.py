import asyncio
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.assignment_service.service import AssignmentEngine
from services.geo_service.schemas import Coordinates
from services.geo_service.service import GeoService
from services.order_service.models import Order, OrderStatus
from services.order_service.repository import OrderRepository
from shared.exceptions import CommitConflict
from shared.observability import dispatch_assignments_total, dispatch_ingested_orders_total

from .schemas import IngestionResult, WooBilling, WooOrderPayload

logger = structlog.get_logger(__name__)


def compose_address(billing: WooBilling, country: str) -> str:
    return f"{billing.address_1 or ''}, {billing.city or ''}, {billing.postcode or ''}, {country}"


def compose_customer_name(billing: WooBilling) -> str:
    return f"{billing.first_name or ''} {billing.last_name or ''}".strip()


class IngestionService:
    """
    Turns a webhook order into an Order row and tries one automatic assignment.

    A duplicate external id is a successful no-op. An address that does not
    geocode, or an assignment that finds nobody, leaves the order `new` for
    an operator; neither is an error.
    """

    def __init__(self, geo: GeoService, engine: AssignmentEngine, address_country: str, geo_timeout: float = 5.0):
        self.geo = geo
        self.engine = engine
        self.address_country = address_country
        self.geo_timeout = geo_timeout

    @staticmethod
    def _existing(order: Order) -> IngestionResult:
        dispatch_ingested_orders_total.labels(result="existing").inc()
        return IngestionResult(
            order_id=order.id,
            existing=True,
            assigned=order.assigned_distributor_id is not None,
            distributor_id=order.assigned_distributor_id,
        )

    async def _geocode(self, address: str) -> Optional[Coordinates]:
        try:
            return await asyncio.wait_for(self.geo.geocode(address), timeout=self.geo_timeout)
        except asyncio.TimeoutError:
            logger.warning("geocode_timeout", address=address)
            return None
        except Exception as e:
            # The order is still stored, just without coordinates
            logger.error("geocode_failed", address=address, error=str(e))
            return None

    async def ingest(self, db: AsyncSession, payload: WooOrderPayload) -> IngestionResult:
        external_ref = str(payload.id)

        existing = await OrderRepository.get_by_external_ref(db, external_ref)
        if existing:
            logger.info("order_already_ingested", woo_order_id=external_ref, order_id=existing.id)
            return self._existing(existing)

        address = compose_address(payload.billing, self.address_country)
        location = await self._geocode(address)

        order = Order(
            woo_order_id=external_ref,
            customer_name=compose_customer_name(payload.billing),
            customer_phone=payload.billing.phone,
            customer_email=payload.billing.email,
            address_text=address,
            lat=location.lat if location else None,
            lng=location.lng if location else None,
            amount_total=payload.total,
            status=OrderStatus.NEW.value,
        )
        try:
            order = await OrderRepository.create_order(db, order)
        except IntegrityError:
            # Lost the race against a concurrent delivery of the same webhook
            await db.rollback()
            existing = await OrderRepository.get_by_external_ref(db, external_ref)
            if existing is None:
                raise
            return self._existing(existing)

        order_id = order.id
        dispatch_ingested_orders_total.labels(result="created").inc()
        logger.info("order_ingested", woo_order_id=external_ref, order_id=order_id, geocoded=location is not None)

        if location is None:
            dispatch_assignments_total.labels(outcome="ungeocoded").inc()
            logger.warning("order_left_unassigned", order_id=order_id, reason="address not geocoded")
            return IngestionResult(order_id=order_id, existing=False, assigned=False)

        try:
            assignment = await self.engine.assign_order(db, order_id)
        except CommitConflict as e:
            logger.warning("order_left_unassigned", order_id=order_id, reason=e.detail)
            assignment = None

        if assignment is None:
            return IngestionResult(order_id=order_id, existing=False, assigned=False)

        return IngestionResult(
            order_id=order_id,
            existing=False,
            assigned=True,
            distributor_id=assignment.distributor_id,
        )
