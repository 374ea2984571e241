from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Assignment, AssignmentStatus, Order, OrderStatus


class OrderRepository:

    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        if for_update:
            # Row lock on PostgreSQL; the guarded UPDATEs below still decide the race elsewhere
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_external_ref(db: AsyncSession, woo_order_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.woo_order_id == woo_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_orders(db: AsyncSession, distributor_id: Optional[int] = None, limit: int = 50) -> List[Order]:
        stmt = (
            select(Order)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if distributor_id is not None:
            stmt = stmt.where(Order.assigned_distributor_id == distributor_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def transition(
        db: AsyncSession,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        now: datetime,
        **values,
    ) -> bool:
        """Compare-and-set on orders.status. False when someone else moved the order first."""
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == expected.value)
            .values(status=target.value, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class AssignmentRepository:

    @staticmethod
    async def add_offer(db: AsyncSession, order_id: int, distributor_id: int, score: float, now: datetime) -> Assignment:
        assignment = Assignment(
            order_id=order_id,
            distributor_id=distributor_id,
            score=score,
            status=AssignmentStatus.PENDING.value,
            offered_at=now,
        )
        db.add(assignment)
        await db.flush()
        return assignment

    @staticmethod
    async def resolve_pending(db: AsyncSession, order_id: int, target: AssignmentStatus, **values) -> bool:
        """Close the open offer of an order. False when there is none."""
        result = await db.execute(
            update(Assignment)
            .where(Assignment.order_id == order_id)
            .where(Assignment.status == AssignmentStatus.PENDING.value)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
