from typing import List, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Distributor


class DistributorRepository:
    """Read model over distributors plus the only writers of current_capacity."""

    @staticmethod
    async def create(db: AsyncSession, distributor: Distributor) -> Distributor:
        db.add(distributor)
        await db.commit()
        await db.refresh(distributor)
        return distributor

    @staticmethod
    async def get(db: AsyncSession, distributor_id: int) -> Optional[Distributor]:
        result = await db.execute(
            select(Distributor)
            .where(Distributor.id == distributor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_all(db: AsyncSession) -> List[Distributor]:
        result = await db.execute(select(Distributor).order_by(Distributor.id))
        return list(result.scalars().all())

    @staticmethod
    async def list_available(db: AsyncSession) -> List[Distributor]:
        """Active distributors with at least one free slot, in id order.

        The ordering is what makes the selection tie-break deterministic.
        """
        result = await db.execute(
            select(Distributor)
            .where(Distributor.active_flag.is_(True))
            .where(Distributor.current_capacity < Distributor.max_capacity)
            .order_by(Distributor.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def reserve_slot(db: AsyncSession, distributor_id: int) -> bool:
        """Take one capacity slot. False when the distributor is full, inactive or gone.

        The check and the increment are one statement, so two concurrent
        reservations against the last free slot cannot both succeed.
        """
        result = await db.execute(
            update(Distributor)
            .where(Distributor.id == distributor_id)
            .where(Distributor.active_flag.is_(True))
            .where(Distributor.current_capacity < Distributor.max_capacity)
            .values(current_capacity=Distributor.current_capacity + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def release_slot(db: AsyncSession, distributor_id: int) -> None:
        """Give back one slot, never going below zero."""
        await db.execute(
            update(Distributor)
            .where(Distributor.id == distributor_id)
            .values(
                current_capacity=case(
                    (Distributor.current_capacity > 0, Distributor.current_capacity - 1),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
