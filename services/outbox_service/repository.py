from typing import Collection, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OutboxKind, OutboxMessage, OutboxStatus


class OutboxRepository:

    @staticmethod
    def enqueue(db: AsyncSession, kind: OutboxKind, order_id: int, **payload) -> OutboxMessage:
        """Stage a side effect in the caller's transaction. Nothing is sent here."""
        message = OutboxMessage(
            kind=kind.value,
            order_id=order_id,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempts=0,
        )
        db.add(message)
        return message

    @staticmethod
    async def claim_next(db: AsyncSession, exclude: Collection[int] = ()) -> Optional[OutboxMessage]:
        """Oldest pending message not in `exclude`, locked for the caller's transaction."""
        stmt = (
            select(OutboxMessage)
            .where(OutboxMessage.status == OutboxStatus.PENDING.value)
            .order_by(OutboxMessage.id)
            .limit(1)
            # Lets several dispatchers drain one table on PostgreSQL
            .with_for_update(skip_locked=True)
        )
        if exclude:
            stmt = stmt.where(OutboxMessage.id.notin_(exclude))
        result = await db.execute(stmt)
        return result.scalars().first()
