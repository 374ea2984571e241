from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Invoice


class InvoiceRepository:

    @staticmethod
    async def create(db: AsyncSession, invoice: Invoice) -> Invoice:
        db.add(invoice)
        await db.commit()
        await db.refresh(invoice)
        return invoice

    @staticmethod
    async def latest_for_order(db: AsyncSession, order_id: int) -> Optional[Invoice]:
        result = await db.execute(
            select(Invoice)
            .where(Invoice.order_id == order_id)
            .order_by(Invoice.id.desc())
            .limit(1)
        )
        return result.scalars().first()
