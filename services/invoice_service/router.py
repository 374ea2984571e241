from functools import lru_cache

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.mailer import SendGridMailer
from services.order_service.policy import Caller
from services.order_service.router import get_caller, get_lifecycle
from services.order_service.service import OrderLifecycle
from shared.config.database import AsyncSessionLocal, get_db
from shared.config.settings import get_settings
from shared.exceptions import UpstreamUnavailable

from .schemas import InvoiceResponse
from .service import FileInvoiceService, InvoicePort

router = APIRouter(prefix="/api/orders", tags=["Invoices"])


@lru_cache(maxsize=1)
def get_invoice_service() -> InvoicePort:
    settings = get_settings()
    return FileInvoiceService(
        AsyncSessionLocal,
        SendGridMailer.from_settings(settings),
        settings.invoice_dir,
        tax_rate=settings.invoice_tax_rate,
    )


@router.post("/{order_id}/invoice", response_model=InvoiceResponse)
async def send_invoice(
    order_id: int,
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    invoices: InvoicePort = Depends(get_invoice_service),
    db: AsyncSession = Depends(get_db),
):
    """Generate and e-mail an invoice on demand. Order state is never touched."""
    await lifecycle.get_order(db, order_id, caller)

    handle = await invoices.generate(order_id)
    if not await invoices.send(order_id, handle):
        raise UpstreamUnavailable(f"Invoice for order {order_id} was generated but could not be sent")

    return InvoiceResponse(success=True, message="Invoice generated and sent", path=handle)
