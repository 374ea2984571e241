import asyncio
import base64
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.notification_service.mailer import SendGridMailer
from services.order_service.repository import OrderRepository
from shared.exceptions import NotFound, UpstreamUnavailable

from .document import invoice_number, money, render_invoice
from .models import Invoice
from .repository import InvoiceRepository

logger = structlog.get_logger(__name__)


class InvoicePort(ABC):

    @abstractmethod
    async def generate(self, order_id: int) -> str:
        """Render and store an invoice; returns the document handle."""

    @abstractmethod
    async def send(self, order_id: int, handle: str) -> bool:
        """Deliver a rendered invoice to the customer. False when it did not go out."""

    @abstractmethod
    async def latest(self, order_id: int) -> Optional[str]:
        """Handle of the newest invoice already rendered for the order, if any."""


class FileInvoiceService(InvoicePort):

    def __init__(
        self,
        session_factory: async_sessionmaker,
        mailer: SendGridMailer,
        invoice_dir: str,
        tax_rate: float = 0.15,
    ):
        self.session_factory = session_factory
        self.mailer = mailer
        self.invoice_dir = Path(invoice_dir)
        self.tax_rate = tax_rate

    async def generate(self, order_id: int) -> str:
        async with self.session_factory() as db:
            order = await OrderRepository.get_order(db, order_id)
            if not order:
                raise NotFound(f"Order {order_id} not found")

            issued_at = datetime.now(timezone.utc)
            document = render_invoice(order, issued_at, self.tax_rate)
            path = self.invoice_dir / f"invoice-{order.woo_order_id}-{int(issued_at.timestamp() * 1000)}.pdf"
            try:
                await asyncio.to_thread(self.invoice_dir.mkdir, parents=True, exist_ok=True)
                await asyncio.to_thread(path.write_bytes, document)
            except OSError as e:
                raise UpstreamUnavailable(f"Could not write invoice for order {order_id}: {e}") from e

            await InvoiceRepository.create(db, Invoice(order_id=order_id, document_path=str(path)))

        logger.info("invoice_generated", order_id=order_id, path=str(path))
        return str(path)

    async def latest(self, order_id: int) -> Optional[str]:
        async with self.session_factory() as db:
            invoice = await InvoiceRepository.latest_for_order(db, order_id)
        return invoice.document_path if invoice else None

    async def send(self, order_id: int, handle: str) -> bool:
        async with self.session_factory() as db:
            order = await OrderRepository.get_order(db, order_id)
        if not order:
            logger.error("invoice_send_failed", order_id=order_id, error="order not found")
            return False

        try:
            content = await asyncio.to_thread(Path(handle).read_bytes)
        except OSError as e:
            logger.error("invoice_send_failed", order_id=order_id, error=str(e))
            return False

        number = invoice_number(order)
        total = money(order.amount_total)
        subject = f"Invoice for Order #{order.woo_order_id}"
        text = (
            f"Dear {order.customer_name},\n\n"
            f"Thank you for your order! Please find attached your invoice for order #{order.woo_order_id}.\n\n"
            f"Total Amount: {total}\n\nBest regards,\nWater Distribution Team"
        )
        html = (
            f"<p>Dear {order.customer_name},</p>"
            f"<p>Thank you for your order! Please find attached your invoice for order #{order.woo_order_id}.</p>"
            f"<p><strong>Total Amount: {total}</strong></p>"
            f"<p>Best regards,<br/>Water Distribution Team</p>"
        )
        attachment = {
            "content": base64.b64encode(content).decode(),
            "filename": f"{number}.pdf",
            "type": "application/pdf",
            "disposition": "attachment",
        }

        try:
            await self.mailer.send(order.customer_email, subject, text, html, attachments=[attachment])
        except UpstreamUnavailable as e:
            logger.error("invoice_send_failed", order_id=order_id, error=e.detail)
            return False
        return True
