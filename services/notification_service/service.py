"""
NotificationPort and the SendGrid e-mail implementation.

Adapters raise UpstreamUnavailable on any failure. They are only ever called
by the outbox dispatcher, which owns retry and logging, so a mail outage can
never undo a committed transition.
"""
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.distributor_service.models import Distributor
from services.order_service.models import Order
from shared.exceptions import UpstreamUnavailable

from .mailer import SendGridMailer

STATUS_MESSAGES = {
    "accepted": "Your order has been accepted by the distributor and will be processed soon.",
    "picked_up": "Your order has been picked up and is on its way!",
    "delivered": "Your order has been successfully delivered. Thank you!",
    "cancelled": "Your order has been cancelled. Please contact support for more information.",
}
DEFAULT_STATUS_MESSAGE = "Your order status has been updated."


class NotificationPort(ABC):

    @abstractmethod
    async def notify_assignment(self, order_id: int, distributor_id: int) -> None:
        ...

    @abstractmethod
    async def notify_status(self, order_id: int, status: str) -> None:
        ...


def status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE)


class EmailNotifier(NotificationPort):

    def __init__(self, mailer: SendGridMailer, session_factory: async_sessionmaker):
        self.mailer = mailer
        self.session_factory = session_factory

    async def _load(self, order_id: int, distributor_id: int | None = None):
        async with self.session_factory() as db:
            order = (await db.execute(select(Order).where(Order.id == order_id))).scalars().first()
            distributor = None
            if distributor_id is not None:
                distributor = (
                    await db.execute(select(Distributor).where(Distributor.id == distributor_id))
                ).scalars().first()
        if order is None:
            raise UpstreamUnavailable(f"Order {order_id} not found for notification")
        return order, distributor

    async def notify_assignment(self, order_id: int, distributor_id: int) -> None:
        order, distributor = await self._load(order_id, distributor_id)
        if distributor is None or not distributor.email:
            raise UpstreamUnavailable(f"No email found for distributor {distributor_id}")

        amount = f"R {order.amount_total:.2f}"
        subject = f"New Order Assigned: #{order.woo_order_id}"
        text = (
            f"Hello {distributor.name},\n\n"
            f"You have been assigned a new order:\n\n"
            f"Order #{order.woo_order_id}\n"
            f"Customer: {order.customer_name}\n"
            f"Delivery Address: {order.address_text}\n"
            f"Amount: {amount}\n\n"
            f"Please log in to accept or reject this order.\n\n"
            f"Best regards,\nWater Distribution System"
        )
        html = (
            f"<p>Hello {distributor.name},</p>"
            f"<p>You have been assigned a new order:</p>"
            f"<ul>"
            f"<li><strong>Order #:</strong> {order.woo_order_id}</li>"
            f"<li><strong>Customer:</strong> {order.customer_name}</li>"
            f"<li><strong>Delivery Address:</strong> {order.address_text}</li>"
            f"<li><strong>Amount:</strong> {amount}</li>"
            f"</ul>"
            f"<p>Please log in to accept or reject this order.</p>"
            f"<p>Best regards,<br/>Water Distribution System</p>"
        )
        await self.mailer.send(distributor.email, subject, text, html)

    async def notify_status(self, order_id: int, status: str) -> None:
        order, _ = await self._load(order_id)
        message = status_message(status)
        subject = f"Order Update: #{order.woo_order_id}"
        text = (
            f"Dear {order.customer_name},\n\n{message}\n\n"
            f"Order #{order.woo_order_id}\n\nBest regards,\nWater Distribution Team"
        )
        html = (
            f"<p>Dear {order.customer_name},</p>"
            f"<p>{message}</p>"
            f"<p><strong>Order #{order.woo_order_id}</strong></p>"
            f"<p>Best regards,<br/>Water Distribution Team</p>"
        )
        await self.mailer.send(order.customer_email, subject, text, html)
