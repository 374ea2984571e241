import enum

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from shared.config.database import Base


class OutboxKind(str, enum.Enum):
    ASSIGNMENT_NOTIFICATION = "assignment_notification"
    STATUS_NOTIFICATION = "status_notification"
    INVOICE = "invoice"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxMessage(Base):
    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(64), nullable=False)
    order_id = Column(Integer, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default=OutboxStatus.PENDING.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
