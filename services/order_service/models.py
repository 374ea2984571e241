import enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base


class OrderStatus(str, enum.Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class AssignmentStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Statuses in which the assigned distributor holds a capacity reservation
RESERVING_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.ACCEPTED, OrderStatus.PICKED_UP})


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    woo_order_id = Column(String(64), unique=True, nullable=False, index=True)
    customer_name = Column(String(255), nullable=False, default="")
    customer_phone = Column(String(64), nullable=True)
    customer_email = Column(String(255), nullable=True)
    address_text = Column(Text, nullable=False)
    lat = Column(Float, nullable=True)  # null when geocoding failed
    lng = Column(Float, nullable=True)
    amount_total = Column(Float, nullable=False, default=0.0)
    status = Column(String(32), nullable=False, default=OrderStatus.NEW.value, index=True)
    assigned_distributor_id = Column(Integer, ForeignKey("distributors.id"), nullable=True, index=True)
    proof_of_delivery_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    assignments = relationship(
        "Assignment",
        back_populates="order",
        lazy="selectin",
        order_by="Assignment.id",
    )

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def current_assignment(self):
        return self.assignments[-1] if self.assignments else None

    @property
    def assignment_status(self):
        current = self.current_assignment
        return current.status if current else None

    @property
    def offered_at(self):
        current = self.current_assignment
        return current.offered_at if current else None


class Assignment(Base):
    __tablename__ = "assignments"
    # At most one open offer per order
    __table_args__ = (
        Index(
            "uq_assignments_one_pending_per_order",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    distributor_id = Column(Integer, ForeignKey("distributors.id"), nullable=False, index=True)
    score = Column(Float, nullable=False)
    status = Column(String(32), nullable=False, default=AssignmentStatus.PENDING.value)
    offered_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    order = relationship("Order", back_populates="assignments")
