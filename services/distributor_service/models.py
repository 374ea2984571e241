from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from shared.config.database import Base


class Distributor(Base):
    __tablename__ = "distributors"
    # Last line of defence for the capacity invariant; the guarded UPDATEs in
    # DistributorRepository keep us from ever reaching it.
    __table_args__ = (
        CheckConstraint(
            "current_capacity >= 0 AND current_capacity <= max_capacity",
            name="ck_distributor_capacity_bounds",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    current_capacity = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False)
    active_flag = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
