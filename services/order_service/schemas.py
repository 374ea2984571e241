from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OrderResponse(BaseModel):
    id: int
    woo_order_id: str
    customer_name: str
    customer_phone: Optional[str]
    customer_email: Optional[str]
    address_text: str
    lat: Optional[float]
    lng: Optional[float]
    amount_total: float
    status: str
    assigned_distributor_id: Optional[int]
    proof_of_delivery_url: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    delivered_at: Optional[datetime]
    assignment_status: Optional[str] = None
    offered_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class StatusUpdate(BaseModel):
    # Validated by the lifecycle so a bad value gets the same precise reason as a bad transition
    status: str
    proof_of_delivery_url: Optional[str] = Field(default=None, alias="proofOfDeliveryUrl")

    class Config:
        populate_by_name = True


class AssignRequest(BaseModel):
    distributor_id: Optional[int] = None


class AssignmentResponse(BaseModel):
    id: int
    order_id: int
    distributor_id: int
    score: float
    status: str
    offered_at: datetime

    class Config:
        from_attributes = True


class AssignResult(BaseModel):
    assigned: bool
    assignment: Optional[AssignmentResponse] = None
