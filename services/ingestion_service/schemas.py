from typing import Optional, Union

from pydantic import BaseModel


class WooBilling(BaseModel):
    first_name: Optional[str] = ""
    last_name: Optional[str] = ""
    address_1: Optional[str] = ""
    city: Optional[str] = ""
    postcode: Optional[str] = ""
    phone: Optional[str] = None
    email: Optional[str] = None


class WooOrderPayload(BaseModel):
    """The subset of a WooCommerce `order.created` webhook body we use."""

    id: Optional[Union[int, str]] = None
    billing: WooBilling = WooBilling()
    total: float = 0.0


class IngestionResult(BaseModel):
    ok: bool = True
    order_id: int
    existing: bool
    assigned: bool
    distributor_id: Optional[int] = None
