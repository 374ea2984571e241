"""
Distributor-facing order endpoints. Caller identity comes from the bearer
token; what the caller may touch is decided by the lifecycle's access policy.
"""
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import get_settings
from shared.security.dependencies import get_current_user

from .policy import Caller
from .schemas import OrderResponse, RejectRequest, StatusUpdate
from .service import OrderLifecycle

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@lru_cache(maxsize=1)
def get_lifecycle() -> OrderLifecycle:
    return OrderLifecycle(get_settings().access_policy)


async def get_caller(user_id: str = Depends(get_current_user)) -> Caller:
    return Caller.from_subject(user_id)


@router.get("/", response_model=list[OrderResponse])
async def list_orders(
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.list_orders(db, caller)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.get_order(db, order_id, caller)


@router.post("/{order_id}/accept", response_model=OrderResponse)
async def accept_order(
    order_id: int,
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.accept(db, order_id, caller)


@router.post("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(
    order_id: int,
    payload: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.reject(db, order_id, caller, reason=payload.reason if payload else None)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_status(
    order_id: int,
    payload: StatusUpdate,
    caller: Caller = Depends(get_caller),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.advance(
        db, order_id, caller, payload.status, proof_of_delivery_url=payload.proof_of_delivery_url
    )
