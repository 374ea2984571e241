from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.geo_service.service import GoogleMapsGeoService
from services.order_service.schemas import AssignmentResponse, AssignRequest, AssignResult
from shared.config.database import get_db
from shared.config.settings import get_settings
from shared.security.dependencies import verify_internal_api_key

from .service import AssignmentEngine

# Operator surface for orders left `new` (rejected, ungeocoded, or nobody free at ingestion)
router = APIRouter(
    prefix="/api/orders",
    tags=["Assignment"],
    dependencies=[Depends(verify_internal_api_key)],
)


@lru_cache(maxsize=1)
def get_assignment_engine() -> AssignmentEngine:
    settings = get_settings()
    return AssignmentEngine(
        GoogleMapsGeoService.from_settings(settings),
        geo_timeout=settings.geo_timeout_seconds,
        max_attempts=settings.assignment_max_attempts,
    )


@router.post("/{order_id}/assign", response_model=AssignResult)
async def assign_order(
    order_id: int,
    payload: Optional[AssignRequest] = None,
    engine: AssignmentEngine = Depends(get_assignment_engine),
    db: AsyncSession = Depends(get_db),
):
    distributor_id = payload.distributor_id if payload else None
    assignment = await engine.assign_order(db, order_id, distributor_id=distributor_id)
    if assignment is None:
        return AssignResult(assigned=False)
    return AssignResult(assigned=True, assignment=AssignmentResponse.model_validate(assignment))
