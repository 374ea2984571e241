from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from services.assignment_service.router import get_assignment_engine
from shared.config.database import get_db
from shared.config.settings import get_settings
from shared.security import limiter
from shared.security.dependencies import verify_woocommerce_signature

from .schemas import IngestionResult, WooOrderPayload
from .service import IngestionService

router = APIRouter(prefix="/api/integrations/woocommerce", tags=["Integrations"])


@lru_cache(maxsize=1)
def get_ingestion_service() -> IngestionService:
    settings = get_settings()
    engine = get_assignment_engine()
    return IngestionService(
        engine.geo,
        engine,
        address_country=settings.address_country,
        geo_timeout=settings.geo_timeout_seconds,
    )


@router.post("/webhook", response_model=IngestionResult)
@limiter.limit(get_settings().webhook_rate_limit)
async def woocommerce_webhook(
    request: Request,  # REQUIRED: slowapi needs this to resolve the client key
    body: bytes = Depends(verify_woocommerce_signature),
    service: IngestionService = Depends(get_ingestion_service),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = WooOrderPayload.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if payload.id is None or str(payload.id).strip() == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid order ID")

    return await service.ingest(db, payload)
