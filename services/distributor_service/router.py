from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .schemas import DistributorCreate, DistributorResponse
from .service import DistributorService

# Operator-only: capacity is never edited here, only created at zero
router = APIRouter(
    prefix="/api/distributors",
    tags=["Distributors"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post("/", response_model=DistributorResponse, status_code=status.HTTP_201_CREATED)
async def create_distributor(data: DistributorCreate, db: AsyncSession = Depends(get_db)):
    return await DistributorService.create_distributor(db, data)


@router.get("/", response_model=list[DistributorResponse])
async def list_distributors(db: AsyncSession = Depends(get_db)):
    return await DistributorService.list_distributors(db)


@router.get("/{distributor_id}", response_model=DistributorResponse)
async def get_distributor(distributor_id: int, db: AsyncSession = Depends(get_db)):
    return await DistributorService.get_distributor(db, distributor_id)
