from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import NotFound

from .models import Distributor
from .repository import DistributorRepository
from .schemas import DistributorCreate


class DistributorService:

    @staticmethod
    async def create_distributor(db: AsyncSession, data: DistributorCreate) -> Distributor:
        distributor = Distributor(
            name=data.name,
            email=data.email,
            lat=data.lat,
            lng=data.lng,
            current_capacity=0,
            max_capacity=data.max_capacity,
            active_flag=data.active_flag,
        )
        return await DistributorRepository.create(db, distributor)

    @staticmethod
    async def list_distributors(db: AsyncSession):
        return await DistributorRepository.list_all(db)

    @staticmethod
    async def get_distributor(db: AsyncSession, distributor_id: int) -> Distributor:
        distributor = await DistributorRepository.get(db, distributor_id)
        if not distributor:
            raise NotFound(f"Distributor {distributor_id} not found")
        return distributor
