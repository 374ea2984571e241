from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import get_settings

settings = get_settings()

engine = create_async_engine(settings.database_url, echo=settings.db_echo)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    One unit of work: every statement inside commits together or not at all.
    A transaction left open by earlier reads on the same session is closed
    first, so each state transition starts from a fresh snapshot.
    """
    if db.in_transaction():
        await db.commit()
    async with db.begin():
        yield db
