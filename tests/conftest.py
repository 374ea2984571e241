import os
import tempfile

# Settings are read once at import time, so the environment has to be in
# place before anything from the app is imported.
_WORKDIR = tempfile.mkdtemp(prefix="water-dispatch-tests-")
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["INTERNAL_API_KEY"] = "test-operator-key"
os.environ["WOOCOMMERCE_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_WORKDIR}/app.db"
os.environ["TRACING_ENABLED"] = "false"
os.environ["INVOICE_DIR"] = os.path.join(_WORKDIR, "invoices")
os.environ["ACCESS_POLICY"] = "owner_only"
os.environ["WEBHOOK_RATE_LIMIT"] = "1000/minute"
os.environ["GOOGLE_MAPS_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""

import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from fakes import ORDER_LOCATION  # noqa: E402
from shared.config.database import Base  # noqa: E402
from services.distributor_service.models import Distributor  # noqa: E402
from services.invoice_service import models as invoice_models  # noqa: E402, F401
from services.order_service.models import Assignment, Order, OrderStatus  # noqa: E402
from services.outbox_service.models import OutboxMessage  # noqa: E402


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_distributor(session_factory):
    async def _make(name="Aqua North", lat=-33.90, lng=18.40, current=0, max_capacity=10, active=True,
                    email="north@aqua.test"):
        async with session_factory() as session:
            distributor = Distributor(
                name=name,
                email=email,
                lat=lat,
                lng=lng,
                current_capacity=current,
                max_capacity=max_capacity,
                active_flag=active,
            )
            session.add(distributor)
            await session.commit()
            await session.refresh(distributor)
            return distributor

    return _make


@pytest.fixture
def make_order(session_factory):
    counter = {"n": 1000}

    async def _make(location=ORDER_LOCATION, status=OrderStatus.NEW, distributor_id=None, amount=150.0,
                    email="thandi@example.com"):
        counter["n"] += 1
        async with session_factory() as session:
            order = Order(
                woo_order_id=str(counter["n"]),
                customer_name="Thandi Mokoena",
                customer_phone="0820000000",
                customer_email=email,
                address_text="12 Long St, Cape Town, 8001, South Africa",
                lat=location.lat if location else None,
                lng=location.lng if location else None,
                amount_total=amount,
                status=status.value,
                assigned_distributor_id=distributor_id,
            )
            session.add(order)
            await session.commit()
            await session.refresh(order)
            return order

    return _make


@pytest.fixture
def fetch(session_factory):
    """Read committed state through a fresh session."""

    class _Fetch:
        async def order(self, order_id):
            async with session_factory() as session:
                return (await session.execute(select(Order).where(Order.id == order_id))).scalars().first()

        async def distributor(self, distributor_id):
            async with session_factory() as session:
                return await session.get(Distributor, distributor_id)

        async def assignments(self, order_id):
            async with session_factory() as session:
                result = await session.execute(
                    select(Assignment).where(Assignment.order_id == order_id).order_by(Assignment.id)
                )
                return list(result.scalars().all())

        async def outbox(self, order_id=None):
            async with session_factory() as session:
                stmt = select(OutboxMessage).order_by(OutboxMessage.id)
                if order_id is not None:
                    stmt = stmt.where(OutboxMessage.order_id == order_id)
                return list((await session.execute(stmt)).scalars().all())

        async def order_count(self):
            async with session_factory() as session:
                return len((await session.execute(select(Order))).scalars().all())

    return _Fetch()
