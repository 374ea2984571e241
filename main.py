import asyncio
import contextlib

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import AsyncSessionLocal, Base, engine
from shared.config.settings import Settings, get_settings
from shared.exceptions import register_exception_handlers
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.distributor_service import models as distributor_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.outbox_service import models as outbox_models  # noqa: F401
from services.invoice_service import models as invoice_models  # noqa: F401

from services.assignment_service.router import router as assignment_router
from services.distributor_service.router import router as distributor_router
from services.ingestion_service.router import router as ingestion_router
from services.invoice_service.router import get_invoice_service, router as invoice_router
from services.notification_service.mailer import SendGridMailer
from services.notification_service.service import EmailNotifier
from services.order_service.router import router as order_router
from services.outbox_service.service import OutboxDispatcher

settings = get_settings()

app = FastAPI(
    title="Water Dispatch",
    version="1.0.0",
    description="Order ingestion, distributor assignment and delivery lifecycle.",
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, settings)

# --- ERRORS & SECURITY ---
register_exception_handlers(app)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(ingestion_router)
app.include_router(order_router)
app.include_router(assignment_router)
app.include_router(invoice_router)
app.include_router(distributor_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": settings.service_name, "status": "running"}


def build_outbox_dispatcher(settings: Settings) -> OutboxDispatcher:
    notifier = EmailNotifier(SendGridMailer.from_settings(settings), AsyncSessionLocal)
    return OutboxDispatcher(
        AsyncSessionLocal,
        notifier,
        get_invoice_service(),
        batch_size=settings.outbox_batch_size,
        max_attempts=settings.outbox_max_attempts,
        poll_interval=settings.outbox_poll_interval_seconds,
    )


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.outbox_task = asyncio.create_task(build_outbox_dispatcher(settings).run())


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "outbox_task", None)
    if task:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await engine.dispose()
