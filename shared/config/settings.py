"""
Central runtime configuration.

Every adapter (database, geo, mail, invoices, outbox) receives the values it
needs from a Settings instance passed to its constructor. This module is the
only place that reads the process environment.
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _default_database_url() -> str:
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "water_dispatch")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool = False

    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    internal_api_key: str = ""
    webhook_secret: str = ""
    webhook_rate_limit: str = "60/minute"
    access_policy: str = "owner_only"

    google_maps_api_key: str = ""
    geo_timeout_seconds: float = 5.0
    address_country: str = "South Africa"

    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "noreply@water.co.za"

    invoice_dir: str = "./invoices"
    invoice_tax_rate: float = 0.15

    outbox_poll_interval_seconds: float = 5.0
    outbox_batch_size: int = 20
    outbox_max_attempts: int = 5
    assignment_max_attempts: int = 3

    service_name: str = "water-dispatch"
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://localhost:4317"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL") or _default_database_url(),
            db_echo=_env_bool("DB_ECHO", False),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            internal_api_key=os.getenv("INTERNAL_API_KEY", ""),
            webhook_secret=os.getenv("WOOCOMMERCE_WEBHOOK_SECRET", ""),
            webhook_rate_limit=os.getenv("WEBHOOK_RATE_LIMIT", "60/minute"),
            access_policy=os.getenv("ACCESS_POLICY", "owner_only"),
            google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY", ""),
            geo_timeout_seconds=float(os.getenv("GEO_TIMEOUT_SECONDS", "5.0")),
            address_country=os.getenv("ADDRESS_COUNTRY", "South Africa"),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", ""),
            sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL", "noreply@water.co.za"),
            invoice_dir=os.getenv("INVOICE_DIR", "./invoices"),
            invoice_tax_rate=float(os.getenv("INVOICE_TAX_RATE", "0.15")),
            outbox_poll_interval_seconds=float(os.getenv("OUTBOX_POLL_INTERVAL_SECONDS", "5.0")),
            outbox_batch_size=int(os.getenv("OUTBOX_BATCH_SIZE", "20")),
            outbox_max_attempts=int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5")),
            assignment_max_attempts=int(os.getenv("ASSIGNMENT_MAX_ATTEMPTS", "3")),
            service_name=os.getenv("SERVICE_NAME", "water-dispatch"),
            tracing_enabled=_env_bool("TRACING_ENABLED", True),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
