"""In-memory stand-ins for the geo, mail, notification and invoice adapters."""
import asyncio
from datetime import datetime, timedelta, timezone

from jose import jwt

from services.geo_service.schemas import Coordinates, RouteMeasurement
from services.geo_service.service import GeoService
from services.invoice_service.service import InvoicePort
from services.notification_service.service import NotificationPort
from shared.config.settings import get_settings
from shared.exceptions import UpstreamUnavailable

ORDER_LOCATION = Coordinates(lat=-33.9249, lng=18.4241)


def distributor_token(distributor_id, expires_in=timedelta(minutes=5)):
    """Bearer token as the identity provider mints it for a logged-in distributor."""
    settings = get_settings()
    claims = {"sub": str(distributor_id), "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class FakeGeo(GeoService):
    """
    Distances are keyed by the distributor's (lat, lng); addresses by their
    composed text. Anything unknown resolves to None like the real adapter.
    """

    def __init__(self, distances_km=None, locations=None, failing=(), slow=(), delay=1.0, geocode_error=None):
        self.distances_km = dict(distances_km or {})
        self.locations = dict(locations or {})
        self.failing = set(failing)
        self.slow = set(slow)
        self.delay = delay
        self.geocode_error = geocode_error
        self.distance_calls = []
        self.geocode_calls = []

    async def geocode(self, address):
        self.geocode_calls.append(address)
        if self.geocode_error is not None:
            raise self.geocode_error
        return self.locations.get(address)

    async def distance(self, origin, destination):
        key = (origin.lat, origin.lng)
        self.distance_calls.append(key)
        if key in self.failing:
            raise RuntimeError("distance matrix exploded")
        if key in self.slow:
            await asyncio.sleep(self.delay)
        km = self.distances_km.get(key)
        if km is None:
            return None
        return RouteMeasurement(meters=km * 1000, seconds=km * 90)


class FakeNotifier(NotificationPort):

    def __init__(self, failures=0):
        self.failures = failures
        self.assignments = []
        self.statuses = []

    async def notify_assignment(self, order_id, distributor_id):
        if self.failures:
            self.failures -= 1
            raise UpstreamUnavailable("mail provider down")
        self.assignments.append((order_id, distributor_id))

    async def notify_status(self, order_id, status):
        if self.failures:
            self.failures -= 1
            raise UpstreamUnavailable("mail provider down")
        self.statuses.append((order_id, status))


class FakeInvoices(InvoicePort):

    def __init__(self, existing=None, deliverable=True):
        self.existing = dict(existing or {})
        self.deliverable = deliverable
        self.generated = []
        self.sent = []

    async def generate(self, order_id):
        handle = f"invoice-{order_id}.pdf"
        self.generated.append(order_id)
        self.existing[order_id] = handle
        return handle

    async def send(self, order_id, handle):
        if not self.deliverable:
            return False
        self.sent.append((order_id, handle))
        return True

    async def latest(self, order_id):
        return self.existing.get(order_id)


class RecordingMailer:
    """Stands in for SendGridMailer; same send() signature."""

    def __init__(self, fail=False):
        self.fail = fail
        self.messages = []

    async def send(self, to, subject, text, html, attachments=None):
        if self.fail:
            raise UpstreamUnavailable("SendGrid rejected the message")
        if not to:
            raise UpstreamUnavailable(f"No recipient for '{subject}'")
        self.messages.append(
            {"to": to, "subject": subject, "text": text, "html": html, "attachments": attachments}
        )


