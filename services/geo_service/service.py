"""
GeoService port and its Google Maps adapter.

Both operations fail soft: a missing API key, an empty result, a non-OK
element or any transport error resolves to None and is logged. Callers never
have to catch anything from here.
"""
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from shared.config.settings import Settings
from shared.observability import dispatch_geo_request_seconds

from .schemas import Coordinates, RouteMeasurement

logger = structlog.get_logger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

# Unreadable 200 bodies (pydantic ValidationError is a ValueError)
_MALFORMED = (KeyError, IndexError, TypeError, AttributeError, ValueError)


class GeoService(ABC):

    @abstractmethod
    async def geocode(self, address: str) -> Optional[Coordinates]:
        ...

    @abstractmethod
    async def distance(self, origin: Coordinates, destination: Coordinates) -> Optional[RouteMeasurement]:
        ...


class GoogleMapsGeoService(GeoService):

    def __init__(self, api_key: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleMapsGeoService":
        return cls(settings.google_maps_api_key, timeout=settings.geo_timeout_seconds)

    async def _get(self, operation: str, url: str, params: dict) -> Optional[dict]:
        if not self.api_key:
            logger.error("geo_api_key_missing", operation=operation)
            return None

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params={**params, "key": self.api_key})
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("geo_request_failed", operation=operation, error=str(e))
            return None
        finally:
            dispatch_geo_request_seconds.labels(operation=operation).observe(time.perf_counter() - started)

    async def geocode(self, address: str) -> Optional[Coordinates]:
        data = await self._get("geocode", GEOCODE_URL, {"address": address})
        if data is None:
            return None

        try:
            results = data.get("results") or []
            if not results:
                logger.warning("geocode_no_results", address=address, status=data.get("status"))
                return None

            location = results[0]["geometry"]["location"]
            return Coordinates(lat=location["lat"], lng=location["lng"])
        except _MALFORMED as e:
            logger.error("geocode_malformed_response", address=address, error=repr(e))
            return None

    async def distance(self, origin: Coordinates, destination: Coordinates) -> Optional[RouteMeasurement]:
        data = await self._get(
            "distance",
            DISTANCE_MATRIX_URL,
            {"origins": origin.as_param(), "destinations": destination.as_param()},
        )
        if data is None:
            return None

        try:
            rows = data.get("rows") or []
            elements = rows[0].get("elements") if rows else None
            element = elements[0] if elements else None

            if not element or element.get("status") != "OK":
                logger.warning("route_not_found", origin=origin.as_param(), destination=destination.as_param())
                return None

            return RouteMeasurement(
                meters=element["distance"]["value"],
                seconds=element["duration"]["value"],
            )
        except _MALFORMED as e:
            logger.error("distance_malformed_response", origin=origin.as_param(), error=repr(e))
            return None
