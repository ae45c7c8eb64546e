"""Routing providers: GraphHopper HTTP client and beeline fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from ...config import settings
from ...errors import RouteUnavailable
from ...models.domain import LatLng
from ..geospatial import haversine_m

logger = logging.getLogger(__name__)

# GraphHopper answers 400 with one of these when no path exists
NO_ROUTE_MARKERS = (
    "cannot find point",
    "connection between locations not found",
    "point not found",
    "no route",
)


@dataclass(slots=True, frozen=True)
class RouteCost:
    duration_min: float
    distance_m: float
    geometry: tuple[LatLng, ...] = ()


class RoutingProvider(Protocol):
    name: str

    async def route(self, origin: LatLng, destination: LatLng, mode: str) -> RouteCost:
        """Return the travel cost or raise RouteUnavailable."""


class BeelineProvider:
    """Straight-line estimate: haversine distance at an average per-mode speed."""

    name = "beeline"

    def __init__(self, detour_factor: float = 1.0) -> None:
        if detour_factor <= 0:
            raise ValueError("detour_factor must be positive.")
        self.detour_factor = detour_factor

    async def route(self, origin: LatLng, destination: LatLng, mode: str) -> RouteCost:
        distance_m = haversine_m(origin.lat, origin.lon, destination.lat, destination.lon) * self.detour_factor
        speed_kmh = settings.speed_kmh_for(mode)
        duration_min = (distance_m / 1000.0) / speed_kmh * 60.0
        return RouteCost(duration_min=duration_min, distance_m=distance_m, geometry=(origin, destination))


class GraphHopperClient:
    """Async client for the GraphHopper ``/route`` endpoint."""

    name = "graphhopper"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.routing_base_url
        if not self.base_url:
            raise ValueError("Routing base URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.routing_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.routing_backoff_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GraphHopperClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def build_body(origin: LatLng, destination: LatLng, mode: str) -> dict:
        return {
            "profile": mode,
            # GraphHopper expects [lon, lat]
            "points": [[origin.lon, origin.lat], [destination.lon, destination.lat]],
            "points_encoded": False,
            "instructions": False,
            "elevation": False,
        }

    @staticmethod
    def parse_response(data: dict) -> RouteCost:
        paths = data.get("paths") or []
        if not paths:
            raise RouteUnavailable(data.get("message") or "Routing response contains no paths.")
        path = paths[0]
        time_ms = path.get("time")
        distance = path.get("distance")
        if not isinstance(time_ms, (int, float)) or not isinstance(distance, (int, float)):
            raise RouteUnavailable("Routing response is missing time/distance.")
        return RouteCost(duration_min=time_ms / 60000.0, distance_m=float(distance), geometry=_path_geometry(path))

    async def route(self, origin: LatLng, destination: LatLng, mode: str) -> RouteCost:
        client = self._get_client()
        body = self.build_body(origin, destination, mode)
        attempt = 0
        while True:
            try:
                response = await client.post(self.base_url, json=body)
                response.raise_for_status()
                return self.parse_response(response.json())
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                message = _error_message(exc.response)
                if status_code < 500 and status_code != 429:
                    if any(marker in message.lower() for marker in NO_ROUTE_MARKERS):
                        raise RouteUnavailable(f"No route: {message}") from exc
                    # auth, profile and payload rejections are provider failures, not missing routes
                    raise RouteUnavailable(
                        f"Routing request rejected ({status_code}): {message}", transient=True
                    ) from exc
                attempt += 1
                if attempt > self.max_retries:
                    raise RouteUnavailable(
                        f"Routing service error {status_code} after {self.max_retries} retries", transient=True
                    ) from exc
                await asyncio.sleep(self.backoff_seconds * attempt)
            except httpx.TransportError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(f"Routing request failed after {self.max_retries} retries: {exc}")
                    raise RouteUnavailable(f"Routing service unreachable: {exc}", transient=True) from exc
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(f"Routing request error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}")
                await asyncio.sleep(wait_time)
            except ValueError as exc:
                # undecodable JSON body
                raise RouteUnavailable(f"Invalid routing response: {exc}", transient=True) from exc


def _path_geometry(path: dict) -> tuple[LatLng, ...]:
    """Route polyline as (lat, lon) points; empty when the path carries no unencoded points."""
    points = path.get("points")
    coordinates = points.get("coordinates") if isinstance(points, dict) else None
    if not coordinates:
        return ()
    # GraphHopper returns [lon, lat] or [lon, lat, ele]
    return tuple(LatLng(float(coord[1]), float(coord[0])) for coord in coordinates if len(coord) >= 2)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text[:200]


def get_provider() -> RoutingProvider:
    """Pick GraphHopper when a routing URL is configured, otherwise the beeline estimate."""
    if settings.routing_base_url:
        return GraphHopperClient()
    logger.warning("No routing URL configured; using beeline travel estimates.")
    return BeelineProvider()


def check_health(base_url: str | None = None) -> bool:
    """Check routing service health with a minimal route request (Berlin area)."""
    base = base_url or settings.routing_base_url
    if not base:
        return False
    body = GraphHopperClient.build_body(
        LatLng(52.517037, 13.388860), LatLng(52.496891, 13.385983), settings.routing_profile
    )
    try:
        response = httpx.post(base, json=body, timeout=5.0)
        response.raise_for_status()
        return bool(response.json().get("paths"))
    except (httpx.HTTPError, ValueError):
        return False
