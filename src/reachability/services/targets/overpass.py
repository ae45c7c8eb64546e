"""Overpass API client for discovering target facilities."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from ...config import settings
from ...models.domain import LatLng, Target
from ..geospatial import polygon_centroid

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RADIUS_M = 500
UNNAMED_SCHOOL = "Unnamed school"


def build_school_query(lat: float, lon: float, radius_m: float, timeout_seconds: int = 25) -> str:
    around = f"around:{radius_m:g},{lat},{lon}"
    return (
        f"[out:json][timeout:{timeout_seconds}];"
        "("
        f'node["amenity"="school"]({around});'
        f'way["amenity"="school"]({around});'
        f'relation["amenity"="school"]({around});'
        ");"
        "out center body;>;out skel qt;"
    )


def parse_school_elements(elements: Sequence[dict[str, Any]]) -> list[Target]:
    """Turn Overpass elements into school targets (nodes, closed ways, relations with a center)."""

    node_coords: dict[int, tuple[float, float]] = {}
    for element in elements:
        if element.get("type") == "node" and "lat" in element and "lon" in element:
            node_coords[element["id"]] = (element["lat"], element["lon"])

    schools: list[Target] = []
    for element in elements:
        tags = element.get("tags") or {}
        if tags.get("amenity") != "school":
            continue
        element_type = element.get("type")
        name = tags.get("name") or UNNAMED_SCHOOL
        metadata: dict[str, Any] = {"osm_type": element_type, "osm_id": element.get("id"), "tags": tags}

        if element_type == "node":
            location = LatLng(element["lat"], element["lon"])
        elif element_type == "way":
            ring = [node_coords[node_id] for node_id in element.get("nodes", []) if node_id in node_coords]
            if len(ring) < 3:
                continue
            if ring[0] != ring[-1]:
                ring.append(ring[0])
            if len(ring) < 4:
                continue
            location = polygon_centroid(ring)
            metadata["polygon"] = [list(coord) for coord in ring]
        elif element_type == "relation":
            center = element.get("center")
            if not center:
                continue
            location = LatLng(center["lat"], center["lon"])
        else:
            continue

        schools.append(
            Target(
                id=f"osm-{element_type}-{element.get('id')}",
                location=location,
                category="school",
                name=name,
                metadata=metadata,
            )
        )
    return schools


class OverpassClient:
    def __init__(
        self,
        servers: Sequence[str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.servers = tuple(servers or settings.overpass_servers)
        if not self.servers:
            raise ValueError("No Overpass servers configured.")
        self.timeout = timeout if timeout is not None else settings.overpass_timeout_seconds
        self._transport = transport

    async def search_schools(self, lat: float, lon: float, radius_m: float = DEFAULT_SEARCH_RADIUS_M) -> list[Target]:
        """Query servers in order until one answers; raises ConnectionError when none does."""

        query = build_school_query(lat, lon, radius_m)
        errors: list[str] = []
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0), transport=self._transport) as client:
            for server in self.servers:
                url = f"{server.rstrip('/')}/interpreter"
                try:
                    response = await client.post(url, data={"data": query})
                    response.raise_for_status()
                    payload = response.json()
                    if not isinstance(payload, dict):
                        raise ValueError(f"unexpected payload type {type(payload).__name__}")
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning(f"Overpass server {server} failed: {exc}")
                    errors.append(f"{server}: {exc}")
                    continue
                schools = parse_school_elements(payload.get("elements") or [])
                logger.info(f"Overpass {server} returned {len(schools)} schools within {radius_m:g} m")
                return schools
        raise ConnectionError(f"All Overpass servers failed: {'; '.join(errors)}")
