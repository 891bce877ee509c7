"""
Route Snapping via OSRM (Open Source Routing Machine)
Aligns raw GPS trails onto the road network. The public demo server needs no
API key but is rate-limited by a fair use policy.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from .config import settings
from .models import SnappedRoute, TravelMode
from .track_geometry import Coordinate, simplify, to_coordinates

logger = logging.getLogger(__name__)

PROFILE_MAP = {
    TravelMode.driving: "car",
    TravelMode.walking: "foot",
    TravelMode.cycling: "bike",
}

ProgressCallback = Callable[[int, int], None]
TrailInput = Union[Mapping[str, Any], Any]


def profile_for_mode(mode: Union[TravelMode, str]) -> str:
    """OSRM profile for a travel mode; unknown modes route as car."""
    try:
        return PROFILE_MAP[TravelMode(mode)]
    except ValueError:
        logger.warning(f"Unknown travel mode {mode!r}, using car profile")
        return "car"


def _trail_id_and_coordinates(trail: TrailInput) -> Tuple[str, Sequence[Coordinate]]:
    if isinstance(trail, Mapping):
        return trail["id"], trail["coordinates"]
    return trail.id, trail.coordinates


class RouteSnapper:
    """Snap trails to roads with a single OSRM route request per trail."""

    def __init__(
        self,
        base_url: str = settings.OSRM_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        delay_seconds: float = settings.SNAP_DELAY_SECONDS,
        max_waypoints: int = settings.SNAP_MAX_WAYPOINTS,
        timeout: Optional[float] = settings.OSRM_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.delay_seconds = delay_seconds
        self.max_waypoints = max_waypoints
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def build_url(self, points: Sequence[Coordinate], profile: str) -> str:
        coordinates = ";".join(f"{p.lng},{p.lat}" for p in points)
        return f"{self.base_url}/route/v1/{profile}/{coordinates}"

    async def snap_to_roads(
        self,
        points: Sequence[Coordinate],
        mode: Union[TravelMode, str] = TravelMode.driving,
    ) -> Optional[SnappedRoute]:
        """
        Snap a trail to roads.

        Returns None when there are fewer than two valid points or OSRM has no
        route for them. Transport errors (DNS, connect, timeout) propagate.
        """
        valid = to_coordinates(points)
        if len(valid) < 2:
            logger.warning("Need at least 2 coordinates to snap route")
            return None

        # OSRM caps the number of waypoints per request
        simplified = simplify(valid, self.max_waypoints)
        profile = profile_for_mode(mode)
        logger.info(f"Snapping {len(simplified)} points to roads ({profile})...")

        response = await self.client.get(
            self.build_url(simplified, profile),
            params={"overview": "full", "geometries": "geojson", "steps": "false"},
            headers={"Accept": "application/json"},
        )

        if not response.is_success:
            logger.error(f"OSRM API error: {response.status_code} {response.reason_phrase} {response.text}")
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"OSRM returned invalid JSON: {e}")
            return None

        if data.get("code") != "Ok":
            logger.error(f"OSRM returned error code: {data.get('code')} {data.get('message', '')}")
            return None

        routes = data.get("routes") or []
        if not routes:
            logger.error("No routes found from OSRM")
            return None

        route = routes[0]
        geometry = route.get("geometry") or {}
        if not geometry.get("coordinates"):
            logger.error("No geometry in OSRM response")
            return None

        snapped = SnappedRoute(
            coordinates=[(c[0], c[1]) for c in geometry["coordinates"]],
            distance_meters=route.get("distance", 0.0),
            duration_seconds=route.get("duration", 0.0),
            provider="osrm",
        )
        logger.info(
            f"Route snapped: {len(snapped.coordinates)} points, "
            f"{snapped.distance_meters / 1000:.2f} km"
        )
        return snapped

    async def batch_snap(
        self,
        trails: Iterable[TrailInput],
        mode: Union[TravelMode, str] = TravelMode.driving,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Optional[SnappedRoute]]:
        """
        Snap several trails one after another with a fixed delay between
        requests (1.5 s = 40 requests/minute). A failing trail is recorded as
        None and does not stop the batch.
        """
        items: List[TrailInput] = list(trails)
        total = len(items)
        results: Dict[str, Optional[SnappedRoute]] = {}

        for i, trail in enumerate(items):
            trail_id, coordinates = _trail_id_and_coordinates(trail)
            logger.info(f"Processing trail {i + 1}/{total}: {trail_id}")

            try:
                results[trail_id] = await self.snap_to_roads(coordinates, mode)
            except Exception as e:
                logger.error(f"Error snapping trail {trail_id} to roads: {e}")
                results[trail_id] = None

            if on_progress:
                on_progress(i + 1, total)

            # Rate limiting delay (except after the last request)
            if i < total - 1:
                await asyncio.sleep(self.delay_seconds)

        return results

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "RouteSnapper":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
