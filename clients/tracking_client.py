"""HTTP client for the remote location tracking API."""
import logging
import httpx
from typing import Callable, Dict, List, Optional, Union

from fieldtrack.config import settings
from fieldtrack.models import FlatPoint, LocationTrack, TracksPage
from fieldtrack.timeutils import TimestampLike, to_iso

logger = logging.getLogger(__name__)

TokenSource = Union[str, Callable[[], Optional[str]], None]


class FetchError(Exception):
    """Tracking API answered with a non-2xx status."""

    def __init__(self, status: int, body: str, reason: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Failed to fetch tracks: {status} {reason} {body}".strip())

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


class TrackingClient:
    """Client for the admin location endpoint of the tracking API."""

    def __init__(
        self,
        base_url: str = settings.TRACKING_API_BASE_URL,
        token: TokenSource = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.TRACKING_API_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token() if callable(self._token) else self._token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def build_params(
        user_id: Optional[str] = None,
        from_: TimestampLike = None,
        to: TimestampLike = None,
        page: int = 1,
        limit: int = 100,
    ) -> Dict[str, str]:
        """Query parameters in the order the API documents them; empty filters are left out."""
        params: Dict[str, str] = {}
        if user_id:
            params["userId"] = user_id
        if from_:
            params["from"] = to_iso(from_)
        if to:
            params["to"] = to_iso(to)
        params["page"] = str(page)
        params["limit"] = str(limit)
        return params

    async def fetch_tracks(
        self,
        user_id: Optional[str] = None,
        from_: TimestampLike = None,
        to: TimestampLike = None,
        page: int = 1,
        limit: int = 100,
    ) -> TracksPage:
        """
        Fetch one page of location tracks.

        Raises FetchError for non-2xx responses and lets httpx transport errors
        propagate. Cancelling the awaiting task aborts the request.
        """
        params = self.build_params(user_id=user_id, from_=from_, to=to, page=page, limit=limit)
        response = await self.client.get(
            f"{self.base_url}/admin/location",
            params=params,
            headers=self._headers(),
        )
        if not response.is_success:
            raise FetchError(response.status_code, response.text, response.reason_phrase)
        return TracksPage.model_validate(response.json())

    async def fetch_all_tracks(
        self,
        user_id: Optional[str] = None,
        from_: TimestampLike = None,
        to: TimestampLike = None,
        limit: int = settings.TRACKING_PAGE_LIMIT,
        max_pages: int = settings.TRACKING_MAX_PAGES,
    ) -> List[LocationTrack]:
        """Follow pagination from page 1 until the last page, an empty page or max_pages."""
        tracks: List[LocationTrack] = []
        for page in range(1, max_pages + 1):
            result = await self.fetch_tracks(user_id=user_id, from_=from_, to=to, page=page, limit=limit)
            tracks.extend(result.data)
            if not result.data or result.meta is None or page >= result.meta.totalPages:
                break
        else:
            logger.warning(f"Stopped loading tracks after {max_pages} pages")
        logger.info(f"Loaded {len(tracks)} tracks")
        return tracks

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "TrackingClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


def flatten_and_sort(tracks: List[LocationTrack]) -> List[FlatPoint]:
    """Flatten tracks into one stream of points, ascending by timestamp."""
    points = [
        FlatPoint(
            lat=loc.latitude,
            lng=loc.longitude,
            ts=loc.ts,
            accuracy=loc.accuracy,
            speed=loc.speed,
            heading=loc.heading,
            altitude=loc.altitude,
            track_id=track.id,
            user_id=track.user_id,
            synced_at=track.syncedAt,
        )
        for track in tracks
        for loc in track.locations
    ]
    points.sort(key=lambda p: p.ts)
    return points
