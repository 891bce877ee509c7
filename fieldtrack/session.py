"""
Trail Tracking Session
One live-tracking view: the track map, the polling loop and the collaborators
they talk to. Sessions share nothing, so several can run side by side.
"""

import logging
from typing import Callable, Dict, List, Optional, Union

from clients.tracking_client import TrackingClient

from .config import Settings, settings as default_settings
from .live_sync import LiveSyncPoller, UpdateCallback
from .models import LocationTrack, SnappedRoute, TravelMode
from .route_snapping import ProgressCallback, RouteSnapper
from .timeutils import TimestampLike
from .trail_aggregator import TrailAggregator

logger = logging.getLogger(__name__)


class TrailTrackingSession:
    def __init__(
        self,
        client: TrackingClient,
        snapper: Optional[RouteSnapper] = None,
        aggregator: Optional[TrailAggregator] = None,
        live_interval: float = default_settings.LIVE_SYNC_INTERVAL,
        page_limit: int = default_settings.TRACKING_PAGE_LIMIT,
    ):
        self.client = client
        self.snapper = snapper or RouteSnapper()
        self.aggregator = aggregator or TrailAggregator()
        self.live_interval = live_interval
        self.page_limit = page_limit
        self._poller: Optional[LiveSyncPoller] = None

    @classmethod
    def from_settings(
        cls,
        config: Settings = default_settings,
        token: Union[str, Callable[[], Optional[str]], None] = None,
    ) -> "TrailTrackingSession":
        client = TrackingClient(
            base_url=config.TRACKING_API_BASE_URL,
            token=token if token is not None else config.TRACKING_API_TOKEN,
            timeout=config.TRACKING_API_TIMEOUT,
        )
        snapper = RouteSnapper(
            base_url=config.OSRM_BASE_URL,
            delay_seconds=config.SNAP_DELAY_SECONDS,
            max_waypoints=config.SNAP_MAX_WAYPOINTS,
            timeout=config.OSRM_TIMEOUT,
        )
        return cls(
            client,
            snapper=snapper,
            live_interval=config.LIVE_SYNC_INTERVAL,
            page_limit=config.TRACKING_PAGE_LIMIT,
        )

    # === Loading ===

    async def load_initial(
        self,
        user_id: Optional[str] = None,
        from_: TimestampLike = None,
        to: TimestampLike = None,
    ) -> int:
        """Bulk-load every page for the window and merge it. Returns the number of new tracks."""
        tracks = await self.client.fetch_all_tracks(user_id=user_id, from_=from_, to=to, limit=self.page_limit)
        added = self.aggregator.merge(tracks)
        logger.info(f"Initial load merged {added} new tracks ({self.aggregator.track_count} total)")
        return added

    def start_live(
        self,
        interval: Optional[float] = None,
        on_update: Optional[UpdateCallback] = None,
        user_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """Start delta polling from the aggregator's watermark; replaces a running poller."""
        self.stop_live()

        def handle_update(tracks: List[LocationTrack]):
            added = self.aggregator.merge(tracks)
            logger.info(f"Live sync received {len(tracks)} tracks ({added} new)")
            if on_update:
                on_update(tracks)

        self._poller = LiveSyncPoller(
            self.client,
            on_update=handle_update,
            get_last_synced_at=self.aggregator.last_synced_at,
            interval=interval if interval is not None else self.live_interval,
            user_id=user_id,
            limit=self.page_limit,
        )
        return self._poller.start()

    def stop_live(self):
        if self._poller is not None:
            self._poller.stop()
            self._poller = None

    @property
    def live(self) -> bool:
        return self._poller is not None and self._poller.running

    # === Snapping ===

    async def snap_trail(
        self,
        user_id: str,
        mode: Union[TravelMode, str] = TravelMode.driving,
    ) -> Optional[SnappedRoute]:
        """Snap one user's current trail. Raises KeyError for an unknown user."""
        trail = self.aggregator.trail_for_user(user_id)
        if trail is None:
            raise KeyError(user_id)
        return await self.snapper.snap_to_roads(trail.path, mode)

    async def snap_all(
        self,
        mode: Union[TravelMode, str] = TravelMode.driving,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Optional[SnappedRoute]]:
        trails = [
            {"id": trail.user.id, "coordinates": trail.path}
            for trail in self.aggregator.to_trails()
        ]
        return await self.snapper.batch_snap(trails, mode, on_progress)

    # === Lifecycle ===

    async def aclose(self):
        poller = self._poller
        self.stop_live()
        if poller is not None:
            # Let the cancelled poll finish before its client goes away
            await poller.wait_stopped()
        await self.client.aclose()
        await self.snapper.aclose()

    async def __aenter__(self) -> "TrailTrackingSession":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
