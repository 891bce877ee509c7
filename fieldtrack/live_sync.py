"""
Live Sync
Cooperative polling loop that keeps a tracking session up to date with tracks
synced after the current watermark.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from clients.tracking_client import TrackingClient

from .config import settings
from .models import LocationTrack, TracksPage

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[LocationTrack]], None]
CursorFunction = Callable[[], Optional[str]]


class LiveSyncPoller:
    """
    Poll the tracking API for tracks newer than `get_last_synced_at()`.

    Runs as a single asyncio task: tick 0 fires immediately, later ticks
    `interval` seconds after the previous one finished. At most one request
    is in flight. Failures on a tick are logged and the loop keeps going; only
    `stop()` ends it, and a stopped poller cannot be started again.
    """

    def __init__(
        self,
        client: TrackingClient,
        on_update: UpdateCallback,
        get_last_synced_at: CursorFunction,
        interval: float = settings.LIVE_SYNC_INTERVAL,
        user_id: Optional[str] = None,
        limit: int = settings.TRACKING_PAGE_LIMIT,
    ):
        self._client = client
        self._on_update = on_update
        self._get_last_synced_at = get_last_synced_at
        self.interval = interval
        self.user_id = user_id
        self.limit = limit

        self._started = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> Callable[[], None]:
        """Start polling on the running event loop and return the stop function."""
        if self._started or self._stopped:
            raise RuntimeError("LiveSyncPoller cannot be restarted; create a new instance")
        self._started = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Live sync started (interval={self.interval}s)")
        return self.stop

    def stop(self):
        """Stop polling and abort the in-flight request. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("Live sync stopped")

    async def wait_stopped(self):
        """Wait until the polling task has finished."""
        if self._task is not None:
            await asyncio.wait([self._task])

    async def _run(self):
        while not self._stopped:
            await self._tick()
            if self._stopped:
                break
            await asyncio.sleep(self.interval)

    async def _tick(self):
        # Awaited to completion, so at most one request is ever outstanding
        try:
            from_ = self._get_last_synced_at()
            self._inflight = asyncio.ensure_future(self._client.fetch_tracks(
                user_id=self.user_id,
                from_=from_,
                page=1,
                limit=self.limit,
            ))
            page: TracksPage = await self._inflight
            if self._stopped:
                return
            if page.data:
                self._on_update(page.data)
        except Exception as e:
            # Transient failures must not end live tracking
            logger.warning(f"Polling tracks failed: {e}")
