"""
Trail Aggregation
Owns the track_id -> LocationTrack map of a tracking session and derives
per-user trails, heatmap points and distance statistics from it.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .models import HeatmapPoint, LocationTrack, Trail, TrailPoint, TrailSummary, UserRef
from .timeutils import parse_iso
from .track_geometry import is_valid_coordinate, trail_length, trail_statistics

logger = logging.getLogger(__name__)


def _utc_from_ms(ms: int) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        # Valid epoch-ms past year 9999
        return None


class TrailAggregator:
    """
    Deduplicating store of location tracks.

    `merge` is the only mutation. Every view is recomputed from the track map,
    so replaying a track or merging out of upload order never changes results.
    """

    def __init__(self, tracks: Optional[Iterable[LocationTrack]] = None):
        self._tracks: Dict[str, LocationTrack] = {}
        if tracks:
            self.merge(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def track_count(self) -> int:
        return len(self._tracks)

    @property
    def tracks(self) -> List[LocationTrack]:
        return list(self._tracks.values())

    def merge(self, new_tracks: Iterable[LocationTrack]) -> int:
        """Upsert tracks by id. Returns how many ids were not known before."""
        added = 0
        for track in new_tracks:
            if track.id not in self._tracks:
                added += 1
            self._tracks[track.id] = track
        if added:
            logger.debug(f"Merged {added} new tracks ({len(self._tracks)} total)")
        return added

    def clear(self):
        self._tracks.clear()

    def last_synced_at(self) -> Optional[str]:
        """Most recent syncedAt among known tracks, used as the polling cursor."""
        latest: Optional[str] = None
        latest_dt: Optional[datetime] = None
        for track in self._tracks.values():
            if not track.syncedAt:
                continue
            dt = parse_iso(track.syncedAt)
            if dt is None:
                continue
            if latest_dt is None or dt > latest_dt:
                latest, latest_dt = track.syncedAt, dt
        return latest

    # === Derived Views ===

    def to_trails(self) -> List[Trail]:
        """
        One trail per user, points sorted by timestamp.

        Tracks arrive out of upload order and points inside a track are not
        guaranteed sorted, so the sort runs on every derivation.
        """
        users: Dict[str, UserRef] = {}
        points: Dict[str, List[TrailPoint]] = {}

        for track in self._tracks.values():
            user_id = track.user_id
            known = users.get(user_id)
            if known is None or (track.user.is_resolved and not known.is_resolved):
                users[user_id] = track.user
            bucket = points.setdefault(user_id, [])
            for loc in track.locations:
                if not is_valid_coordinate({"lat": loc.latitude, "lng": loc.longitude}):
                    continue
                bucket.append(TrailPoint(lat=loc.latitude, lng=loc.longitude, timestamp=loc.ts))

        trails = []
        for user_id, path in points.items():
            path.sort(key=lambda p: p.timestamp)
            trails.append(Trail(user=users[user_id], path=path))
        return trails

    def trail_for_user(self, user_id: str) -> Optional[Trail]:
        for trail in self.to_trails():
            if trail.user.id == user_id:
                return trail
        return None

    def to_heatmap_points(self) -> List[HeatmapPoint]:
        # Uniform intensity: no weighting by dwell time or accuracy
        return [
            HeatmapPoint(lat=p.lat, lng=p.lng, intensity=1)
            for trail in self.to_trails()
            for p in trail.path
        ]

    def total_distance(self) -> float:
        """Total distance in meters over all trails."""
        return sum(trail_length(trail.path) for trail in self.to_trails())

    def summaries(self) -> List[TrailSummary]:
        """Per-user point count, km distance, bounding box and time span."""
        summaries = []
        for trail in self.to_trails():
            stats = trail_statistics(trail.path)
            started_at = ended_at = None
            if trail.path:
                started_at = _utc_from_ms(trail.path[0].timestamp)
                ended_at = _utc_from_ms(trail.path[-1].timestamp)
            summaries.append(TrailSummary(
                user=trail.user,
                point_count=stats.point_count,
                distance_km=stats.total_distance_km,
                bounding_box=stats.bounding_box,
                started_at=started_at,
                ended_at=ended_at,
            ))
        return summaries
