"""
Trail Routes
Read-only views of the live tracking session for a map/rendering layer
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from typing import List, Optional
import logging

import httpx

from ..models import HeatmapPoint, SnappedRoute, Trail, TrailSummaryResponse, TravelMode
from ..session import TrailTrackingSession
from ..track_geometry import format_distance

logger = logging.getLogger(__name__)

router = APIRouter()


def get_session(request: Request) -> TrailTrackingSession:
    """Session dependency; the app lifespan stores it on app.state"""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Tracking session not initialised")
    return session


@router.get("/trails", response_model=List[Trail])
async def list_trails(
    user_id: Optional[str] = Query(None),
    session: TrailTrackingSession = Depends(get_session),
):
    """All trails, or the trail of one user"""
    if user_id:
        trail = session.aggregator.trail_for_user(user_id)
        return [trail] if trail else []
    return session.aggregator.to_trails()


@router.get("/trails/summary", response_model=TrailSummaryResponse)
async def trail_summary(session: TrailTrackingSession = Depends(get_session)):
    """Per-user point counts and distances plus the overall distance"""
    total = session.aggregator.total_distance()
    return TrailSummaryResponse(
        trails=session.aggregator.summaries(),
        total_distance_meters=total,
        total_distance_display=format_distance(total),
        track_count=session.aggregator.track_count,
    )


@router.get("/heatmap", response_model=List[HeatmapPoint])
async def heatmap(session: TrailTrackingSession = Depends(get_session)):
    return session.aggregator.to_heatmap_points()


@router.get("/trails/{user_id}/snap", response_model=Optional[SnappedRoute])
async def snap_trail(
    user_id: str,
    mode: TravelMode = Query(TravelMode.driving),
    session: TrailTrackingSession = Depends(get_session),
):
    """Snap a user's trail to roads; null when no route is available"""
    try:
        return await session.snap_trail(user_id, mode)
    except KeyError:
        raise HTTPException(status_code=404, detail="Trail not found")
    except httpx.TransportError as e:
        logger.error(f"Routing service unreachable for {user_id}: {e}")
        raise HTTPException(status_code=502, detail="Routing service unreachable")
