import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from fieldtrack.models import LocationTrack


def track_payload(
    track_id: str,
    user: Any = "u1",
    locations: Optional[List[Dict[str, Any]]] = None,
    synced_at: Optional[str] = None,
) -> Dict[str, Any]:
    """A LocationTrack as the tracking API serialises it."""
    payload: Dict[str, Any] = {
        "_id": track_id,
        "userId": user,
        "locations": locations or [],
        "deviceInfo": {"platform": "android"},
    }
    if synced_at:
        payload["syncedAt"] = synced_at
    return payload


def point(lat: float, lng: float, ts: Any) -> Dict[str, Any]:
    return {"latitude": lat, "longitude": lng, "timestamp": ts, "accuracy": 5.0}


def make_track(*args, **kwargs) -> LocationTrack:
    return LocationTrack.model_validate(track_payload(*args, **kwargs))


def osrm_route_body(coordinates=None, distance=1234.5, duration=321.0) -> Dict[str, Any]:
    return {
        "code": "Ok",
        "routes": [{
            "geometry": {"type": "LineString", "coordinates": coordinates or [[36.80, -1.28], [36.81, -1.29]]},
            "distance": distance,
            "duration": duration,
        }],
    }


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(body: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body), headers={"Content-Type": "application/json"})


@pytest.fixture
def agent_user() -> Dict[str, Any]:
    return {
        "_id": "u1",
        "firstName": "Achieng",
        "lastName": "Otieno",
        "employeeId": "EMP-042",
        "region": "Nairobi",
    }
