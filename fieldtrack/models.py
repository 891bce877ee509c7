from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any, Tuple, Union

from .timeutils import normalize_timestamp


class TravelMode(str, Enum):
    driving = "driving"
    walking = "walking"
    cycling = "cycling"


# === Wire Models (remote tracking API) ===

class UserRef(BaseModel):
    """Field agent reference, resolved once from the polymorphic `userId` field."""
    id: str
    display_name: str
    employee_id: Optional[str] = None
    region: Optional[str] = None

    class Config:
        frozen = True

    @classmethod
    def from_wire(cls, value: Any) -> "UserRef":
        """Accept a raw id string or an embedded user object."""
        if isinstance(value, UserRef):
            return value
        if isinstance(value, dict):
            user_id = str(value.get("_id") or value.get("id") or "")
            first = (value.get("firstName") or "").strip()
            last = (value.get("lastName") or "").strip()
            name = " ".join(part for part in (first, last) if part) or value.get("name") or user_id
            return cls(
                id=user_id,
                display_name=name,
                employee_id=value.get("employeeId"),
                region=value.get("region"),
            )
        if value is None:
            return cls(id="", display_name="")
        return cls(id=str(value), display_name=str(value))

    @property
    def is_resolved(self) -> bool:
        """True when the reference carries more than a bare id."""
        return self.display_name != self.id or self.employee_id is not None or self.region is not None


class LocationPoint(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Union[int, float, str, None] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    altitude: Optional[float] = None
    ts: int = 0  # epoch ms, derived from timestamp at ingestion

    class Config:
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _normalize_ts(cls, data: Any) -> Any:
        if isinstance(data, dict) and "ts" not in data:
            data = {**data, "ts": normalize_timestamp(data.get("timestamp"))}
        return data


class LocationTrack(BaseModel):
    id: str = Field(..., alias="_id")
    user: UserRef = Field(..., alias="userId")
    locations: List[LocationPoint] = []
    deviceInfo: Optional[Dict[str, Any]] = Field(None, alias="deviceInfo")
    syncedAt: Optional[str] = Field(None, alias="syncedAt")
    createdAt: Optional[str] = Field(None, alias="createdAt")
    updatedAt: Optional[str] = Field(None, alias="updatedAt")

    class Config:
        validate_by_name = True
        frozen = True

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> str:
        return str(value)

    @field_validator("user", mode="before")
    @classmethod
    def _resolve_user(cls, value: Any) -> UserRef:
        return UserRef.from_wire(value)

    @field_validator("locations", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    @property
    def user_id(self) -> str:
        return self.user.id


class PageMeta(BaseModel):
    page: int = 1
    limit: int = 100
    totalDocs: int = Field(0, alias="totalDocs")
    totalPages: int = Field(0, alias="totalPages")

    class Config:
        validate_by_name = True


class TracksPage(BaseModel):
    success: bool = True
    data: List[LocationTrack] = []
    meta: Optional[PageMeta] = None

    @field_validator("data", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []


# === Derived Models ===

class FlatPoint(BaseModel):
    """One GPS sample tagged with the track it came from."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    ts: int
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    altitude: Optional[float] = None
    track_id: str
    user_id: str
    synced_at: Optional[str] = None


class TrailPoint(BaseModel):
    lat: float
    lng: float
    timestamp: int  # epoch ms


class Trail(BaseModel):
    user: UserRef
    path: List[TrailPoint]


class HeatmapPoint(BaseModel):
    lat: float
    lng: float
    intensity: float = 1.0


class SnappedRoute(BaseModel):
    coordinates: List[Tuple[float, float]]  # [lng, lat]
    distance_meters: float
    duration_seconds: float
    provider: str = "osrm"


class BoundingBox(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


class TrailStatistics(BaseModel):
    total_distance_km: float
    point_count: int
    bounding_box: Optional[BoundingBox] = None


class TrailSummary(BaseModel):
    user: UserRef
    point_count: int
    distance_km: float
    bounding_box: Optional[BoundingBox] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class TrailSummaryResponse(BaseModel):
    trails: List[TrailSummary]
    total_distance_meters: float
    total_distance_display: str
    track_count: int
