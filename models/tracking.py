"""Value types for GPS tracking sessions and their persisted snapshots."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from utils.time_utils import parse_iso, time_of_day, to_iso, utcnow

# Bump only together with a migration in SessionSnapshot.from_dict
SNAPSHOT_SCHEMA_VERSION = 1

ACTIVITY_TYPE_NAMES = {
    "run": "Run",
    "walk": "Walk",
    "bike": "Bike Ride",
    "hike": "Hike",
}


class TrackingState(str, Enum):
    """Lifecycle state of the tracking session."""

    IDLE = "idle"
    TRACKING = "tracking"
    PAUSED = "paused"


@dataclass(frozen=True)
class Position:
    """A raw location sample delivered by a location source."""

    latitude: float
    longitude: float
    altitude: float = 0.0
    speed: float = 0.0
    accuracy: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TrackPoint:
    """
    An accepted sample on the recorded route.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        altitude: Altitude in meters.
        speed: Speed in meters/second.
        accuracy: Horizontal accuracy in meters.
        timestamp: When the sample was accepted.
        distance_from_start: Cumulative route distance in meters at this point.
    """

    latitude: float
    longitude: float
    altitude: float
    speed: float
    accuracy: float
    timestamp: datetime
    distance_from_start: float

    @classmethod
    def from_position(cls, position: Position, distance_from_start: float) -> "TrackPoint":
        return cls(
            latitude=position.latitude,
            longitude=position.longitude,
            altitude=position.altitude or 0.0,
            speed=position.speed or 0.0,
            accuracy=position.accuracy or 0.0,
            timestamp=position.timestamp or utcnow(),
            distance_from_start=distance_from_start,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackPoint":
        """Build from snapshot JSON. Latitude and longitude are mandatory."""
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            altitude=float(data.get("altitude") or 0.0),
            speed=float(data.get("speed") or 0.0),
            accuracy=float(data.get("accuracy") or 0.0),
            timestamp=parse_iso(data.get("timestamp")) or utcnow(),
            distance_from_start=float(data.get("distance_from_start") or 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
            "speed": self.speed,
            "accuracy": self.accuracy,
            "timestamp": to_iso(self.timestamp),
            "distance_from_start": self.distance_from_start,
        }

    def to_position(self) -> Position:
        return Position(
            latitude=self.latitude,
            longitude=self.longitude,
            altitude=self.altitude,
            speed=self.speed,
            accuracy=self.accuracy,
            timestamp=self.timestamp,
        )


@dataclass
class SessionSnapshot:
    """
    Durable image of an in-flight session, written for crash recovery.

    The key names in to_dict() are a stable on-disk format: snapshots written
    by earlier versions must still load.
    """

    state: TrackingState
    activity_type: str
    duration_secs: int
    distance_meters: float
    elevation_gain: float
    start_time: Optional[datetime]
    saved_at: datetime
    track_points: List[TrackPoint] = field(default_factory=list)
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    @property
    def is_recoverable(self) -> bool:
        return self.state in (TrackingState.TRACKING, TrackingState.PAUSED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "state": self.state.value,
            "activity_type": self.activity_type,
            "duration_secs": self.duration_secs,
            "distance_meters": self.distance_meters,
            "elevation_gain": self.elevation_gain,
            "start_time": to_iso(self.start_time),
            "saved_at": to_iso(self.saved_at),
            "track_points": [p.to_dict() for p in self.track_points],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSnapshot":
        """
        Parse a persisted snapshot.

        Raises:
            ValueError: If the payload is not a usable snapshot.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot payload must be a mapping, got {type(data).__name__}")

        try:
            state = TrackingState(data.get("state") or TrackingState.IDLE.value)
            points = [TrackPoint.from_dict(p) for p in data.get("track_points") or []]
            return cls(
                state=state,
                activity_type=data.get("activity_type") or "run",
                duration_secs=int(data.get("duration_secs") or 0),
                distance_meters=float(data.get("distance_meters") or 0.0),
                elevation_gain=float(data.get("elevation_gain") or 0.0),
                start_time=parse_iso(data.get("start_time")),
                saved_at=parse_iso(data.get("saved_at")) or utcnow(),
                track_points=points,
                schema_version=int(data.get("schema_version") or SNAPSHOT_SCHEMA_VERSION),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed snapshot: {e}") from e


@dataclass(frozen=True)
class TrackingResult:
    """Finalized metrics and route of a stopped session."""

    activity_type: str
    distance_km: float
    duration_secs: int
    pace_min_per_km: float
    start_time: datetime
    end_time: datetime
    map_polyline: str
    elevation_gain: float
    track_points: List[TrackPoint]
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None

    @property
    def default_name(self) -> str:
        """Default title such as 'Morning Run'."""
        type_name = ACTIVITY_TYPE_NAMES.get(self.activity_type, "Activity")
        return f"{time_of_day(self.start_time)} {type_name}"
