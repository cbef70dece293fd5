"""Activity records: the local pending-queue entry and the remote canonical row."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from models.tracking import ACTIVITY_TYPE_NAMES
from utils.time_utils import format_pace, parse_iso, to_iso, utcnow


class SyncStatus(str, Enum):
    """Upload state of a locally queued activity."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass
class PendingActivityRecord:
    """An activity saved on the device that the remote store has not confirmed yet."""

    local_id: str
    name: str
    type: str
    distance_km: float
    duration_secs: int
    start_time: datetime
    end_time: Optional[datetime] = None
    map_polyline: Optional[str] = None
    elevation_gain: float = 0.0
    avg_hr: Optional[int] = None
    max_hr: Optional[int] = None
    description: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    remote_id: Optional[str] = None
    sync_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Queue schema representation."""
        data = {
            "local_id": self.local_id,
            "name": self.name,
            "type": self.type,
            "distance_km": self.distance_km,
            "duration_secs": self.duration_secs,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "map_polyline": self.map_polyline,
            "elevation_gain": self.elevation_gain,
            "avg_hr": self.avg_hr,
            "max_hr": self.max_hr,
            "description": self.description,
            "sync_status": self.sync_status.value,
            "created_at": to_iso(self.created_at),
        }
        if self.remote_id is not None:
            data["remote_id"] = self.remote_id
        if self.sync_error is not None:
            data["sync_error"] = self.sync_error
        return data

    def to_insert_json(self, user_id: str) -> Dict[str, Any]:
        """Row payload for creating this activity on the remote store."""
        return {
            "user_id": user_id,
            "name": self.name,
            "type": self.type,
            "distance_km": self.distance_km,
            "duration_secs": self.duration_secs,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "map_polyline": self.map_polyline,
            "elevation_gain": self.elevation_gain or 0,
            "avg_hr": self.avg_hr,
            "max_hr": self.max_hr,
            "description": self.description,
        }


@dataclass
class ActivityRecord:
    """
    Canonical activity row owned by the hosted backend.

    pace_min_per_km is computed server-side from distance and duration.
    """

    id: str
    user_id: str
    name: str
    type: str
    distance_km: float
    duration_secs: int
    start_time: datetime
    created_at: datetime
    pace_min_per_km: Optional[float] = None
    end_time: Optional[datetime] = None
    map_polyline: Optional[str] = None
    elevation_gain: float = 0.0
    avg_hr: Optional[int] = None
    max_hr: Optional[int] = None
    description: Optional[str] = None
    is_public: bool = False
    is_manual_entry: bool = False

    def __repr__(self) -> str:
        return f"<ActivityRecord(id={self.id}, name='{self.name}', type='{self.type}', start='{self.start_time}')>"

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ActivityRecord":
        pace = data.get("pace_min_per_km")
        return cls(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            name=data["name"],
            type=data["type"],
            distance_km=float(data.get("distance_km") or 0.0),
            duration_secs=int(data.get("duration_secs") or 0),
            start_time=parse_iso(data["start_time"]),
            created_at=parse_iso(data.get("created_at")) or utcnow(),
            pace_min_per_km=float(pace) if pace is not None else None,
            end_time=parse_iso(data.get("end_time")),
            map_polyline=data.get("map_polyline"),
            elevation_gain=float(data.get("elevation_gain") or 0.0),
            avg_hr=data.get("avg_hr"),
            max_hr=data.get("max_hr"),
            description=data.get("description"),
            is_public=bool(data.get("is_public", False)),
            is_manual_entry=bool(data.get("is_manual_entry", False)),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "type": self.type,
            "distance_km": self.distance_km,
            "duration_secs": self.duration_secs,
            "pace_min_per_km": self.pace_min_per_km,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "map_polyline": self.map_polyline,
            "elevation_gain": self.elevation_gain,
            "avg_hr": self.avg_hr,
            "max_hr": self.max_hr,
            "created_at": to_iso(self.created_at),
            "description": self.description,
            "is_public": self.is_public,
            "is_manual_entry": self.is_manual_entry,
        }

    @property
    def formatted_duration(self) -> str:
        """Get formatted duration string ('1h 5m' or '42m 7s')."""
        hours = self.duration_secs // 3600
        minutes = (self.duration_secs % 3600) // 60
        seconds = self.duration_secs % 60
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m {seconds}s"

    @property
    def formatted_distance(self) -> str:
        if self.distance_km >= 10:
            return f"{self.distance_km:.1f} km"
        return f"{self.distance_km:.2f} km"

    @property
    def formatted_pace(self) -> str:
        if not self.pace_min_per_km:
            return "--:--"
        return f"{format_pace(self.pace_min_per_km)} /km"

    @property
    def type_display_name(self) -> str:
        return ACTIVITY_TYPE_NAMES.get(self.type, self.type)
