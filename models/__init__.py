"""Domain records and local-store models for TrailZap."""

from models.database.base import Base
from models.database.pending_activity import PendingActivity
from models.database.tracking_snapshot import TrackingSnapshot
from models.activity import ActivityRecord, PendingActivityRecord, SyncStatus
from models.profile import Profile
from models.tracking import (
    Position,
    SessionSnapshot,
    TrackingResult,
    TrackingState,
    TrackPoint,
)

__all__ = [
    "Base",
    "PendingActivity",
    "TrackingSnapshot",
    "ActivityRecord",
    "PendingActivityRecord",
    "SyncStatus",
    "Profile",
    "Position",
    "SessionSnapshot",
    "TrackingResult",
    "TrackingState",
    "TrackPoint",
]
