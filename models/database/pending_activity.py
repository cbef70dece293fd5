"""Pending activity model: the local queue of not-yet-synchronized activities."""

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Index
from models.database.base import Base, TimestampMixin
from models.activity import PendingActivityRecord, SyncStatus
from utils.time_utils import parse_iso


class PendingActivity(Base, TimestampMixin):
    """
    Activity finished on the device and waiting for upload.

    Rows move pending -> syncing -> synced|failed and are deleted once
    synced and cleaned up, or when the user discards them.
    """

    __tablename__ = "pending_activities"

    # Primary key ("local_<epoch ms>")
    local_id = Column(String(40), primary_key=True)

    # Activity fields
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)  # run, walk, bike, hike
    distance_km = Column(Float, nullable=False, default=0.0)
    duration_secs = Column(Integer, nullable=False, default=0)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    map_polyline = Column(Text, nullable=True)  # simplified route, Google polyline
    elevation_gain = Column(Float, nullable=False, default=0.0)  # meters
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)

    # Sync state
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)
    remote_id = Column(String(64), nullable=True)
    sync_error = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_pending_sync_status", "sync_status"),
    )

    def __repr__(self) -> str:
        return f"<PendingActivity(local_id='{self.local_id}', type='{self.type}', status='{self.sync_status}')>"

    def to_record(self) -> PendingActivityRecord:
        return PendingActivityRecord(
            local_id=self.local_id,
            name=self.name,
            type=self.type,
            distance_km=self.distance_km,
            duration_secs=self.duration_secs,
            start_time=parse_iso(self.start_time),
            end_time=parse_iso(self.end_time),
            map_polyline=self.map_polyline,
            elevation_gain=self.elevation_gain or 0.0,
            avg_hr=self.avg_hr,
            max_hr=self.max_hr,
            description=self.description,
            sync_status=SyncStatus(self.sync_status),
            created_at=parse_iso(self.created_at),
            remote_id=self.remote_id,
            sync_error=self.sync_error,
        )

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED.value
