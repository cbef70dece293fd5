"""Local durable store: the session snapshot slot and the pending activity queue."""

import json
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import get_database_engine
from models.activity import PendingActivityRecord, SyncStatus
from models.database.base import Base
from models.database.pending_activity import PendingActivity
from models.database.tracking_snapshot import ACTIVE_SESSION_SLOT, TrackingSnapshot
from models.tracking import SNAPSHOT_SCHEMA_VERSION
from utils.logger import get_logger
from utils.time_utils import to_utc, utcnow

logger = get_logger(__name__)

LOCAL_ID_PREFIX = "local_"

# Statuses the sync engine should (re)attempt; "syncing" covers a batch interrupted by a kill
UNSYNCED_STATUSES = (SyncStatus.PENDING.value, SyncStatus.FAILED.value, SyncStatus.SYNCING.value)


class LocalStorage:
    """
    Durable on-device storage backed by SQLAlchemy.

    Every write commits before returning, so a successful put survives an
    abrupt process termination.
    """

    def __init__(self, engine: Optional[Engine] = None):
        """
        Initialize storage and create missing tables.

        Args:
            engine: SQLAlchemy engine (defaults to the configured database)
        """
        self.engine = engine or get_database_engine()
        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )
        self._id_lock = threading.Lock()
        self._last_local_ms = self._load_last_local_ms()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ==================== SESSION SNAPSHOT SLOT ====================

    def put_session_snapshot(self, data: Dict[str, Any]):
        """Replace the current session snapshot."""
        payload = json.dumps(data)
        with self._session() as session:
            session.merge(TrackingSnapshot(
                slot=ACTIVE_SESSION_SLOT,
                payload=payload,
                schema_version=int(data.get("schema_version") or SNAPSHOT_SCHEMA_VERSION),
                saved_at=utcnow(),
            ))
        logger.debug(f"Session snapshot saved: {len(data.get('track_points') or [])} points")

    def get_session_snapshot(self) -> Optional[Dict[str, Any]]:
        """
        Get the saved session snapshot, if any.

        Raises:
            ValueError: If the stored payload is not valid JSON.
        """
        with self._session() as session:
            row = session.get(TrackingSnapshot, ACTIVE_SESSION_SLOT)
            if row is None:
                return None
            payload = row.payload
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Corrupt session snapshot: {e}") from e

    def delete_session_snapshot(self):
        with self._session() as session:
            session.query(TrackingSnapshot).filter_by(slot=ACTIVE_SESSION_SLOT).delete()

    # ==================== PENDING ACTIVITY QUEUE ====================

    def _load_last_local_ms(self) -> int:
        with self._session() as session:
            ids = [row[0] for row in session.query(PendingActivity.local_id).all()]
        last = 0
        for local_id in ids:
            try:
                last = max(last, int(local_id[len(LOCAL_ID_PREFIX):]))
            except ValueError:
                continue
        return last

    def _next_local_id(self) -> str:
        """Time-based id, strictly increasing even if the clock stalls or steps back."""
        with self._id_lock:
            now_ms = int(time.time() * 1000)
            self._last_local_ms = max(now_ms, self._last_local_ms + 1)
            return f"{LOCAL_ID_PREFIX}{self._last_local_ms}"

    def save_pending_activity(
        self,
        name: str,
        type: str,
        distance_km: float,
        duration_secs: int,
        start_time: datetime,
        end_time: Optional[datetime] = None,
        map_polyline: Optional[str] = None,
        elevation_gain: Optional[float] = None,
        avg_hr: Optional[int] = None,
        max_hr: Optional[int] = None,
        description: Optional[str] = None
    ) -> str:
        """
        Queue an activity for upload.

        Returns:
            The generated local id
        """
        local_id = self._next_local_id()
        with self._session() as session:
            session.add(PendingActivity(
                local_id=local_id,
                name=name,
                type=type,
                distance_km=distance_km,
                duration_secs=duration_secs,
                start_time=to_utc(start_time),
                end_time=to_utc(end_time),
                map_polyline=map_polyline,
                elevation_gain=elevation_gain or 0.0,
                avg_hr=avg_hr,
                max_hr=max_hr,
                description=description,
                sync_status=SyncStatus.PENDING.value,
            ))
        logger.info(f"Saved pending activity {local_id} ({type}, {distance_km:.2f} km)")
        return local_id

    def get_pending_activities(self) -> List[PendingActivityRecord]:
        """Get every activity still awaiting upload, oldest first."""
        with self._session() as session:
            rows = (
                session.query(PendingActivity)
                .filter(PendingActivity.sync_status.in_(UNSYNCED_STATUSES))
                .order_by(PendingActivity.local_id)
                .all()
            )
            return [row.to_record() for row in rows]

    def get_all_local_activities(self) -> List[PendingActivityRecord]:
        """Get all locally stored activities, newest start time first."""
        with self._session() as session:
            rows = session.query(PendingActivity).order_by(PendingActivity.start_time.desc()).all()
            return [row.to_record() for row in rows]

    def get_activity(self, local_id: str) -> Optional[PendingActivityRecord]:
        with self._session() as session:
            row = session.get(PendingActivity, local_id)
            return row.to_record() if row else None

    def _update_status(self, local_id: str, status: SyncStatus, **fields) -> bool:
        with self._session() as session:
            row = session.get(PendingActivity, local_id)
            if row is None:
                logger.warning(f"Pending activity {local_id} not found")
                return False
            if row.is_synced:
                # Synced rows are immutable until cleaned up
                logger.warning(f"Ignoring status change to {status.value} for synced activity {local_id}")
                return False
            row.sync_status = status.value
            for key, value in fields.items():
                setattr(row, key, value)
        return True

    def mark_activity_syncing(self, local_id: str) -> bool:
        return self._update_status(local_id, SyncStatus.SYNCING)

    def mark_activity_synced(self, local_id: str, remote_id: str) -> bool:
        return self._update_status(local_id, SyncStatus.SYNCED, remote_id=remote_id, sync_error=None)

    def mark_activity_failed(self, local_id: str, error: str) -> bool:
        return self._update_status(local_id, SyncStatus.FAILED, sync_error=error)

    @property
    def pending_count(self) -> int:
        """Number of activities pending or failed."""
        with self._session() as session:
            return (
                session.query(func.count(PendingActivity.local_id))
                .filter(PendingActivity.sync_status.in_((SyncStatus.PENDING.value, SyncStatus.FAILED.value)))
                .scalar()
            ) or 0

    def clear_synced_activities(self) -> int:
        """Delete activities confirmed by the remote store. Returns rows removed."""
        return self._delete_by_status(SyncStatus.SYNCED)

    def clear_failed_activities(self) -> int:
        return self._delete_by_status(SyncStatus.FAILED)

    def _delete_by_status(self, status: SyncStatus) -> int:
        with self._session() as session:
            deleted = (
                session.query(PendingActivity)
                .filter(PendingActivity.sync_status == status.value)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info(f"Removed {deleted} {status.value} activities from local queue")
        return deleted

    def delete_local_activity(self, local_id: str) -> bool:
        with self._session() as session:
            deleted = session.query(PendingActivity).filter_by(local_id=local_id).delete()
        return deleted > 0

    def clear_all_pending_activities(self):
        """Drop the whole queue (last resort for stuck data)."""
        with self._session() as session:
            session.query(PendingActivity).delete()
        logger.warning("Cleared all locally queued activities")
