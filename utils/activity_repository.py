"""Offline-first access to activities: remote when possible, local queue otherwise."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from models.activity import ActivityRecord, PendingActivityRecord
from models.tracking import TrackingResult
from utils.connectivity import ConnectivityMonitor
from utils.local_storage import LocalStorage
from utils.logger import get_logger
from utils.supabase_client import RemoteStoreError, SupabaseClient
from utils.sync_manager import SyncManager

logger = get_logger(__name__)


class ActivityRepository:
    """
    Saves and lists activities without caring whether the device is online.

    Saving tries the remote store first when online and signed in; any
    failure falls back to the local queue, which the sync manager drains
    later. The fallback is best effort: a save that reached the server but
    whose response was lost is queued as well and may be uploaded twice.
    """

    def __init__(
        self,
        storage: LocalStorage,
        remote: SupabaseClient,
        connectivity: ConnectivityMonitor,
        sync_manager: Optional[SyncManager] = None
    ):
        self.storage = storage
        self.remote = remote
        self.connectivity = connectivity
        self.sync_manager = sync_manager
        self.activities: List[ActivityRecord] = []

    def add_activity(
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
    ) -> Optional[ActivityRecord]:
        """
        Save an activity.

        Returns:
            The stored remote record, or None when it was queued locally
        """
        is_online = self.connectivity.is_online

        if is_online and self.remote.is_authenticated:
            row = PendingActivityRecord(
                local_id="",
                name=name,
                type=type,
                distance_km=distance_km,
                duration_secs=duration_secs,
                start_time=start_time,
                end_time=end_time,
                map_polyline=map_polyline,
                elevation_gain=elevation_gain or 0.0,
                avg_hr=avg_hr,
                max_hr=max_hr,
                description=description,
            ).to_insert_json(self.remote.current_user_id)
            try:
                activity = self.remote.create(row)
                if activity is not None:
                    self.activities.insert(0, activity)
                    return activity
            except Exception as e:
                logger.warning(f"Failed to save online, falling back to local: {e}")

        logger.info("Saving activity locally (offline mode)")
        local_id = self.storage.save_pending_activity(
            name=name,
            type=type,
            distance_km=distance_km,
            duration_secs=duration_secs,
            start_time=start_time,
            end_time=end_time,
            map_polyline=map_polyline,
            elevation_gain=elevation_gain,
            avg_hr=avg_hr,
            max_hr=max_hr,
            description=description,
        )
        logger.info(f"Saved locally with ID: {local_id}")

        if is_online and self.sync_manager is not None:
            self.sync_manager.sync_pending_activities()

        return None

    def save_tracking_result(
        self,
        result: TrackingResult,
        name: Optional[str] = None,
        description: Optional[str] = None,
        avg_hr: Optional[int] = None,
        max_hr: Optional[int] = None
    ) -> Optional[ActivityRecord]:
        """Persist a finished tracking session (named by time of day if unnamed)."""
        return self.add_activity(
            name=name or result.default_name,
            type=result.activity_type,
            distance_km=result.distance_km,
            duration_secs=result.duration_secs,
            start_time=result.start_time,
            end_time=result.end_time,
            map_polyline=result.map_polyline or None,
            elevation_gain=result.elevation_gain,
            avg_hr=avg_hr,
            max_hr=max_hr,
            description=description,
        )

    def load_activities(self, type: Optional[str] = None) -> List[ActivityRecord]:
        """
        Fetch the user's activities from the remote store.

        Raises:
            RemoteStoreError: If the activities could not be fetched
        """
        self.activities = self.remote.list_activities(type=type)
        return self.activities

    def update_activity(self, activity_id: str, updates: Dict[str, Any]) -> bool:
        try:
            self.remote.update(activity_id, updates)
        except RemoteStoreError as e:
            logger.error(f"Error updating activity {activity_id}: {e}")
            return False
        try:
            self.load_activities()
        except RemoteStoreError as e:
            # The update itself went through; keep the stale list
            logger.warning(f"Could not refresh activities after update: {e}")
        return True

    def delete_activity(self, activity_id: str) -> bool:
        try:
            self.remote.delete(activity_id)
        except RemoteStoreError as e:
            logger.error(f"Error deleting activity {activity_id}: {e}")
            return False
        self.activities = [a for a in self.activities if a.id != activity_id]
        return True

    def local_activities(self) -> List[PendingActivityRecord]:
        """Activities still held on the device, newest first."""
        return self.storage.get_all_local_activities()
