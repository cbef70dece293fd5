"""Synchronization of locally queued activities to the remote store."""

import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config.settings import settings
from utils.connectivity import ConnectivityMonitor
from utils.local_storage import LocalStorage
from utils.logger import get_logger, log_exception
from utils.scheduler import ScheduledTask, Scheduler
from utils.supabase_client import SupabaseClient

logger = get_logger(__name__)


class SyncEngineStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncManager:
    """
    Uploads pending activities whenever the device is online.

    Handles:
    - Sync on startup when already online
    - Sync on every offline -> online transition while idle
    - Sequential per-item upload with partial-failure semantics
    - Cleanup of confirmed items after each batch

    At most one batch runs at a time. Failed items stay queued and are
    retried on the next run, with no backoff or retry cap.
    """

    def __init__(
        self,
        storage: LocalStorage,
        remote: SupabaseClient,
        connectivity: ConnectivityMonitor,
        scheduler: Optional[Scheduler] = None,
        reset_delay: Optional[float] = None,
        progress_callback: Optional[Callable[[str, int, int], None]] = None,
        purge_synced: bool = True
    ):
        """
        Initialize sync manager.

        Args:
            storage: Local queue to drain
            remote: Remote store client (provides the auth identity)
            connectivity: Monitor whose transitions trigger syncs
            scheduler: Timer factory for the status reset
            reset_delay: Seconds before completed/failed reverts to idle
            progress_callback: Optional callback function(status, current, total)
            purge_synced: Remove synced items from the queue after a batch
        """
        self.storage = storage
        self.remote = remote
        self.connectivity = connectivity
        self.scheduler = scheduler or Scheduler()
        self.reset_delay = reset_delay if reset_delay is not None else settings.SYNC_STATUS_RESET_SECONDS
        self.progress_callback = progress_callback
        self.purge_synced = purge_synced

        self._lock = threading.Lock()
        self._status = SyncEngineStatus.IDLE
        self._reset_task: Optional[ScheduledTask] = None
        self._initialized = False

        self.synced_count = 0
        self.total_to_sync = 0
        self.last_error: Optional[str] = None
        self.last_result: Optional[Dict[str, Any]] = None

    @property
    def status(self) -> SyncEngineStatus:
        return self._status

    @property
    def pending_count(self) -> int:
        return self.storage.pending_count

    def initialize(self):
        """Start reacting to connectivity changes and sync if already online."""
        if self._initialized:
            return
        self.connectivity.add_listener(self._on_connectivity_changed)
        self._initialized = True

        if self.connectivity.is_online:
            self.sync_pending_activities()

    def close(self):
        self.connectivity.remove_listener(self._on_connectivity_changed)
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None
        self._initialized = False

    def _on_connectivity_changed(self, online: bool):
        if online and self._status == SyncEngineStatus.IDLE:
            logger.info("Back online, syncing pending activities")
            self.sync_pending_activities()

    def _report(self, message: str):
        if not self.progress_callback:
            return
        try:
            self.progress_callback(message, self.synced_count, self.total_to_sync)
        except Exception as e:
            logger.error(f"Sync progress callback failed: {e}", exc_info=True)

    def sync_pending_activities(self) -> bool:
        """
        Upload every pending or failed activity, one at a time.

        Returns:
            True if the queue is empty or every item was uploaded; False if
            the run was refused or any item failed
        """
        with self._lock:
            if self._status == SyncEngineStatus.SYNCING:
                return False
            if not self.connectivity.is_online:
                return False
            if not self.remote.is_authenticated:
                return False

            pending = self.storage.get_pending_activities()
            if not pending:
                return True

            self._status = SyncEngineStatus.SYNCING
            if self._reset_task is not None:
                self._reset_task.cancel()
                self._reset_task = None

        self.synced_count = 0
        self.total_to_sync = len(pending)
        self.last_error = None
        synced: List[Dict[str, str]] = []
        failed: List[Dict[str, str]] = []
        aborted = False

        try:
            user_id = self.remote.current_user_id

            logger.info(f"Starting sync of {len(pending)} activities")
            self._report("Syncing activities")

            for item in pending:
                try:
                    self.storage.mark_activity_syncing(item.local_id)
                    logger.debug(f"Syncing activity {item.local_id} with type '{item.type}'")

                    created = self.remote.create(item.to_insert_json(user_id))

                    if created is not None:
                        self.storage.mark_activity_synced(item.local_id, created.id)
                        self.synced_count += 1
                        synced.append({"local_id": item.local_id, "remote_id": created.id})
                        logger.info(f"Synced activity: {item.local_id} -> {created.id}")
                    else:
                        self.last_error = "Upload failed"
                        self.storage.mark_activity_failed(item.local_id, "Upload failed")
                        failed.append({"local_id": item.local_id, "error": "Upload failed"})

                except Exception as e:
                    logger.error(f"Failed to sync activity {item.local_id}: {e}")
                    self.last_error = str(e)
                    failed.append({"local_id": item.local_id, "error": str(e)})
                    try:
                        self.storage.mark_activity_failed(item.local_id, str(e))
                    except Exception as storage_error:
                        logger.error(f"Could not mark {item.local_id} as failed: {storage_error}", exc_info=True)

                self._report(f"Synced {self.synced_count}/{self.total_to_sync}")

        except Exception as e:
            # Items not reached keep their status and are retried next run
            log_exception(logger, e, "Sync batch aborted")
            self.last_error = str(e)
            aborted = True

        all_synced = not failed and not aborted
        self._status = SyncEngineStatus.COMPLETED if all_synced else SyncEngineStatus.FAILED

        self.last_result = {
            "status": self._status.value,
            "total": self.total_to_sync,
            "synced": synced,
            "failed": failed,
            "error": self.last_error,
        }

        logger.info(f"Sync finished: {self.synced_count}/{self.total_to_sync} uploaded, {len(failed)} failed")
        self._report("Sync completed" if all_synced else "Sync finished with errors")

        try:
            self._reset_task = self.scheduler.call_later(self.reset_delay, self._reset_status, name="sync-reset")
        except Exception as e:
            logger.error(f"Could not schedule sync status reset: {e}", exc_info=True)
            self._reset_status()

        if self.purge_synced:
            try:
                self.storage.clear_synced_activities()
            except Exception as e:
                logger.error(f"Error cleaning up synced activities: {e}", exc_info=True)

        return all_synced

    def _reset_status(self):
        with self._lock:
            if self._status != SyncEngineStatus.SYNCING:
                self._status = SyncEngineStatus.IDLE
