import pytest

from conftest import queue_activity
from models.activity import SyncStatus
from utils.sync_manager import SyncEngineStatus, SyncManager


@pytest.fixture
def manager(storage, remote, connectivity, scheduler):
    connectivity.set_online(True)
    return SyncManager(storage, remote, connectivity, scheduler=scheduler, purge_synced=False)


def test_partial_failure(manager, storage, remote, scheduler):
    ids = [queue_activity(storage, name=f"Run {i}") for i in range(3)]
    remote.fail_on_calls = {2}

    assert manager.sync_pending_activities() is False

    first, second, third = (storage.get_activity(i) for i in ids)
    assert first.sync_status == SyncStatus.SYNCED and first.remote_id
    assert third.sync_status == SyncStatus.SYNCED and third.remote_id
    assert second.sync_status == SyncStatus.FAILED
    assert "boom" in second.sync_error

    assert manager.status == SyncEngineStatus.FAILED
    assert manager.synced_count == 2
    assert manager.total_to_sync == 3
    assert manager.last_result["failed"] == [{"local_id": ids[1], "error": second.sync_error}]

    # Retry only uploads the item that failed
    scheduler.fire("sync-reset")
    storage.clear_synced_activities()
    remote.fail_on_calls = set()

    assert manager.sync_pending_activities() is True
    assert len(remote.calls) == 4
    assert remote.calls[-1]["name"] == "Run 1"
    assert manager.status == SyncEngineStatus.COMPLETED


def test_uploads_in_queue_order_with_user_id(manager, storage, remote):
    for i in range(3):
        queue_activity(storage, name=f"Run {i}")

    assert manager.sync_pending_activities()
    assert [c["name"] for c in remote.calls] == ["Run 0", "Run 1", "Run 2"]
    assert all(c["user_id"] == "user-1" for c in remote.calls)


def test_synced_items_are_purged(storage, remote, connectivity, scheduler):
    connectivity.set_online(True)
    manager = SyncManager(storage, remote, connectivity, scheduler=scheduler)
    queue_activity(storage)
    queue_activity(storage)
    remote.fail_on_calls = {1}

    manager.sync_pending_activities()

    remaining = storage.get_all_local_activities()
    assert len(remaining) == 1
    assert remaining[0].sync_status == SyncStatus.FAILED


def test_empty_queue_succeeds_without_running(manager, remote):
    assert manager.sync_pending_activities() is True
    assert manager.status == SyncEngineStatus.IDLE
    assert remote.calls == []


def test_refuses_when_offline(manager, storage, connectivity, remote):
    queue_activity(storage)
    connectivity.set_online(False)

    assert manager.sync_pending_activities() is False
    assert remote.calls == []


def test_refuses_without_identity(manager, storage, remote):
    queue_activity(storage)
    remote.authenticated = False

    assert manager.sync_pending_activities() is False
    assert remote.calls == []
    assert storage.pending_count == 1


def test_refuses_while_syncing(manager, storage, remote):
    queue_activity(storage)
    manager._status = SyncEngineStatus.SYNCING

    assert manager.sync_pending_activities() is False
    assert remote.calls == []


def test_status_reverts_to_idle(manager, storage, scheduler):
    queue_activity(storage)
    manager.sync_pending_activities()
    assert manager.status == SyncEngineStatus.COMPLETED

    assert scheduler.active("sync-reset")[0].interval == 3.0
    scheduler.fire("sync-reset")
    assert manager.status == SyncEngineStatus.IDLE


def test_reconnect_triggers_sync(storage, remote, connectivity, scheduler):
    manager = SyncManager(storage, remote, connectivity, scheduler=scheduler)
    manager.initialize()
    queue_activity(storage)
    assert remote.calls == []

    connectivity.set_online(True)

    assert len(remote.calls) == 1
    assert storage.pending_count == 0


def test_initialize_syncs_when_already_online(manager, storage, remote):
    queue_activity(storage)
    manager.initialize()
    assert len(remote.calls) == 1


def test_close_stops_listening(storage, remote, connectivity, scheduler):
    manager = SyncManager(storage, remote, connectivity, scheduler=scheduler)
    manager.initialize()
    manager.close()
    queue_activity(storage)

    connectivity.set_online(True)
    assert remote.calls == []
    assert manager.pending_count == 1


def test_progress_callback(storage, remote, connectivity, scheduler):
    connectivity.set_online(True)
    progress = []
    manager = SyncManager(
        storage, remote, connectivity, scheduler=scheduler,
        progress_callback=lambda status, current, total: progress.append((current, total)),
    )
    queue_activity(storage)
    queue_activity(storage)

    manager.sync_pending_activities()

    assert progress[0] == (0, 2)
    assert (2, 2) in progress


def test_empty_upload_response_is_a_failure(manager, storage, remote):
    local_id = queue_activity(storage)
    remote.empty_on_calls = {1}

    assert manager.sync_pending_activities() is False

    assert storage.get_activity(local_id).sync_error == "Upload failed"
    assert manager.last_error == "Upload failed"
    assert manager.status == SyncEngineStatus.FAILED


def test_broken_progress_callback_does_not_block_sync(storage, remote, connectivity, scheduler):
    connectivity.set_online(True)

    def broken(status, current, total):
        raise RuntimeError("ui went away")

    manager = SyncManager(storage, remote, connectivity, scheduler=scheduler, progress_callback=broken)
    queue_activity(storage)

    assert manager.sync_pending_activities() is True
    assert manager.status == SyncEngineStatus.COMPLETED
    assert storage.pending_count == 0

    scheduler.fire("sync-reset")
    assert manager.status == SyncEngineStatus.IDLE


class _IdentityLostRemote:
    is_authenticated = True

    def __init__(self, remote):
        self._remote = remote

    @property
    def current_user_id(self):
        raise RuntimeError("session expired")

    def create(self, record):
        return self._remote.create(record)


def test_aborted_batch_settles_and_can_run_again(storage, remote, connectivity, scheduler):
    connectivity.set_online(True)
    manager = SyncManager(storage, _IdentityLostRemote(remote), connectivity, scheduler=scheduler)
    local_id = queue_activity(storage)

    assert manager.sync_pending_activities() is False

    assert manager.status == SyncEngineStatus.FAILED
    assert manager.last_error == "session expired"
    assert storage.get_activity(local_id).sync_status == SyncStatus.PENDING
    assert len(scheduler.active("sync-reset")) == 1

    scheduler.fire("sync-reset")
    manager.remote = remote
    assert manager.sync_pending_activities() is True
    assert storage.pending_count == 0


def test_reset_still_happens_when_scheduling_fails(storage, remote, connectivity):
    class BrokenScheduler:
        def call_later(self, delay, callback, name="delayed"):
            raise RuntimeError("no threads left")

    connectivity.set_online(True)
    manager = SyncManager(storage, remote, connectivity, scheduler=BrokenScheduler())
    queue_activity(storage)

    assert manager.sync_pending_activities() is True
    assert manager.status == SyncEngineStatus.IDLE
