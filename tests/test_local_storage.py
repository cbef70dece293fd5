from datetime import datetime, timedelta, timezone

import pytest

from conftest import queue_activity
from models.activity import SyncStatus
from utils.local_storage import LocalStorage


def test_snapshot_slot_put_get_delete(storage):
    assert storage.get_session_snapshot() is None

    storage.put_session_snapshot({"schema_version": 1, "state": "paused", "track_points": []})
    storage.put_session_snapshot({"schema_version": 1, "state": "tracking", "track_points": []})
    assert storage.get_session_snapshot()["state"] == "tracking"

    storage.delete_session_snapshot()
    assert storage.get_session_snapshot() is None


def test_snapshot_survives_new_storage_instance(engine):
    LocalStorage(engine).put_session_snapshot({"state": "paused", "duration_secs": 12})
    assert LocalStorage(engine).get_session_snapshot()["duration_secs"] == 12


def test_save_pending_activity(storage):
    local_id = storage.save_pending_activity(
        name="Evening Walk",
        type="walk",
        distance_km=2.5,
        duration_secs=1800,
        start_time=datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc),
        map_polyline="_p~iF~ps|U",
        elevation_gain=12.0,
        avg_hr=110,
    )

    assert local_id.startswith("local_")
    record = storage.get_activity(local_id)
    assert record.name == "Evening Walk"
    assert record.sync_status == SyncStatus.PENDING
    assert record.start_time == datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)

    data = record.to_dict()
    assert data["sync_status"] == "pending"
    assert "remote_id" not in data
    assert "sync_error" not in data


def test_local_ids_are_unique_and_ordered(storage):
    ids = [queue_activity(storage) for _ in range(5)]
    assert len(set(ids)) == 5
    assert [a.local_id for a in storage.get_pending_activities()] == ids


def test_status_transitions(storage):
    first = queue_activity(storage)
    second = queue_activity(storage)

    assert storage.mark_activity_syncing(first)
    assert storage.mark_activity_synced(first, "remote-9")
    assert storage.mark_activity_failed(second, "timeout")

    synced = storage.get_activity(first)
    assert synced.sync_status == SyncStatus.SYNCED
    assert synced.remote_id == "remote-9"

    failed = storage.get_activity(second)
    assert failed.sync_status == SyncStatus.FAILED
    assert failed.to_dict()["sync_error"] == "timeout"

    # Failed items are retried, synced ones are not
    assert [a.local_id for a in storage.get_pending_activities()] == [second]
    assert storage.pending_count == 1


def test_synced_rows_are_immutable(storage):
    local_id = queue_activity(storage)
    storage.mark_activity_synced(local_id, "remote-1")

    assert not storage.mark_activity_failed(local_id, "late error")
    assert storage.get_activity(local_id).sync_status == SyncStatus.SYNCED


def test_unknown_id(storage):
    assert not storage.mark_activity_syncing("local_0")
    assert storage.get_activity("local_0") is None
    assert not storage.delete_local_activity("local_0")


def test_interrupted_syncing_items_are_pending_again(storage):
    local_id = queue_activity(storage)
    storage.mark_activity_syncing(local_id)
    assert [a.local_id for a in storage.get_pending_activities()] == [local_id]


def test_clear_helpers(storage):
    a = queue_activity(storage)
    b = queue_activity(storage)
    c = queue_activity(storage)
    storage.mark_activity_synced(a, "r1")
    storage.mark_activity_failed(b, "nope")

    assert storage.clear_synced_activities() == 1
    assert storage.clear_failed_activities() == 1
    assert [x.local_id for x in storage.get_all_local_activities()] == [c]

    assert storage.delete_local_activity(c)
    queue_activity(storage)
    storage.clear_all_pending_activities()
    assert storage.get_all_local_activities() == []


def test_all_local_activities_newest_first(storage):
    older = queue_activity(storage, start_time=datetime(2026, 3, 1, 8, tzinfo=timezone.utc))
    newer = queue_activity(storage, start_time=datetime(2026, 3, 3, 8, tzinfo=timezone.utc))
    assert [a.local_id for a in storage.get_all_local_activities()] == [newer, older]


def test_corrupt_snapshot_raises_value_error(storage, engine):
    from models.database.tracking_snapshot import ACTIVE_SESSION_SLOT, TrackingSnapshot

    with storage._session() as session:
        session.add(TrackingSnapshot(
            slot=ACTIVE_SESSION_SLOT,
            payload="{not json",
            schema_version=1,
            saved_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
        ))

    with pytest.raises(ValueError):
        storage.get_session_snapshot()


def test_offset_start_times_keep_their_instant(storage):
    cest = timezone(timedelta(hours=2))
    local_id = storage.save_pending_activity(
        name="Alpine Hike",
        type="hike",
        distance_km=12.0,
        duration_secs=14400,
        start_time=datetime(2026, 3, 2, 9, 30, tzinfo=cest),
        end_time=datetime(2026, 3, 2, 13, 30, tzinfo=cest),
    )

    record = storage.get_activity(local_id)
    assert record.start_time == datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc)
    assert record.end_time == datetime(2026, 3, 2, 11, 30, tzinfo=timezone.utc)
    assert record.to_insert_json("user-1")["start_time"] == "2026-03-02T07:30:00+00:00"
