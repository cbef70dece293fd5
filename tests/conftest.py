import os
import tempfile

# Keep tests off the on-disk store and log dir; must be set before config.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="trailzap-logs-"))

import itertools
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from models.activity import ActivityRecord
from models.tracking import Position
from utils.connectivity import ConnectivityMonitor
from utils.local_storage import LocalStorage
from utils.location import LocationSource, LocationSubscription
from utils.supabase_client import RemoteStoreError


class ManualTask:
    def __init__(self, name: str, interval: float, callback: Callable[[], None], repeat: bool):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.repeat = repeat
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test says so."""

    def __init__(self):
        self.tasks: List[ManualTask] = []

    def call_every(self, interval, callback, name="periodic"):
        task = ManualTask(name, interval, callback, repeat=True)
        self.tasks.append(task)
        return task

    def call_later(self, delay, callback, name="delayed"):
        task = ManualTask(name, delay, callback, repeat=False)
        self.tasks.append(task)
        return task

    def active(self, name: Optional[str] = None) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled and (name is None or t.name == name)]

    def fire(self, name: str, times: int = 1):
        """Run every live task with this name ``times`` times."""
        for _ in range(times):
            for task in self.active(name):
                task.callback()
                if not task.repeat:
                    task.cancelled = True


class FakeLocationSource(LocationSource):
    """Location source driven by emit() calls from the test."""

    def __init__(self, fix: Optional[Position] = None):
        self.fix = fix
        self.fix_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.subscriptions: List[LocationSubscription] = []
        self.stop_calls = 0

    @property
    def subscription(self) -> Optional[LocationSubscription]:
        return self.subscriptions[-1] if self.subscriptions else None

    def get_current_fix(self, timeout=None):
        if self.fix_error:
            raise self.fix_error
        return self.fix

    def subscribe(self, callback, min_displacement_m, min_interval_s):
        if self.subscribe_error:
            raise self.subscribe_error
        subscription = LocationSubscription(callback)
        self.subscriptions.append(subscription)
        return subscription

    def emit(self, latitude: float, longitude: float, altitude: float = 0.0) -> bool:
        return self.subscription.deliver(Position(latitude=latitude, longitude=longitude, altitude=altitude))

    def stop(self):
        self.stop_calls += 1


class FakeRemoteStore:
    """In-memory stand-in for SupabaseClient."""

    def __init__(self, user_id: Optional[str] = "user-1"):
        self.user_id = user_id
        self.authenticated = user_id is not None
        self.fail_on_calls = set()
        self.empty_on_calls = set()
        self.calls: List[Dict] = []
        self.rows: List[ActivityRecord] = []
        self._ids = itertools.count(1)

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated

    @property
    def current_user_id(self) -> Optional[str]:
        return self.user_id

    def create(self, record):
        self.calls.append(record)
        if len(self.calls) in self.fail_on_calls:
            raise RemoteStoreError("POST activities rejected (500): boom", status_code=500)
        if len(self.calls) in self.empty_on_calls:
            return None
        data = dict(record)
        data["id"] = f"remote-{next(self._ids)}"
        data.setdefault("created_at", "2026-01-01T00:00:00+00:00")
        created = ActivityRecord.from_json(data)
        self.rows.insert(0, created)
        return created

    def list_activities(self, limit=50, offset=0, type=None):
        return [r for r in self.rows if type is None or r.type == type]

    def update(self, activity_id, patch):
        pass

    def delete(self, activity_id):
        self.rows = [r for r in self.rows if r.id != activity_id]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def storage(engine):
    return LocalStorage(engine)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def start_position():
    return Position(latitude=52.0, longitude=4.0, altitude=10.0)


@pytest.fixture
def location(start_position):
    return FakeLocationSource(fix=start_position)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(probe_hosts=[], probe_url=None, check_interval=60)


@pytest.fixture
def start_time():
    return datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc)


def queue_activity(storage, name="Morning Run", type="run", distance_km=5.0, duration_secs=1500, start_time=None):
    return storage.save_pending_activity(
        name=name,
        type=type,
        distance_km=distance_km,
        duration_secs=duration_secs,
        start_time=start_time or datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc),
    )
