"""GPS activity tracking session with periodic snapshots for crash recovery."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import settings
from models.tracking import (
    Position,
    SessionSnapshot,
    TrackingResult,
    TrackingState,
    TrackPoint,
)
from utils.local_storage import LocalStorage
from utils.location import (
    LocationError,
    LocationSource,
    LocationStreamError,
    LocationSubscription,
    LocationUnavailable,
)
from utils.logger import get_logger
from utils.polyline_utils import encode, haversine_m, simplify
from utils.scheduler import ScheduledTask, Scheduler
from utils.time_utils import format_duration, format_pace, utcnow

logger = get_logger(__name__)


class TrackingEventType(str, Enum):
    STATE_CHANGED = "state_changed"
    METRICS_UPDATED = "metrics_updated"
    RECOVERABLE_SESSION = "recoverable_session"


@dataclass(frozen=True)
class TrackingEvent:
    """Notification published to session listeners."""

    type: TrackingEventType
    state: TrackingState
    duration_secs: int
    distance_meters: float
    point_count: int


TrackingListener = Callable[[TrackingEvent], None]


class TrackingSession:
    """
    Owns the lifecycle of one recording: idle -> tracking <-> paused -> idle.

    Location samples and timer ticks arrive on background threads; each one
    is applied under a single lock, so mutations never interleave. Public
    operations return False/None when called in the wrong state. Only
    start() raises, with a LocationError subclass, when GPS is unavailable.

    While a session is active its state is snapshotted to the local store
    every AUTO_SAVE_INTERVAL_SECONDS and on pause; after an unexpected
    restart initialize() offers the snapshot for recovery.
    """

    def __init__(
        self,
        location_source: LocationSource,
        storage: LocalStorage,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], datetime] = utcnow,
        fix_timeout: Optional[float] = None
    ):
        """
        Initialize an idle session.

        Args:
            location_source: GPS capability to read fixes from
            storage: Durable store holding the session snapshot
            scheduler: Timer factory for the duration tick and auto-save
            clock: Source of "now" for start/end times
            fix_timeout: Seconds allowed for the initial position fix
        """
        self.location_source = location_source
        self.storage = storage
        self.scheduler = scheduler or Scheduler()
        self.clock = clock
        self.fix_timeout = fix_timeout if fix_timeout is not None else settings.LOCATION_FIX_TIMEOUT

        self._lock = threading.RLock()
        self._snapshot_lock = threading.Lock()
        # Bumped whenever the snapshot slot is cleared, so in-flight auto-saves of
        # a finished session cannot resurrect it
        self._generation = 0

        self._listeners: List[TrackingListener] = []
        self._state = TrackingState.IDLE
        self._activity_type = "run"
        self._subscription: Optional[LocationSubscription] = None
        self._duration_task: Optional[ScheduledTask] = None
        self._auto_save_task: Optional[ScheduledTask] = None

        self._recoverable: Optional[SessionSnapshot] = None
        self._recovered_info: Optional[Dict[str, Any]] = None

        self._reset()

    def _reset(self):
        self._duration_secs = 0
        self._distance_meters = 0.0
        self._elevation_gain = 0.0
        self._last_altitude: Optional[float] = None
        self._track_points: List[TrackPoint] = []
        self._current_position: Optional[Position] = None
        self._start_time: Optional[datetime] = None

    # ==================== STATE ====================

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def activity_type(self) -> str:
        return self._activity_type

    @property
    def duration_secs(self) -> int:
        return self._duration_secs

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self._duration_secs)

    @property
    def distance_meters(self) -> float:
        return self._distance_meters

    @property
    def distance_km(self) -> float:
        return self._distance_meters / 1000

    @property
    def elevation_gain(self) -> float:
        return self._elevation_gain

    @property
    def track_points(self) -> Tuple[TrackPoint, ...]:
        with self._lock:
            return tuple(self._track_points)

    @property
    def current_position(self) -> Optional[Position]:
        return self._current_position

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start_time

    @property
    def has_recoverable_session(self) -> bool:
        return self._recoverable is not None

    @property
    def recovered_session_info(self) -> Optional[Dict[str, Any]]:
        """Raw snapshot payload of the recoverable session, for display."""
        return self._recovered_info

    @property
    def pace_min_per_km(self) -> float:
        """Minutes per kilometer; 0 until 10 m have been covered."""
        with self._lock:
            if self._distance_meters < settings.PACE_MIN_DISTANCE_METERS:
                return 0.0
            minutes = self._duration_secs / 60
            return minutes / self.distance_km

    @property
    def speed_kmh(self) -> float:
        with self._lock:
            if self._duration_secs < 1:
                return 0.0
            return self.distance_km / (self._duration_secs / 3600)

    def format_duration(self) -> str:
        return format_duration(self._duration_secs)

    def format_pace(self) -> str:
        return format_pace(self.pace_min_per_km)

    # ==================== EVENTS ====================

    def add_listener(self, listener: TrackingListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: TrackingListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _event(self, event_type: TrackingEventType) -> TrackingEvent:
        return TrackingEvent(
            type=event_type,
            state=self._state,
            duration_secs=self._duration_secs,
            distance_meters=self._distance_meters,
            point_count=len(self._track_points),
        )

    def _emit(self, event: TrackingEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Tracking listener failed on {event.type.value}: {e}", exc_info=True)

    # ==================== LIFECYCLE ====================

    def set_activity_type(self, activity_type: str) -> bool:
        """Choose the activity type; only possible while idle."""
        with self._lock:
            if self._state != TrackingState.IDLE:
                return False
            if activity_type not in settings.ACTIVITY_TYPES:
                logger.warning(f"Unknown activity type '{activity_type}' ignored")
                return False
            self._activity_type = activity_type
            event = self._event(TrackingEventType.STATE_CHANGED)
        self._emit(event)
        return True

    def start(self) -> bool:
        """
        Start recording a new activity.

        Returns:
            True once tracking, False if a session is already active

        Raises:
            LocationUnavailable: No initial position fix could be obtained
            LocationStreamError: Position updates could not be started
        """
        with self._lock:
            if self._state != TrackingState.IDLE:
                return False

            self._reset()

            try:
                position = self.location_source.get_current_fix(timeout=self.fix_timeout)
            except LocationError:
                raise
            except Exception as e:
                raise LocationUnavailable(f"Could not get a position fix: {e}") from e
            if position is None:
                logger.warning("Failed to get initial position")
                raise LocationUnavailable("No position fix available")

            self._current_position = position
            self._last_altitude = position.altitude
            self._start_time = self.clock()
            self._track_points.append(TrackPoint.from_position(position, 0.0))

            try:
                self._subscription = self.location_source.subscribe(
                    self.on_location_sample,
                    settings.LOCATION_DISTANCE_FILTER_METERS,
                    settings.LOCATION_INTERVAL_SECONDS,
                )
            except Exception as e:
                logger.error(f"Failed to start location tracking: {e}")
                self._reset()
                if isinstance(e, LocationError):
                    raise
                raise LocationStreamError(f"Could not start position updates: {e}") from e

            # A fresh start supersedes any offered recovery
            self._recoverable = None
            self._recovered_info = None

            self._start_timers()
            self._state = TrackingState.TRACKING
            snapshot, generation = self._build_snapshot()
            event = self._event(TrackingEventType.STATE_CHANGED)

        logger.info(f"Tracking started: {self._activity_type}")
        self._write_snapshot(snapshot, generation)
        self._emit(event)
        return True

    def on_location_sample(self, position: Position):
        """
        Apply a location sample.

        Samples closer than MIN_DISPLACEMENT_METERS to the last accepted one
        are dropped entirely; they add neither distance nor a track point.
        """
        with self._lock:
            if self._state != TrackingState.TRACKING:
                return

            if self._current_position is None:
                # Resumed without a known position: anchor on this sample
                self._current_position = position
                self._last_altitude = position.altitude
                self._track_points.append(TrackPoint.from_position(position, self._distance_meters))
                event = self._event(TrackingEventType.METRICS_UPDATED)
            else:
                distance = haversine_m(
                    self._current_position.latitude,
                    self._current_position.longitude,
                    position.latitude,
                    position.longitude,
                )
                if distance < settings.MIN_DISPLACEMENT_METERS:
                    return

                self._distance_meters += distance
                if self._last_altitude is not None and position.altitude > self._last_altitude:
                    self._elevation_gain += position.altitude - self._last_altitude
                self._last_altitude = position.altitude

                self._current_position = position
                self._track_points.append(TrackPoint.from_position(position, self._distance_meters))
                event = self._event(TrackingEventType.METRICS_UPDATED)

        self._emit(event)

    def pause(self) -> bool:
        """Pause an active recording and snapshot it."""
        with self._lock:
            if self._state != TrackingState.TRACKING:
                return False

            self._cancel_timers()
            if self._subscription is not None:
                self._subscription.pause()
            self._state = TrackingState.PAUSED
            snapshot, generation = self._build_snapshot()
            event = self._event(TrackingEventType.STATE_CHANGED)

        logger.info(f"Tracking paused at {self._duration_secs}s, {self.distance_km:.2f} km")
        self._write_snapshot(snapshot, generation)
        self._emit(event)
        return True

    def resume(self) -> bool:
        """
        Resume a paused recording.

        From idle, a recoverable session is recovered first and then resumed.
        """
        with self._lock:
            if self._state == TrackingState.IDLE and self._recoverable is not None:
                if not self.recover_session():
                    return False

            if self._state != TrackingState.PAUSED:
                return False

            if self._subscription is not None and not self._subscription.is_cancelled:
                self._subscription.resume()
            else:
                try:
                    self._subscription = self.location_source.subscribe(
                        self.on_location_sample,
                        settings.LOCATION_DISTANCE_FILTER_METERS,
                        settings.LOCATION_INTERVAL_SECONDS,
                    )
                except Exception as e:
                    logger.error(f"Failed to resume location tracking: {e}")
                    return False

            self._start_timers()
            self._state = TrackingState.TRACKING
            snapshot, generation = self._build_snapshot()
            event = self._event(TrackingEventType.STATE_CHANGED)

        logger.info("Tracking resumed")
        self._write_snapshot(snapshot, generation)
        self._emit(event)
        return True

    def stop(self) -> Optional[TrackingResult]:
        """
        Finish the recording.

        Returns:
            The finalized activity, or None if nothing was being recorded
        """
        with self._lock:
            if self._state == TrackingState.IDLE:
                return None

            self._release_resources()
            self._generation += 1
            end_time = self.clock()

            coordinates = [[p.latitude, p.longitude] for p in self._track_points]
            simplified = simplify(coordinates, settings.SIMPLIFY_TOLERANCE_METERS)
            points = list(self._track_points)
            first = points[0] if points else None
            last = points[-1] if points else None

            result = TrackingResult(
                activity_type=self._activity_type,
                distance_km=self.distance_km,
                duration_secs=self._duration_secs,
                pace_min_per_km=self.pace_min_per_km,
                start_time=self._start_time or end_time,
                end_time=end_time,
                map_polyline=encode(simplified),
                elevation_gain=self._elevation_gain,
                track_points=points,
                start_lat=first.latitude if first else None,
                start_lng=first.longitude if first else None,
                end_lat=last.latitude if last else None,
                end_lng=last.longitude if last else None,
            )

            self._state = TrackingState.IDLE
            self._reset()
            event = self._event(TrackingEventType.STATE_CHANGED)

        self._clear_snapshot()
        logger.info(
            f"Tracking stopped: {result.distance_km:.2f} km in {result.duration_secs}s, "
            f"route {len(points)} -> {len(simplified)} points"
        )
        self._emit(event)
        return result

    def discard(self) -> bool:
        """Throw away the active recording without producing a result."""
        with self._lock:
            if self._state == TrackingState.IDLE:
                return False

            self._release_resources()
            self._generation += 1
            self._state = TrackingState.IDLE
            self._reset()
            event = self._event(TrackingEventType.STATE_CHANGED)

        self._clear_snapshot()
        logger.info("Tracking discarded")
        self._emit(event)
        return True

    def reset_if_idle(self):
        """Clear leftover metrics when idle and no recovery is on offer."""
        with self._lock:
            if self._state != TrackingState.IDLE or self._recoverable is not None:
                return
            self._reset()
            event = self._event(TrackingEventType.STATE_CHANGED)
        self._emit(event)

    def close(self):
        """Release timers and the location stream without touching the snapshot."""
        with self._lock:
            self._release_resources()

    # ==================== RECOVERY ====================

    def initialize(self) -> bool:
        """
        Look for a session interrupted by a process kill.

        Returns:
            True if a recoverable session is on offer
        """
        try:
            data = self.storage.get_session_snapshot()
        except Exception as e:
            logger.error(f"Error checking recoverable session: {e}")
            self._clear_snapshot()
            return False

        if data is None:
            return False

        try:
            snapshot = SessionSnapshot.from_dict(data)
        except ValueError as e:
            logger.error(f"Discarding unreadable session snapshot: {e}")
            self._clear_snapshot()
            return False

        if not snapshot.is_recoverable:
            # Stale snapshot of an idle session
            self._clear_snapshot()
            return False

        with self._lock:
            self._recoverable = snapshot
            self._recovered_info = data
            event = self._event(TrackingEventType.RECOVERABLE_SESSION)

        logger.info(
            f"Found recoverable session: {snapshot.activity_type} - {snapshot.duration_secs}s, "
            f"{len(snapshot.track_points)} points"
        )
        self._emit(event)
        return True

    def recover_session(self) -> bool:
        """
        Restore the recoverable session in the paused state.

        The user must resume explicitly; a recovered session never goes
        straight back to tracking.
        """
        with self._lock:
            if self._state != TrackingState.IDLE or self._recoverable is None:
                return False

            snapshot = self._recoverable
            self._reset()
            self._activity_type = snapshot.activity_type
            self._duration_secs = snapshot.duration_secs
            self._distance_meters = snapshot.distance_meters
            self._elevation_gain = snapshot.elevation_gain
            self._start_time = snapshot.start_time
            self._track_points = list(snapshot.track_points)
            if self._track_points:
                last = self._track_points[-1]
                self._current_position = last.to_position()
                self._last_altitude = last.altitude

            self._state = TrackingState.PAUSED
            self._recoverable = None
            self._recovered_info = None
            event = self._event(TrackingEventType.STATE_CHANGED)

        logger.info(f"Session recovered: {len(self._track_points)} points, {self._duration_secs}s")
        self._emit(event)
        return True

    def discard_recovered_session(self):
        """Drop the recoverable snapshot without restoring it."""
        with self._lock:
            self._recoverable = None
            self._recovered_info = None
            self._generation += 1
            event = self._event(TrackingEventType.STATE_CHANGED)
        self._clear_snapshot()
        self._emit(event)

    # ==================== TIMERS & PERSISTENCE ====================

    def _start_timers(self):
        self._cancel_timers()
        self._duration_task = self.scheduler.call_every(
            settings.DURATION_TICK_SECONDS, self._tick, name="duration"
        )
        self._auto_save_task = self.scheduler.call_every(
            settings.AUTO_SAVE_INTERVAL_SECONDS, self._auto_save, name="autosave"
        )

    def _cancel_timers(self):
        if self._duration_task is not None:
            self._duration_task.cancel()
            self._duration_task = None
        if self._auto_save_task is not None:
            self._auto_save_task.cancel()
            self._auto_save_task = None

    def _release_resources(self):
        """Cancel timers, the location subscription and the source together."""
        self._cancel_timers()
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        try:
            self.location_source.stop()
        except Exception as e:
            logger.error(f"Error stopping location source: {e}")

    def _tick(self):
        with self._lock:
            if self._state != TrackingState.TRACKING:
                return
            self._duration_secs += 1
            event = self._event(TrackingEventType.METRICS_UPDATED)
        self._emit(event)

    def _auto_save(self):
        with self._lock:
            if self._state == TrackingState.IDLE:
                return
            snapshot, generation = self._build_snapshot()
        self._write_snapshot(snapshot, generation)

    def _build_snapshot(self) -> Tuple[Dict[str, Any], int]:
        snapshot = SessionSnapshot(
            state=self._state,
            activity_type=self._activity_type,
            duration_secs=self._duration_secs,
            distance_meters=self._distance_meters,
            elevation_gain=self._elevation_gain,
            start_time=self._start_time,
            saved_at=self.clock(),
            track_points=list(self._track_points),
        )
        return snapshot.to_dict(), self._generation

    def _write_snapshot(self, data: Dict[str, Any], generation: int):
        with self._snapshot_lock:
            if generation != self._generation:
                return
            try:
                self.storage.put_session_snapshot(data)
            except Exception as e:
                logger.error(f"Error saving session: {e}", exc_info=True)

    def _clear_snapshot(self):
        with self._snapshot_lock:
            try:
                self.storage.delete_session_snapshot()
            except Exception as e:
                logger.error(f"Error clearing saved session: {e}", exc_info=True)
