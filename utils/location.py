"""Location sources: the GPS capability consumed by the tracking session."""

import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Callable, List, Optional, Union

import gpxpy

from models.tracking import Position
from utils.logger import get_logger
from utils.polyline_utils import haversine_m
from utils.time_utils import parse_iso, utcnow

logger = get_logger(__name__)

PositionCallback = Callable[[Position], None]


class LocationError(Exception):
    """Base class for location failures surfaced when tracking starts."""


class LocationUnavailable(LocationError):
    """No position fix could be obtained (no signal, permission denied, timeout)."""


class LocationStreamError(LocationError):
    """The platform could not begin streaming position updates."""


class LocationSubscription:
    """
    Handle on a stream of positions.

    Sources push samples through deliver(); nothing reaches the callback
    while the subscription is paused or after it is cancelled.
    """

    def __init__(self, callback: PositionCallback, on_cancel: Optional[Callable[[], None]] = None):
        self._callback = callback
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._paused = False
        self._cancelled = False

    def deliver(self, position: Position) -> bool:
        """Forward a sample to the subscriber. Returns False if it was dropped."""
        with self._lock:
            if self._paused or self._cancelled:
                return False
        self._callback(position)
        return True

    def pause(self):
        with self._lock:
            self._paused = True

    def resume(self):
        with self._lock:
            if not self._cancelled:
                self._paused = False

    def cancel(self):
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        if self._on_cancel:
            self._on_cancel()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


class LocationSource(ABC):
    """Contract for anything that can produce position fixes."""

    @abstractmethod
    def get_current_fix(self, timeout: Optional[float] = None) -> Optional[Position]:
        """
        Get one fresh position.

        Must return within ``timeout`` seconds; returns None when no fix is
        obtainable rather than blocking.
        """

    @abstractmethod
    def subscribe(
        self,
        callback: PositionCallback,
        min_displacement_m: float,
        min_interval_s: float
    ) -> LocationSubscription:
        """
        Start streaming positions to ``callback``.

        Raises:
            LocationStreamError: If streaming cannot begin.
        """

    def stop(self):
        """Release platform resources held by the source."""


class GpxReplayLocationSource(LocationSource):
    """
    Replays the points of a GPX track as if they came from a GPS receiver.

    Samples are emitted on a background thread, spaced by their recorded
    time deltas divided by ``speedup`` (or ``min_interval_s`` when the track
    has no timestamps).
    """

    def __init__(self, gpx_source: Union[str, Path], speedup: float = 1.0):
        """
        Args:
            gpx_source: Path to a .gpx file, or the GPX XML itself.
            speedup: Replay rate multiplier (10.0 replays ten times faster).
        """
        self.speedup = max(speedup, 1e-6)
        self.positions = self._load_positions(gpx_source)
        self._subscription: Optional[LocationSubscription] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        logger.info(f"Loaded {len(self.positions)} GPX points for replay")

    @staticmethod
    def _load_positions(gpx_source: Union[str, Path]) -> List[Position]:
        text = str(gpx_source)
        if text.lstrip().startswith("<"):
            gpx = gpxpy.parse(text)
        else:
            with open(gpx_source, "r", encoding="utf-8") as f:
                gpx = gpxpy.parse(f)

        positions = []
        base_time = utcnow()
        for track in gpx.tracks:
            for segment in track.segments:
                for i, p in enumerate(segment.points):
                    speed = segment.get_speed(i) if i > 0 else 0.0
                    positions.append(Position(
                        latitude=p.latitude,
                        longitude=p.longitude,
                        altitude=p.elevation or 0.0,
                        speed=speed or 0.0,
                        accuracy=p.horizontal_dilution or 0.0,
                        timestamp=parse_iso(p.time) or base_time + timedelta(seconds=len(positions)),
                    ))
        return positions

    def get_current_fix(self, timeout: Optional[float] = None) -> Optional[Position]:
        if not self.positions:
            logger.warning("GPX track has no points, no fix available")
            return None
        return self.positions[0]

    def subscribe(
        self,
        callback: PositionCallback,
        min_displacement_m: float,
        min_interval_s: float
    ) -> LocationSubscription:
        if len(self.positions) < 2:
            raise LocationStreamError("GPX track has no points to stream")

        self.stop()
        self._stop_event = threading.Event()
        subscription = LocationSubscription(callback, on_cancel=self._stop_event.set)
        self._subscription = subscription
        self._thread = threading.Thread(
            target=self._replay,
            args=(subscription, self._stop_event, min_displacement_m, min_interval_s),
            name="trailzap-gpx-replay",
            daemon=True,
        )
        self._thread.start()
        return subscription

    def _replay(
        self,
        subscription: LocationSubscription,
        stop_event: threading.Event,
        min_displacement_m: float,
        min_interval_s: float
    ):
        last_sent = self.positions[0]
        for prev, position in zip(self.positions, self.positions[1:]):
            delay = (position.timestamp - prev.timestamp).total_seconds()
            if delay <= 0:
                delay = min_interval_s
            if stop_event.wait(delay / self.speedup):
                return

            # A paused subscription holds the replay in place
            while subscription.is_paused and not stop_event.is_set():
                stop_event.wait(0.1)
            if stop_event.is_set():
                return

            moved = haversine_m(last_sent.latitude, last_sent.longitude, position.latitude, position.longitude)
            if moved < min_displacement_m:
                continue
            if subscription.deliver(position):
                last_sent = position

        logger.info("GPX replay finished")

    @property
    def is_replaying(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
