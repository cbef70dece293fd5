import threading

import pytest

from models.tracking import Position
from utils.location import GpxReplayLocationSource, LocationStreamError, LocationSubscription

GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><name>Loop</name><trkseg>
    <trkpt lat="52.0000" lon="4.0000"><ele>1.0</ele><time>2026-03-02T07:30:00Z</time></trkpt>
    <trkpt lat="52.0001" lon="4.0000"><ele>2.0</ele><time>2026-03-02T07:30:05Z</time></trkpt>
    <trkpt lat="52.00011" lon="4.0000"><ele>2.0</ele><time>2026-03-02T07:30:06Z</time></trkpt>
    <trkpt lat="52.0002" lon="4.0000"><ele>3.5</ele><time>2026-03-02T07:30:10Z</time></trkpt>
  </trkseg></trk>
</gpx>
"""

SINGLE_POINT_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg><trkpt lat="52.0" lon="4.0"/></trkseg></trk>
</gpx>
"""


def test_subscription_gates_delivery():
    received = []
    cancelled = []
    sub = LocationSubscription(received.append, on_cancel=lambda: cancelled.append(True))
    position = Position(latitude=1.0, longitude=2.0)

    assert sub.deliver(position)
    sub.pause()
    assert not sub.deliver(position)
    sub.resume()
    assert sub.deliver(position)
    sub.cancel()
    sub.cancel()
    sub.resume()
    assert not sub.deliver(position)

    assert len(received) == 2
    assert cancelled == [True]


def test_gpx_positions():
    source = GpxReplayLocationSource(GPX)

    assert len(source.positions) == 4
    fix = source.get_current_fix()
    assert (fix.latitude, fix.longitude, fix.altitude) == (52.0, 4.0, 1.0)
    assert fix.timestamp.tzinfo is not None


def test_gpx_file_path(tmp_path):
    path = tmp_path / "loop.gpx"
    path.write_text(GPX, encoding="utf-8")
    assert len(GpxReplayLocationSource(str(path)).positions) == 4


def test_replay_applies_displacement_filter():
    source = GpxReplayLocationSource(GPX, speedup=1000.0)
    received = []
    done = threading.Event()

    def on_position(position):
        received.append(position)
        if position.latitude == 52.0002:
            done.set()

    source.subscribe(on_position, min_displacement_m=5.0, min_interval_s=0.0)

    assert done.wait(5.0)
    # The 1 m step is filtered out
    assert [p.latitude for p in received] == [52.0001, 52.0002]
    source.stop()


def test_single_point_track_cannot_stream():
    source = GpxReplayLocationSource(SINGLE_POINT_GPX)
    assert source.get_current_fix() is not None

    with pytest.raises(LocationStreamError):
        source.subscribe(lambda p: None, 5.0, 2.0)
