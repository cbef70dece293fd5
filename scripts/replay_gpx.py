"""Record a tracking session by replaying a GPX file, then save it offline-first."""

import sys
import time
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import settings
from models.tracking import TrackingState
from utils.activity_repository import ActivityRepository
from utils.connectivity import ConnectivityMonitor
from utils.local_storage import LocalStorage
from utils.location import GpxReplayLocationSource, LocationError
from utils.logger import get_logger
from utils.supabase_client import SupabaseClient, create_supabase_client
from utils.sync_manager import SyncManager
from utils.tracking_session import TrackingSession

logger = get_logger(__name__)


def _build_remote() -> SupabaseClient:
    if settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY:
        return create_supabase_client()
    # Without a project configured every save stays in the local queue
    return SupabaseClient(base_url="http://localhost", api_key="")


def replay(gpx_path: str, activity_type: str, speedup: float, name: str = None) -> int:
    """
    Replay a GPX track through a tracking session.

    Returns:
        Process exit code
    """
    storage = LocalStorage()
    source = GpxReplayLocationSource(gpx_path, speedup=speedup)
    session = TrackingSession(source, storage)

    if session.initialize():
        info = session.recovered_session_info or {}
        logger.warning(
            f"Discarding interrupted {info.get('activity_type')} session "
            f"({info.get('duration_secs')}s) before replay"
        )
        session.discard_recovered_session()

    session.set_activity_type(activity_type)

    try:
        session.start()
    except LocationError as e:
        logger.error(f"Could not start tracking: {e}")
        return 1

    while session.state == TrackingState.TRACKING and source.is_replaying:
        time.sleep(1.0)
        print(f"\r{session.format_duration()}  {session.distance_km:.2f} km  {session.format_pace()} /km", end="")
    print()

    result = session.stop()
    if result is None:
        logger.error("Nothing was recorded")
        return 1

    connectivity = ConnectivityMonitor()
    connectivity.refresh()
    remote = _build_remote()
    repository = ActivityRepository(storage, remote, connectivity, SyncManager(storage, remote, connectivity))
    saved = repository.save_tracking_result(result, name=name)

    print(f"{result.default_name if not name else name}: {result.distance_km:.2f} km, "
          f"{result.duration_secs}s, +{result.elevation_gain:.0f} m")
    print("Saved to remote store" if saved else f"Queued locally ({storage.pending_count} pending)")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Record an activity from a GPX file")
    parser.add_argument("gpx", help="Path to a .gpx file")
    parser.add_argument("--type", default="run", choices=settings.ACTIVITY_TYPES, help="Activity type")
    parser.add_argument("--speedup", type=float, default=10.0, help="Replay speed multiplier")
    parser.add_argument("--name", default=None, help="Activity name (default: time of day + type)")

    args = parser.parse_args()
    sys.exit(replay(args.gpx, args.type, args.speedup, args.name))
