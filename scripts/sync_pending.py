"""Run one synchronization batch of locally queued activities."""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from utils.connectivity import ConnectivityMonitor
from utils.local_storage import LocalStorage
from utils.logger import get_logger
from utils.supabase_client import create_supabase_client
from utils.sync_manager import SyncManager

logger = get_logger(__name__)


def print_progress(status: str, current: int, total: int):
    print(f"[{current}/{total}] {status}")


def main() -> int:
    storage = LocalStorage()
    print(f"Pending activities: {storage.pending_count}")

    connectivity = ConnectivityMonitor()
    if not connectivity.refresh():
        print("Offline: nothing synced")
        return 1

    try:
        remote = create_supabase_client()
    except ValueError as e:
        logger.error(str(e))
        return 1

    if not remote.is_authenticated:
        print("Not signed in: set SUPABASE_USER_ID and SUPABASE_ACCESS_TOKEN")
        return 1

    manager = SyncManager(storage, remote, connectivity, progress_callback=print_progress)
    success = manager.sync_pending_activities()

    result = manager.last_result
    if result:
        print(f"Status: {result['status']} ({len(result['synced'])}/{result['total']} uploaded)")
        for item in result["failed"]:
            print(f"  {item['local_id']}: {item['error']}")
    else:
        print("Nothing to sync")

    manager.close()
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
