"""Hosted record store client (Supabase PostgREST) with auth identity and retries."""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import requests

from config.settings import settings
from models.activity import ActivityRecord
from models.profile import EDITABLE_PROFILE_FIELDS, Profile
from utils.logger import get_logger
from utils.time_utils import to_iso

logger = get_logger(__name__)

ACTIVITIES_TABLE = "activities"
PROFILES_TABLE = "profiles"


class RemoteStoreError(Exception):
    """A remote operation failed (network error or server rejection)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteAuthError(RemoteStoreError):
    """No authenticated identity is available for the request."""


@dataclass(frozen=True)
class AuthSession:
    """Authenticated identity, obtained and refreshed outside this package."""

    user_id: str
    access_token: str


class SupabaseClient:
    """
    Thin wrapper over the PostgREST endpoint of a Supabase project.

    - Row-level CRUD on the activities table
    - Read and update of the signed-in user's profile
    - Polling stream of a user's activities
    - Retry with exponential backoff for reads only; a retried insert could
      create duplicates, so writes fail fast
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        auth: Optional[AuthSession] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        http: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            api_key: Project anon key
            auth: Signed-in user identity (optional)
            timeout: Per-request timeout in seconds
            max_retries: Attempts for read requests
            http: requests session to use (a new one by default)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.auth = auth
        self.timeout = timeout or settings.REMOTE_TIMEOUT_SECONDS
        self.max_retries = max(1, max_retries or settings.REMOTE_MAX_RETRIES)
        self.http = http or requests.Session()
        self.backoff_seconds = 1.0

    @property
    def current_user_id(self) -> Optional[str]:
        return self.auth.user_id if self.auth else None

    @property
    def is_authenticated(self) -> bool:
        return self.auth is not None and bool(self.auth.access_token)

    def set_auth(self, auth: Optional[AuthSession]):
        """Swap the identity (sign-in, token refresh or sign-out)."""
        self.auth = auth
        logger.info(f"Auth identity {'set for ' + auth.user_id if auth else 'cleared'}")

    # ==================== HTTP ====================

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        if not self.is_authenticated:
            raise RemoteAuthError("Not authenticated")
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.auth.access_token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, table: str, params=None, json_body=None, prefer: Optional[str] = None):
        headers = self._headers(prefer)
        try:
            response = self.http.request(
                method,
                self._table_url(table),
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteStoreError(f"{method} {table} failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {table} rejected ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        return response.json()

    def _get_with_retry(self, table: str, params) -> Any:
        """GET with exponential backoff on transient failures (network, 5xx)."""
        for attempt in range(self.max_retries):
            try:
                return self._request("GET", table, params=params)
            except RemoteAuthError:
                raise
            except RemoteStoreError as e:
                transient = e.status_code is None or e.status_code >= 500
                if transient and attempt < self.max_retries - 1:
                    wait_time = (2 ** attempt) * self.backoff_seconds
                    logger.warning(f"Request failed: {e}, retrying in {wait_time}s")
                    time.sleep(wait_time)
                else:
                    logger.error(f"Request failed after {attempt + 1} attempts: {e}")
                    raise

    # ==================== ACTIVITY OPERATIONS ====================

    def create(self, record: Dict[str, Any]) -> ActivityRecord:
        """
        Insert an activity row and return it as stored.

        ``user_id`` is filled from the auth identity when missing.
        """
        row = dict(record)
        row.setdefault("user_id", self.current_user_id)
        data = self._request("POST", ACTIVITIES_TABLE, json_body=row, prefer="return=representation")
        if not data:
            raise RemoteStoreError("Insert returned no row")
        created = ActivityRecord.from_json(data[0] if isinstance(data, list) else data)
        logger.info(f"Created remote activity {created.id}")
        return created

    def list_activities(self, limit: int = 50, offset: int = 0, type: Optional[str] = None) -> List[ActivityRecord]:
        """Get the current user's activities, newest first."""
        params = {
            "select": "*",
            "user_id": f"eq.{self.current_user_id}",
            "order": "start_time.desc",
            "limit": str(limit),
            "offset": str(offset),
        }
        if type:
            params["type"] = f"eq.{type}"
        rows = self._get_with_retry(ACTIVITIES_TABLE, params) or []
        return [ActivityRecord.from_json(r) for r in rows]

    def get_activity(self, activity_id: str) -> Optional[ActivityRecord]:
        rows = self._get_with_retry(ACTIVITIES_TABLE, {"select": "*", "id": f"eq.{activity_id}"}) or []
        return ActivityRecord.from_json(rows[0]) if rows else None

    def get_activities_in_range(self, start: datetime, end: datetime) -> List[ActivityRecord]:
        """Get the current user's activities whose start falls in [start, end]."""
        params = [
            ("select", "*"),
            ("user_id", f"eq.{self.current_user_id}"),
            ("start_time", f"gte.{to_iso(start)}"),
            ("start_time", f"lte.{to_iso(end)}"),
            ("order", "start_time.desc"),
        ]
        rows = self._get_with_retry(ACTIVITIES_TABLE, params) or []
        return [ActivityRecord.from_json(r) for r in rows]

    def update(self, activity_id: str, patch: Dict[str, Any]):
        """Apply a partial update to one of the current user's activities."""
        self._request(
            "PATCH",
            ACTIVITIES_TABLE,
            params={"id": f"eq.{activity_id}", "user_id": f"eq.{self.current_user_id}"},
            json_body=patch,
        )
        logger.info(f"Updated remote activity {activity_id}")

    def delete(self, activity_id: str):
        self._request(
            "DELETE",
            ACTIVITIES_TABLE,
            params={"id": f"eq.{activity_id}", "user_id": f"eq.{self.current_user_id}"},
        )
        logger.info(f"Deleted remote activity {activity_id}")

    def stream_by_owner(
        self,
        owner_id: Optional[str] = None,
        poll_interval: float = 5.0,
        limit: int = 50
    ) -> Iterator[List[ActivityRecord]]:
        """
        Endless sequence of the owner's activity list.

        Yields the list on start and whenever it changes. Failed polls are
        logged and retried on the next interval, so the stream picks up
        again after a connection drop.
        """
        owner_id = owner_id or self.current_user_id
        params = {
            "select": "*",
            "user_id": f"eq.{owner_id}",
            "order": "start_time.desc",
            "limit": str(limit),
        }
        last_seen = None
        while True:
            try:
                rows = self._request("GET", ACTIVITIES_TABLE, params=params) or []
                if rows != last_seen:
                    last_seen = rows
                    yield [ActivityRecord.from_json(r) for r in rows]
            except RemoteAuthError:
                raise
            except RemoteStoreError as e:
                logger.warning(f"Activity stream poll failed: {e}")
            time.sleep(poll_interval)

    # ==================== PROFILE OPERATIONS ====================

    def get_current_profile(self) -> Optional[Profile]:
        """
        Fetch the signed-in user's profile.

        Returns:
            Profile, or None when signed out, when the row is missing or
            when the request fails
        """
        user_id = self.current_user_id
        if not self.is_authenticated or not user_id:
            return None

        try:
            rows = self._get_with_retry(PROFILES_TABLE, {"select": "*", "id": f"eq.{user_id}"}) or []
        except RemoteStoreError as e:
            logger.error(f"Error fetching profile for {user_id}: {e}")
            return None

        return Profile.from_json(rows[0]) if rows else None

    def update_profile(self, **fields) -> bool:
        """
        Update editable columns of the signed-in user's profile.

        Unknown keys and None values are dropped. ``updated_at`` is left to
        the server trigger.

        Returns:
            True if the update was accepted, False otherwise
        """
        user_id = self.current_user_id
        if not self.is_authenticated or not user_id:
            return False

        patch = {k: v for k, v in fields.items() if k in EDITABLE_PROFILE_FIELDS and v is not None}
        ignored = set(fields) - set(EDITABLE_PROFILE_FIELDS)
        if ignored:
            logger.warning(f"Ignoring non-editable profile fields: {sorted(ignored)}")
        if not patch:
            return True

        try:
            self._request("PATCH", PROFILES_TABLE, params={"id": f"eq.{user_id}"}, json_body=patch)
        except RemoteStoreError as e:
            logger.error(f"Error updating profile for {user_id}: {e}")
            return False

        logger.info(f"Updated profile {user_id}: {sorted(patch)}")
        return True


def create_supabase_client(auth: Optional[AuthSession] = None) -> SupabaseClient:
    """
    Factory function to create a client from settings.

    Args:
        auth: Identity to use; defaults to SUPABASE_USER_ID / SUPABASE_ACCESS_TOKEN

    Returns:
        Configured SupabaseClient instance
    """
    if auth is None and settings.SUPABASE_USER_ID and settings.SUPABASE_ACCESS_TOKEN:
        auth = AuthSession(user_id=settings.SUPABASE_USER_ID, access_token=settings.SUPABASE_ACCESS_TOKEN)

    return SupabaseClient(
        base_url=settings.get_required("SUPABASE_URL"),
        api_key=settings.get_required("SUPABASE_ANON_KEY"),
        auth=auth,
    )
