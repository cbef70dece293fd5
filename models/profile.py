"""User profile row owned by the hosted backend."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from utils.time_utils import parse_iso, to_iso, utcnow

PREFERRED_UNITS = ("metric", "imperial")

# Columns a user may change on their own profile
EDITABLE_PROFILE_FIELDS = (
    "username",
    "full_name",
    "avatar_url",
    "bio",
    "preferred_units",
    "weekly_goal_km",
)


@dataclass
class Profile:
    """Public profile extending the auth user (``id`` is the auth user id)."""

    id: str
    username: str
    updated_at: datetime
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    preferred_units: str = "metric"
    weekly_goal_km: float = 20.0
    created_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, username='{self.username}')>"

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Profile":
        goal = data.get("weekly_goal_km")
        return cls(
            id=str(data["id"]),
            username=data["username"],
            updated_at=parse_iso(data.get("updated_at")) or utcnow(),
            full_name=data.get("full_name"),
            avatar_url=data.get("avatar_url"),
            bio=data.get("bio"),
            preferred_units=data.get("preferred_units") or "metric",
            weekly_goal_km=float(goal) if goal is not None else 20.0,
            created_at=parse_iso(data.get("created_at")),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "bio": self.bio,
            "preferred_units": self.preferred_units,
            "weekly_goal_km": self.weekly_goal_km,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @property
    def uses_imperial(self) -> bool:
        return self.preferred_units == "imperial"
