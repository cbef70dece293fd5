"""Activity statistics computed with pandas (user totals and weekly summaries)."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

import pandas as pd

from config.settings import settings
from utils.logger import get_logger
from utils.time_utils import utcnow

logger = get_logger(__name__)

SUMMARY_COLUMNS = [
    "week_start",
    "type",
    "activity_count",
    "total_distance",
    "total_duration",
    "avg_pace",
]


def activities_to_dataframe(activities: Sequence[Any]) -> pd.DataFrame:
    """
    Flatten activity records into a DataFrame.

    Accepts remote ActivityRecord and queued PendingActivityRecord alike.
    Pace is taken from the record when the server computed it, otherwise
    derived from duration and distance.

    Args:
        activities: Records exposing type, distance_km, duration_secs,
            elevation_gain and start_time

    Returns:
        DataFrame with one row per activity
    """
    rows = []
    for activity in activities:
        pace = getattr(activity, "pace_min_per_km", None)
        if pace is None and activity.distance_km and activity.distance_km > 0:
            pace = (activity.duration_secs / 60) / activity.distance_km

        rows.append({
            "type": activity.type,
            "distance_km": float(activity.distance_km or 0.0),
            "duration_secs": int(activity.duration_secs or 0),
            "elevation_gain": float(activity.elevation_gain or 0.0),
            "pace_min_per_km": float(pace) if pace is not None else float("nan"),
            "start_time": activity.start_time,
        })

    df = pd.DataFrame(rows, columns=[
        "type", "distance_km", "duration_secs", "elevation_gain", "pace_min_per_km", "start_time",
    ])
    if not df.empty:
        df["start_time"] = pd.to_datetime(df["start_time"], utc=True)
    return df


def build_user_stats(activities: Sequence[Any]) -> Dict[str, Any]:
    """
    Lifetime totals for a user.

    Returns:
        Dict with total_activities, total_distance_km, total_duration_secs,
        total_elevation_gain and one total_<type> count per activity type
    """
    df = activities_to_dataframe(activities)

    stats: Dict[str, Any] = {
        "total_activities": int(len(df)),
        "total_distance_km": float(df["distance_km"].sum()) if not df.empty else 0.0,
        "total_duration_secs": int(df["duration_secs"].sum()) if not df.empty else 0,
        "total_elevation_gain": float(df["elevation_gain"].sum()) if not df.empty else 0.0,
    }

    counts = df["type"].value_counts() if not df.empty else pd.Series(dtype=int)
    for activity_type in settings.ACTIVITY_TYPES:
        stats[f"total_{activity_type}s"] = int(counts.get(activity_type, 0))

    return stats


def _week_start(timestamps: pd.Series) -> pd.Series:
    """Monday 00:00 of each timestamp's ISO week."""
    midnight = timestamps.dt.normalize()
    return midnight - pd.to_timedelta(timestamps.dt.weekday, unit="D")


def build_weekly_summary(
    activities: Sequence[Any],
    weeks: int = 4,
    now: Optional[datetime] = None
) -> pd.DataFrame:
    """
    Per-week, per-type summary of recent activities.

    Args:
        activities: Activity records to summarize
        weeks: How far back to look, counted from ``now``
        now: Reference time (defaults to the current UTC time)

    Returns:
        DataFrame with SUMMARY_COLUMNS, newest week first, types ascending
    """
    df = activities_to_dataframe(activities)
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    reference = pd.Timestamp(now or utcnow())
    if reference.tzinfo is None:
        reference = reference.tz_localize("UTC")
    cutoff = reference - timedelta(weeks=weeks)

    recent = df[df["start_time"] >= cutoff].copy()
    if recent.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    recent["week_start"] = _week_start(recent["start_time"])

    summary = (
        recent.groupby(["week_start", "type"])
        .agg(
            activity_count=("distance_km", "size"),
            total_distance=("distance_km", "sum"),
            total_duration=("duration_secs", "sum"),
            avg_pace=("pace_min_per_km", "mean"),
        )
        .reset_index()
        .sort_values(["week_start", "type"], ascending=[False, True])
        .reset_index(drop=True)
    )

    logger.debug(f"Weekly summary: {len(summary)} rows from {len(recent)} activities")
    return summary[SUMMARY_COLUMNS]
