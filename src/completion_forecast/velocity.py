"""
Velocity tracking: pure math, no I/O.

Derives a short velocity series (progress-percent per day) for a project
from its current progress and age, and summarises the most recent points:
- mean and population standard deviation
- trend between the oldest and newest recent point

The historical points are back-projected linearly from the current progress
unless real ProgressSnapshot readings are supplied.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from .schema import (
    Project,
    ProgressSnapshot,
    VelocityMetrics,
    VelocityPoint,
    ensure_aware,
)

DEFAULT_PROJECT_AGE_DAYS = 30
LOOKBACK_WINDOWS_DAYS = (30, 14, 7)
RECENT_WINDOW = 3

_SECONDS_PER_DAY = 24 * 60 * 60


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end (negative if end is earlier)."""
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def effective_created_at(project: Project, now: datetime) -> datetime:
    if project.created_at is not None:
        return project.created_at
    return now - timedelta(days=DEFAULT_PROJECT_AGE_DAYS)


def synthetic_history(
    progress_percent: float,
    created_at: datetime,
    now: datetime,
) -> List[VelocityPoint]:
    """
    Back-project progress at 30, 14 and 7 days ago (oldest first), keeping
    only the windows that start on or after the project's creation.

        progress_then = max(0, p - (30 - d) * (p / days_elapsed))
        velocity      = progress_then / d,   d = min(window, days_elapsed)
    """
    days_elapsed = max(1.0, days_between(created_at, now))
    rate = progress_percent / days_elapsed

    points: List[VelocityPoint] = []
    for window in LOOKBACK_WINDOWS_DAYS:
        past = now - timedelta(days=window)
        if past < created_at:
            continue
        days_passed = min(window, days_elapsed)
        progress_then = max(0.0, progress_percent - (30 - days_passed) * rate)
        points.append(
            VelocityPoint(
                timestamp=past,
                velocity=progress_then / days_passed,
                progress=progress_then,
            )
        )
    return points


def snapshot_history(
    snapshots: Sequence[ProgressSnapshot],
    created_at: datetime,
    now: datetime,
) -> List[VelocityPoint]:
    """
    Turn recorded progress readings into velocity points.

    Each point's velocity is its progress divided by the project's age at
    that moment (at least one day). Readings before creation or not before
    now are dropped.
    """
    points: List[VelocityPoint] = []
    readings = sorted(
        ((ensure_aware(s.timestamp), s.progress_percent) for s in snapshots),
        key=lambda item: item[0],
    )
    for timestamp, progress_percent in readings:
        if timestamp < created_at or timestamp >= now:
            continue
        progress = max(0.0, float(progress_percent))
        age = max(1.0, days_between(created_at, timestamp))
        points.append(
            VelocityPoint(timestamp=timestamp, velocity=progress / age, progress=progress)
        )
    return points


def _trend_percent(values: Sequence[float]) -> float:
    if len(values) < 2 or values[0] == 0:
        return 0.0
    trend = (values[-1] - values[0]) / values[0] * 100.0
    return trend if math.isfinite(trend) else 0.0


def summarize_history(history: Sequence[VelocityPoint]) -> VelocityMetrics:
    """
    Compute VelocityMetrics from a history whose last point is "now".

    Only the last RECENT_WINDOW points feed the mean, deviation and trend.
    """
    recent = [p.velocity for p in history[-RECENT_WINDOW:]]
    mean = sum(recent) / len(recent)
    variance = sum((v - mean) ** 2 for v in recent) / len(recent)
    return VelocityMetrics(
        current_velocity=history[-1].velocity,
        average_velocity=mean,
        velocity_std_dev=math.sqrt(variance),
        velocity_trend_percent=_trend_percent(recent),
        history=tuple(history),
    )


def compute_velocity_metrics(
    project: Project,
    progress_percent: float,
    now: Optional[datetime] = None,
    snapshots: Optional[Sequence[ProgressSnapshot]] = None,
) -> VelocityMetrics:
    """
    Derive the velocity signal for a project.

    - days_elapsed = max(1, days since creation); creation defaults to
      30 days before `now`.
    - History comes from `snapshots` when given, otherwise from the
      synthetic back-projection.
    - A final point at `now` carries progress / days_elapsed.
    """
    now = ensure_aware(now or datetime.now(timezone.utc))
    created_at = ensure_aware(effective_created_at(project, now))
    days_elapsed = max(1.0, days_between(created_at, now))

    if snapshots is not None:
        history = snapshot_history(snapshots, created_at, now)
    else:
        history = synthetic_history(progress_percent, created_at, now)

    history.append(
        VelocityPoint(
            timestamp=now,
            velocity=progress_percent / days_elapsed,
            progress=progress_percent,
        )
    )
    return summarize_history(history)
