"""
Schedule risk classification from the deadline gap and forecast confidence.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time

from .schema import RiskLevel, ensure_aware

_SECONDS_PER_DAY = 24 * 60 * 60


def days_until(deadline: date, moment: datetime) -> int:
    """
    Whole days from `moment` to the start of `deadline` (in moment's
    timezone), floored. Negative when the moment is past the deadline.
    """
    moment = ensure_aware(moment)
    deadline_start = datetime.combine(deadline, time.min, tzinfo=moment.tzinfo)
    days = (deadline_start - moment).total_seconds() / _SECONDS_PER_DAY
    if not math.isfinite(days):
        return 0
    return int(math.floor(days))


def classify_risk(days_diff: float, confidence: float) -> RiskLevel:
    """
    First match wins:
    1. more than a week late, or confidence below 50  -> high
    2. late at all, or confidence below 70             -> medium
    3. less than a week of buffer                      -> medium
    4. otherwise                                       -> low
    """
    if days_diff < -7 or confidence < 50:
        return RiskLevel.HIGH
    if days_diff < 0 or confidence < 70:
        return RiskLevel.MEDIUM
    if days_diff < 7:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def is_on_track(days_diff: float) -> bool:
    return days_diff >= 0
