from datetime import date, datetime, timedelta, timezone

import pytest

from completion_forecast.risk import classify_risk, days_until, is_on_track
from completion_forecast.schema import RiskLevel


@pytest.mark.parametrize(
    "days_diff, confidence, expected",
    [
        (-8, 80, RiskLevel.HIGH),
        (-1, 80, RiskLevel.MEDIUM),
        (10, 90, RiskLevel.LOW),
        (100, 45, RiskLevel.HIGH),
        (-7, 80, RiskLevel.MEDIUM),
        (0, 90, RiskLevel.MEDIUM),
        (6, 95, RiskLevel.MEDIUM),
        (7, 70, RiskLevel.LOW),
        (30, 69, RiskLevel.MEDIUM),
        (30, 50, RiskLevel.MEDIUM),
        (30, 49, RiskLevel.HIGH),
    ],
)
def test_classify_risk(days_diff, confidence, expected):
    assert classify_risk(days_diff, confidence) is expected


def test_on_track_boundary():
    assert is_on_track(0)
    assert is_on_track(12)
    assert not is_on_track(-1)


def test_days_until_floors_partial_days():
    moment = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)

    assert days_until(date(2025, 6, 11), moment) == 9
    assert days_until(date(2025, 6, 1), moment) == -1
    assert days_until(date(2025, 5, 30), moment) == -3


def test_days_until_uses_moment_timezone():
    tz = timezone(timedelta(hours=-5))
    moment = datetime(2025, 6, 1, 0, tzinfo=tz)

    assert days_until(date(2025, 6, 8), moment) == 7
