import math
from datetime import date, datetime, timedelta, timezone

import numpy as np
import pytest

from completion_forecast.config import Config
from completion_forecast.errors import InvalidInputError, StoreUnavailableError
from completion_forecast.forecast import (
    ForecastRequest,
    compare_scenario,
    forecast_many,
    forecast_project,
    progress_from_completion,
    resolve_progress_percent,
    validate_progress_percent,
)
from completion_forecast.scenario_store import MemoryScenarioBackend, ScenarioStore
from completion_forecast.schema import Project, ProjectStatus, RiskLevel, Scenario

NOW = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)
CONFIG = Config()


def _project(
    project_id: str = "PRJ-1",
    age_days: float | None = 20,
    deadline: date = date(2025, 7, 31),
    status: ProjectStatus = ProjectStatus.IN_PROGRESS,
) -> Project:
    return Project(
        id=project_id,
        name=f"Project {project_id}",
        deadline=deadline,
        status=status,
        created_at=NOW - timedelta(days=age_days) if age_days is not None else None,
    )


def _forecast(project=None, progress=40.0, **kwargs):
    kwargs.setdefault("seed", 1234)
    return forecast_project(project or _project(), progress, now=NOW, config=CONFIG, **kwargs)


def test_forecast_is_reproducible_with_a_seed():
    first = _forecast()
    second = _forecast()

    assert (first.optimistic_date, first.realistic_date, first.pessimistic_date) == (
        second.optimistic_date,
        second.realistic_date,
        second.pessimistic_date,
    )
    assert first == second


def test_forecast_echoes_velocity_and_orders_dates():
    result = _forecast()

    assert result.velocity.current_velocity == pytest.approx(2.0)
    assert result.velocity.average_velocity == pytest.approx(6 / 7)
    assert result.adjusted_velocity == pytest.approx(6 / 7)
    assert result.adjusted_progress == 40.0
    assert result.optimistic_date <= result.realistic_date <= result.pessimistic_date
    assert 40 <= result.confidence_percent <= 95
    assert result.simulation.iterations == 1000
    assert not result.has_scenario


def test_steady_project_lands_on_linear_estimate():
    # 40% after the assumed 30 days -> 4/3 %/day with no spread -> 45 days left
    result = _forecast(_project(age_days=None))

    assert result.realistic_date == NOW + timedelta(days=45)
    assert result.optimistic_date == result.pessimistic_date == result.realistic_date
    assert result.confidence_percent == 95
    assert result.days_diff_from_deadline == 14
    assert result.risk_level is RiskLevel.LOW
    assert result.on_track


def test_late_project_is_high_risk():
    result = _forecast(_project(age_days=None, deadline=date(2025, 6, 20)))

    assert result.days_diff_from_deadline < -7
    assert result.risk_level is RiskLevel.HIGH
    assert not result.on_track


def test_reduced_scope_finishes_earlier():
    baseline = _forecast()
    scoped = _forecast(scenario=Scenario(scope_change_percent=-10))

    assert scoped.adjusted_progress == 50.0
    assert scoped.simulation.realistic_days < baseline.simulation.realistic_days
    assert scoped.has_scenario


def test_added_team_doubles_velocity_and_finishes_earlier():
    baseline = _forecast(scenario=Scenario(team_size_delta=0))
    staffed = _forecast(scenario=Scenario(team_size_delta=2))

    assert staffed.adjusted_velocity == pytest.approx(2 * baseline.adjusted_velocity)
    assert staffed.simulation.realistic_days < baseline.simulation.realistic_days


def test_injected_generator_is_used():
    result = _forecast(seed=None, rng=np.random.default_rng(1234))

    assert result == _forecast(seed=1234)


def test_compare_scenario_reports_impact():
    comparison = compare_scenario(
        _project(),
        40.0,
        Scenario(team_size_delta=1, scope_change_percent=-10),
        now=NOW,
        seed=7,
        config=CONFIG,
    )

    assert not comparison.baseline.has_scenario
    assert comparison.scenario.has_scenario
    assert comparison.impact_days > 0
    assert comparison.baseline == _forecast(seed=7)


def test_empty_scenario_has_no_impact():
    comparison = compare_scenario(_project(), 40.0, Scenario(), now=NOW, seed=7, config=CONFIG)

    assert comparison.impact_days == 0


@pytest.mark.parametrize("progress", [-0.1, 100.5, math.nan, math.inf, "forty", None])
def test_invalid_progress_is_rejected(progress):
    with pytest.raises(InvalidInputError):
        _forecast(progress=progress)


def test_iterations_above_configured_cap_are_rejected():
    with pytest.raises(InvalidInputError):
        forecast_project(
            _project(), 40.0, now=NOW, iterations=50, seed=1, config=Config(max_iterations=10)
        )


def test_validate_progress_accepts_bounds():
    assert validate_progress_percent(0) == 0.0
    assert validate_progress_percent("100") == 100.0


@pytest.mark.parametrize(
    "done, total, expected",
    [(1, 3, 33.0), (2, 3, 67.0), (1, 2, 50.0), (5, 5, 100.0), (0, 0, None)],
)
def test_progress_from_completion(done, total, expected):
    assert progress_from_completion(done, total) == expected


@pytest.mark.parametrize(
    "status, expected",
    [
        (ProjectStatus.COMPLETED, 100.0),
        (ProjectStatus.ACTIVE, 65.0),
        (ProjectStatus.IN_PROGRESS, 40.0),
        (ProjectStatus.PAUSED, 20.0),
    ],
)
def test_status_fallback(status, expected):
    project = _project(status=status)

    assert resolve_progress_percent(project) == expected
    assert resolve_progress_percent(project, 0) == expected
    assert resolve_progress_percent(project, done=0, total=0) == expected


def test_task_completion_wins_over_status():
    project = _project(status=ProjectStatus.PAUSED)

    assert resolve_progress_percent(project, 12.5) == 12.5
    assert resolve_progress_percent(project, done=3, total=4) == 75.0


def test_forecast_many_isolates_bad_projects():
    requests = [
        ForecastRequest(_project("A"), 40.0),
        ForecastRequest(_project("B"), 150.0),
        ForecastRequest(_project("C", age_days=60), 70.0),
    ]

    outcomes = forecast_many(requests, now=NOW, seed=5, max_workers=3, config=CONFIG)

    assert [o.project_id for o in outcomes] == ["A", "B", "C"]
    assert outcomes[0].ok and outcomes[2].ok
    assert not outcomes[1].ok
    assert isinstance(outcomes[1].error, InvalidInputError)


def test_forecast_many_is_reproducible_regardless_of_workers():
    requests = [ForecastRequest(_project(f"P{i}", age_days=10 + i), 30.0 + i) for i in range(8)]

    serial = forecast_many(requests, now=NOW, seed=99, max_workers=1, config=CONFIG)
    parallel = forecast_many(requests, now=NOW, seed=99, max_workers=8, config=CONFIG)

    assert [o.result for o in serial] == [o.result for o in parallel]


def test_forecast_many_applies_saved_scenarios():
    store = ScenarioStore(MemoryScenarioBackend())
    store.save("B", Scenario(team_size_delta=2))
    requests = [
        ForecastRequest(_project("A"), 40.0),
        ForecastRequest(_project("B"), 40.0),
        ForecastRequest(_project("C"), 40.0, scenario=Scenario(scope_change_percent=-20)),
    ]

    outcomes = forecast_many(requests, now=NOW, seed=3, store=store, config=CONFIG)

    assert [o.result.has_scenario for o in outcomes] == [False, True, True]
    assert outcomes[1].result.adjusted_velocity == pytest.approx(2 * 6 / 7)
    assert outcomes[2].result.adjusted_progress == 60.0


def test_forecast_many_survives_unavailable_store():
    class _DownStore:
        def load_all(self):
            raise StoreUnavailableError("down")

    outcomes = forecast_many(
        [ForecastRequest(_project("A"), 40.0)], now=NOW, seed=3, store=_DownStore(), config=CONFIG
    )

    assert outcomes[0].ok
    assert not outcomes[0].result.has_scenario


def test_forecast_many_with_no_requests():
    assert forecast_many([], now=NOW, config=CONFIG) == []


def test_result_serialises_to_json_ready_dict():
    data = _forecast().to_dict()

    assert data["project_id"] == "PRJ-1"
    assert data["deadline"] == "2025-07-31"
    assert data["risk_level"] in {"low", "medium", "high"}
    assert datetime.fromisoformat(data["realistic_date"]) > NOW
    assert len(data["velocity"]["history"]) == 3
