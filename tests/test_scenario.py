import pytest

from completion_forecast.errors import InvalidInputError
from completion_forecast.scenario import apply_scenario, team_multiplier
from completion_forecast.schema import Scenario, VelocityMetrics


def _metrics(average: float = 2.0) -> VelocityMetrics:
    return VelocityMetrics(
        current_velocity=average,
        average_velocity=average,
        velocity_std_dev=0.5,
        velocity_trend_percent=0.0,
    )


def test_no_scenario_passes_through():
    assert apply_scenario(_metrics(1.5), 42.0, None) == (1.5, 42.0)


def test_team_members_add_half_throughput_each():
    velocity, progress = apply_scenario(_metrics(2.0), 40.0, Scenario(team_size_delta=2))

    assert velocity == pytest.approx(4.0)
    assert progress == 40.0
    assert team_multiplier(0) == 1.0
    assert team_multiplier(3) == 2.5


def test_reduced_scope_increases_progress():
    _, progress = apply_scenario(_metrics(), 40.0, Scenario(scope_change_percent=-10))

    assert progress == 50.0


def test_added_scope_decreases_progress():
    _, progress = apply_scenario(_metrics(), 40.0, Scenario(scope_change_percent=25))

    assert progress == 15.0


@pytest.mark.parametrize(
    "progress, scope, expected",
    [(95.0, -50, 100.0), (10.0, 50, 0.0), (0.0, 0, 0.0)],
)
def test_adjusted_progress_is_clamped(progress, scope, expected):
    _, adjusted = apply_scenario(_metrics(), progress, Scenario(scope_change_percent=scope))

    assert adjusted == expected


def test_empty_scenario_keeps_values():
    assert apply_scenario(_metrics(2.0), 40.0, Scenario()) == (2.0, 40.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"team_size_delta": -1},
        {"scope_change_percent": 51},
        {"scope_change_percent": -51},
        {"team_size_delta": 1.5},
        {"team_size_delta": True},
    ],
)
def test_scenario_rejects_out_of_range_values(kwargs):
    with pytest.raises(InvalidInputError):
        Scenario(**kwargs)


def test_scenario_dict_form():
    scenario = Scenario(team_size_delta=3, scope_change_percent=-20)

    assert scenario.to_dict() == {"team_size_delta": 3, "scope_change_percent": -20}
    assert Scenario.from_dict(scenario.to_dict()) == scenario
    assert Scenario.from_dict({}) == Scenario()


@pytest.mark.parametrize(
    "data",
    [
        {"team_size_delta": "many"},
        {"team_size_delta": 1.9},
        {"team_size_delta": True},
        {"scope_change_percent": "10"},
        ["team_size_delta", 1],
    ],
)
def test_scenario_from_bad_dict(data):
    with pytest.raises(InvalidInputError):
        Scenario.from_dict(data)
