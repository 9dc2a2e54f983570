"""
What-if adjustments applied to velocity and progress before simulation.
"""

from __future__ import annotations

from typing import Optional, Tuple

from .schema import Scenario, VelocityMetrics

# Each added team member is modelled as a flat +50% throughput multiplier.
TEAM_MEMBER_THROUGHPUT = 0.5


def team_multiplier(team_size_delta: int) -> float:
    return 1.0 + team_size_delta * TEAM_MEMBER_THROUGHPUT


def apply_scenario(
    metrics: VelocityMetrics,
    progress_percent: float,
    scenario: Optional[Scenario] = None,
) -> Tuple[float, float]:
    """
    Return (adjusted_velocity, adjusted_progress).

    Without a scenario the average velocity and the progress pass through.
    A positive scope change lowers progress toward the larger goal; a
    negative one raises it. Progress is clamped to [0, 100].
    """
    if scenario is None:
        return metrics.average_velocity, progress_percent

    adjusted_velocity = metrics.average_velocity * team_multiplier(
        scenario.team_size_delta
    )
    adjusted_progress = min(
        100.0, max(0.0, progress_percent - scenario.scope_change_percent)
    )
    return adjusted_velocity, adjusted_progress
