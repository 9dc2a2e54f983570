"""
Monte Carlo simulation of completion time.

Responsibilities:
- Sample velocity from a normal distribution (Box-Muller over two uniform
  draws) around the adjusted velocity.
- Turn each sample into a number of days to finish the remaining work.
- Report P10/P50/P90 day counts and a confidence score derived from the
  coefficient of variation of the samples.

The random generator is always injected or created per call; nothing here
keeps state between calls.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional, Tuple

import numpy as np

from .errors import InvalidInputError
from .schema import SimulationResult

DEFAULT_ITERATIONS = 1000
MIN_SIMULATED_VELOCITY = 0.1
CONFIDENCE_FLOOR = 40
CONFIDENCE_CEILING = 95

OPTIMISTIC_PERCENTILE = 0.1
REALISTIC_PERCENTILE = 0.5
PESSIMISTIC_PERCENTILE = 0.9


def _check_iterations(iterations: int, max_iterations: Optional[int]) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise InvalidInputError(f"iterations must be an integer, got {iterations!r}")
    if iterations < 1:
        raise InvalidInputError(f"iterations must be >= 1, got {iterations}")
    if max_iterations is not None and iterations > max_iterations:
        raise InvalidInputError(
            f"iterations {iterations} exceeds the configured cap of {max_iterations}"
        )
    return int(iterations)


def standard_normal(rng: np.random.Generator, size: int) -> np.ndarray:
    """
    Box-Muller transform: z = sqrt(-2 ln u1) * cos(2 pi u2).

    u1 is drawn from (0, 1] so the logarithm stays finite.
    """
    u1 = 1.0 - rng.random(size)
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def confidence_from_samples(mean_days: float, std_dev_days: float) -> int:
    """
    100 minus the coefficient of variation (in percent), clamped to
    [40, 95] and rounded half up. Zero mean means zero dispersion.
    """
    if mean_days > 0 and math.isfinite(mean_days) and math.isfinite(std_dev_days):
        raw = 100.0 - (std_dev_days / mean_days) * 100.0
    else:
        raw = 100.0
    clamped = max(float(CONFIDENCE_FLOOR), min(float(CONFIDENCE_CEILING), raw))
    return int(math.floor(clamped + 0.5))


def simulate(
    adjusted_progress: float,
    adjusted_velocity: float,
    velocity_std_dev: float,
    iterations: int = DEFAULT_ITERATIONS,
    rng: Optional[np.random.Generator] = None,
    *,
    max_iterations: Optional[int] = None,
) -> SimulationResult:
    """
    Simulate days-to-completion.

    For each iteration:
        v    = max(0.1, adjusted_velocity + z * velocity_std_dev)
        days = (100 - adjusted_progress) / v

    Percentiles are read from the sorted samples at floor(iterations * p).
    """
    iterations = _check_iterations(iterations, max_iterations)
    if rng is None:
        rng = np.random.default_rng()

    remaining = 100.0 - adjusted_progress
    z = standard_normal(rng, iterations)
    velocities = np.maximum(MIN_SIMULATED_VELOCITY, adjusted_velocity + z * velocity_std_dev)
    completion_days = np.sort(remaining / velocities)

    def _at(p: float) -> float:
        return float(completion_days[int(math.floor(iterations * p))])

    mean_days = float(completion_days.mean())
    std_dev_days = float(completion_days.std())

    return SimulationResult(
        optimistic_days=_at(OPTIMISTIC_PERCENTILE),
        realistic_days=_at(REALISTIC_PERCENTILE),
        pessimistic_days=_at(PESSIMISTIC_PERCENTILE),
        mean_days=mean_days,
        std_dev_days=std_dev_days,
        confidence_percent=confidence_from_samples(mean_days, std_dev_days),
        iterations=iterations,
    )


def completion_dates(
    now: datetime,
    result: SimulationResult,
) -> Tuple[datetime, datetime, datetime]:
    """Return (optimistic, realistic, pessimistic) dates counted from `now`."""
    return (
        now + timedelta(days=result.optimistic_days),
        now + timedelta(days=result.realistic_days),
        now + timedelta(days=result.pessimistic_days),
    )
