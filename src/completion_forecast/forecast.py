"""
Completion forecasting pipeline.

Responsibilities:
- Resolve a project's progress percentage (task completion or status fallback)
- Validate input at the boundary
- Run velocity tracking -> scenario adjustment -> Monte Carlo -> risk
- Compare a what-if scenario against the baseline on the same random stream
- Forecast many projects in parallel, isolating per-project failures
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .config import Config, get_config
from .errors import InvalidInputError, StoreUnavailableError
from .monte_carlo import completion_dates, simulate
from .risk import classify_risk, days_until, is_on_track
from .scenario import apply_scenario
from .scenario_store import ScenarioStore
from .schema import (
    ForecastResult,
    ProgressSnapshot,
    Project,
    ProjectStatus,
    Scenario,
    ensure_aware,
)
from .velocity import compute_velocity_metrics

logger = logging.getLogger(__name__)

STATUS_PROGRESS_FALLBACK: Dict[ProjectStatus, float] = {
    ProjectStatus.COMPLETED: 100.0,
    ProjectStatus.ACTIVE: 65.0,
    ProjectStatus.IN_PROGRESS: 40.0,
    ProjectStatus.PAUSED: 20.0,
}


# --- Progress ------------------------------------------------------------------


def progress_from_completion(done: int, total: int) -> Optional[float]:
    """Percent of tasks done, rounded to a whole number; None without tasks."""
    if total <= 0:
        return None
    return float(math.floor(done / total * 100 + 0.5))


def resolve_progress_percent(
    project: Project,
    percent: Optional[float] = None,
    *,
    done: Optional[int] = None,
    total: Optional[int] = None,
) -> float:
    """
    Pick the progress value fed to the forecaster.

    A direct percent wins, then done/total from the task-completion
    provider. A missing or zero value falls back to the status heuristic.
    """
    if percent is None and done is not None and total is not None:
        percent = progress_from_completion(done, total)
    if percent:
        return float(percent)
    return STATUS_PROGRESS_FALLBACK[project.status]


def validate_progress_percent(value: float) -> float:
    try:
        progress = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"progress_percent must be a number, got {value!r}") from exc
    if not math.isfinite(progress) or progress < 0 or progress > 100:
        raise InvalidInputError(f"progress_percent must be within [0, 100], got {value!r}")
    return progress


# --- Single forecast -----------------------------------------------------------


def _generator(
    rng: Optional[np.random.Generator],
    seed: Optional[int],
) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def forecast_project(
    project: Project,
    progress_percent: float,
    *,
    now: Optional[datetime] = None,
    scenario: Optional[Scenario] = None,
    iterations: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    snapshots: Optional[Sequence[ProgressSnapshot]] = None,
    config: Optional[Config] = None,
) -> ForecastResult:
    """
    Forecast the completion of one project.

    Pass either a ready `rng` or a `seed`; with neither, the generator is
    seeded from OS entropy for this call.
    """
    cfg = config or get_config()
    progress = validate_progress_percent(progress_percent)
    now = ensure_aware(now or datetime.now(timezone.utc))
    iterations = cfg.default_iterations if iterations is None else iterations

    metrics = compute_velocity_metrics(project, progress, now, snapshots=snapshots)
    adjusted_velocity, adjusted_progress = apply_scenario(metrics, progress, scenario)
    simulation = simulate(
        adjusted_progress,
        adjusted_velocity,
        metrics.velocity_std_dev,
        iterations,
        _generator(rng, seed),
        max_iterations=cfg.max_iterations,
    )
    optimistic, realistic, pessimistic = completion_dates(now, simulation)

    days_diff = days_until(project.deadline, realistic)
    risk = classify_risk(days_diff, simulation.confidence_percent)

    logger.debug(
        "Forecast %s: progress=%.1f velocity=%.3f p50=%.1fd confidence=%d risk=%s",
        project.id,
        adjusted_progress,
        adjusted_velocity,
        simulation.realistic_days,
        simulation.confidence_percent,
        risk.value,
    )

    return ForecastResult(
        project_id=project.id,
        progress_percent=progress,
        adjusted_progress=adjusted_progress,
        adjusted_velocity=adjusted_velocity,
        optimistic_date=optimistic,
        realistic_date=realistic,
        pessimistic_date=pessimistic,
        deadline=project.deadline,
        confidence_percent=simulation.confidence_percent,
        days_diff_from_deadline=days_diff,
        risk_level=risk,
        on_track=is_on_track(days_diff),
        has_scenario=scenario is not None,
        velocity=metrics,
        simulation=simulation,
    )


# --- Scenario comparison -------------------------------------------------------


@dataclass(frozen=True)
class ScenarioComparison:
    """
    Baseline and what-if forecasts drawn from identical random streams.

    impact_days > 0 means the scenario finishes earlier than the baseline.
    """

    baseline: ForecastResult
    scenario: ForecastResult

    @property
    def impact_days(self) -> float:
        return self.baseline.simulation.realistic_days - self.scenario.simulation.realistic_days


def compare_scenario(
    project: Project,
    progress_percent: float,
    scenario: Scenario,
    *,
    now: Optional[datetime] = None,
    seed: Optional[int] = None,
    iterations: Optional[int] = None,
    config: Optional[Config] = None,
) -> ScenarioComparison:
    seed_seq = np.random.SeedSequence(seed)
    now = ensure_aware(now or datetime.now(timezone.utc))
    common = dict(now=now, iterations=iterations, config=config)
    baseline = forecast_project(
        project, progress_percent, rng=np.random.default_rng(seed_seq), **common
    )
    adjusted = forecast_project(
        project,
        progress_percent,
        scenario=scenario,
        rng=np.random.default_rng(seed_seq),
        **common,
    )
    return ScenarioComparison(baseline=baseline, scenario=adjusted)


# --- Batch ---------------------------------------------------------------------


@dataclass(frozen=True)
class ForecastRequest:
    project: Project
    progress_percent: float
    scenario: Optional[Scenario] = None
    snapshots: Optional[Sequence[ProgressSnapshot]] = None


@dataclass(frozen=True)
class ForecastOutcome:
    project_id: str
    result: Optional[ForecastResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _stored_scenarios(store: Optional[ScenarioStore]) -> Mapping[str, Scenario]:
    if store is None:
        return {}
    try:
        return store.load_all()
    except StoreUnavailableError as exc:
        logger.warning("Forecasting without saved scenarios: %s", exc)
        return {}


def forecast_many(
    requests: Sequence[ForecastRequest],
    *,
    now: Optional[datetime] = None,
    seed: Optional[int] = None,
    store: Optional[ScenarioStore] = None,
    max_workers: Optional[int] = None,
    config: Optional[Config] = None,
) -> List[ForecastOutcome]:
    """
    Forecast every request on a thread pool.

    Each request gets its own generator spawned from one SeedSequence, so a
    given seed reproduces the same results regardless of scheduling.
    Requests without a scenario use the store's saved scenario, if any.
    Outcomes are returned in request order; a failure is recorded on its
    own outcome.
    """
    cfg = config or get_config()
    now = ensure_aware(now or datetime.now(timezone.utc))
    saved = _stored_scenarios(store)
    children = np.random.SeedSequence(seed).spawn(len(requests))

    def _run(request: ForecastRequest, child: np.random.SeedSequence) -> ForecastOutcome:
        project_id = request.project.id
        try:
            result = forecast_project(
                request.project,
                request.progress_percent,
                now=now,
                scenario=request.scenario or saved.get(project_id),
                rng=np.random.default_rng(child),
                snapshots=request.snapshots,
                config=cfg,
            )
        except InvalidInputError as exc:
            logger.warning("Forecast rejected for %s: %s", project_id, exc)
            return ForecastOutcome(project_id=project_id, error=exc)
        except Exception as exc:
            logger.error("Forecast failed for %s", project_id, exc_info=True)
            return ForecastOutcome(project_id=project_id, error=exc)
        return ForecastOutcome(project_id=project_id, result=result)

    if not requests:
        return []

    with ThreadPoolExecutor(max_workers=max_workers or cfg.max_workers) as executor:
        futures = [executor.submit(_run, r, c) for r, c in zip(requests, children)]
        outcomes = [f.result() for f in futures]

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info("Forecasted %d projects (%d failed)", len(outcomes), failed)
    return outcomes
