"""
CLI for the completion-forecast engine.

Usage examples:

    # Forecast one project
    python -m app.cli forecast --project-id PRJ-7 --deadline 2025-09-30 \
        --progress 40 --created-at 2025-05-12

    # Same project with one more person and 10% less scope
    python -m app.cli forecast --project-id PRJ-7 --deadline 2025-09-30 \
        --progress 40 --team-size-delta 1 --scope-change -10

    # Forecast every project in a CSV export
    python -m app.cli forecast-batch data/projects.csv --seed 7

    # Manage saved what-if scenarios
    python -m app.cli scenario save PRJ-7 --team-size-delta 2
    python -m app.cli scenario list
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

# --- Make src/ importable ----------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from completion_forecast.config import get_config
from completion_forecast.errors import ForecastError, StoreUnavailableError
from completion_forecast.forecast import (
    ForecastRequest,
    compare_scenario,
    forecast_many,
    forecast_project,
    resolve_progress_percent,
)
from completion_forecast.projects_io import load_project_rows_from_csv
from completion_forecast.scenario_store import ScenarioStore, build_scenario_store
from completion_forecast.schema import (
    Project,
    ProjectStatus,
    Scenario,
    parse_date,
    parse_datetime,
)


# --- Commands ----------------------------------------------------------------


def _scenario_from_args(args: argparse.Namespace):
    if args.team_size_delta is None and args.scope_change is None:
        return None
    return Scenario(
        team_size_delta=args.team_size_delta or 0,
        scope_change_percent=args.scope_change or 0,
    )


def _saved_scenario_store(command: str) -> Optional[ScenarioStore]:
    """Scenario store for forecasting, or None when it is unavailable."""
    try:
        return build_scenario_store(get_config())
    except StoreUnavailableError as e:
        print(f"[{command}] Scenario store unavailable, forecasting without saved scenarios: {e}")
        return None


def cmd_forecast(args: argparse.Namespace) -> None:
    """
    Forecast a single project described on the command line.
    """
    project = Project(
        id=args.project_id,
        name=args.name or "",
        deadline=parse_date(args.deadline),
        status=ProjectStatus.parse(args.status),
        created_at=parse_datetime(args.created_at) if args.created_at else None,
    )
    progress = resolve_progress_percent(project, args.progress)

    scenario = _scenario_from_args(args)
    if scenario is None and args.use_saved_scenario:
        store = _saved_scenario_store("forecast")
        try:
            scenario = store.load(project.id) if store is not None else None
        except StoreUnavailableError as e:
            print(f"[forecast] Could not load saved scenario: {e}")
            scenario = None
        if scenario is not None:
            print(f"[forecast] Using saved scenario: {scenario.to_dict()}")

    if scenario is not None:
        comparison = compare_scenario(
            project, progress, scenario, seed=args.seed, iterations=args.iterations
        )
        result = comparison.scenario
        print(f"[forecast] Scenario impact: {comparison.impact_days:+.1f} days")
    else:
        result = forecast_project(
            project, progress, seed=args.seed, iterations=args.iterations
        )

    print(json.dumps(result.to_dict(), indent=2))


def cmd_forecast_batch(args: argparse.Namespace) -> None:
    """
    Forecast every project in a CSV and print one summary line per project.
    """
    csv_path = Path(args.csv_path).resolve()
    if not csv_path.exists():
        raise SystemExit(f"[forecast-batch] CSV file not found: {csv_path}")

    print(f"[forecast-batch] Loading projects from {csv_path} ...")
    rows = load_project_rows_from_csv(str(csv_path))
    print(f"[forecast-batch] Loaded {len(rows)} projects.")

    requests = [
        ForecastRequest(project=p, progress_percent=resolve_progress_percent(p, progress))
        for p, progress in rows
    ]
    store = _saved_scenario_store("forecast-batch") if args.use_saved_scenarios else None
    outcomes = forecast_many(
        requests, seed=args.seed, store=store, max_workers=args.workers
    )

    for outcome in outcomes:
        if not outcome.ok:
            print(f"[forecast-batch] {outcome.project_id}: FAILED ({outcome.error})")
            continue
        r = outcome.result
        print(
            f"[forecast-batch] {r.project_id}: "
            f"{r.realistic_date.date().isoformat()} "
            f"(P10 {r.optimistic_date.date().isoformat()}, "
            f"P90 {r.pessimistic_date.date().isoformat()}) "
            f"confidence {r.confidence_percent}% "
            f"risk {r.risk_level.value} "
            f"{r.days_diff_from_deadline:+d}d"
        )


def cmd_scenario(args: argparse.Namespace) -> None:
    """
    Save, load, clear or list what-if scenarios.
    """
    store = build_scenario_store(get_config())

    if args.action == "list":
        scenarios = {pid: s.to_dict() for pid, s in store.load_all().items()}
        print(json.dumps(scenarios, indent=2, sort_keys=True))
        return

    if not args.project_id:
        raise SystemExit(f"[scenario] {args.action} needs a project id")

    if args.action == "save":
        scenario = Scenario(
            team_size_delta=args.team_size_delta or 0,
            scope_change_percent=args.scope_change or 0,
        )
        store.save(args.project_id, scenario)
        print(f"[scenario] Saved {args.project_id}: {scenario.to_dict()}")
    elif args.action == "load":
        scenario = store.load(args.project_id)
        if scenario is None:
            print(f"[scenario] No saved scenario for {args.project_id}")
        else:
            print(json.dumps(scenario.to_dict(), indent=2))
    elif args.action == "clear":
        store.clear(args.project_id)
        print(f"[scenario] Cleared {args.project_id}")


# --- Main --------------------------------------------------------------------


def _add_scenario_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--team-size-delta",
        type=int,
        default=None,
        help="Team members added (each adds 50%% throughput).",
    )
    parser.add_argument(
        "--scope-change",
        type=int,
        default=None,
        help="Scope change in percent, -50..50 (negative = reduced scope).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Completion Forecast CLI – forecast projects, manage what-if scenarios."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # forecast
    fc_p = subparsers.add_parser(
        "forecast",
        help="Forecast the completion date of one project.",
    )
    fc_p.add_argument("--project-id", required=True)
    fc_p.add_argument("--deadline", required=True, help="ISO date, e.g. 2025-09-30.")
    fc_p.add_argument(
        "--progress",
        type=float,
        default=None,
        help="Current progress percent (default: estimated from --status).",
    )
    fc_p.add_argument("--created-at", default=None, help="ISO datetime the project started.")
    fc_p.add_argument("--status", default=ProjectStatus.ACTIVE.value)
    fc_p.add_argument("--name", default=None)
    fc_p.add_argument("--iterations", type=int, default=None)
    fc_p.add_argument("--seed", type=int, default=None)
    fc_p.add_argument(
        "--use-saved-scenario",
        action="store_true",
        help="Apply the project's saved scenario when none is given.",
    )
    _add_scenario_args(fc_p)
    fc_p.set_defaults(func=cmd_forecast)

    # forecast-batch
    batch_p = subparsers.add_parser(
        "forecast-batch",
        help="Forecast every project in a CSV (id, name, deadline, status, created_at, progress_percent).",
    )
    batch_p.add_argument("csv_path")
    batch_p.add_argument("--seed", type=int, default=None)
    batch_p.add_argument("--workers", type=int, default=None)
    batch_p.add_argument(
        "--use-saved-scenarios",
        action="store_true",
        help="Apply saved scenarios to the projects that have one.",
    )
    batch_p.set_defaults(func=cmd_forecast_batch)

    # scenario
    sc_p = subparsers.add_parser(
        "scenario",
        help="Save, load, clear or list what-if scenarios.",
    )
    sc_p.add_argument("action", choices=["save", "load", "clear", "list"])
    sc_p.add_argument("project_id", nargs="?", default=None)
    _add_scenario_args(sc_p)
    sc_p.set_defaults(func=cmd_scenario)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=get_config().log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except ForecastError as e:
        raise SystemExit(f"[{args.command}] {e}")


if __name__ == "__main__":
    main()
