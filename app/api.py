"""
FastAPI app for the completion-forecast engine.

Endpoints:
- POST   /forecast
- GET    /scenarios
- GET    /scenarios/{project_id}
- PUT    /scenarios/{project_id}
- DELETE /scenarios/{project_id}

This is what you deploy to Azure App Service / Container Apps.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

# --- Make src/ importable ----------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from completion_forecast.config import get_config
from completion_forecast.errors import InvalidInputError, StoreUnavailableError
from completion_forecast.forecast import forecast_project
from completion_forecast.scenario_store import ScenarioStore, build_scenario_store
from completion_forecast.schema import (
    Project,
    ProjectStatus,
    Scenario,
    parse_date,
    parse_datetime,
)

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=get_config().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Completion Forecast API")


# --- Helpers -----------------------------------------------------------------

_STORE: Optional[ScenarioStore] = None


def get_scenario_store() -> ScenarioStore:
    """
    Return the process-wide scenario store, building it on first use.

    Tests replace it through set_scenario_store().
    """
    global _STORE
    if _STORE is None:
        _STORE = build_scenario_store(get_config())
    return _STORE


def set_scenario_store(store: Optional[ScenarioStore]) -> None:
    global _STORE
    _STORE = store


def _stored_scenario(project_id: str) -> Optional[Scenario]:
    """Saved scenario for a project; storage trouble means "no scenario"."""
    try:
        return get_scenario_store().load(project_id)
    except StoreUnavailableError as e:
        logger.warning("Forecasting %s without its saved scenario: %s", project_id, e)
        return None


# --- Request / Response schemas ----------------------------------------------


class ScenarioPayload(BaseModel):
    team_size_delta: int = 0
    scope_change_percent: int = 0

    def to_scenario(self) -> Scenario:
        return Scenario(
            team_size_delta=self.team_size_delta,
            scope_change_percent=self.scope_change_percent,
        )


class ForecastPayload(BaseModel):
    """
    Input payload for /forecast.

    deadline is an ISO date, created_at an ISO datetime. When scenario is
    omitted the project's saved scenario (if any) is applied; set
    use_saved_scenario to false to forecast the baseline. as_of pins
    "now" (ISO datetime) so a seeded request reproduces the same dates.
    """

    project_id: str
    progress_percent: float
    deadline: str
    created_at: Optional[str] = None
    status: str = ProjectStatus.ACTIVE.value
    name: str = ""
    scenario: Optional[ScenarioPayload] = None
    use_saved_scenario: bool = True
    iterations: Optional[int] = None
    seed: Optional[int] = None
    as_of: Optional[str] = None


class VelocityPointResponse(BaseModel):
    timestamp: str
    velocity: float
    progress: float


class VelocityResponse(BaseModel):
    current_velocity: float
    average_velocity: float
    velocity_std_dev: float
    velocity_trend_percent: float
    history: List[VelocityPointResponse]


class ForecastResponse(BaseModel):
    project_id: str
    progress_percent: float
    adjusted_progress: float
    adjusted_velocity: float
    optimistic_date: str
    realistic_date: str
    pessimistic_date: str
    deadline: str
    confidence_percent: int
    days_diff_from_deadline: int
    risk_level: str
    on_track: bool
    has_scenario: bool
    velocity: VelocityResponse


class ScenarioResponse(BaseModel):
    project_id: str
    scenario: ScenarioPayload


# --- Endpoints ---------------------------------------------------------------


@app.post("/forecast", response_model=ForecastResponse)
def forecast(payload: ForecastPayload) -> ForecastResponse:
    """
    Forecast the completion of one project.

    Body example:
    {
      "project_id": "PRJ-7",
      "progress_percent": 40,
      "deadline": "2025-09-30",
      "created_at": "2025-05-12T09:00:00Z",
      "scenario": {"team_size_delta": 1, "scope_change_percent": -10}
    }
    """
    try:
        project = Project(
            id=payload.project_id,
            name=payload.name,
            deadline=parse_date(payload.deadline),
            status=ProjectStatus.parse(payload.status),
            created_at=parse_datetime(payload.created_at) if payload.created_at else None,
        )
        if payload.scenario is not None:
            scenario = payload.scenario.to_scenario()
        elif payload.use_saved_scenario:
            scenario = _stored_scenario(project.id)
        else:
            scenario = None

        result = forecast_project(
            project,
            payload.progress_percent,
            now=parse_datetime(payload.as_of, field="as_of") if payload.as_of else None,
            scenario=scenario,
            iterations=payload.iterations,
            seed=payload.seed,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ForecastResponse(**result.to_dict())


@app.get("/scenarios", response_model=Dict[str, ScenarioPayload])
def list_scenarios() -> Dict[str, ScenarioPayload]:
    try:
        scenarios = get_scenario_store().load_all()
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {pid: ScenarioPayload(**s.to_dict()) for pid, s in scenarios.items()}


@app.get("/scenarios/{project_id}", response_model=ScenarioResponse)
def get_scenario(project_id: str) -> ScenarioResponse:
    try:
        scenario = get_scenario_store().load(project_id)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if scenario is None:
        raise HTTPException(status_code=404, detail=f"No saved scenario for {project_id}")
    return ScenarioResponse(project_id=project_id, scenario=ScenarioPayload(**scenario.to_dict()))


@app.put("/scenarios/{project_id}", response_model=ScenarioResponse)
def save_scenario(project_id: str, payload: ScenarioPayload) -> ScenarioResponse:
    try:
        scenario = payload.to_scenario()
        get_scenario_store().save(project_id, scenario)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return ScenarioResponse(project_id=project_id, scenario=payload)


@app.delete("/scenarios/{project_id}")
def clear_scenario(project_id: str) -> dict:
    try:
        get_scenario_store().clear(project_id)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "ok", "project_id": project_id}


# Convenience for local dev:
# uvicorn app.api:app --reload
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.api:app", host="0.0.0.0", port=8000, reload=True)
