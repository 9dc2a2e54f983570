"""
Data schemas for the completion-forecast engine.

Defines:
- Project / ProjectStatus: the read-only input supplied by the project repository
- ProgressSnapshot: an optional real progress reading
- VelocityPoint / VelocityMetrics: the derived velocity signal
- Scenario: a validated what-if adjustment
- SimulationResult / ForecastResult: simulation output and the final forecast
- RiskLevel
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import InvalidInputError

SCOPE_CHANGE_LIMIT = 50


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    PAUSED = "Paused"
    IN_PROGRESS = "InProgress"

    @classmethod
    def parse(cls, value: Any) -> "ProjectStatus":
        """
        Accept the repository's spellings ("In Progress", "in_progress",
        "InProgress", ...) case-insensitively.
        """
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace(" ", "").replace("_", "")
        for status in cls:
            if status.value.lower() == key:
                return status
        raise InvalidInputError(f"Unknown project status: {value!r}")


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def parse_date(value: Any, field: str = "deadline") -> date:
    """Parse an ISO calendar date (a full ISO datetime is truncated to its date)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise InvalidInputError(f"Unparsable {field}: {value!r}") from exc


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_datetime(value: Any, field: str = "created_at") -> datetime:
    """
    Parse an ISO datetime. A trailing "Z" is accepted and naive values are
    taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value or "").strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidInputError(f"Unparsable {field}: {value!r}") from exc
    return ensure_aware(parsed)


@dataclass(frozen=True)
class Project:
    """
    A project as seen by the forecaster. Never written back to.

    created_at is optional; the velocity tracker assumes the project is
    30 days old when it is missing.
    """

    id: str
    deadline: date
    status: ProjectStatus = ProjectStatus.ACTIVE
    name: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Project":
        """
        Build a Project from a repository record with keys
        id, name, deadline, status and (optional) createdAt / created_at.
        """
        project_id = str(record.get("id") or "").strip()
        if not project_id:
            raise InvalidInputError("Project record is missing an id.")
        created_raw = record.get("created_at", record.get("createdAt"))
        return cls(
            id=project_id,
            name=str(record.get("name") or record.get("title") or ""),
            deadline=parse_date(record.get("deadline")),
            status=ProjectStatus.parse(record.get("status") or ProjectStatus.ACTIVE),
            created_at=parse_datetime(created_raw) if created_raw else None,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """A recorded progress reading, used instead of the synthetic history."""

    timestamp: datetime
    progress_percent: float


@dataclass(frozen=True)
class VelocityPoint:
    timestamp: datetime
    velocity: float
    progress: float


@dataclass(frozen=True)
class VelocityMetrics:
    current_velocity: float
    average_velocity: float
    velocity_std_dev: float
    velocity_trend_percent: float
    history: Tuple[VelocityPoint, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_velocity": self.current_velocity,
            "average_velocity": self.average_velocity,
            "velocity_std_dev": self.velocity_std_dev,
            "velocity_trend_percent": self.velocity_trend_percent,
            "history": [
                {
                    "timestamp": p.timestamp.isoformat(),
                    "velocity": p.velocity,
                    "progress": p.progress,
                }
                for p in self.history
            ],
        }


@dataclass(frozen=True)
class Scenario:
    """
    A what-if adjustment for one project.

    team_size_delta: people added to the team (>= 0).
    scope_change_percent: scope added (positive) or removed (negative),
    within [-50, 50].
    """

    team_size_delta: int = 0
    scope_change_percent: int = 0

    def __post_init__(self) -> None:
        for name in ("team_size_delta", "scope_change_percent"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInputError(f"{name} must be an integer, got {value!r}")
        if self.team_size_delta < 0:
            raise InvalidInputError(
                f"team_size_delta must be >= 0, got {self.team_size_delta}"
            )
        if abs(self.scope_change_percent) > SCOPE_CHANGE_LIMIT:
            raise InvalidInputError(
                "scope_change_percent must be within "
                f"[-{SCOPE_CHANGE_LIMIT}, {SCOPE_CHANGE_LIMIT}], "
                f"got {self.scope_change_percent}"
            )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Scenario":
        # values are taken as stored; __post_init__ rejects non-integers
        if not isinstance(data, Mapping):
            raise InvalidInputError(f"Invalid scenario payload: {data!r}")
        return cls(
            team_size_delta=data.get("team_size_delta", 0),
            scope_change_percent=data.get("scope_change_percent", 0),
        )


@dataclass(frozen=True)
class SimulationResult:
    optimistic_days: float
    realistic_days: float
    pessimistic_days: float
    mean_days: float
    std_dev_days: float
    confidence_percent: int
    iterations: int


@dataclass(frozen=True)
class ForecastResult:
    """
    Completion forecast for one project.

    days_diff_from_deadline is positive when the realistic date leaves a
    buffer before the deadline.
    """

    project_id: str
    progress_percent: float
    adjusted_progress: float
    adjusted_velocity: float
    optimistic_date: datetime
    realistic_date: datetime
    pessimistic_date: datetime
    deadline: date
    confidence_percent: int
    days_diff_from_deadline: int
    risk_level: RiskLevel
    on_track: bool
    has_scenario: bool
    velocity: VelocityMetrics
    simulation: SimulationResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "progress_percent": self.progress_percent,
            "adjusted_progress": self.adjusted_progress,
            "adjusted_velocity": self.adjusted_velocity,
            "optimistic_date": self.optimistic_date.isoformat(),
            "realistic_date": self.realistic_date.isoformat(),
            "pessimistic_date": self.pessimistic_date.isoformat(),
            "deadline": self.deadline.isoformat(),
            "confidence_percent": self.confidence_percent,
            "days_diff_from_deadline": self.days_diff_from_deadline,
            "risk_level": self.risk_level.value,
            "on_track": self.on_track,
            "has_scenario": self.has_scenario,
            "velocity": self.velocity.to_dict(),
        }
