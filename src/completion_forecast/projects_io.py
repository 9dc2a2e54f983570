"""
Data I/O utilities for batch forecasting.

Loads project rows from a local CSV (an export of the project repository).
"""

from __future__ import annotations

import csv
from typing import List, Optional, Tuple

from .errors import InvalidInputError
from .schema import Project


def load_project_rows_from_csv(path: str) -> List[Tuple[Project, Optional[float]]]:
    """
    Load projects and their progress from a CSV file.

    Expected columns (case-sensitive):
    - Required: id, deadline
    - Optional: name, status, created_at, progress_percent

    A blank progress_percent is returned as None so the caller can fall
    back to task completion or the status heuristic. Extra columns are
    ignored.
    """
    rows: List[Tuple[Project, Optional[float]]] = []
    with open(path, mode="r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            if not any(isinstance(v, str) and v.strip() for v in row.values()):
                continue
            try:
                project = Project.from_record(row)
            except InvalidInputError as exc:
                raise InvalidInputError(f"{path}:{line_no}: {exc}") from exc

            raw_progress = (row.get("progress_percent") or "").strip()
            progress: Optional[float] = None
            if raw_progress:
                try:
                    progress = float(raw_progress)
                except ValueError as exc:
                    raise InvalidInputError(
                        f"{path}:{line_no}: progress_percent is not a number: {raw_progress!r}"
                    ) from exc
            rows.append((project, progress))
    return rows
