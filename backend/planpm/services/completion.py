"""Completion evaluation for maintenance occurrences."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from .. import models, schemas
from .errors import InvalidTestData
from .recurrence import as_utc

# purpose: derive per-row verdicts, per-section completeness and the display
#   status of an occurrence from partially filled test data
# status: active
# depends_on: backend.planpm.schemas.TestSection

STATUS_PENDING = "Pending"
STATUS_OVERDUE = "Overdue"
STATUS_PARTIAL = "Partially Completed"
STATUS_COMPLETED = "Completed"

_SECTIONS = TypeAdapter(list[schemas.TestSection])


@dataclass(slots=True)
class StatusEvaluation:
    status: str
    completed_sections: int = 0
    total_sections: int = 0
    has_result: bool = False

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETED


def parse_test_data(raw: Any) -> list[schemas.TestSection]:
    """Validate stored or submitted test data into sections."""

    if raw is None:
        return []
    try:
        return _SECTIONS.validate_python(raw)
    except ValidationError as exc:
        raise InvalidTestData(f"malformed test data: {exc.error_count()} error(s)") from exc


def dump_test_data(sections: Iterable[schemas.TestSection]) -> list[dict[str, Any]]:
    return [section.model_dump(mode="json") for section in sections]


def evaluate_row(
    section_type: str, row: schemas.TestRow, tolerance: Optional[float] = None
) -> schemas.TestRow:
    """Return ``row`` with ``error`` and ``passed`` recomputed.

    Checklist rows keep the user-set ``passed``. For every other type a row
    without a measured value has no verdict.
    """

    if section_type == "checklist":
        return row.model_copy(update={"error": None})
    if row.measured is None:
        return row.model_copy(update={"error": None, "passed": None})

    if section_type == "tolerance" and row.reference is not None:
        error = round(row.measured - row.reference, 6)
        allowed = tolerance if tolerance is not None else 0.0
        return row.model_copy(update={"error": error, "passed": abs(error) <= allowed})
    if section_type == "range":
        low = row.min if row.min is not None else float("-inf")
        high = row.max if row.max is not None else float("inf")
        return row.model_copy(update={"error": None, "passed": low <= row.measured <= high})
    # simple rows, and tolerance rows without a reference, only need a value
    return row.model_copy(update={"error": None, "passed": True})


def evaluate_section(section: schemas.TestSection) -> schemas.TestSection:
    rows = [evaluate_row(section.type, row, section.tolerance) for row in section.rows]
    return section.model_copy(update={"rows": rows})


def section_is_complete(section: schemas.TestSection) -> bool:
    if not section.rows:
        return True
    if section.type == "checklist":
        return all(row.passed is True for row in section.rows)
    return all(row.measured is not None for row in section.rows)


def count_complete_sections(sections: list[schemas.TestSection]) -> tuple[int, int]:
    completed = sum(1 for section in sections if section_is_complete(section))
    return completed, len(sections)


def evaluate_status(
    schedule: models.MaintenanceSchedule,
    result: models.MaintenanceResult | None,
    now: datetime,
) -> StatusEvaluation:
    """Derive the display status of ``schedule`` given its result, if any."""

    if result is None:
        overdue = as_utc(schedule.due_date) < as_utc(now)
        return StatusEvaluation(STATUS_OVERDUE if overdue else STATUS_PENDING)

    sections = parse_test_data(result.test_data)
    if sections:
        completed, total = count_complete_sections(sections)
        if completed == 0:
            status = STATUS_PENDING
        elif completed < total:
            status = STATUS_PARTIAL
        else:
            status = STATUS_COMPLETED
        return StatusEvaluation(status, completed, total, has_result=True)

    if schedule.status == models.STATUS_COMPLETED:
        return StatusEvaluation(STATUS_COMPLETED, has_result=True)
    return StatusEvaluation(STATUS_PARTIAL, has_result=True)


def summarize_result(sections: list[schemas.TestSection]) -> schemas.ResultSummary | None:
    """Overall pass/fail across rows that carry a verdict."""

    verdicts = [row.passed for section in sections for row in section.rows if row.passed is not None]
    if not verdicts:
        return None
    passed = sum(1 for verdict in verdicts if verdict)
    return schemas.ResultSummary(
        status="pass" if passed == len(verdicts) else "fail",
        passed=passed,
        total=len(verdicts),
    )
