"""Dashboard aggregates over maintenance occurrences."""

from __future__ import annotations

from datetime import datetime

from dateutil.relativedelta import relativedelta

from .. import models, schemas
from ..store import ScheduleStore
from .recurrence import as_utc

# purpose: on-time vs overdue completion trend and this month's maintenance counts
# status: active
# depends_on: backend.planpm.store

PM_TYPES = {"Preventative Maintenance", "PM"}
AMC_TYPES = {"AMC"}


def _month_start(value: datetime) -> datetime:
    return as_utc(value).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _month_bounds(value: datetime) -> tuple[datetime, datetime]:
    start = _month_start(value)
    return start, start + relativedelta(months=1) - relativedelta(microseconds=1)


def classify_completion(schedule: models.MaintenanceSchedule, now: datetime) -> str | None:
    """Return ``"on_time"``, ``"overdue"`` or None when the occurrence does
    not count yet (open and not past due)."""

    due = as_utc(schedule.due_date)
    if schedule.status == models.STATUS_COMPLETED:
        if schedule.completed_date is None:
            return "on_time"
        return "on_time" if as_utc(schedule.completed_date) <= due else "overdue"
    if due < as_utc(now):
        return "overdue"
    return None


def completion_trend(
    store: ScheduleStore, now: datetime, *, months: int = 6
) -> list[schemas.CompletionTrendPoint]:
    """Per due-date month, oldest first, ending with the month of ``now``."""

    points: list[schemas.CompletionTrendPoint] = []
    for offset in range(months - 1, -1, -1):
        start, end = _month_bounds(as_utc(now) - relativedelta(months=offset))
        on_time = overdue = 0
        for schedule in store.list_schedules(due_from=start, due_to=end):
            verdict = classify_completion(schedule, now)
            if verdict == "on_time":
                on_time += 1
            elif verdict == "overdue":
                overdue += 1
        points.append(
            schemas.CompletionTrendPoint(
                month=start.strftime("%Y-%m"),
                label=start.strftime("%b"),
                on_time=on_time,
                overdue=overdue,
            )
        )
    return points


def monthly_counts(store: ScheduleStore, now: datetime) -> schemas.MonthlyCounts:
    start, end = _month_bounds(now)
    pm = amc = 0
    for schedule in store.list_schedules(due_from=start, due_to=end):
        if schedule.maintenance_type in PM_TYPES:
            pm += 1
        elif schedule.maintenance_type in AMC_TYPES:
            amc += 1
    calibration = len(store.list_results_completed(start, end, result_type="calibration"))
    return schemas.MonthlyCounts(pm=pm, amc=amc, calibration=calibration, total=pm + amc)
