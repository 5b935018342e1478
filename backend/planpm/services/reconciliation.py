"""Merging persisted and virtual occurrences into one logical list."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable
from uuid import UUID

from .. import eventlog, models, schemas
from ..store import DuplicateRecordError, ScheduleStore
from . import completion
from .errors import ConfigurationNotFound
from .recurrence import as_utc, calendar_day, in_offset, next_schedule_date, normalize_frequency, utc_day
from .schedule_generator import build_occurrence, configuration_anchor

# purpose: evaluate, deduplicate and filter occurrences for display, and turn
#   virtual occurrences into persisted ones when a user acts on them
# status: active
# depends_on: backend.planpm.services.completion, backend.planpm.services.schedule_generator

logger = logging.getLogger(__name__)

_DEFAULT_FREQUENCY = "Monthly"

_STATUS_FILTERS = {
    "all": None,
    "pending": {completion.STATUS_PENDING, completion.STATUS_PARTIAL},
    "overdue": {completion.STATUS_OVERDUE},
}


def _occurrence_key(view: schemas.MaintenanceScheduleView) -> tuple[UUID, str, date]:
    return view.instrument_id, view.maintenance_type, utc_day(view.due_date)


def _priority(view: schemas.MaintenanceScheduleView) -> int:
    if view.maintenance_status == completion.STATUS_COMPLETED:
        return 4
    if view.maintenance_status == completion.STATUS_PARTIAL:
        return 3
    if view.has_result:
        return 2
    return 1


def to_view(
    schedule: models.MaintenanceSchedule,
    evaluation: completion.StatusEvaluation,
    configuration: models.MaintenanceConfiguration | None = None,
) -> schemas.MaintenanceScheduleView:
    """Display form of a persisted occurrence.

    Responsible-party fields missing on the occurrence are filled from its
    configuration.
    """

    return schemas.MaintenanceScheduleView(
        id=schedule.id,
        instrument_id=schedule.instrument_id,
        configuration_id=schedule.configuration_id,
        maintenance_type=schedule.maintenance_type,
        due_date=as_utc(schedule.due_date),
        status=schedule.status,
        maintenance_status=evaluation.status,
        total_sections=evaluation.total_sections,
        completed_sections=evaluation.completed_sections,
        has_result=evaluation.has_result,
        is_virtual=False,
        is_last_of_window=bool(schedule.is_last_of_window),
        frequency=configuration.frequency if configuration else _DEFAULT_FREQUENCY,
        template_id=schedule.template_id or (configuration.template_id if configuration else None),
        maintenance_by=schedule.maintenance_by
        or (configuration.maintenance_by if configuration else models.MAINTENANCE_BY_SELF),
        vendor_name=schedule.vendor_name or (configuration.vendor_name if configuration else None),
        vendor_contact=schedule.vendor_contact
        or (configuration.vendor_contact if configuration else None),
    )


def reconcile(
    views: Iterable[schemas.MaintenanceScheduleView],
) -> list[schemas.MaintenanceScheduleView]:
    """Collapse occurrences sharing (instrument, type, UTC day) into one.

    A persisted occurrence always beats a virtual one. Between persisted
    occurrences the more advanced completion state wins; ties keep the
    first seen.
    """

    merged: dict[tuple[UUID, str, date], schemas.MaintenanceScheduleView] = {}
    for view in views:
        key = _occurrence_key(view)
        current = merged.get(key)
        if current is None:
            merged[key] = view
            continue
        if current.is_virtual and not view.is_virtual:
            merged[key] = view
            continue
        if not current.is_virtual and not view.is_virtual and _priority(view) > _priority(current):
            merged[key] = view
    return sorted(merged.values(), key=lambda item: item.due_date)


def _covered(
    configuration: models.MaintenanceConfiguration,
    persisted: list[models.MaintenanceSchedule],
) -> bool:
    for schedule in persisted:
        if schedule.configuration_id == configuration.id:
            return True
        if (
            schedule.configuration_id is None
            and schedule.instrument_id == configuration.instrument_id
            and schedule.maintenance_type == configuration.maintenance_type
        ):
            return True
    return False


def expand_virtual(
    configurations: Iterable[models.MaintenanceConfiguration],
    persisted: list[models.MaintenanceSchedule],
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> list[schemas.MaintenanceScheduleView]:
    """Compute occurrences on the fly for active configurations that have no
    persisted occurrence inside the window."""

    start = as_utc(window_start)
    end = as_utc(window_end)
    views: list[schemas.MaintenanceScheduleView] = []
    for configuration in configurations:
        if not configuration.is_active or _covered(configuration, persisted):
            continue
        current = configuration_anchor(configuration)
        while current <= end:
            if current >= start:
                views.append(
                    schemas.MaintenanceScheduleView(
                        instrument_id=configuration.instrument_id,
                        configuration_id=configuration.id,
                        maintenance_type=configuration.maintenance_type,
                        due_date=current,
                        status=models.STATUS_SCHEDULED,
                        maintenance_status=completion.STATUS_OVERDUE
                        if current < as_utc(now)
                        else completion.STATUS_PENDING,
                        is_virtual=True,
                        frequency=configuration.frequency,
                        template_id=configuration.template_id,
                        maintenance_by=configuration.maintenance_by or models.MAINTENANCE_BY_SELF,
                        vendor_name=configuration.vendor_name,
                        vendor_contact=configuration.vendor_contact,
                    )
                )
            current = next_schedule_date(current, configuration.frequency)
    return views


def materialize_virtual(
    store: ScheduleStore,
    configuration_id: UUID,
    due_date: datetime,
) -> tuple[models.MaintenanceSchedule, bool]:
    """Persist a virtual occurrence as a Scheduled one.

    Returns the occurrence and whether it was created; an occurrence already
    persisted on that day is returned unchanged.
    """

    configuration = store.get_configuration(configuration_id)
    if configuration is None:
        raise ConfigurationNotFound(f"Maintenance configuration {configuration_id} not found")

    due_date = in_offset(due_date, configuration.utc_offset_minutes)
    day = calendar_day(due_date)

    def _existing() -> models.MaintenanceSchedule | None:
        for schedule in store.list_schedules(
            instrument_id=configuration.instrument_id,
            maintenance_type=configuration.maintenance_type,
        ):
            if schedule.due_day == day and schedule.configuration_id in (None, configuration.id):
                return schedule
        return None

    found = _existing()
    if found is not None:
        return found, False

    schedule = build_occurrence(configuration, due_date)
    try:
        store.add_schedules([schedule])
    except DuplicateRecordError:
        found = _existing()
        if found is None:
            raise
        return found, False

    logger.info("Materialized virtual occurrence %s for configuration %s", day, configuration.id)
    eventlog.record_schedule_event(
        store,
        eventlog.SCHEDULE_MATERIALIZED,
        {"due_date": schedule.due_date},
        instrument_id=configuration.instrument_id,
        configuration_id=configuration.id,
        schedule_id=schedule.id,
    )
    return schedule, True


def _configuration_lookup(configurations: list[models.MaintenanceConfiguration]):
    by_id = {config.id: config for config in configurations}
    by_type = {(config.instrument_id, config.maintenance_type): config for config in configurations}

    def lookup(schedule: models.MaintenanceSchedule) -> models.MaintenanceConfiguration | None:
        if schedule.configuration_id is not None and schedule.configuration_id in by_id:
            return by_id[schedule.configuration_id]
        return by_type.get((schedule.instrument_id, schedule.maintenance_type))

    return lookup


def evaluate_schedule(
    store: ScheduleStore, schedule: models.MaintenanceSchedule, now: datetime
) -> schemas.MaintenanceScheduleView:
    result = store.get_result(schedule.id)
    configuration = None
    if schedule.configuration_id is not None:
        configuration = store.get_configuration(schedule.configuration_id)
    if configuration is None:
        configuration = store.find_configuration(schedule.instrument_id, schedule.maintenance_type)
    return to_view(schedule, completion.evaluate_status(schedule, result, now), configuration)


def list_upcoming(
    store: ScheduleStore,
    now: datetime,
    *,
    days: int = 30,
    include_virtual: bool = False,
    status_filter: str = "all",
    frequency_filter: str | None = None,
    instrument_id: UUID | None = None,
) -> list[schemas.MaintenanceScheduleView]:
    """Occurrences due within ``days`` either side of ``now``, evaluated,
    deduplicated, filtered and sorted by due date."""

    if status_filter not in _STATUS_FILTERS:
        raise ValueError(f"unknown status filter {status_filter!r}")

    now = as_utc(now)
    start = now - timedelta(days=days)
    end = now + timedelta(days=days)
    persisted = store.list_schedules(instrument_id=instrument_id, due_from=start, due_to=end)
    results = store.list_results(schedule.id for schedule in persisted)
    configurations = store.list_configurations(instrument_id=instrument_id)
    lookup = _configuration_lookup(configurations)

    views = [
        to_view(
            schedule,
            completion.evaluate_status(schedule, results.get(schedule.id), now),
            lookup(schedule),
        )
        for schedule in persisted
    ]
    if include_virtual:
        views.extend(expand_virtual(configurations, persisted, start, end, now))

    merged = reconcile(views)
    wanted = _STATUS_FILTERS[status_filter]
    if wanted is not None:
        merged = [view for view in merged if view.maintenance_status in wanted]
    if frequency_filter:
        frequency = normalize_frequency(frequency_filter) or frequency_filter
        merged = [
            view
            for view in merged
            if (normalize_frequency(view.frequency) or view.frequency) == frequency
        ]
    logger.debug("Upcoming list: %d persisted, %d after reconciliation", len(persisted), len(merged))
    return merged
