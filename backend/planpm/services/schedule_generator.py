"""Occurrence generation for maintenance configurations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from .. import eventlog, models, schemas
from ..store import DuplicateRecordError, ScheduleStore
from .recurrence import (
    as_utc,
    calendar_day,
    in_offset,
    next_schedule_date,
    normalize_frequency,
    occurrences_per_year,
    window_end,
)

# purpose: expand a maintenance configuration into one year of dated occurrences
#   without duplicating days that already hold an occurrence
# status: active
# depends_on: backend.planpm.services.recurrence, backend.planpm.store

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WindowPlan:
    drafts: list[models.MaintenanceSchedule] = field(default_factory=list)
    iterations: int = 0
    skipped_days: list[date] = field(default_factory=list)


@dataclass(slots=True)
class GenerationOutcome:
    configuration_id: UUID
    anchor: datetime
    created: list[models.MaintenanceSchedule] = field(default_factory=list)
    iterations: int = 0
    skipped_days: list[date] = field(default_factory=list)
    retried: bool = False

    def to_schema(self) -> schemas.GenerationOut:
        return schemas.GenerationOut(
            configuration_id=self.configuration_id,
            created=len(self.created),
            iterations=self.iterations,
            schedule_ids=[schedule.id for schedule in self.created],
        )


def build_occurrence(
    configuration: models.MaintenanceConfiguration,
    due_date: datetime,
    *,
    is_last_of_window: bool = False,
) -> models.MaintenanceSchedule:
    """Unsaved occurrence carrying the configuration's type, template and
    responsible party.

    ``due_date`` is stored in UTC; ``due_day`` keeps the calendar day it was
    walked on.
    """

    schedule = models.MaintenanceSchedule(
        instrument_id=configuration.instrument_id,
        configuration_id=configuration.id,
        maintenance_type=configuration.maintenance_type,
        description=f"Scheduled {configuration.maintenance_type}",
        due_date=as_utc(due_date),
        status=models.STATUS_SCHEDULED,
        template_id=configuration.template_id,
        maintenance_by=configuration.maintenance_by or models.MAINTENANCE_BY_SELF,
        vendor_name=configuration.vendor_name,
        vendor_contact=configuration.vendor_contact,
        is_last_of_window=is_last_of_window,
    )
    schedule.due_day = calendar_day(due_date)
    return schedule


def configuration_anchor(configuration: models.MaintenanceConfiguration) -> datetime:
    """The configuration's anchor at the offset it was entered in."""

    return in_offset(configuration.schedule_date, configuration.utc_offset_minutes)


def plan_window(
    configuration: models.MaintenanceConfiguration,
    anchor: datetime,
    existing_days: Iterable[date],
) -> WindowPlan:
    """Walk forward from ``anchor`` and draft the occurrences still missing.

    The walk steps calendar dates at the anchor's own offset. Days in
    ``existing_days`` are skipped and do not count toward the frequency
    target. The walk stops once the target is reached, the date passes one
    year after the anchor, or ``2 * target`` steps were taken.
    """

    target = occurrences_per_year(configuration.frequency)
    max_iterations = target * 2
    start = anchor if anchor.tzinfo is not None else as_utc(anchor)
    end = window_end(start)
    taken = set(existing_days)

    plan = WindowPlan()
    current = start
    while len(plan.drafts) < target and plan.iterations < max_iterations:
        plan.iterations += 1
        day = calendar_day(current)
        if day in taken:
            plan.skipped_days.append(day)
            current = next_schedule_date(current, configuration.frequency)
            continue
        if current > end:
            break
        plan.drafts.append(build_occurrence(configuration, current))
        taken.add(day)
        current = next_schedule_date(current, configuration.frequency)

    if plan.drafts:
        plan.drafts[-1].is_last_of_window = True
    return plan


def existing_days(
    store: ScheduleStore, configuration: models.MaintenanceConfiguration
) -> set[date]:
    """Days already holding an occurrence for ``configuration``.

    Completed occurrences count. Legacy rows without a configuration id are
    matched on instrument and maintenance type.
    """

    days = {schedule.due_day for schedule in store.list_schedules(configuration_id=configuration.id)}
    for schedule in store.list_schedules(
        instrument_id=configuration.instrument_id,
        maintenance_type=configuration.maintenance_type,
    ):
        if schedule.configuration_id is None:
            days.add(schedule.due_day)
    return days


def _assign_last_of_window(
    store: ScheduleStore,
    configuration: models.MaintenanceConfiguration,
    drafts: list[models.MaintenanceSchedule],
) -> None:
    # only the latest open occurrence of the configuration carries the flag
    pending = [
        schedule
        for schedule in store.list_schedules(configuration_id=configuration.id)
        if schedule.status != models.STATUS_COMPLETED
    ]
    final = max(pending + drafts, key=lambda schedule: as_utc(schedule.due_date))
    for draft in drafts:
        draft.is_last_of_window = draft is final
    for schedule in pending:
        if schedule.is_last_of_window != (schedule is final):
            schedule.is_last_of_window = schedule is final
            store.save_schedule(schedule)


def generate_window(
    store: ScheduleStore,
    configuration: models.MaintenanceConfiguration,
    *,
    anchor: datetime | None = None,
    event_type: str = eventlog.SCHEDULE_GENERATED,
) -> GenerationOutcome:
    """Persist the occurrences needed to fill one window for ``configuration``.

    Generation holds the configuration lock. A uniqueness violation means a
    concurrent generator won the race for a day; existing days are re-read
    and the window planned once more.
    """

    anchor = anchor or configuration_anchor(configuration)
    if normalize_frequency(configuration.frequency) is None:
        logger.warning(
            "Configuration %s has legacy frequency %r", configuration.id, configuration.frequency
        )

    store.lock_configuration(configuration.id)
    outcome = GenerationOutcome(configuration_id=configuration.id, anchor=anchor)
    plan = plan_window(configuration, anchor, existing_days(store, configuration))
    try:
        if plan.drafts:
            _assign_last_of_window(store, configuration, plan.drafts)
        store.add_schedules(plan.drafts)
    except DuplicateRecordError:
        logger.info("Occurrence day taken concurrently for configuration %s, replanning", configuration.id)
        outcome.retried = True
        plan = plan_window(configuration, anchor, existing_days(store, configuration))
        if plan.drafts:
            _assign_last_of_window(store, configuration, plan.drafts)
        store.add_schedules(plan.drafts)

    outcome.created = plan.drafts
    outcome.iterations = plan.iterations
    outcome.skipped_days = plan.skipped_days
    logger.info(
        "Generated %d %s occurrence(s) for configuration %s from %s in %d step(s)",
        len(outcome.created),
        configuration.frequency,
        configuration.id,
        anchor.date().isoformat(),
        outcome.iterations,
    )
    eventlog.record_schedule_event(
        store,
        event_type,
        {
            "anchor": anchor,
            "frequency": configuration.frequency,
            "created": len(outcome.created),
            "iterations": outcome.iterations,
            "skipped_days": [day.isoformat() for day in outcome.skipped_days],
            "retried": outcome.retried,
        },
        instrument_id=configuration.instrument_id,
        configuration_id=configuration.id,
    )
    return outcome
