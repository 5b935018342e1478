"""Regeneration of occurrence windows after edits and completions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .. import eventlog, models, schemas
from ..store import ScheduleStore
from .recurrence import in_offset, next_schedule_date
from .schedule_generator import generate_window

# purpose: replace the pending tail when a configuration changes and roll the
#   one-year horizon forward when the last occurrence of a window completes
# status: active
# depends_on: backend.planpm.services.schedule_generator

logger = logging.getLogger(__name__)

SKIP_NOT_LAST = "not_last_of_window"
SKIP_NO_CONFIGURATION = "configuration_not_found"
SKIP_INACTIVE = "configuration_inactive"

# configuration fields whose change invalidates the pending tail
REGENERATING_FIELDS = frozenset(
    {
        "frequency",
        "schedule_date",
        "utc_offset_minutes",
        "maintenance_by",
        "vendor_name",
        "vendor_contact",
        "template_id",
    }
)


@dataclass(slots=True)
class RegenerationOutcome:
    regenerated: bool
    deleted: int = 0
    created: list[models.MaintenanceSchedule] = field(default_factory=list)
    reason: str | None = None

    def to_schema(self) -> schemas.RegenerationOut:
        return schemas.RegenerationOut(
            regenerated=self.regenerated,
            deleted=self.deleted,
            created=len(self.created),
            reason=self.reason,
        )


def pending_occurrences(
    store: ScheduleStore, configuration: models.MaintenanceConfiguration
) -> list[models.MaintenanceSchedule]:
    """Non-completed occurrences owned by ``configuration``, legacy rows included."""

    owned = store.list_schedules(
        configuration_id=configuration.id, exclude_status=models.STATUS_COMPLETED
    )
    legacy = [
        schedule
        for schedule in store.list_schedules(
            instrument_id=configuration.instrument_id,
            maintenance_type=configuration.maintenance_type,
            exclude_status=models.STATUS_COMPLETED,
        )
        if schedule.configuration_id is None
    ]
    return owned + legacy


def on_configuration_edited(
    store: ScheduleStore, configuration: models.MaintenanceConfiguration
) -> RegenerationOutcome:
    """Delete the pending tail and generate afresh from the current values.

    Both steps share one store transaction; if generation fails the deleted
    occurrences are restored.
    """

    with store.transaction():
        store.lock_configuration(configuration.id)
        pending = pending_occurrences(store, configuration)
        deleted = store.delete_schedules(pending)
        if not configuration.is_active:
            logger.info(
                "Configuration %s is inactive, removed %d pending occurrence(s)",
                configuration.id,
                deleted,
            )
            eventlog.record_schedule_event(
                store,
                eventlog.SCHEDULE_REGENERATED,
                {"deleted": deleted, "created": 0, "active": False},
                instrument_id=configuration.instrument_id,
                configuration_id=configuration.id,
            )
            return RegenerationOutcome(regenerated=False, deleted=deleted, reason=SKIP_INACTIVE)
        outcome = generate_window(
            store, configuration, event_type=eventlog.SCHEDULE_REGENERATED
        )

    logger.info(
        "Regenerated configuration %s: %d deleted, %d created",
        configuration.id,
        deleted,
        len(outcome.created),
    )
    return RegenerationOutcome(regenerated=True, deleted=deleted, created=outcome.created)


def _owning_configuration(
    store: ScheduleStore, schedule: models.MaintenanceSchedule
) -> models.MaintenanceConfiguration | None:
    if schedule.configuration_id is not None:
        return store.get_configuration(schedule.configuration_id)
    return store.find_configuration(schedule.instrument_id, schedule.maintenance_type)


def _skip(store: ScheduleStore, schedule: models.MaintenanceSchedule, reason: str) -> RegenerationOutcome:
    logger.warning(
        "Skipping horizon extension after occurrence %s (%s)", schedule.id, reason
    )
    eventlog.record_schedule_event(
        store,
        eventlog.SCHEDULE_REGENERATION_SKIPPED,
        {"reason": reason, "maintenance_type": schedule.maintenance_type},
        instrument_id=schedule.instrument_id,
        configuration_id=schedule.configuration_id,
        schedule_id=schedule.id,
    )
    return RegenerationOutcome(regenerated=False, reason=reason)


def on_schedule_completed(
    store: ScheduleStore, schedule: models.MaintenanceSchedule
) -> RegenerationOutcome:
    """Generate the next window when the last occurrence of one completes.

    The next anchor is one period after the completion date, or after the
    due date when no completion date was recorded. A missing or inactive
    configuration skips extension without raising.
    """

    if not schedule.is_last_of_window:
        return RegenerationOutcome(regenerated=False, reason=SKIP_NOT_LAST)

    configuration = _owning_configuration(store, schedule)
    if configuration is None:
        return _skip(store, schedule, SKIP_NO_CONFIGURATION)
    if not configuration.is_active:
        return _skip(store, schedule, SKIP_INACTIVE)

    # step from the completion day as seen at the anchor offset
    basis = in_offset(schedule.completed_date or schedule.due_date, configuration.utc_offset_minutes)
    anchor = next_schedule_date(basis, configuration.frequency)
    outcome = generate_window(
        store, configuration, anchor=anchor, event_type=eventlog.SCHEDULE_EXTENDED
    )
    logger.info(
        "Extended configuration %s from %s with %d occurrence(s)",
        configuration.id,
        anchor.date().isoformat(),
        len(outcome.created),
    )
    return RegenerationOutcome(regenerated=True, created=outcome.created)
