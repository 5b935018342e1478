"""Result recording for maintenance occurrences."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from .. import eventlog, models, schemas
from ..store import ScheduleStore
from . import completion, regeneration
from .errors import InvalidTestData, ScheduleNotFound
from .recurrence import as_utc

# purpose: upsert the single result of an occurrence section by section and
#   advance the occurrence lifecycle when its test data becomes complete
# status: active
# depends_on: backend.planpm.services.completion, backend.planpm.services.regeneration

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResultOutcome:
    schedule: models.MaintenanceSchedule
    result: models.MaintenanceResult
    evaluation: completion.StatusEvaluation
    extension: regeneration.RegenerationOutcome | None = None


def _load_schedule(store: ScheduleStore, schedule_id: UUID) -> models.MaintenanceSchedule:
    schedule = store.get_schedule(schedule_id)
    if schedule is None:
        raise ScheduleNotFound(f"Maintenance occurrence {schedule_id} not found")
    return schedule


def _template_sections(
    store: ScheduleStore, template_id: UUID | None
) -> list[schemas.TestSection]:
    if template_id is None:
        return []
    template = store.get_template(template_id)
    if template is None:
        return []
    return completion.parse_test_data(template.structure)


def _merge_section(
    sections: list[schemas.TestSection], section: schemas.TestSection
) -> list[schemas.TestSection]:
    merged = list(sections)
    for index, existing in enumerate(merged):
        if existing.id == section.id:
            merged[index] = section
            return merged
    merged.append(section)
    return merged


def _advance(
    store: ScheduleStore,
    schedule: models.MaintenanceSchedule,
    result: models.MaintenanceResult,
    evaluation: completion.StatusEvaluation,
) -> regeneration.RegenerationOutcome | None:
    """Move the stored lifecycle forward; never backward from Completed."""

    if schedule.status == models.STATUS_COMPLETED:
        return None
    if not evaluation.is_complete:
        if schedule.status == models.STATUS_SCHEDULED:
            schedule.status = models.STATUS_IN_PROGRESS
            store.save_schedule(schedule)
        return None

    schedule.status = models.STATUS_COMPLETED
    schedule.completed_date = result.completed_date
    schedule.completion_notes = result.notes or ""
    store.save_schedule(schedule)
    logger.info("Occurrence %s completed on %s", schedule.id, as_utc(result.completed_date).date())
    eventlog.record_schedule_event(
        store,
        eventlog.SCHEDULE_COMPLETED,
        {
            "completed_date": result.completed_date,
            "completed_sections": evaluation.completed_sections,
            "total_sections": evaluation.total_sections,
            "is_last_of_window": schedule.is_last_of_window,
        },
        instrument_id=schedule.instrument_id,
        configuration_id=schedule.configuration_id,
        schedule_id=schedule.id,
    )
    return regeneration.on_schedule_completed(store, schedule)


def save_section(
    store: ScheduleStore,
    schedule_id: UUID,
    payload: schemas.SectionSave,
    *,
    now: datetime,
) -> ResultOutcome:
    """Store one evaluated section in the occurrence's result.

    The first save creates the result, seeded with the template structure
    so unsaved sections count as incomplete. Each save moves the result's
    completion date to the one submitted.
    """

    schedule = _load_schedule(store, schedule_id)
    result = store.get_result(schedule.id)
    template_id = payload.template_id or (result.template_id if result else None) or schedule.template_id

    if result is None:
        sections = _template_sections(store, template_id)
    else:
        sections = completion.parse_test_data(result.test_data)
    sections = _merge_section(sections, completion.evaluate_section(payload.section))

    if result is None:
        result = models.MaintenanceResult(
            schedule_id=schedule.id,
            instrument_id=schedule.instrument_id,
        )
    result.completed_date = as_utc(payload.completed_date)
    result.result_type = payload.result_type
    if payload.notes is not None:
        result.notes = payload.notes
    result.template_id = template_id
    result.test_data = completion.dump_test_data(sections)
    store.save_result(result)

    evaluation = completion.evaluate_status(schedule, result, now)
    extension = _advance(store, schedule, result, evaluation)
    logger.debug(
        "Saved section %s on occurrence %s (%d/%d complete)",
        payload.section.id,
        schedule.id,
        evaluation.completed_sections,
        evaluation.total_sections,
    )
    return ResultOutcome(schedule, result, evaluation, extension)


def complete_schedule(
    store: ScheduleStore,
    schedule_id: UUID,
    payload: schemas.ScheduleCompletion,
    *,
    now: datetime,
) -> ResultOutcome:
    """Record the final result of an occurrence and mark it Completed.

    Submitted test data must have every section complete. Completing an
    occurrence that is already Completed updates its result only.
    """

    schedule = _load_schedule(store, schedule_id)
    result = store.get_result(schedule.id)
    if payload.test_data is not None:
        sections = [completion.evaluate_section(section) for section in payload.test_data]
    elif result is not None:
        sections = completion.parse_test_data(result.test_data)
    else:
        sections = []
    completed, total = completion.count_complete_sections(sections)
    if completed < total:
        raise InvalidTestData(
            f"{total - completed} of {total} section(s) are incomplete; save them as progress instead"
        )

    if result is None:
        result = models.MaintenanceResult(
            schedule_id=schedule.id,
            instrument_id=schedule.instrument_id,
        )
    result.completed_date = as_utc(payload.completed_date)
    result.result_type = payload.result_type
    result.notes = payload.notes or ""
    result.document_url = payload.document_url
    result.template_id = payload.template_id or result.template_id or schedule.template_id
    if payload.test_data is not None:
        result.test_data = completion.dump_test_data(sections) or None
    store.save_result(result)

    evaluation = completion.evaluate_status(schedule, result, now)
    extension = None
    if schedule.status != models.STATUS_COMPLETED:
        evaluation = completion.StatusEvaluation(
            completion.STATUS_COMPLETED,
            evaluation.completed_sections,
            evaluation.total_sections,
            has_result=True,
        )
        extension = _advance(store, schedule, result, evaluation)
    return ResultOutcome(schedule, result, evaluation, extension)


def result_view(result: models.MaintenanceResult) -> schemas.MaintenanceResultOut:
    sections = completion.parse_test_data(result.test_data)
    out = schemas.MaintenanceResultOut.model_validate(result)
    out.summary = completion.summarize_result(sections)
    return out
