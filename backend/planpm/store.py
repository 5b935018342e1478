"""Record-store ports used by the schedule engine."""

from __future__ import annotations

import copy
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, Protocol, Sequence
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .services.recurrence import as_utc

# purpose: keep the schedule engine independent of the session so it can run
#   against the database or an in-memory store in tests
# status: active
# depends_on: backend.planpm.models

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Read or write failure against the record store."""


class DuplicateRecordError(StoreError):
    """A uniqueness constraint (occurrence day, result per occurrence) was hit."""


class ScheduleStore(Protocol):
    def get_template(self, template_id: UUID) -> models.TestTemplate | None: ...

    def add_configuration(
        self, configuration: models.MaintenanceConfiguration
    ) -> models.MaintenanceConfiguration: ...

    def get_configuration(self, configuration_id: UUID) -> models.MaintenanceConfiguration | None: ...

    def find_configuration(
        self, instrument_id: UUID, maintenance_type: str
    ) -> models.MaintenanceConfiguration | None: ...

    def list_configurations(
        self, *, instrument_id: UUID | None = None, active_only: bool = False
    ) -> list[models.MaintenanceConfiguration]: ...

    def lock_configuration(self, configuration_id: UUID) -> None: ...

    def get_schedule(self, schedule_id: UUID) -> models.MaintenanceSchedule | None: ...

    def list_schedules(
        self,
        *,
        instrument_id: UUID | None = None,
        maintenance_type: str | None = None,
        configuration_id: UUID | None = None,
        status: str | None = None,
        exclude_status: str | None = None,
        due_from: datetime | None = None,
        due_to: datetime | None = None,
    ) -> list[models.MaintenanceSchedule]: ...

    def add_schedules(
        self, schedules: Sequence[models.MaintenanceSchedule]
    ) -> list[models.MaintenanceSchedule]: ...

    def save_schedule(self, schedule: models.MaintenanceSchedule) -> models.MaintenanceSchedule: ...

    def delete_schedules(self, schedules: Iterable[models.MaintenanceSchedule]) -> int: ...

    def get_result(self, schedule_id: UUID) -> models.MaintenanceResult | None: ...

    def list_results(self, schedule_ids: Iterable[UUID]) -> dict[UUID, models.MaintenanceResult]: ...

    def list_results_completed(
        self, completed_from: datetime, completed_to: datetime, *, result_type: str | None = None
    ) -> list[models.MaintenanceResult]: ...

    def save_result(self, result: models.MaintenanceResult) -> models.MaintenanceResult: ...

    def add_event(self, event: models.ScheduleEvent) -> models.ScheduleEvent: ...

    def transaction(self): ...


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        logger.warning("Uniqueness violation while %s: %s", action, exc.orig)
        raise DuplicateRecordError(f"duplicate record while {action}") from exc
    except SQLAlchemyError as exc:
        logger.error("Store failure while %s: %s", action, exc)
        raise StoreError(f"store failure while {action}") from exc


class SqlScheduleStore:
    """ScheduleStore backed by a SQLAlchemy session.

    Writes are flushed, never committed; the caller owns the unit of work
    the way route handlers own ``db.commit()``.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_template(self, template_id):
        with _translate_errors("loading template"):
            return self.db.get(models.TestTemplate, template_id)

    def add_configuration(self, configuration):
        with _translate_errors("adding configuration"):
            self.db.add(configuration)
            self.db.flush()
        return configuration

    def get_configuration(self, configuration_id):
        with _translate_errors("loading configuration"):
            return self.db.get(models.MaintenanceConfiguration, configuration_id)

    def find_configuration(self, instrument_id, maintenance_type):
        with _translate_errors("matching configuration"):
            return (
                self.db.query(models.MaintenanceConfiguration)
                .filter(
                    models.MaintenanceConfiguration.instrument_id == instrument_id,
                    models.MaintenanceConfiguration.maintenance_type == maintenance_type,
                )
                .order_by(models.MaintenanceConfiguration.created_at.desc())
                .first()
            )

    def list_configurations(self, *, instrument_id=None, active_only=False):
        query = self.db.query(models.MaintenanceConfiguration)
        if instrument_id is not None:
            query = query.filter(models.MaintenanceConfiguration.instrument_id == instrument_id)
        if active_only:
            query = query.filter(models.MaintenanceConfiguration.is_active.is_(True))
        with _translate_errors("listing configurations"):
            return query.order_by(models.MaintenanceConfiguration.created_at.asc()).all()

    def lock_configuration(self, configuration_id):
        # FOR UPDATE is dropped by dialects without row locks (SQLite)
        with _translate_errors("locking configuration"):
            (
                self.db.query(models.MaintenanceConfiguration.id)
                .filter(models.MaintenanceConfiguration.id == configuration_id)
                .with_for_update()
                .first()
            )

    def get_schedule(self, schedule_id):
        with _translate_errors("loading schedule"):
            return self.db.get(models.MaintenanceSchedule, schedule_id)

    def list_schedules(
        self,
        *,
        instrument_id=None,
        maintenance_type=None,
        configuration_id=None,
        status=None,
        exclude_status=None,
        due_from=None,
        due_to=None,
    ):
        Schedule = models.MaintenanceSchedule
        query = self.db.query(Schedule)
        if instrument_id is not None:
            query = query.filter(Schedule.instrument_id == instrument_id)
        if maintenance_type is not None:
            query = query.filter(Schedule.maintenance_type == maintenance_type)
        if configuration_id is not None:
            query = query.filter(Schedule.configuration_id == configuration_id)
        if status is not None:
            query = query.filter(Schedule.status == status)
        if exclude_status is not None:
            query = query.filter(Schedule.status != exclude_status)
        if due_from is not None:
            query = query.filter(Schedule.due_date >= as_utc(due_from))
        if due_to is not None:
            query = query.filter(Schedule.due_date <= as_utc(due_to))
        with _translate_errors("listing schedules"):
            return query.order_by(Schedule.due_date.asc()).all()

    def add_schedules(self, schedules):
        schedules = list(schedules)
        with _translate_errors("inserting schedules"):
            with self.db.begin_nested():
                self.db.add_all(schedules)
                self.db.flush()
        return schedules

    def save_schedule(self, schedule):
        with _translate_errors("saving schedule"):
            self.db.add(schedule)
            self.db.flush()
        return schedule

    def delete_schedules(self, schedules):
        count = 0
        with _translate_errors("deleting schedules"):
            for schedule in schedules:
                self.db.delete(schedule)
                count += 1
            self.db.flush()
        return count

    def get_result(self, schedule_id):
        with _translate_errors("loading result"):
            return (
                self.db.query(models.MaintenanceResult)
                .filter(models.MaintenanceResult.schedule_id == schedule_id)
                .one_or_none()
            )

    def list_results(self, schedule_ids):
        ids = list(schedule_ids)
        if not ids:
            return {}
        with _translate_errors("listing results"):
            rows = (
                self.db.query(models.MaintenanceResult)
                .filter(models.MaintenanceResult.schedule_id.in_(ids))
                .all()
            )
        return {row.schedule_id: row for row in rows}

    def list_results_completed(self, completed_from, completed_to, *, result_type=None):
        Result = models.MaintenanceResult
        query = self.db.query(Result).filter(
            Result.completed_date >= as_utc(completed_from),
            Result.completed_date <= as_utc(completed_to),
        )
        if result_type is not None:
            query = query.filter(Result.result_type == result_type)
        with _translate_errors("listing completed results"):
            return query.all()

    def save_result(self, result):
        with _translate_errors("saving result"):
            with self.db.begin_nested():
                self.db.add(result)
                self.db.flush()
        return result

    def add_event(self, event):
        with _translate_errors("recording event"):
            self.db.add(event)
            self.db.flush()
        return event

    @contextmanager
    def transaction(self):
        """Group several writes; everything inside rolls back together."""

        with _translate_errors("running transaction"):
            with self.db.begin_nested():
                yield self


def _column_values(record) -> dict:
    mapper = sa.inspect(type(record))
    return {attr.key: copy.deepcopy(getattr(record, attr.key)) for attr in mapper.column_attrs}


def _snapshot(records: dict) -> dict:
    return {key: (record, _column_values(record)) for key, record in records.items()}


def _restore(snapshot: dict) -> dict:
    # values are written back onto the original objects
    for record, values in snapshot.values():
        for key, value in values.items():
            setattr(record, key, value)
    return {key: record for key, (record, _values) in snapshot.items()}


class InMemoryScheduleStore:
    """Dictionary-backed ScheduleStore enforcing the same uniqueness rules
    as the database schema."""

    def __init__(self):
        self.templates: dict[UUID, models.TestTemplate] = {}
        self.configurations: dict[UUID, models.MaintenanceConfiguration] = {}
        self.schedules: dict[UUID, models.MaintenanceSchedule] = {}
        self.results: dict[UUID, models.MaintenanceResult] = {}
        self.events: list[models.ScheduleEvent] = []

    @staticmethod
    def _stamp(record):
        if record.id is None:
            record.id = uuid.uuid4()
        if getattr(record, "created_at", None) is None:
            record.created_at = datetime.now(timezone.utc)
        return record

    def add_template(self, template):
        self._stamp(template)
        self.templates[template.id] = template
        return template

    def get_template(self, template_id):
        return self.templates.get(template_id)

    def add_configuration(self, configuration):
        self._stamp(configuration)
        if configuration.is_active is None:
            configuration.is_active = True
        self.configurations[configuration.id] = configuration
        return configuration

    def get_configuration(self, configuration_id):
        return self.configurations.get(configuration_id)

    def find_configuration(self, instrument_id, maintenance_type):
        matches = [
            config
            for config in self.configurations.values()
            if config.instrument_id == instrument_id and config.maintenance_type == maintenance_type
        ]
        return matches[-1] if matches else None

    def list_configurations(self, *, instrument_id=None, active_only=False):
        return [
            config
            for config in self.configurations.values()
            if (instrument_id is None or config.instrument_id == instrument_id)
            and (not active_only or config.is_active)
        ]

    def lock_configuration(self, configuration_id):
        return None

    def get_schedule(self, schedule_id):
        return self.schedules.get(schedule_id)

    def list_schedules(
        self,
        *,
        instrument_id=None,
        maintenance_type=None,
        configuration_id=None,
        status=None,
        exclude_status=None,
        due_from=None,
        due_to=None,
    ):
        selected = []
        for schedule in self.schedules.values():
            if instrument_id is not None and schedule.instrument_id != instrument_id:
                continue
            if maintenance_type is not None and schedule.maintenance_type != maintenance_type:
                continue
            if configuration_id is not None and schedule.configuration_id != configuration_id:
                continue
            if status is not None and schedule.status != status:
                continue
            if exclude_status is not None and schedule.status == exclude_status:
                continue
            due = as_utc(schedule.due_date)
            if due_from is not None and due < as_utc(due_from):
                continue
            if due_to is not None and due > as_utc(due_to):
                continue
            selected.append(schedule)
        return sorted(selected, key=lambda s: as_utc(s.due_date))

    def add_schedules(self, schedules):
        schedules = list(schedules)
        taken = {
            (s.configuration_id, s.due_day)
            for s in self.schedules.values()
            if s.configuration_id is not None
        }
        for schedule in schedules:
            if schedule.configuration_id is None:
                continue
            key = (schedule.configuration_id, schedule.due_day)
            if key in taken:
                raise DuplicateRecordError(f"duplicate schedule for {key}")
            taken.add(key)
        for schedule in schedules:
            self._stamp(schedule)
            self.schedules[schedule.id] = schedule
        return schedules

    def save_schedule(self, schedule):
        self._stamp(schedule)
        self.schedules[schedule.id] = schedule
        return schedule

    def delete_schedules(self, schedules):
        count = 0
        for schedule in list(schedules):
            if self.schedules.pop(schedule.id, None) is not None:
                self.results.pop(schedule.id, None)
                count += 1
        return count

    def get_result(self, schedule_id):
        return self.results.get(schedule_id)

    def list_results(self, schedule_ids):
        return {sid: self.results[sid] for sid in schedule_ids if sid in self.results}

    def list_results_completed(self, completed_from, completed_to, *, result_type=None):
        low, high = as_utc(completed_from), as_utc(completed_to)
        return [
            result
            for result in self.results.values()
            if low <= as_utc(result.completed_date) <= high
            and (result_type is None or result.result_type == result_type)
        ]

    def save_result(self, result):
        existing = self.results.get(result.schedule_id)
        if existing is not None and existing is not result:
            raise DuplicateRecordError(f"result already recorded for schedule {result.schedule_id}")
        self._stamp(result)
        self.results[result.schedule_id] = result
        return result

    def add_event(self, event):
        self._stamp(event)
        self.events.append(event)
        return event

    @contextmanager
    def transaction(self):
        configurations = _snapshot(self.configurations)
        schedules = _snapshot(self.schedules)
        results = _snapshot(self.results)
        events = list(self.events)
        try:
            yield self
        except Exception:
            self.configurations = _restore(configurations)
            self.schedules = _restore(schedules)
            self.results = _restore(results)
            self.events = events
            raise
