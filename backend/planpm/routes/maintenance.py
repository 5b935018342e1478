"""Maintenance configuration, occurrence and result API routes."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import reconciliation, regeneration, results, schedule_generator
from ..services.errors import ConfigurationNotFound, InvalidTestData, ScheduleError, ScheduleNotFound
from ..services.recurrence import as_utc, offset_minutes
from ..store import DuplicateRecordError, SqlScheduleStore, StoreError

# purpose: expose the schedule engine to the hosting application
# status: active
# depends_on: backend.planpm.services.*, backend.planpm.store.SqlScheduleStore

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])

UPCOMING_WINDOW_DAYS = int(os.getenv("UPCOMING_WINDOW_DAYS", "30"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _http_error(db: Session, exc: Exception) -> HTTPException:
    db.rollback()
    if isinstance(exc, (ScheduleNotFound, ConfigurationNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTestData):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, DuplicateRecordError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _differs(current, value) -> bool:
    if isinstance(current, datetime) and isinstance(value, datetime):
        return as_utc(current) != as_utc(value)
    return current != value


def _get_configuration(db: Session, configuration_id: UUID) -> models.MaintenanceConfiguration:
    configuration = db.get(models.MaintenanceConfiguration, configuration_id)
    if not configuration:
        raise HTTPException(status_code=404, detail="Maintenance configuration not found")
    return configuration


def _section_save_out(outcome: results.ResultOutcome) -> schemas.SectionSaveOut:
    return schemas.SectionSaveOut(
        result=results.result_view(outcome.result),
        schedule=schemas.MaintenanceScheduleOut.model_validate(outcome.schedule),
        maintenance_status=outcome.evaluation.status,
        total_sections=outcome.evaluation.total_sections,
        completed_sections=outcome.evaluation.completed_sections,
        regeneration=outcome.extension.to_schema() if outcome.extension else None,
    )


@router.post(
    "/configurations",
    response_model=schemas.ConfigurationSaveOut,
    status_code=status.HTTP_201_CREATED,
)
def create_configuration(
    payload: schemas.MaintenanceConfigurationCreate,
    db: Session = Depends(get_db),
):
    if not db.get(models.Instrument, payload.instrument_id):
        raise HTTPException(status_code=404, detail="Instrument not found")
    if payload.template_id and not db.get(models.TestTemplate, payload.template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    store = SqlScheduleStore(db)
    try:
        values = payload.model_dump()
        values["utc_offset_minutes"] = offset_minutes(payload.schedule_date)
        values["schedule_date"] = as_utc(payload.schedule_date)
        configuration = store.add_configuration(models.MaintenanceConfiguration(**values))
        generation = None
        if configuration.is_active:
            generation = schedule_generator.generate_window(store, configuration).to_schema()
        db.commit()
        db.refresh(configuration)
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    return schemas.ConfigurationSaveOut(
        configuration=schemas.MaintenanceConfigurationOut.model_validate(configuration),
        generation=generation,
    )


@router.get("/configurations", response_model=list[schemas.MaintenanceConfigurationOut])
def list_configurations(
    instrument_id: UUID | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        return store.list_configurations(instrument_id=instrument_id, active_only=active_only)
    except StoreError as exc:
        raise _http_error(db, exc) from exc


@router.get("/configurations/{configuration_id}", response_model=schemas.MaintenanceConfigurationOut)
def get_configuration(configuration_id: UUID, db: Session = Depends(get_db)):
    return _get_configuration(db, configuration_id)


@router.put("/configurations/{configuration_id}", response_model=schemas.ConfigurationSaveOut)
def update_configuration(
    configuration_id: UUID,
    payload: schemas.MaintenanceConfigurationUpdate,
    db: Session = Depends(get_db),
):
    configuration = _get_configuration(db, configuration_id)
    if payload.template_id and not db.get(models.TestTemplate, payload.template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    changes = payload.model_dump(exclude_unset=True)
    if "schedule_date" in changes and changes["schedule_date"] is not None:
        changes["utc_offset_minutes"] = offset_minutes(changes["schedule_date"])
        changes["schedule_date"] = as_utc(changes["schedule_date"])

    party_fields = ("maintenance_by", "vendor_name", "vendor_contact")
    try:
        party = schemas.ResponsibleParty.model_validate(
            {field: changes.get(field, getattr(configuration, field)) for field in party_fields}
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
    changes.update(party.model_dump())

    nullable = {"vendor_name", "vendor_contact", "template_id"}
    changed = {
        field
        for field, value in changes.items()
        if (value is not None or field in nullable) and _differs(getattr(configuration, field), value)
    }
    for field in changed:
        setattr(configuration, field, changes[field])

    store = SqlScheduleStore(db)
    outcome = None
    try:
        if changed & (regeneration.REGENERATING_FIELDS | {"is_active"}):
            outcome = regeneration.on_configuration_edited(store, configuration)
        db.commit()
        db.refresh(configuration)
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    return schemas.ConfigurationSaveOut(
        configuration=schemas.MaintenanceConfigurationOut.model_validate(configuration),
        regeneration=outcome.to_schema() if outcome else None,
    )


@router.delete("/configurations/{configuration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_configuration(configuration_id: UUID, db: Session = Depends(get_db)):
    configuration = _get_configuration(db, configuration_id)
    store = SqlScheduleStore(db)
    try:
        # completed history stays, detached from the configuration
        store.delete_schedules(regeneration.pending_occurrences(store, configuration))
        db.delete(configuration)
        db.commit()
    except StoreError as exc:
        raise _http_error(db, exc) from exc


@router.post("/configurations/{configuration_id}/generate", response_model=schemas.GenerationOut)
def generate_configuration_window(configuration_id: UUID, db: Session = Depends(get_db)):
    configuration = _get_configuration(db, configuration_id)
    if not configuration.is_active:
        raise HTTPException(status_code=400, detail="Configuration is inactive")
    store = SqlScheduleStore(db)
    try:
        outcome = schedule_generator.generate_window(store, configuration)
        db.commit()
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    return outcome.to_schema()


@router.get("/schedules/upcoming", response_model=list[schemas.MaintenanceScheduleView])
def list_upcoming(
    days: int = Query(UPCOMING_WINDOW_DAYS, ge=1, le=366),
    include_virtual: bool = False,
    status_filter: schemas.StatusFilter = Query("all", alias="status"),
    frequency: schemas.Frequency | None = None,
    instrument_id: UUID | None = None,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        return reconciliation.list_upcoming(
            store,
            _now(),
            days=days,
            include_virtual=include_virtual,
            status_filter=status_filter,
            frequency_filter=frequency,
            instrument_id=instrument_id,
        )
    except StoreError as exc:
        raise _http_error(db, exc) from exc


@router.get("/schedules", response_model=list[schemas.MaintenanceScheduleOut])
def list_schedules(
    instrument_id: UUID | None = None,
    maintenance_type: str | None = None,
    configuration_id: UUID | None = None,
    schedule_status: schemas.ScheduleStatus | None = Query(None, alias="status"),
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        return store.list_schedules(
            instrument_id=instrument_id,
            maintenance_type=maintenance_type,
            configuration_id=configuration_id,
            status=schedule_status,
            due_from=due_from,
            due_to=due_to,
        )
    except StoreError as exc:
        raise _http_error(db, exc) from exc


@router.post("/schedules/materialize", response_model=schemas.MaintenanceScheduleOut)
def materialize_schedule(
    payload: schemas.VirtualScheduleMaterialize,
    response: Response,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        schedule, created = reconciliation.materialize_virtual(
            store, payload.configuration_id, payload.due_date
        )
        db.commit()
        db.refresh(schedule)
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return schedule


@router.get("/schedules/{schedule_id}", response_model=schemas.MaintenanceScheduleView)
def get_schedule(schedule_id: UUID, db: Session = Depends(get_db)):
    schedule = db.get(models.MaintenanceSchedule, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Maintenance occurrence not found")
    store = SqlScheduleStore(db)
    try:
        return reconciliation.evaluate_schedule(store, schedule, _now())
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc


@router.post("/schedules/{schedule_id}/sections", response_model=schemas.SectionSaveOut)
def save_section(
    schedule_id: UUID,
    payload: schemas.SectionSave,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        outcome = results.save_section(store, schedule_id, payload, now=_now())
        db.commit()
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    return _section_save_out(outcome)


@router.post("/schedules/{schedule_id}/complete", response_model=schemas.SectionSaveOut)
def complete_schedule(
    schedule_id: UUID,
    payload: schemas.ScheduleCompletion,
    db: Session = Depends(get_db),
):
    store = SqlScheduleStore(db)
    try:
        outcome = results.complete_schedule(store, schedule_id, payload, now=_now())
        db.commit()
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
    return _section_save_out(outcome)


@router.get("/schedules/{schedule_id}/result", response_model=schemas.MaintenanceResultOut)
def get_schedule_result(schedule_id: UUID, db: Session = Depends(get_db)):
    store = SqlScheduleStore(db)
    try:
        result = store.get_result(schedule_id)
        if result is None:
            raise HTTPException(status_code=404, detail="No result recorded for this occurrence")
        return results.result_view(result)
    except (ScheduleError, StoreError) as exc:
        raise _http_error(db, exc) from exc
