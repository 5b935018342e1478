"""Utilities for recording schedule lifecycle events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from . import models

# purpose: shareable helper for persisting schedule engine events across services
# inputs: record store, event type, owning identifiers, payload
# outputs: ScheduleEvent rows kept for audit and replay
# status: active

SCHEDULE_GENERATED = "schedule.generated"
SCHEDULE_REGENERATED = "schedule.regenerated"
SCHEDULE_EXTENDED = "schedule.extended"
SCHEDULE_COMPLETED = "schedule.completed"
SCHEDULE_REGENERATION_SKIPPED = "schedule.regeneration_skipped"
SCHEDULE_MATERIALIZED = "schedule.materialized"


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def record_schedule_event(
    store,
    event_type: str,
    payload: dict[str, Any] | None = None,
    *,
    instrument_id: UUID | None = None,
    configuration_id: UUID | None = None,
    schedule_id: UUID | None = None,
) -> models.ScheduleEvent:
    """Persist a structured schedule event through the record store."""

    payload_dict = payload if isinstance(payload, dict) else {}
    event = models.ScheduleEvent(
        event_type=event_type,
        instrument_id=instrument_id,
        configuration_id=configuration_id,
        schedule_id=schedule_id,
        payload=_jsonable(payload_dict),
        created_at=datetime.now(timezone.utc),
    )
    return store.add_event(event)
