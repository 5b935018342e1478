import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates

from .database import Base

# Stored lifecycle of an occurrence. Display states (Pending, Overdue,
# Partially Completed) are derived by services.completion and never stored.
STATUS_SCHEDULED = "Scheduled"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"
SCHEDULE_STATUSES = (STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_COMPLETED)

MAINTENANCE_BY_SELF = "self"
MAINTENANCE_BY_VENDOR = "vendor"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _utc_day(value: datetime | None) -> date | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


class Instrument(Base):
    __tablename__ = "instruments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    eqp_id = Column(String, nullable=False)
    instrument_type = Column(String, nullable=False)
    make = Column(String, default="")
    model = Column(String, default="")
    serial_number = Column(String, default="")
    location = Column(String, default="")
    status = Column(String, default="Operational")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    configurations = relationship(
        "MaintenanceConfiguration",
        back_populates="instrument",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    schedules = relationship(
        "MaintenanceSchedule",
        back_populates="instrument",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class TestTemplate(Base):
    __tablename__ = "test_templates"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    structure = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class MaintenanceConfiguration(Base):
    __tablename__ = "maintenance_configurations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    instrument_id = Column(
        UUID(as_uuid=True),
        ForeignKey("instruments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    maintenance_type = Column(String, nullable=False)
    frequency = Column(String, nullable=False)
    schedule_date = Column(DateTime(timezone=True), nullable=False)
    # offset the anchor was entered in; occurrences step calendar days there
    utc_offset_minutes = Column(Integer, default=0, nullable=False)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("test_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    maintenance_by = Column(String, default=MAINTENANCE_BY_SELF, nullable=False)
    vendor_name = Column(String, nullable=True)
    vendor_contact = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    instrument = relationship("Instrument", back_populates="configurations")


class MaintenanceSchedule(Base):
    """One concrete dated occurrence generated from a configuration."""

    __tablename__ = "maintenance_schedules"
    __table_args__ = (
        UniqueConstraint("configuration_id", "due_day", name="uq_schedule_configuration_day"),
        Index("ix_schedules_instrument_type", "instrument_id", "maintenance_type"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    instrument_id = Column(
        UUID(as_uuid=True),
        ForeignKey("instruments.id", ondelete="CASCADE"),
        nullable=False,
    )
    configuration_id = Column(
        UUID(as_uuid=True),
        ForeignKey("maintenance_configurations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    maintenance_type = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    due_day = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=STATUS_SCHEDULED, index=True)
    notes = Column(Text, nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    completion_notes = Column(Text, nullable=True)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("test_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    maintenance_by = Column(String, default=MAINTENANCE_BY_SELF, nullable=False)
    vendor_name = Column(String, nullable=True)
    vendor_contact = Column(String, nullable=True)
    is_last_of_window = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    instrument = relationship("Instrument", back_populates="schedules")
    result = relationship(
        "MaintenanceResult",
        back_populates="schedule",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("due_date")
    def _sync_due_day(self, _key, value):
        self.due_day = _utc_day(value)
        return value


class MaintenanceResult(Base):
    __tablename__ = "maintenance_results"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    schedule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("maintenance_schedules.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    instrument_id = Column(
        UUID(as_uuid=True),
        ForeignKey("instruments.id", ondelete="CASCADE"),
        nullable=False,
    )
    completed_date = Column(DateTime(timezone=True), nullable=False)
    result_type = Column(String, nullable=False, default="calibration")
    notes = Column(Text, nullable=True)
    document_url = Column(String, nullable=True)
    test_data = Column(JSON, nullable=True)
    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("test_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    schedule = relationship("MaintenanceSchedule", back_populates="result")


class ScheduleEvent(Base):
    """Append-only record of engine actions; ids are kept without FKs so
    the trail survives deletion of the rows it describes."""

    __tablename__ = "schedule_events"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(String, nullable=False, index=True)
    instrument_id = Column(UUID(as_uuid=True), nullable=True)
    configuration_id = Column(UUID(as_uuid=True), nullable=True)
    schedule_id = Column(UUID(as_uuid=True), nullable=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
