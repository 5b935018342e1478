from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Frequency = Literal["Daily", "Weekly", "Monthly", "3 Months", "6 Months", "1 Year"]
MaintenanceBy = Literal["self", "vendor"]
SectionType = Literal["tolerance", "range", "checklist", "simple"]
ResultType = Literal["calibration", "service", "spare_quotation", "other"]
ScheduleStatus = Literal["Scheduled", "In Progress", "Completed"]
MaintenanceStatus = Literal["Pending", "Overdue", "Partially Completed", "Completed"]
StatusFilter = Literal["all", "pending", "overdue"]


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class TestRow(BaseModel):
    """One reading inside a test section."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    label: str = ""
    reference: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    unit: Optional[str] = None
    measured: Optional[float] = None
    error: Optional[float] = None
    passed: Optional[bool] = None

    @field_validator("reference", "min", "max", "measured", mode="before")
    @classmethod
    def coerce_blank_numbers(cls, value):
        return _blank_to_none(value)


class TestSection(BaseModel):
    """A named group of rows sharing one validation rule."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str = ""
    type: SectionType = "simple"
    tolerance: Optional[float] = None
    unit: Optional[str] = None
    document_url: Optional[str] = None
    rows: list[TestRow] = Field(default_factory=list)

    @field_validator("tolerance", mode="before")
    @classmethod
    def coerce_blank_tolerance(cls, value):
        return _blank_to_none(value)


class InstrumentCreate(BaseModel):
    eqp_id: str
    instrument_type: str
    make: str = ""
    model: str = ""
    serial_number: str = ""
    location: str = ""
    status: str = "Operational"


class InstrumentOut(InstrumentCreate):
    id: UUID
    is_active: bool = True
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TestTemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None
    structure: list[TestSection] = Field(default_factory=list)


class TestTemplateOut(TestTemplateCreate):
    id: UUID
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ResponsibleParty(BaseModel):
    maintenance_by: MaintenanceBy = "self"
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None

    @model_validator(mode="after")
    def check_vendor(self):
        if self.maintenance_by == "vendor":
            if not (self.vendor_name or "").strip():
                raise ValueError("vendor_name is required when maintenance_by is 'vendor'")
        else:
            self.vendor_name = None
            self.vendor_contact = None
        return self


class MaintenanceConfigurationCreate(ResponsibleParty):
    instrument_id: UUID
    maintenance_type: str
    frequency: Frequency
    schedule_date: datetime
    template_id: Optional[UUID] = None
    is_active: bool = True

    @field_validator("maintenance_type")
    @classmethod
    def check_type(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("maintenance_type must not be empty")
        return value


class MaintenanceConfigurationUpdate(BaseModel):
    frequency: Optional[Frequency] = None
    schedule_date: Optional[datetime] = None
    template_id: Optional[UUID] = None
    maintenance_by: Optional[MaintenanceBy] = None
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None
    is_active: Optional[bool] = None


class MaintenanceConfigurationOut(BaseModel):
    id: UUID
    instrument_id: UUID
    maintenance_type: str
    frequency: str
    schedule_date: datetime
    utc_offset_minutes: int = 0
    template_id: Optional[UUID] = None
    maintenance_by: str
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class MaintenanceScheduleOut(BaseModel):
    id: UUID
    instrument_id: UUID
    configuration_id: Optional[UUID] = None
    maintenance_type: str
    description: str
    due_date: datetime
    due_day: date
    status: ScheduleStatus
    notes: Optional[str] = None
    completed_date: Optional[datetime] = None
    completion_notes: Optional[str] = None
    template_id: Optional[UUID] = None
    maintenance_by: str
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None
    is_last_of_window: bool
    model_config = ConfigDict(from_attributes=True)


class MaintenanceScheduleView(BaseModel):
    """An occurrence as shown to the user: persisted or virtual, with the
    derived display status."""

    id: Optional[UUID] = None
    instrument_id: UUID
    configuration_id: Optional[UUID] = None
    maintenance_type: str
    due_date: datetime
    status: ScheduleStatus
    maintenance_status: MaintenanceStatus
    total_sections: int = 0
    completed_sections: int = 0
    has_result: bool = False
    is_virtual: bool = False
    is_last_of_window: bool = False
    frequency: Optional[str] = None
    template_id: Optional[UUID] = None
    maintenance_by: str = "self"
    vendor_name: Optional[str] = None
    vendor_contact: Optional[str] = None


class ResultSummary(BaseModel):
    status: Literal["pass", "fail"]
    passed: int
    total: int


class MaintenanceResultOut(BaseModel):
    id: UUID
    schedule_id: UUID
    instrument_id: UUID
    completed_date: datetime
    result_type: ResultType
    notes: Optional[str] = None
    document_url: Optional[str] = None
    test_data: Optional[list[TestSection]] = None
    template_id: Optional[UUID] = None
    summary: Optional[ResultSummary] = None
    model_config = ConfigDict(from_attributes=True)


class SectionSave(BaseModel):
    section: TestSection
    completed_date: datetime
    result_type: ResultType = "calibration"
    notes: Optional[str] = None
    template_id: Optional[UUID] = None


class ScheduleCompletion(BaseModel):
    completed_date: datetime
    result_type: ResultType = "calibration"
    notes: Optional[str] = None
    document_url: Optional[str] = None
    template_id: Optional[UUID] = None
    test_data: Optional[list[TestSection]] = None


class VirtualScheduleMaterialize(BaseModel):
    configuration_id: UUID
    due_date: datetime


class GenerationOut(BaseModel):
    configuration_id: Optional[UUID] = None
    created: int
    iterations: int
    schedule_ids: list[UUID] = Field(default_factory=list)


class RegenerationOut(BaseModel):
    regenerated: bool
    deleted: int = 0
    created: int = 0
    reason: Optional[str] = None


class SectionSaveOut(BaseModel):
    result: MaintenanceResultOut
    schedule: MaintenanceScheduleOut
    maintenance_status: MaintenanceStatus
    total_sections: int
    completed_sections: int
    regeneration: Optional[RegenerationOut] = None


class CompletionTrendPoint(BaseModel):
    month: str
    label: str
    on_time: int
    overdue: int


class MonthlyCounts(BaseModel):
    pm: int
    amc: int
    calibration: int
    total: int


class ConfigurationSaveOut(BaseModel):
    configuration: MaintenanceConfigurationOut
    generation: Optional[GenerationOut] = None
    regeneration: Optional[RegenerationOut] = None
