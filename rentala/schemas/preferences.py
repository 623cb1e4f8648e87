import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from rentala.models.schedule import ScheduleFrequency
from rentala.services.preference_versions import format_version_timestamp
from rentala.services.report_pdf import ReportMetric


class PreferencesUpdate(BaseModel):
    """Request body for saving preferences. Every save creates a version."""

    metrics: list[ReportMetric] = Field(min_length=1)
    default_frequency: ScheduleFrequency = ScheduleFrequency.MONTHLY
    default_hour: int = Field(default=9, ge=0, le=23)
    default_minute: int = Field(default=0, ge=0, le=59)
    default_day_of_month: int = Field(default=1, ge=1, le=31)
    change_description: str | None = Field(default=None, max_length=255)


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    metrics: list[str]
    default_frequency: ScheduleFrequency
    default_hour: int
    default_minute: int
    default_day_of_month: int
    updated_at: datetime | None = None


class PreferenceVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    version_number: int
    metrics: list[str]
    default_frequency: ScheduleFrequency
    default_hour: int
    default_minute: int
    default_day_of_month: int
    change_description: str | None
    created_at: datetime

    @computed_field
    @property
    def created_at_display(self) -> str:
        return format_version_timestamp(self.created_at)


class RestoreResponse(BaseModel):
    preferences: PreferencesResponse
    version: PreferenceVersionResponse


class VersionDiffRequest(BaseModel):
    old_version_id: uuid.UUID
    new_version_id: uuid.UUID


class VersionDiffResponse(BaseModel):
    """Sparse diff; old/new values are omitted when unchanged."""

    metrics_added: list[str]
    metrics_removed: list[str]
    frequency_changed: bool
    time_changed: bool
    old_frequency: str | None = None
    new_frequency: str | None = None
    old_time: str | None = None
    new_time: str | None = None
