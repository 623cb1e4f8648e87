import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from rentala.models.schedule import DeliveryStatus, ScheduleFrequency, ScheduleStatus
from rentala.services.report_pdf import ReportMetric


class ScheduleCreate(BaseModel):
    """Request body for creating a report schedule."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    property_id: uuid.UUID | None = None
    frequency: ScheduleFrequency
    day_of_week: int | None = Field(default=None, ge=0, le=6, description="0 = Sunday")
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    hour: int = Field(default=9, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)
    recipient_emails: list[EmailStr] = Field(min_length=1, max_length=50)
    metrics: list[ReportMetric] = Field(min_length=1)


class ScheduleUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    property_id: uuid.UUID | None = None
    frequency: ScheduleFrequency | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    hour: int | None = Field(default=None, ge=0, le=23)
    minute: int | None = Field(default=None, ge=0, le=59)
    recipient_emails: list[EmailStr] | None = Field(default=None, min_length=1, max_length=50)
    metrics: list[ReportMetric] | None = Field(default=None, min_length=1)
    status: ScheduleStatus | None = None

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, mode="json")
        # Enums and uuids go back to their python types
        if "frequency" in changes and changes["frequency"] is not None:
            changes["frequency"] = ScheduleFrequency(changes["frequency"])
        if "status" in changes and changes["status"] is not None:
            changes["status"] = ScheduleStatus(changes["status"])
        if changes.get("property_id") is not None:
            changes["property_id"] = uuid.UUID(changes["property_id"])
        # Fields that cannot be null on the model
        for key in ("name", "frequency", "hour", "minute", "recipient_emails", "metrics", "status"):
            if key in changes and changes[key] is None:
                del changes[key]
        return changes


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    property_id: uuid.UUID | None
    frequency: ScheduleFrequency
    day_of_week: int | None
    day_of_month: int | None
    hour: int
    minute: int
    recipient_emails: list[str]
    metrics: list[str]
    status: ScheduleStatus
    last_sent_at: datetime | None
    next_send_at: datetime | None
    created_at: datetime


class DeliveryAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    recipient_email: str
    status: DeliveryStatus
    error_message: str | None
    sent_at: datetime | None
    created_at: datetime


class TestSendResponse(BaseModel):
    """Result of an immediate test delivery."""

    success: bool
    message: str
    sent: int = 0
    failed: int = 0
    rejected: int = 0
