import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SendNotificationRequest(BaseModel):
    """Manual notice to one tenant. Omitted values are filled from the tenant's records."""

    tenant_id: uuid.UUID
    property_id: uuid.UUID
    type: Literal["overdue_rent", "lease_expiration"]
    channel: Literal["email", "sms"] = "email"
    rent_amount: Decimal | None = Field(default=None, ge=0)
    days_overdue: int | None = Field(default=None, ge=0)
    expiration_date: date | None = None
    days_until_expiration: int | None = Field(default=None, ge=0)


class SendNotificationResponse(BaseModel):
    success: bool
    message: str
    target: str


class PhoneValidationResponse(BaseModel):
    is_valid: bool
    formatted: str | None = None
    message: str


class NotificationLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    subject_id: uuid.UUID
    property_id: uuid.UUID
    threshold_days: int
    sent_count: int
    notified_at: datetime
