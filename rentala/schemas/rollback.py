import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from rentala.models.failure import FailureReason, SuggestionStatus
from rentala.schemas.preferences import PreferencesResponse, PreferenceVersionResponse


class FailureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    schedule_id: uuid.UUID
    property_id: uuid.UUID | None
    failure_reason: FailureReason
    error_message: str | None
    failure_count: int
    last_failed_at: datetime
    resolved_at: datetime | None


class FailureStatsResponse(BaseModel):
    total_failures: int
    unresolved_failures: int
    failures_by_reason: dict[str, int]
    most_recent_failure: datetime | None = None


class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    failure_id: uuid.UUID
    suggested_version_id: uuid.UUID
    reason: str
    confidence: int
    status: SuggestionStatus
    applied_at: datetime | None
    created_at: datetime


class ApplyRollbackResponse(BaseModel):
    message: str
    suggestion: SuggestionResponse
    preferences: PreferencesResponse
    version: PreferenceVersionResponse
