from rentala.schemas.notifications import (
    NotificationLogResponse,
    PhoneValidationResponse,
    SendNotificationRequest,
    SendNotificationResponse,
)
from rentala.schemas.preferences import (
    PreferencesResponse,
    PreferencesUpdate,
    PreferenceVersionResponse,
    RestoreResponse,
    VersionDiffRequest,
    VersionDiffResponse,
)
from rentala.schemas.rollback import (
    ApplyRollbackResponse,
    FailureResponse,
    FailureStatsResponse,
    SuggestionResponse,
)
from rentala.schemas.schedule import (
    DeliveryAttemptResponse,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    TestSendResponse,
)

__all__ = [
    "ScheduleCreate",
    "ScheduleUpdate",
    "ScheduleResponse",
    "DeliveryAttemptResponse",
    "TestSendResponse",
    "PreferencesUpdate",
    "PreferencesResponse",
    "PreferenceVersionResponse",
    "RestoreResponse",
    "VersionDiffRequest",
    "VersionDiffResponse",
    "FailureResponse",
    "FailureStatsResponse",
    "SuggestionResponse",
    "ApplyRollbackResponse",
    "SendNotificationRequest",
    "SendNotificationResponse",
    "PhoneValidationResponse",
    "NotificationLogResponse",
]
