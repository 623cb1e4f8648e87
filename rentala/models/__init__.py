from rentala.models.base import Base
from rentala.models.failure import (
    FailureReason,
    ReportFailure,
    RollbackSuggestion,
    SuggestionStatus,
)
from rentala.models.job_run import JobRun
from rentala.models.notification_log import NotificationLog
from rentala.models.preferences import PreferenceVersion, UserPreferences
from rentala.models.property import (
    Lease,
    LeaseStatus,
    Payment,
    PaymentStatus,
    Property,
    SatisfactionSurvey,
    Tenant,
)
from rentala.models.schedule import (
    DeliveryAttempt,
    DeliveryStatus,
    ReportSchedule,
    ScheduleFrequency,
    ScheduleStatus,
)

__all__ = [
    "Base",
    "ReportSchedule",
    "ScheduleFrequency",
    "ScheduleStatus",
    "DeliveryAttempt",
    "DeliveryStatus",
    "ReportFailure",
    "FailureReason",
    "RollbackSuggestion",
    "SuggestionStatus",
    "UserPreferences",
    "PreferenceVersion",
    "Property",
    "Tenant",
    "Lease",
    "LeaseStatus",
    "Payment",
    "PaymentStatus",
    "SatisfactionSurvey",
    "NotificationLog",
    "JobRun",
]
