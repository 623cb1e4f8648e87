"""Report failure tracking and rollback suggestions."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rentala.models.base import Base, TimestampMixin, enum_column


class FailureReason(str, enum.Enum):
    """Why a scheduled report execution failed."""

    EMAIL_DELIVERY = "email_delivery"
    PDF_GENERATION = "pdf_generation"
    INVALID_RECIPIENT = "invalid_recipient"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class SuggestionStatus(str, enum.Enum):
    """Lifecycle of a rollback suggestion."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    APPLIED = "applied"


class ReportFailure(Base, TimestampMixin):
    """Open (unresolved) or resolved run of consecutive failures for one schedule."""

    __tablename__ = "report_failures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("report_schedules.id", ondelete="CASCADE"), index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    property_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    failure_reason: Mapped[FailureReason] = mapped_column(
        enum_column(FailureReason, "failurereason"), index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    failure_count: Mapped[int] = mapped_column(Integer, default=1)
    last_failed_at: Mapped[datetime] = mapped_column(default=func.now(), index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(default=None)

    def __repr__(self) -> str:
        return f"<ReportFailure {self.schedule_id} {self.failure_reason.value} x{self.failure_count}>"


class RollbackSuggestion(Base, TimestampMixin):
    """Links a failure to a prior preference version that may resolve it."""

    __tablename__ = "rollback_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    failure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("report_failures.id", ondelete="CASCADE"), index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    suggested_version_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    reason: Mapped[str] = mapped_column(Text)
    confidence: Mapped[int] = mapped_column(Integer)  # 0-100
    status: Mapped[SuggestionStatus] = mapped_column(
        enum_column(SuggestionStatus, "suggestionstatus"),
        default=SuggestionStatus.PENDING,
        index=True,
    )
    applied_at: Mapped[datetime | None] = mapped_column(default=None)

    def __repr__(self) -> str:
        return f"<RollbackSuggestion {self.suggested_version_id} {self.confidence}%>"
