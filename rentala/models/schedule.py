"""Scheduled report delivery configuration and per-recipient delivery attempts."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rentala.models.base import Base, TimestampMixin, enum_column


class ScheduleFrequency(str, enum.Enum):
    """Supported report cadences."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class ScheduleStatus(str, enum.Enum):
    """Lifecycle of a schedule. Completed replaces hard deletion."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class DeliveryStatus(str, enum.Enum):
    """Outcome of a single recipient delivery."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    BOUNCED = "bounced"


class ReportSchedule(Base, TimestampMixin):
    """A recurring report-delivery configuration.

    While status is active, next_send_at is a future instant consistent with
    the cadence as of its last computation. claimed_at marks an execution in
    progress so overlapping scans cannot process the same due schedule twice.
    """

    __tablename__ = "report_schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    property_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="SET NULL"), index=True, default=None
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, default=None)

    frequency: Mapped[ScheduleFrequency] = mapped_column(
        enum_column(ScheduleFrequency, "schedulefrequency")
    )
    day_of_week: Mapped[int | None] = mapped_column(Integer, default=None)  # 0 = Sunday
    day_of_month: Mapped[int | None] = mapped_column(Integer, default=None)  # 1-31
    hour: Mapped[int] = mapped_column(Integer, default=9)
    minute: Mapped[int] = mapped_column(Integer, default=0)

    recipient_emails: Mapped[list[str]] = mapped_column(JSON, default=list)
    metrics: Mapped[list[str]] = mapped_column(JSON, default=list)

    status: Mapped[ScheduleStatus] = mapped_column(
        enum_column(ScheduleStatus, "schedulestatus"),
        default=ScheduleStatus.ACTIVE,
        index=True,
    )
    last_sent_at: Mapped[datetime | None] = mapped_column(default=None)
    next_send_at: Mapped[datetime | None] = mapped_column(default=None, index=True)
    claimed_at: Mapped[datetime | None] = mapped_column(default=None)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<ReportSchedule {self.name} {self.frequency.value} next={self.next_send_at}>"


class DeliveryAttempt(Base, TimestampMixin):
    """One row per recipient per execution. Append-only audit trail."""

    __tablename__ = "report_delivery_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("report_schedules.id", ondelete="CASCADE"), index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    property_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    recipient_email: Mapped[str] = mapped_column(String(320))
    status: Mapped[DeliveryStatus] = mapped_column(
        enum_column(DeliveryStatus, "deliverystatus"),
        default=DeliveryStatus.PENDING,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    sent_at: Mapped[datetime | None] = mapped_column(default=None, index=True)

    def __repr__(self) -> str:
        return f"<DeliveryAttempt {self.recipient_email} {self.status.value}>"
