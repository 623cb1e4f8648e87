"""Sent threshold notifications, used to suppress repeats across sweeps."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentala.models.base import Base


class NotificationLog(Base):
    """Records that a (kind, subject, threshold) notification went out."""

    __tablename__ = "notification_log"
    __table_args__ = (
        UniqueConstraint("kind", "subject_id", "threshold_days", name="uq_notification_threshold"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(32), index=True)  # overdue_rent, lease_expiration
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)  # payment or lease id
    property_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    threshold_days: Mapped[int] = mapped_column(Integer)
    sent_count: Mapped[int] = mapped_column(Integer, default=0)
    notified_at: Mapped[datetime]

    def __repr__(self) -> str:
        return f"<NotificationLog {self.kind} {self.subject_id} {self.threshold_days}d>"
