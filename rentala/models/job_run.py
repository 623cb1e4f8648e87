from datetime import datetime
from uuid import uuid4

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rentala.models.base import Base


class JobRun(Base):
    """One execution of a scheduled task (sweep or report scan)."""

    __tablename__ = "job_runs"
    __table_args__ = (Index("ix_job_runs_job_scheduled", "job_id", "scheduled_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    job_id: Mapped[str] = mapped_column(String(100))
    scheduled_at: Mapped[datetime]
    started_at: Mapped[datetime]
    finished_at: Mapped[datetime]
    # JobOutcome name: success, error, missed_start_deadline, ...
    outcome: Mapped[str] = mapped_column(String(30))
    error: Mapped[str | None] = mapped_column(Text)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
