"""Live user preferences and their append-only version history."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rentala.models.base import Base, TimestampMixin, enum_column
from rentala.models.schedule import ScheduleFrequency


class UserPreferences(Base, TimestampMixin):
    """Current metric selection and schedule defaults for one owner."""

    __tablename__ = "user_preferences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    metrics: Mapped[list[str]] = mapped_column(JSON, default=list)
    default_frequency: Mapped[ScheduleFrequency] = mapped_column(
        enum_column(ScheduleFrequency, "schedulefrequency"),
        default=ScheduleFrequency.MONTHLY,
    )
    default_hour: Mapped[int] = mapped_column(Integer, default=9)
    default_minute: Mapped[int] = mapped_column(Integer, default=0)
    default_day_of_month: Mapped[int] = mapped_column(Integer, default=1)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<UserPreferences {self.owner_id}>"


class PreferenceVersion(Base, TimestampMixin):
    """Immutable snapshot of an owner's preferences.

    version_number increases monotonically per owner and is never reused,
    even after older versions are pruned.
    """

    __tablename__ = "preference_versions"
    __table_args__ = (
        UniqueConstraint("owner_id", "version_number", name="uq_owner_version_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    version_number: Mapped[int] = mapped_column(Integer)
    metrics: Mapped[list[str]] = mapped_column(JSON, default=list)
    default_frequency: Mapped[ScheduleFrequency] = mapped_column(
        enum_column(ScheduleFrequency, "schedulefrequency")
    )
    default_hour: Mapped[int] = mapped_column(Integer)
    default_minute: Mapped[int] = mapped_column(Integer)
    default_day_of_month: Mapped[int] = mapped_column(Integer)
    change_description: Mapped[str | None] = mapped_column(String(255), default=None)

    def __repr__(self) -> str:
        return f"<PreferenceVersion {self.owner_id} v{self.version_number}>"
