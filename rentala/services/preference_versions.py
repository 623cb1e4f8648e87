"""
Append-only preference version log.

Every save and every restore appends a new version; version numbers are
never reused. Only the most recent max_versions entries per owner are kept.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import get_config
from rentala.core.datetime_utils import utc_now
from rentala.core.errors import VersionNotFoundError
from rentala.core.logging import get_logger
from rentala.models.preferences import PreferenceVersion, UserPreferences
from rentala.models.schedule import ScheduleFrequency

logger = get_logger(__name__)


@dataclass
class PreferenceSnapshot:
    """Full preference state: selected metrics plus schedule defaults."""

    metrics: list[str] = field(default_factory=list)
    frequency: ScheduleFrequency = ScheduleFrequency.MONTHLY
    hour: int = 9
    minute: int = 0
    day_of_month: int = 1

    @classmethod
    def from_record(cls, record: UserPreferences | PreferenceVersion) -> "PreferenceSnapshot":
        return cls(
            metrics=list(record.metrics or []),
            frequency=ScheduleFrequency(record.default_frequency),
            hour=record.default_hour,
            minute=record.default_minute,
            day_of_month=record.default_day_of_month,
        )

    def apply_to(self, record: UserPreferences | PreferenceVersion) -> None:
        record.metrics = list(self.metrics)
        record.default_frequency = self.frequency
        record.default_hour = self.hour
        record.default_minute = self.minute
        record.default_day_of_month = self.day_of_month


@dataclass
class VersionDiff:
    """Sparse diff: old/new values are set only for fields that changed."""

    metrics_added: list[str]
    metrics_removed: list[str]
    frequency_changed: bool
    time_changed: bool
    old_frequency: str | None = None
    new_frequency: str | None = None
    old_time: str | None = None
    new_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting unchanged old/new fields."""
        data: dict[str, Any] = {
            "metrics_added": self.metrics_added,
            "metrics_removed": self.metrics_removed,
            "frequency_changed": self.frequency_changed,
            "time_changed": self.time_changed,
        }
        for key in ("old_frequency", "new_frequency", "old_time", "new_time"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def format_time(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def calculate_version_diff(
    old_metrics: list[str],
    new_metrics: list[str],
    old_frequency: str,
    new_frequency: str,
    old_time: tuple[int, int],
    new_time: tuple[int, int],
) -> VersionDiff:
    """
    Diff two preference states.

    Args:
        old_metrics: Metrics before the change
        new_metrics: Metrics after the change
        old_frequency: Frequency before
        new_frequency: Frequency after
        old_time: (hour, minute) before
        new_time: (hour, minute) after

    Returns:
        VersionDiff with added/removed metrics in list order
    """
    old_set = set(old_metrics)
    new_set = set(new_metrics)

    # dict.fromkeys keeps first-seen order and drops duplicates
    metrics_added = [m for m in dict.fromkeys(new_metrics) if m not in old_set]
    metrics_removed = [m for m in dict.fromkeys(old_metrics) if m not in new_set]

    old_frequency = getattr(old_frequency, "value", old_frequency)
    new_frequency = getattr(new_frequency, "value", new_frequency)
    frequency_changed = old_frequency != new_frequency
    time_changed = tuple(old_time) != tuple(new_time)

    return VersionDiff(
        metrics_added=metrics_added,
        metrics_removed=metrics_removed,
        frequency_changed=frequency_changed,
        time_changed=time_changed,
        old_frequency=old_frequency if frequency_changed else None,
        new_frequency=new_frequency if frequency_changed else None,
        old_time=format_time(*old_time) if time_changed else None,
        new_time=format_time(*new_time) if time_changed else None,
    )


def format_version_timestamp(dt: datetime) -> str:
    """Display form, e.g. 'Oct 18, 2026, 09:05:03 AM'."""
    return f"{dt:%b} {dt.day}, {dt:%Y, %I:%M:%S %p}"


async def get_user_preferences(db: AsyncSession, owner_id: str) -> UserPreferences | None:
    result = await db.execute(select(UserPreferences).where(UserPreferences.owner_id == owner_id))
    return result.scalar_one_or_none()


async def prune_preference_versions(
    db: AsyncSession, owner_id: str, max_versions: int | None = None
) -> int:
    """
    Delete versions beyond the most recent max_versions for an owner.

    Returns:
        Number of versions deleted
    """
    if max_versions is None:
        max_versions = get_config().preferences.max_versions

    stale = await db.execute(
        select(PreferenceVersion.id)
        .where(PreferenceVersion.owner_id == owner_id)
        .order_by(PreferenceVersion.version_number.desc())
        .offset(max_versions)
    )
    stale_ids = list(stale.scalars().all())
    if not stale_ids:
        return 0

    await db.execute(delete(PreferenceVersion).where(PreferenceVersion.id.in_(stale_ids)))
    logger.bind(owner_id=owner_id, deleted=len(stale_ids)).debug("preference_versions_pruned")
    return len(stale_ids)


async def save_preference_version(
    db: AsyncSession,
    owner_id: str,
    snapshot: PreferenceSnapshot,
    description: str | None = None,
    max_versions: int | None = None,
) -> PreferenceVersion:
    """
    Append a version numbered max(existing) + 1, then prune old versions.

    Returns:
        The new PreferenceVersion
    """
    result = await db.execute(
        select(func.max(PreferenceVersion.version_number)).where(
            PreferenceVersion.owner_id == owner_id
        )
    )
    next_number = (result.scalar_one_or_none() or 0) + 1

    version = PreferenceVersion(
        owner_id=owner_id,
        version_number=next_number,
        change_description=description,
        created_at=utc_now(),
    )
    snapshot.apply_to(version)
    db.add(version)
    await db.flush()

    await prune_preference_versions(db, owner_id, max_versions)

    logger.bind(owner_id=owner_id, version=next_number).info("preference_version_saved")
    return version


async def save_user_preferences(
    db: AsyncSession,
    owner_id: str,
    snapshot: PreferenceSnapshot,
    description: str | None = None,
) -> UserPreferences:
    """Overwrite the live preference record and append a version for it."""
    preferences = await get_user_preferences(db, owner_id)
    if preferences is None:
        preferences = UserPreferences(owner_id=owner_id)
        db.add(preferences)

    snapshot.apply_to(preferences)
    preferences.updated_at = utc_now()
    await db.flush()

    await save_preference_version(db, owner_id, snapshot, description)
    return preferences


async def list_preference_versions(db: AsyncSession, owner_id: str) -> list[PreferenceVersion]:
    """All retained versions for an owner, newest first."""
    result = await db.execute(
        select(PreferenceVersion)
        .where(PreferenceVersion.owner_id == owner_id)
        .order_by(PreferenceVersion.version_number.desc())
    )
    return list(result.scalars().all())


async def get_preference_version(
    db: AsyncSession, owner_id: str, version_id: uuid.UUID
) -> PreferenceVersion:
    result = await db.execute(
        select(PreferenceVersion).where(
            PreferenceVersion.id == version_id,
            PreferenceVersion.owner_id == owner_id,
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise VersionNotFoundError(f"Preference version {version_id} not found")
    return version


async def restore_preference_version(
    db: AsyncSession, owner_id: str, version_id: uuid.UUID
) -> tuple[UserPreferences, PreferenceVersion]:
    """
    Restore a prior version by appending it as a new version.

    The live record is overwritten with the target's snapshot and a new
    version "Restored from version N" is appended. The target version is
    not modified.

    Returns:
        (live preferences, newly appended version)

    Raises:
        VersionNotFoundError: If the version does not exist for this owner
    """
    target = await get_preference_version(db, owner_id, version_id)
    snapshot = PreferenceSnapshot.from_record(target)
    restored_number = target.version_number

    preferences = await get_user_preferences(db, owner_id)
    if preferences is None:
        preferences = UserPreferences(owner_id=owner_id)
        db.add(preferences)
    snapshot.apply_to(preferences)
    preferences.updated_at = utc_now()
    await db.flush()

    version = await save_preference_version(
        db, owner_id, snapshot, f"Restored from version {restored_number}"
    )

    logger.bind(owner_id=owner_id, restored=restored_number, new_version=version.version_number).info(
        "preference_version_restored"
    )
    return preferences, version


async def diff_preference_versions(
    db: AsyncSession, owner_id: str, old_version_id: uuid.UUID, new_version_id: uuid.UUID
) -> VersionDiff:
    """Diff two stored versions belonging to the same owner."""
    old = await get_preference_version(db, owner_id, old_version_id)
    new = await get_preference_version(db, owner_id, new_version_id)

    return calculate_version_diff(
        old.metrics or [],
        new.metrics or [],
        old.default_frequency,
        new.default_frequency,
        (old.default_hour, old.default_minute),
        (new.default_hour, new.default_minute),
    )
