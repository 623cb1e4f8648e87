"""
Report failure tracking and preference rollback suggestions.

A schedule has at most one open (unresolved) failure at a time; repeated
failures increment its consecutive count. When a failure first opens, the
engine may suggest rolling the owner's preferences back to the previous
version. Applying a suggestion performs a forward-only restore.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import get_config
from rentala.core.datetime_utils import utc_now
from rentala.core.errors import SuggestionNotFoundError, SuggestionStateError
from rentala.core.logging import get_logger
from rentala.models.failure import (
    FailureReason,
    ReportFailure,
    RollbackSuggestion,
    SuggestionStatus,
)
from rentala.models.preferences import PreferenceVersion, UserPreferences
from rentala.services.preference_versions import (
    list_preference_versions,
    restore_preference_version,
)

logger = get_logger(__name__)

OPEN_STATUSES = (SuggestionStatus.PENDING, SuggestionStatus.ACCEPTED)


@dataclass
class FailureStats:
    total_failures: int = 0
    unresolved_failures: int = 0
    failures_by_reason: dict[str, int] = field(default_factory=dict)
    most_recent_failure: datetime | None = None


@dataclass
class RollbackResult:
    suggestion: RollbackSuggestion
    preferences: UserPreferences
    version: PreferenceVersion
    message: str


async def track_report_failure(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    owner_id: str,
    property_id: uuid.UUID | None,
    reason: FailureReason,
    error_message: str | None = None,
    now: datetime | None = None,
) -> ReportFailure:
    """
    Record a failed execution.

    Increments the open failure for the schedule if there is one, otherwise
    opens a new one with failure_count 1.
    """
    now = now or utc_now()

    result = await db.execute(
        select(ReportFailure)
        .where(ReportFailure.schedule_id == schedule_id, ReportFailure.resolved_at.is_(None))
        .order_by(ReportFailure.created_at.desc())
        .limit(1)
    )
    failure = result.scalar_one_or_none()

    if failure is None:
        failure = ReportFailure(
            schedule_id=schedule_id,
            owner_id=owner_id,
            property_id=property_id,
            failure_reason=reason,
            error_message=error_message,
            failure_count=1,
            last_failed_at=now,
            created_at=now,
        )
        db.add(failure)
    else:
        failure.failure_count = (failure.failure_count or 1) + 1
        failure.failure_reason = reason
        failure.last_failed_at = now
        failure.error_message = error_message or failure.error_message

    await db.flush()

    logger.bind(
        schedule_id=str(schedule_id),
        reason=reason.value,
        failure_count=failure.failure_count,
    ).warning("report_failure_tracked")
    return failure


async def resolve_schedule_failures(
    db: AsyncSession, schedule_id: uuid.UUID, now: datetime | None = None
) -> int:
    """Mark open failures for a schedule resolved. Returns how many were resolved."""
    result = await db.execute(
        update(ReportFailure)
        .where(ReportFailure.schedule_id == schedule_id, ReportFailure.resolved_at.is_(None))
        .values(resolved_at=now or utc_now())
    )
    return result.rowcount or 0


async def suggest_rollback(
    db: AsyncSession,
    failure_id: uuid.UUID,
    owner_id: str,
    suggested_version_id: uuid.UUID,
    reason: str,
    confidence: int = 80,
) -> RollbackSuggestion:
    """Create a pending suggestion; confidence is clamped to 0-100."""
    suggestion = RollbackSuggestion(
        failure_id=failure_id,
        owner_id=owner_id,
        suggested_version_id=suggested_version_id,
        reason=reason,
        confidence=max(0, min(100, confidence)),
        status=SuggestionStatus.PENDING,
        created_at=utc_now(),
    )
    db.add(suggestion)
    await db.flush()
    return suggestion


async def auto_suggest_rollback(
    db: AsyncSession, failure: ReportFailure
) -> RollbackSuggestion | None:
    """
    Suggest rolling back to the previous preference version.

    Needs at least two versions. Confidence grows with the number of
    retained versions, capped at the configured ceiling.
    """
    rollback = get_config().preferences
    versions = await list_preference_versions(db, failure.owner_id)
    if len(versions) < 2:
        logger.bind(owner_id=failure.owner_id).debug("rollback_suggestion_skipped")
        return None

    previous = versions[1]
    confidence = min(
        rollback.confidence_ceiling,
        rollback.confidence_floor + rollback.confidence_step * len(versions),
    )
    reason = (
        f"Automatically suggested to roll back to version {previous.version_number}. "
        "This version was previously stable and may resolve the current delivery failures."
    )

    suggestion = await suggest_rollback(
        db, failure.id, failure.owner_id, previous.id, reason, confidence
    )
    logger.bind(
        owner_id=failure.owner_id,
        version=previous.version_number,
        confidence=suggestion.confidence,
    ).info("rollback_suggested")
    return suggestion


async def get_pending_rollback_suggestions(
    db: AsyncSession, owner_id: str
) -> list[RollbackSuggestion]:
    """Pending suggestions, highest confidence first, then newest."""
    result = await db.execute(
        select(RollbackSuggestion)
        .where(
            RollbackSuggestion.owner_id == owner_id,
            RollbackSuggestion.status == SuggestionStatus.PENDING,
        )
        .order_by(RollbackSuggestion.confidence.desc(), RollbackSuggestion.created_at.desc())
    )
    return list(result.scalars().all())


async def get_failure_history(
    db: AsyncSession, owner_id: str, limit: int = 20
) -> list[ReportFailure]:
    result = await db.execute(
        select(ReportFailure)
        .where(ReportFailure.owner_id == owner_id)
        .order_by(ReportFailure.last_failed_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_failure_stats(db: AsyncSession, owner_id: str) -> FailureStats:
    """Totals, open count, per-reason breakdown and latest failure time."""
    result = await db.execute(
        select(ReportFailure.failure_reason, func.count(ReportFailure.id))
        .where(ReportFailure.owner_id == owner_id)
        .group_by(ReportFailure.failure_reason)
    )
    by_reason = {FailureReason(reason).value: count for reason, count in result.all()}

    unresolved = await db.execute(
        select(func.count(ReportFailure.id)).where(
            ReportFailure.owner_id == owner_id, ReportFailure.resolved_at.is_(None)
        )
    )
    latest = await db.execute(
        select(func.max(ReportFailure.last_failed_at)).where(ReportFailure.owner_id == owner_id)
    )

    return FailureStats(
        total_failures=sum(by_reason.values()),
        unresolved_failures=unresolved.scalar_one(),
        failures_by_reason=by_reason,
        most_recent_failure=latest.scalar_one_or_none(),
    )


async def _get_suggestion(
    db: AsyncSession, suggestion_id: uuid.UUID, owner_id: str
) -> RollbackSuggestion:
    result = await db.execute(
        select(RollbackSuggestion).where(
            RollbackSuggestion.id == suggestion_id,
            RollbackSuggestion.owner_id == owner_id,
        )
    )
    suggestion = result.scalar_one_or_none()
    if suggestion is None:
        raise SuggestionNotFoundError(f"Rollback suggestion {suggestion_id} not found")
    return suggestion


def _require_open(suggestion: RollbackSuggestion) -> None:
    if suggestion.status not in OPEN_STATUSES:
        raise SuggestionStateError(
            f"Rollback suggestion {suggestion.id} is already {suggestion.status.value}"
        )


async def accept_rollback_suggestion(
    db: AsyncSession, suggestion_id: uuid.UUID, owner_id: str
) -> RollbackSuggestion:
    suggestion = await _get_suggestion(db, suggestion_id, owner_id)
    if suggestion.status != SuggestionStatus.PENDING:
        raise SuggestionStateError(
            f"Rollback suggestion {suggestion.id} is already {suggestion.status.value}"
        )
    suggestion.status = SuggestionStatus.ACCEPTED
    await db.flush()
    return suggestion


async def apply_rollback_suggestion(
    db: AsyncSession,
    suggestion_id: uuid.UUID,
    owner_id: str,
    now: datetime | None = None,
) -> RollbackResult:
    """
    Restore the suggested version, mark the suggestion applied and resolve its failure.

    Raises:
        SuggestionNotFoundError: Unknown suggestion for this owner
        SuggestionStateError: Suggestion already applied or rejected
        VersionNotFoundError: Suggested version has since been pruned
    """
    now = now or utc_now()
    suggestion = await _get_suggestion(db, suggestion_id, owner_id)
    _require_open(suggestion)

    preferences, version = await restore_preference_version(
        db, owner_id, suggestion.suggested_version_id
    )

    suggestion.status = SuggestionStatus.APPLIED
    suggestion.applied_at = now
    await db.execute(
        update(ReportFailure)
        .where(ReportFailure.id == suggestion.failure_id, ReportFailure.resolved_at.is_(None))
        .values(resolved_at=now)
    )
    await db.flush()

    message = f"Successfully rolled back ({version.change_description})"
    logger.bind(owner_id=owner_id, suggestion_id=str(suggestion_id)).info("rollback_applied")
    return RollbackResult(
        suggestion=suggestion, preferences=preferences, version=version, message=message
    )


async def dismiss_rollback_suggestion(
    db: AsyncSession, suggestion_id: uuid.UUID, owner_id: str
) -> RollbackSuggestion:
    suggestion = await _get_suggestion(db, suggestion_id, owner_id)
    _require_open(suggestion)
    suggestion.status = SuggestionStatus.REJECTED
    await db.flush()
    return suggestion
