"""
Scheduled report delivery.

Flow for each due schedule:
1. Scan active schedules whose next_send_at has passed
2. Claim the schedule (conditional update) so overlapping scans skip it
3. Aggregate the trailing satisfaction dataset for the schedule's scope
4. Render the PDF with the schedule's selected metrics
5. Email each recipient, recording one DeliveryAttempt per recipient
6. Advance last_sent_at/next_send_at, or leave it due for the next scan

Delivery is at-least-once: a schedule that could not be delivered stays due
and is retried by the next scan.
"""

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import get_config, get_settings
from rentala.core.datetime_utils import utc_now
from rentala.core.errors import RenderError, ScheduleNotFoundError
from rentala.core.logging import get_logger
from rentala.models.failure import FailureReason
from rentala.models.property import Property
from rentala.models.schedule import (
    DeliveryAttempt,
    DeliveryStatus,
    ReportSchedule,
    ScheduleFrequency,
    ScheduleStatus,
)
from rentala.services.bulk_dispatch import Channel, DispatchItem, iter_dispatch
from rentala.services.email_service import EmailChannel, scheduled_report_email
from rentala.services.failure_rollback import (
    auto_suggest_rollback,
    resolve_schedule_failures,
    track_report_failure,
)
from rentala.services.next_fire import Cadence, next_fire
from rentala.services.recipients import normalize_email
from rentala.services.report_data import PeriodRow, get_satisfaction_trends
from rentala.services.report_pdf import ReportRenderer, default_report_renderer

logger = get_logger(__name__)

CADENCE_FIELDS = ("frequency", "day_of_week", "day_of_month", "hour", "minute")
UPDATABLE_FIELDS = (
    "name",
    "description",
    "property_id",
    "recipient_emails",
    "metrics",
    "status",
    *CADENCE_FIELDS,
)
MAX_HISTORY_LIMIT = 100


@dataclass
class ExecutionResult:
    """Outcome of one report execution."""

    schedule_id: uuid.UUID
    success: bool
    sent: int = 0
    failed: int = 0
    rejected: int = 0
    advanced: bool = False
    error: str | None = None


def compute_next_send_at(schedule: Any, now: datetime) -> datetime:
    return next_fire(
        now,
        Cadence.from_schedule(schedule),
        max_attempts=get_config().reports.next_fire_max_attempts,
    )


def _normalize_recipients(emails: Sequence[str]) -> list[str]:
    # Keeps order; drops duplicates after normalization
    return list(dict.fromkeys(normalize_email(e) for e in emails))


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_schedule(
    db: AsyncSession,
    owner_id: str,
    name: str,
    frequency: ScheduleFrequency,
    recipient_emails: Sequence[str],
    metrics: Sequence[str],
    property_id: uuid.UUID | None = None,
    description: str | None = None,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    hour: int = 9,
    minute: int = 0,
    now: datetime | None = None,
) -> ReportSchedule:
    """
    Create an active schedule with next_send_at computed from now.

    Raises:
        RecipientValidationError: If any recipient email is malformed
    """
    now = now or utc_now()

    schedule = ReportSchedule(
        owner_id=owner_id,
        property_id=property_id,
        name=name,
        description=description,
        frequency=ScheduleFrequency(frequency),
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        hour=hour,
        minute=minute,
        recipient_emails=_normalize_recipients(recipient_emails),
        metrics=list(metrics),
        status=ScheduleStatus.ACTIVE,
        created_at=now,
        updated_at=now,
    )
    schedule.next_send_at = compute_next_send_at(schedule, now)

    db.add(schedule)
    await db.flush()

    logger.bind(
        schedule_id=str(schedule.id),
        owner_id=owner_id,
        frequency=schedule.frequency.value,
        next_send_at=schedule.next_send_at.isoformat(),
    ).info("report_schedule_created")
    return schedule


async def get_schedule(db: AsyncSession, owner_id: str, schedule_id: uuid.UUID) -> ReportSchedule:
    result = await db.execute(
        select(ReportSchedule).where(
            ReportSchedule.id == schedule_id,
            ReportSchedule.owner_id == owner_id,
        )
    )
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
    return schedule


async def list_schedules(
    db: AsyncSession, owner_id: str, include_completed: bool = False
) -> list[ReportSchedule]:
    query = select(ReportSchedule).where(ReportSchedule.owner_id == owner_id)
    if not include_completed:
        query = query.where(ReportSchedule.status != ScheduleStatus.COMPLETED)
    result = await db.execute(query.order_by(ReportSchedule.created_at.desc()))
    return list(result.scalars().all())


async def update_schedule(
    db: AsyncSession,
    owner_id: str,
    schedule_id: uuid.UUID,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> ReportSchedule:
    """
    Apply partial changes to a schedule.

    next_send_at is recomputed when a cadence field changes or when the
    schedule is re-activated, so an active schedule never points at the past.
    """
    now = now or utc_now()
    schedule = await get_schedule(db, owner_id, schedule_id)
    previous_status = schedule.status

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown schedule fields: {', '.join(sorted(unknown))}")

    if "recipient_emails" in changes:
        changes = {**changes, "recipient_emails": _normalize_recipients(changes["recipient_emails"])}

    cadence_changed = False
    for key, value in changes.items():
        if key in CADENCE_FIELDS and getattr(schedule, key) != value:
            cadence_changed = True
        setattr(schedule, key, value)

    reactivated = (
        schedule.status == ScheduleStatus.ACTIVE and previous_status != ScheduleStatus.ACTIVE
    )
    if schedule.status == ScheduleStatus.ACTIVE and (cadence_changed or reactivated):
        schedule.next_send_at = compute_next_send_at(schedule, now)

    schedule.updated_at = now
    await db.flush()

    logger.bind(schedule_id=str(schedule_id), fields=sorted(changes)).info(
        "report_schedule_updated"
    )
    return schedule


async def delete_schedule(
    db: AsyncSession, owner_id: str, schedule_id: uuid.UUID, now: datetime | None = None
) -> ReportSchedule:
    """Soft delete: the schedule is marked completed and its history kept."""
    schedule = await get_schedule(db, owner_id, schedule_id)
    schedule.status = ScheduleStatus.COMPLETED
    schedule.updated_at = now or utc_now()
    await db.flush()

    logger.bind(schedule_id=str(schedule_id)).info("report_schedule_completed")
    return schedule


async def get_schedule_delivery_history(
    db: AsyncSession, owner_id: str, schedule_id: uuid.UUID, limit: int = 50
) -> list[DeliveryAttempt]:
    """Delivery attempts for an owned schedule, newest first."""
    await get_schedule(db, owner_id, schedule_id)

    result = await db.execute(
        select(DeliveryAttempt)
        .where(DeliveryAttempt.schedule_id == schedule_id)
        .order_by(DeliveryAttempt.created_at.desc())
        .limit(max(1, min(limit, MAX_HISTORY_LIMIT)))
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Scanning and claiming
# ---------------------------------------------------------------------------


async def get_due_schedules(db: AsyncSession, now: datetime | None = None) -> list[ReportSchedule]:
    """Active schedules with next_send_at <= now. Read-only."""
    now = now or utc_now()
    result = await db.execute(
        select(ReportSchedule)
        .where(
            ReportSchedule.status == ScheduleStatus.ACTIVE,
            ReportSchedule.next_send_at.is_not(None),
            ReportSchedule.next_send_at <= now,
        )
        .order_by(ReportSchedule.next_send_at)
    )
    return list(result.scalars().all())


async def claim_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    seen_next_send_at: datetime | None,
    now: datetime | None = None,
) -> bool:
    """
    Atomically mark a due schedule as in progress.

    Succeeds only if the row is still active, next_send_at still equals the
    value seen by the scan, and there is no live claim. Claims older than
    claim_timeout_minutes are treated as abandoned.

    Returns:
        True if this caller now owns the execution
    """
    now = now or utc_now()
    stale_before = now - timedelta(minutes=get_settings().claim_timeout_minutes)

    result = await db.execute(
        update(ReportSchedule)
        .where(
            ReportSchedule.id == schedule_id,
            ReportSchedule.status == ScheduleStatus.ACTIVE,
            ReportSchedule.next_send_at == seen_next_send_at,
            or_(ReportSchedule.claimed_at.is_(None), ReportSchedule.claimed_at < stale_before),
        )
        .values(claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_claim(db: AsyncSession, schedule_id: uuid.UUID) -> None:
    await db.execute(
        update(ReportSchedule)
        .where(ReportSchedule.id == schedule_id)
        .values(claimed_at=None)
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def resolve_scope_name(db: AsyncSession, schedule: ReportSchedule) -> str:
    default_name = get_config().reports.default_scope_name
    if schedule.property_id is None:
        return default_name

    result = await db.execute(select(Property.name).where(Property.id == schedule.property_id))
    return result.scalar_one_or_none() or default_name


async def render_report(
    renderer: ReportRenderer,
    title: str,
    rows: Sequence[PeriodRow],
    metrics: Sequence[str],
    timeout: float | None = None,
) -> bytes:
    """
    Run a (synchronous) renderer off the event loop with a bounded timeout.

    Raises:
        RenderError: On renderer failure or timeout
    """
    if timeout is None:
        timeout = get_settings().render_timeout_seconds

    try:
        return await asyncio.wait_for(
            asyncio.to_thread(renderer, title, list(rows), list(metrics)),
            timeout=timeout,
        )
    except TimeoutError as e:
        raise RenderError(f"Report rendering timed out after {timeout}s") from e
    except Exception as e:
        raise RenderError(f"Report rendering failed: {e}") from e


async def _record_failure(
    db: AsyncSession,
    schedule: ReportSchedule,
    reason: FailureReason,
    error: str,
    now: datetime,
) -> None:
    failure = await track_report_failure(
        db, schedule.id, schedule.owner_id, schedule.property_id, reason, error, now
    )
    if failure.failure_count == 1:
        await auto_suggest_rollback(db, failure)


async def execute_scheduled_report(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    renderer: ReportRenderer | None = None,
    channel: Channel | None = None,
    now: datetime | None = None,
    advance: bool = True,
) -> ExecutionResult:
    """
    Generate and deliver one scheduled report.

    Aggregation or rendering failures abort before any delivery attempt is
    recorded and leave next_send_at untouched so the next scan retries.

    Delivery policy:
    - at least one recipient sent: success, cadence advanced
    - nothing sent, some transport failures: failure, not advanced (retried)
    - nothing sent, every recipient invalid: failure, advanced (never retried)

    Args:
        db: Database session
        schedule_id: Schedule to execute
        renderer: PDF renderer (defaults to the fpdf2 satisfaction report)
        channel: Email channel (defaults to Resend)
        now: Execution time (defaults to utc_now())
        advance: False for test sends; leaves the cadence and failure history alone

    Returns:
        ExecutionResult; result.success is True when any recipient was sent

    Raises:
        ScheduleNotFoundError: If the schedule does not exist
        NextFireError: If the cadence cannot be advanced
    """
    now = now or utc_now()
    config = get_config()
    renderer = renderer or default_report_renderer()
    channel = channel or EmailChannel()

    schedule = await db.get(ReportSchedule, schedule_id, populate_existing=True)
    if schedule is None:
        raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")

    log = logger.bind(schedule_id=str(schedule_id), owner_id=schedule.owner_id)
    metrics = list(schedule.metrics or [])

    try:
        scope_name = await resolve_scope_name(db, schedule)
        rows = await get_satisfaction_trends(
            db,
            months=config.reports.trailing_periods,
            property_id=schedule.property_id,
            owner_id=schedule.owner_id,
            now=now,
        )
    except Exception as e:
        log.bind(error=str(e)).error("report_aggregation_failed")
        if advance:
            await _record_failure(db, schedule, FailureReason.UNKNOWN, str(e), now)
        return ExecutionResult(schedule_id=schedule_id, success=False, error=str(e))

    try:
        pdf_bytes = await render_report(renderer, scope_name, rows, metrics)
    except RenderError as e:
        log.bind(error=str(e)).error("report_render_failed")
        if advance:
            await _record_failure(db, schedule, FailureReason.PDF_GENERATION, str(e), now)
        return ExecutionResult(schedule_id=schedule_id, success=False, error=str(e))

    message = scheduled_report_email(
        schedule.name,
        scope_name,
        schedule.frequency.value,
        pdf_bytes,
        filename=f"satisfaction-report-{now:%Y-%m-%d}.pdf",
    )
    items = [DispatchItem(target=email, message=message) for email in schedule.recipient_emails]

    result = ExecutionResult(schedule_id=schedule_id, success=False)
    errors: list[str] = []

    async for outcome in iter_dispatch(channel, items, delay_ms=config.reports.delivery_delay_ms):
        if outcome.success:
            result.sent += 1
        elif outcome.rejected:
            result.rejected += 1
        else:
            result.failed += 1
        if outcome.error:
            errors.append(outcome.error)

        db.add(
            DeliveryAttempt(
                schedule_id=schedule.id,
                owner_id=schedule.owner_id,
                property_id=schedule.property_id,
                recipient_email=outcome.item.target,
                status=DeliveryStatus.SENT if outcome.success else DeliveryStatus.FAILED,
                error_message=outcome.error,
                sent_at=now if outcome.success else None,
                created_at=now,
            )
        )
    await db.flush()

    result.success = result.sent > 0
    all_rejected = result.sent == 0 and result.failed == 0

    if advance:
        if result.success:
            await resolve_schedule_failures(db, schedule.id, now)
        elif all_rejected:
            await _record_failure(
                db, schedule, FailureReason.INVALID_RECIPIENT, "; ".join(errors) or None, now
            )
        else:
            await _record_failure(
                db, schedule, FailureReason.EMAIL_DELIVERY, "; ".join(errors) or None, now
            )

        if result.success:
            schedule.last_sent_at = now
        if result.success or all_rejected:
            schedule.next_send_at = compute_next_send_at(schedule, now)
            result.advanced = True
        await db.flush()

    if not result.success:
        result.error = "; ".join(errors) or "No recipients"

    log.bind(
        sent=result.sent,
        failed=result.failed,
        rejected=result.rejected,
        advanced=result.advanced,
        next_send_at=schedule.next_send_at.isoformat() if schedule.next_send_at else None,
    ).info("report_execution_completed")
    return result


async def run_due_reports(
    db: AsyncSession,
    now: datetime | None = None,
    renderer: ReportRenderer | None = None,
    channel: Channel | None = None,
) -> dict[str, int]:
    """
    Scan, claim and execute every due schedule, committing per schedule.

    Errors are logged per schedule and never stop the scan.

    Returns:
        Counts: due, claimed, succeeded, failed, skipped
    """
    now = now or utc_now()
    stats = {"due": 0, "claimed": 0, "succeeded": 0, "failed": 0, "skipped": 0}

    due = await get_due_schedules(db, now)
    stats["due"] = len(due)
    targets = [(schedule.id, schedule.next_send_at) for schedule in due]

    for schedule_id, seen_next_send_at in targets:
        if not await claim_schedule(db, schedule_id, seen_next_send_at, now):
            logger.bind(schedule_id=str(schedule_id)).info("report_schedule_already_claimed")
            stats["skipped"] += 1
            continue
        await db.commit()
        stats["claimed"] += 1

        try:
            result = await execute_scheduled_report(
                db, schedule_id, renderer=renderer, channel=channel, now=now
            )
            await release_claim(db, schedule_id)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.bind(schedule_id=str(schedule_id), error=str(e)).error("report_execution_error")
            await release_claim(db, schedule_id)
            await db.commit()
            stats["failed"] += 1
            continue

        stats["succeeded" if result.success else "failed"] += 1

    logger.bind(**stats).info("due_reports_processed")
    return stats
