"""
Threshold notification sweep: overdue rent and lease expiration.

Each check matches records against day thresholds and emits an email and/or
SMS per match, depending on which contact channels the tenant has on file.
Day counts are whole calendar days between today's date and the due/end date.

Threshold modes:
- exact: fire only when the day count equals a threshold
- catch_up: fire the most advanced threshold already crossed, so a sweep
  that missed the exact day still notifies once

In both modes notification_log suppresses a repeat for the same
(kind, subject, threshold), so overlapping daily and periodic sweeps are safe.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import get_config
from rentala.core.datetime_utils import utc_now, whole_days_between
from rentala.core.logging import get_logger
from rentala.models.notification_log import NotificationLog
from rentala.models.property import Lease, LeaseStatus, Payment, PaymentStatus, Tenant
from rentala.services.bulk_dispatch import Channel, DispatchItem, OutboundMessage, iter_dispatch
from rentala.services.email_service import (
    EmailChannel,
    lease_expiration_email,
    overdue_rent_email,
)
from rentala.services.sms_service import SmsChannel, lease_expiration_sms, overdue_rent_sms

logger = get_logger(__name__)

OVERDUE_RENT = "overdue_rent"
LEASE_EXPIRATION = "lease_expiration"

EXACT = "exact"
CATCH_UP = "catch_up"


@dataclass
class ThresholdMatch:
    """A record that reached a notification threshold."""

    subject_id: uuid.UUID
    property_id: uuid.UUID
    threshold_days: int
    tenant: Tenant
    email: OutboundMessage
    sms: OutboundMessage

    @property
    def reference(self) -> str:
        return f"{self.subject_id}:{self.threshold_days}"


def select_threshold(
    days: int,
    thresholds: Sequence[int],
    mode: str = EXACT,
    already_sent: Iterable[int] = (),
    ascending: bool = True,
) -> int | None:
    """
    Pick the threshold to notify for a day count, or None.

    Args:
        days: Days overdue (ascending) or days until expiry (descending)
        thresholds: Configured day thresholds
        mode: "exact" or "catch_up"
        already_sent: Thresholds already notified for this subject
        ascending: True when days grow over time toward the thresholds

    Returns:
        The threshold to fire, or None
    """
    sent = set(already_sent)

    if mode == EXACT:
        return days if days in thresholds and days not in sent else None

    if ascending:
        crossed = [t for t in thresholds if days >= t]
        target = max(crossed, default=None)
    else:
        crossed = [t for t in thresholds if days <= t]
        target = min(crossed, default=None)

    if target is None or target in sent:
        return None
    return target


async def _sent_thresholds(
    db: AsyncSession, kind: str, subject_ids: list[uuid.UUID]
) -> dict[uuid.UUID, set[int]]:
    if not subject_ids:
        return {}

    result = await db.execute(
        select(NotificationLog.subject_id, NotificationLog.threshold_days).where(
            NotificationLog.kind == kind,
            NotificationLog.subject_id.in_(subject_ids),
        )
    )
    sent: dict[uuid.UUID, set[int]] = defaultdict(set)
    for subject_id, threshold in result.all():
        sent[subject_id].add(threshold)
    return sent


async def _dispatch_matches(
    db: AsyncSession,
    kind: str,
    matches: list[ThresholdMatch],
    email_channel: Channel,
    sms_channel: Channel,
    now: datetime,
) -> dict[str, int]:
    """Send every match's payloads and log thresholds that reached the tenant."""
    delay_ms = get_config().notifications.delay_ms

    email_items = [
        DispatchItem(target=m.tenant.email, message=m.email, reference=m.reference)
        for m in matches
        if m.tenant.email
    ]
    sms_items = [
        DispatchItem(target=m.tenant.phone, message=m.sms, reference=m.reference)
        for m in matches
        if m.tenant.phone
    ]

    delivered: dict[str, int] = defaultdict(int)
    stats = {"matched": len(matches), "emails_sent": 0, "sms_sent": 0}

    async for outcome in iter_dispatch(email_channel, email_items, delay_ms=delay_ms):
        if outcome.success:
            stats["emails_sent"] += 1
            delivered[outcome.item.reference] += 1

    async for outcome in iter_dispatch(sms_channel, sms_items, delay_ms=delay_ms):
        if outcome.success:
            stats["sms_sent"] += 1
            delivered[outcome.item.reference] += 1

    # Undelivered matches stay unlogged so the next sweep retries them
    for match in matches:
        count = delivered.get(match.reference, 0)
        if count:
            db.add(
                NotificationLog(
                    kind=kind,
                    subject_id=match.subject_id,
                    property_id=match.property_id,
                    threshold_days=match.threshold_days,
                    sent_count=count,
                    notified_at=now,
                )
            )
    await db.flush()

    return stats


async def check_overdue_rents(
    db: AsyncSession,
    now: datetime | None = None,
    email_channel: Channel | None = None,
    sms_channel: Channel | None = None,
) -> dict[str, int]:
    """
    Notify tenants whose pending payment reached an overdue threshold.

    Returns:
        Counts: matched, emails_sent, sms_sent
    """
    now = now or utc_now()
    today = now.date()
    notifications = get_config().notifications
    thresholds = notifications.overdue_thresholds

    result = await db.execute(
        select(Payment).where(
            Payment.status == PaymentStatus.PENDING,
            Payment.due_date <= today - timedelta(days=min(thresholds)),
        )
    )
    payments = list(result.scalars().all())
    sent = await _sent_thresholds(db, OVERDUE_RENT, [p.id for p in payments])

    matches = []
    for payment in payments:
        days_overdue = whole_days_between(payment.due_date, today)
        threshold = select_threshold(
            days_overdue,
            thresholds,
            notifications.threshold_mode,
            sent.get(payment.id, ()),
            ascending=True,
        )
        if threshold is None:
            continue

        lease = payment.lease
        tenant_name = lease.tenant.first_name or "Tenant"
        property_name = lease.rental_property.name
        matches.append(
            ThresholdMatch(
                subject_id=payment.id,
                property_id=lease.property_id,
                threshold_days=threshold,
                tenant=lease.tenant,
                email=overdue_rent_email(
                    tenant_name,
                    property_name,
                    payment.amount,
                    days_overdue,
                    notifications.currency_symbol,
                ),
                sms=overdue_rent_sms(
                    tenant_name,
                    property_name,
                    payment.amount,
                    days_overdue,
                    notifications.currency_symbol,
                ),
            )
        )

    stats = await _dispatch_matches(
        db,
        OVERDUE_RENT,
        matches,
        email_channel or EmailChannel(),
        sms_channel or SmsChannel(),
        now,
    )
    logger.bind(**stats).info("overdue_rent_check_completed")
    return stats


async def check_lease_expirations(
    db: AsyncSession,
    now: datetime | None = None,
    email_channel: Channel | None = None,
    sms_channel: Channel | None = None,
) -> dict[str, int]:
    """
    Notify tenants whose active lease ends within the lookahead window at a threshold.

    Returns:
        Counts: matched, emails_sent, sms_sent
    """
    now = now or utc_now()
    today = now.date()
    notifications = get_config().notifications
    thresholds = notifications.lease_thresholds

    result = await db.execute(
        select(Lease).where(
            Lease.status == LeaseStatus.ACTIVE,
            Lease.end_date >= today,
            Lease.end_date <= today + timedelta(days=notifications.lease_lookahead_days),
        )
    )
    leases = list(result.scalars().all())
    sent = await _sent_thresholds(db, LEASE_EXPIRATION, [lease.id for lease in leases])

    matches = []
    for lease in leases:
        days_until = whole_days_between(today, lease.end_date)
        threshold = select_threshold(
            days_until,
            thresholds,
            notifications.threshold_mode,
            sent.get(lease.id, ()),
            ascending=False,
        )
        if threshold is None:
            continue

        tenant_name = lease.tenant.first_name or "Tenant"
        property_name = lease.rental_property.name
        matches.append(
            ThresholdMatch(
                subject_id=lease.id,
                property_id=lease.property_id,
                threshold_days=threshold,
                tenant=lease.tenant,
                email=lease_expiration_email(
                    tenant_name, property_name, lease.end_date, days_until
                ),
                sms=lease_expiration_sms(tenant_name, property_name, days_until),
            )
        )

    stats = await _dispatch_matches(
        db,
        LEASE_EXPIRATION,
        matches,
        email_channel or EmailChannel(),
        sms_channel or SmsChannel(),
        now,
    )
    logger.bind(**stats).info("lease_expiration_check_completed")
    return stats


async def run_notification_sweep(
    db: AsyncSession,
    now: datetime | None = None,
    email_channel: Channel | None = None,
    sms_channel: Channel | None = None,
) -> dict[str, dict[str, int]]:
    """
    Run both checks, committing after each.

    A failing check is logged and does not prevent the other from running.

    Returns:
        Per-check counts keyed by notification kind
    """
    now = now or utc_now()
    email_channel = email_channel or EmailChannel()
    sms_channel = sms_channel or SmsChannel()

    results: dict[str, dict[str, int]] = {}
    checks = [(OVERDUE_RENT, check_overdue_rents), (LEASE_EXPIRATION, check_lease_expirations)]

    for kind, check in checks:
        try:
            results[kind] = await check(
                db, now=now, email_channel=email_channel, sms_channel=sms_channel
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.bind(check=kind, error=str(e)).error("notification_check_failed")
            results[kind] = {"matched": 0, "emails_sent": 0, "sms_sent": 0}

    logger.info("notification_sweep_completed")
    return results
