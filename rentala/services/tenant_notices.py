"""
On-demand tenant notices and the sent-notice history.

An owner can send the overdue rent or lease expiration notice to one of
their tenants outside the sweep. Manual sends are not written to
notification_log, so they never suppress a threshold notice.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import get_config
from rentala.core.datetime_utils import utc_now, whole_days_between
from rentala.core.errors import RecipientValidationError, TenantNotFoundError
from rentala.core.logging import get_logger
from rentala.models.notification_log import NotificationLog
from rentala.models.property import Lease, Payment, PaymentStatus, Property
from rentala.services.bulk_dispatch import Channel, DispatchItem, OutboundMessage, send_bulk
from rentala.services.email_service import lease_expiration_email, overdue_rent_email
from rentala.services.notification_sweep import LEASE_EXPIRATION, OVERDUE_RENT
from rentala.services.sms_service import lease_expiration_sms, overdue_rent_sms

logger = get_logger(__name__)

# Used when there is no overdue payment to take the values from
DEFAULT_DAYS_OVERDUE = 7


@dataclass
class NoticeResult:
    success: bool
    target: str


async def _owned_lease(
    db: AsyncSession, owner_id: str, tenant_id: uuid.UUID, property_id: uuid.UUID
) -> Lease:
    result = await db.execute(
        select(Lease)
        .join(Property, Lease.property_id == Property.id)
        .where(
            Lease.tenant_id == tenant_id,
            Lease.property_id == property_id,
            Property.owner_id == owner_id,
        )
        .order_by(Lease.end_date.desc())
        .limit(1)
    )
    lease = result.scalars().first()
    if lease is None:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found for property {property_id}")
    return lease


async def _oldest_overdue_payment(
    db: AsyncSession, lease_id: uuid.UUID, today: date
) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(
            Payment.lease_id == lease_id,
            Payment.status == PaymentStatus.PENDING,
            Payment.due_date <= today,
        )
        .order_by(Payment.due_date)
        .limit(1)
    )
    return result.scalars().first()


async def _overdue_rent_notice(
    db: AsyncSession,
    lease: Lease,
    sms: bool,
    today: date,
    rent_amount: Decimal | None,
    days_overdue: int | None,
) -> OutboundMessage:
    if rent_amount is None or days_overdue is None:
        payment = await _oldest_overdue_payment(db, lease.id, today)
        if rent_amount is None:
            rent_amount = payment.amount if payment else Decimal("0")
        if days_overdue is None:
            days_overdue = (
                whole_days_between(payment.due_date, today) if payment else DEFAULT_DAYS_OVERDUE
            )

    tenant_name = lease.tenant.first_name or "Tenant"
    property_name = lease.rental_property.name
    currency = get_config().notifications.currency_symbol
    build = overdue_rent_sms if sms else overdue_rent_email
    return build(tenant_name, property_name, rent_amount, days_overdue, currency)


def _lease_expiration_notice(
    lease: Lease,
    sms: bool,
    today: date,
    expiration_date: date | None,
    days_until_expiration: int | None,
) -> OutboundMessage:
    expiration_date = expiration_date or lease.end_date
    if days_until_expiration is None:
        days_until_expiration = whole_days_between(today, expiration_date)

    tenant_name = lease.tenant.first_name or "Tenant"
    property_name = lease.rental_property.name
    if sms:
        return lease_expiration_sms(tenant_name, property_name, days_until_expiration)
    return lease_expiration_email(
        tenant_name, property_name, expiration_date, days_until_expiration
    )


async def send_tenant_notice(
    db: AsyncSession,
    owner_id: str,
    tenant_id: uuid.UUID,
    property_id: uuid.UUID,
    kind: str,
    channel: Channel,
    rent_amount: Decimal | None = None,
    days_overdue: int | None = None,
    expiration_date: date | None = None,
    days_until_expiration: int | None = None,
    now: datetime | None = None,
) -> NoticeResult:
    """
    Send one notice to a tenant of a property the caller owns.

    Values left as None come from the tenant's records: the oldest overdue
    pending payment for rent notices, the lease end date for expiration
    notices.

    Raises:
        TenantNotFoundError: No lease ties the tenant to the caller's property
        RecipientValidationError: Tenant has no usable contact for the channel
        ValueError: Unknown notice kind
    """
    if kind not in (OVERDUE_RENT, LEASE_EXPIRATION):
        raise ValueError(f"Unknown notice kind: {kind}")

    today = (now or utc_now()).date()
    lease = await _owned_lease(db, owner_id, tenant_id, property_id)
    tenant = lease.tenant
    sms = channel.name == "sms"

    contact = tenant.phone if sms else tenant.email
    if not contact:
        field = "phone number" if sms else "email address"
        raise RecipientValidationError(str(tenant.id), f"Tenant has no {field} on file")
    target = channel.prepare_target(contact)

    if kind == OVERDUE_RENT:
        message = await _overdue_rent_notice(db, lease, sms, today, rent_amount, days_overdue)
    else:
        message = _lease_expiration_notice(
            lease, sms, today, expiration_date, days_until_expiration
        )

    sent = await send_bulk(
        channel,
        [DispatchItem(target=target, message=message, reference=f"manual:{kind}:{lease.id}")],
        delay_ms=0,
    )

    logger.bind(
        owner_id=owner_id,
        tenant_id=str(tenant_id),
        kind=kind,
        channel=channel.name,
        success=sent == 1,
    ).info("tenant_notice_sent")
    return NoticeResult(success=sent == 1, target=target)


async def get_notification_history(
    db: AsyncSession,
    owner_id: str,
    property_id: uuid.UUID | None = None,
    kind: str | None = None,
    limit: int = 50,
) -> list[NotificationLog]:
    """Threshold notices sent for the owner's properties, newest first."""
    query = (
        select(NotificationLog)
        .join(Property, NotificationLog.property_id == Property.id)
        .where(Property.owner_id == owner_id)
    )
    if property_id is not None:
        query = query.where(NotificationLog.property_id == property_id)
    if kind is not None:
        query = query.where(NotificationLog.kind == kind)

    result = await db.execute(query.order_by(NotificationLog.notified_at.desc()).limit(limit))
    return list(result.scalars().all())
