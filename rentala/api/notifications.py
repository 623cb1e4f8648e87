"""Manual tenant notices, phone number checks and the sweep's notice history."""

import uuid
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, status

from rentala.core.errors import RecipientValidationError, TenantNotFoundError
from rentala.dependencies import AppSettings, CurrentUser, DBSession, EmailTransport, SmsTransport
from rentala.schemas.notifications import (
    NotificationLogResponse,
    PhoneValidationResponse,
    SendNotificationRequest,
    SendNotificationResponse,
)
from rentala.services.recipients import format_phone_number, validate_phone_number
from rentala.services.tenant_notices import get_notification_history, send_tenant_notice

router = APIRouter()


@router.post("/notifications/send", response_model=SendNotificationResponse)
async def send_notification(
    body: SendNotificationRequest,
    user_id: CurrentUser,
    db: DBSession,
    email_channel: EmailTransport,
    sms_channel: SmsTransport,
) -> SendNotificationResponse:
    """
    Send an overdue rent or lease expiration notice to one tenant.

    The tenant must hold a lease on a property the caller owns. A gateway
    failure is reported as success=false rather than an error status.
    """
    channel = sms_channel if body.channel == "sms" else email_channel
    try:
        result = await send_tenant_notice(
            db,
            user_id,
            tenant_id=body.tenant_id,
            property_id=body.property_id,
            kind=body.type,
            channel=channel,
            rent_amount=body.rent_amount,
            days_overdue=body.days_overdue,
            expiration_date=body.expiration_date,
            days_until_expiration=body.days_until_expiration,
        )
    except TenantNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found") from e
    except RecipientValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e

    if body.channel == "sms":
        message = "SMS sent successfully" if result.success else "Failed to send SMS"
    else:
        message = (
            "Notification sent successfully" if result.success else "Failed to send notification"
        )
    return SendNotificationResponse(
        success=result.success,
        message=message,
        target=result.target,
    )


@router.get("/notifications/validate-phone", response_model=PhoneValidationResponse)
async def validate_phone(
    user_id: CurrentUser,
    settings: AppSettings,
    phone: str = Query(min_length=1, max_length=32),
) -> PhoneValidationResponse:
    """Check a phone number and show the E.164 form it would be sent to."""
    formatted = format_phone_number(phone, settings.sms_default_country_code)
    if not validate_phone_number(formatted):
        return PhoneValidationResponse(is_valid=False, message="Invalid phone number format")
    return PhoneValidationResponse(
        is_valid=True, formatted=formatted, message="Phone number is valid"
    )


@router.get("/notifications/history", response_model=list[NotificationLogResponse])
async def notification_history(
    user_id: CurrentUser,
    db: DBSession,
    property_id: uuid.UUID | None = Query(default=None),
    kind: Literal["overdue_rent", "lease_expiration"] | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
) -> list[NotificationLogResponse]:
    """Threshold notices the sweep sent for the caller's properties, newest first."""
    logs = await get_notification_history(
        db, user_id, property_id=property_id, kind=kind, limit=limit
    )
    return [NotificationLogResponse.model_validate(log) for log in logs]
