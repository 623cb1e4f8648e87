import asyncio
import base64
from datetime import date
from decimal import Decimal
from pathlib import Path

import resend
from jinja2 import Environment, FileSystemLoader

from rentala.config import Settings, get_config, get_settings
from rentala.core.errors import ConfigurationError, TransportError
from rentala.core.logging import get_logger
from rentala.services.bulk_dispatch import Attachment, OutboundMessage
from rentala.services.recipients import normalize_email

logger = get_logger(__name__)

# Initialize Jinja2 environment for email templates
template_dir = Path(__file__).parent.parent / "emails" / "templates"
jinja_env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)


def _render(template_name: str, **context) -> str:
    template = jinja_env.get_template(template_name)
    return template.render(company_name=get_config().notifications.company_name, **context)


def overdue_rent_email(
    tenant_name: str,
    property_name: str,
    rent_amount: Decimal | float,
    days_overdue: int,
    currency: str = "R",
) -> OutboundMessage:
    """Build the overdue rent notice."""
    amount = f"{currency} {float(rent_amount):.2f}"
    return OutboundMessage(
        subject=f"Overdue Rent Payment - {property_name}",
        html=_render(
            "overdue_rent.html",
            tenant_name=tenant_name,
            property_name=property_name,
            amount=amount,
            days_overdue=days_overdue,
        ),
        body=(
            f"Dear {tenant_name},\n\n"
            f"Your rent payment for {property_name} ({amount}) is {days_overdue} days overdue.\n"
            "Please arrange payment as soon as possible to avoid further action.\n"
            "If you have already made this payment, please disregard this notice."
        ),
    )


def lease_expiration_email(
    tenant_name: str,
    property_name: str,
    expiration_date: date,
    days_until_expiration: int,
) -> OutboundMessage:
    """Build the lease expiration notice."""
    return OutboundMessage(
        subject=f"Lease Expiration Notice - {property_name}",
        html=_render(
            "lease_expiration.html",
            tenant_name=tenant_name,
            property_name=property_name,
            expiration_date=expiration_date.isoformat(),
            days_until_expiration=days_until_expiration,
        ),
        body=(
            f"Dear {tenant_name},\n\n"
            f"Your lease for {property_name} will expire in {days_until_expiration} days "
            f"({expiration_date.isoformat()}).\n"
            "Please contact your property manager to discuss lease renewal options "
            "or move-out arrangements."
        ),
    )


def scheduled_report_email(
    schedule_name: str,
    scope_name: str,
    frequency: str,
    pdf_bytes: bytes,
    filename: str,
) -> OutboundMessage:
    """Build the scheduled report delivery with its PDF attached."""
    return OutboundMessage(
        subject=f"{schedule_name} - {scope_name}",
        html=_render(
            "scheduled_report.html",
            schedule_name=schedule_name,
            scope_name=scope_name,
            frequency=frequency,
        ),
        body=(
            f"Your {frequency} report \"{schedule_name}\" for {scope_name} is attached."
        ),
        attachments=[Attachment(filename=filename, content=pdf_bytes)],
    )


class EmailChannel:
    """Email channel using Resend."""

    name = "email"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def prepare_target(self, target: str) -> str:
        return normalize_email(target)

    def _build_params(self, target: str, message: OutboundMessage) -> dict:
        params: dict = {
            "from": self._settings.email_from,
            "to": [target],
            "subject": message.subject,
            "text": message.body,
        }
        if message.html:
            params["html"] = message.html
        if message.attachments:
            params["attachments"] = [_encode_attachment(a) for a in message.attachments]
        return params

    async def _deliver(self, params: dict) -> str:
        if not self._settings.resend_api_key:
            raise ConfigurationError("RESEND_API_KEY not set")

        resend.api_key = self._settings.resend_api_key
        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            raise TransportError(f"Resend send failed: {e}") from e

        return response.get("id", "") if isinstance(response, dict) else ""

    async def send(self, target: str, message: OutboundMessage) -> bool:
        """
        Send one email.

        Returns:
            True if Resend accepted the message, False on missing configuration
            or transport failure
        """
        params = self._build_params(target, message)
        logger.bind(email=target, subject=message.subject).info("sending_email")

        try:
            message_id = await self._deliver(params)
        except ConfigurationError as e:
            logger.bind(email=target, error=str(e)).warning("resend_api_key_not_set")
            return False
        except TransportError as e:
            logger.bind(email=target, error=str(e)).error("email_send_failed")
            return False

        logger.bind(email=target, message_id=message_id).info("email_sent")
        return True


def _encode_attachment(attachment: Attachment) -> dict:
    return {
        "filename": attachment.filename,
        "content": base64.b64encode(attachment.content).decode("ascii"),
        "content_type": attachment.content_type,
    }
