"""SMS delivery through the Twilio REST API."""

from decimal import Decimal

import httpx

from rentala.config import Settings, get_settings
from rentala.core.errors import ConfigurationError, TransportError
from rentala.core.logging import get_logger
from rentala.services.bulk_dispatch import OutboundMessage
from rentala.services.recipients import normalize_phone, truncate_sms_body

logger = get_logger(__name__)


def overdue_rent_sms(
    tenant_name: str,
    property_name: str,
    rent_amount: Decimal | float,
    days_overdue: int,
    currency: str = "R",
) -> OutboundMessage:
    return OutboundMessage(
        body=(
            f"Hi {tenant_name}, your rent payment for {property_name} "
            f"({currency}{float(rent_amount):.0f}) is {days_overdue} days overdue. "
            "Please arrange payment immediately. Contact your landlord if you have questions."
        )
    )


def lease_expiration_sms(
    tenant_name: str,
    property_name: str,
    days_until_expiration: int,
) -> OutboundMessage:
    return OutboundMessage(
        body=(
            f"Hi {tenant_name}, your lease for {property_name} expires in "
            f"{days_until_expiration} days. Please contact your property manager "
            "to discuss renewal or move-out arrangements."
        )
    )


class SmsChannel:
    """SMS channel backed by Twilio's Messages endpoint."""

    name = "sms"

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def prepare_target(self, target: str) -> str:
        return normalize_phone(target, self._settings.sms_default_country_code)

    def _credentials(self) -> tuple[str, str, str]:
        settings = self._settings
        if not settings.twilio_account_sid or not settings.twilio_auth_token:
            raise ConfigurationError("Twilio credentials not configured")
        if not settings.twilio_phone_number:
            raise ConfigurationError("TWILIO_PHONE_NUMBER not configured")
        return (
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
        )

    async def _post_message(
        self, account_sid: str, auth_token: str, from_number: str, to: str, body: str
    ) -> str:
        url = f"{self._settings.twilio_api_base_url}/Accounts/{account_sid}/Messages.json"

        async with httpx.AsyncClient(timeout=self._settings.transport_timeout_seconds) as client:
            try:
                resp = await client.post(
                    url,
                    auth=(account_sid, auth_token),
                    data={"To": to, "From": from_number, "Body": body},
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Twilio request failed: {e}") from e

        if resp.status_code != 201:
            raise TransportError(f"Twilio rejected message ({resp.status_code}): {resp.text[:200]}")

        return resp.json().get("sid", "")

    async def send(self, target: str, message: OutboundMessage) -> bool:
        """
        Send one SMS.

        Bodies longer than 160 characters are truncated. Missing credentials
        degrade to a logged no-op.

        Returns:
            True if Twilio accepted the message
        """
        try:
            account_sid, auth_token, from_number = self._credentials()
        except ConfigurationError as e:
            logger.bind(error=str(e)).warning("sms_not_configured")
            return False

        body = message.body
        if len(body) > 160:
            logger.bind(length=len(body)).warning("sms_body_truncated")
            body = truncate_sms_body(body)

        try:
            sid = await self._post_message(account_sid, auth_token, from_number, target, body)
        except TransportError as e:
            logger.bind(phone=target, error=str(e)).error("sms_send_failed")
            return False

        logger.bind(phone=target, sid=sid).info("sms_sent")
        return True
