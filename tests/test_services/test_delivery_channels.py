"""Tests for the email (Resend) and SMS (Twilio) channels."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from rentala.config import Settings
from rentala.services.bulk_dispatch import OutboundMessage
from rentala.services.email_service import (
    EmailChannel,
    lease_expiration_email,
    overdue_rent_email,
    scheduled_report_email,
)
from rentala.services.sms_service import SmsChannel, lease_expiration_sms, overdue_rent_sms

TWILIO_SETTINGS = Settings(
    twilio_account_sid="AC123",
    twilio_auth_token="secret",
    twilio_phone_number="+27110000000",
    twilio_api_base_url="https://twilio.test/2010-04-01",
)


def _mock_twilio(handler):
    """Route httpx.AsyncClient requests through a MockTransport."""
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    return patch("rentala.services.sms_service.httpx.AsyncClient", side_effect=client_factory)


@pytest.mark.asyncio
class TestSmsChannel:
    async def test_posts_form_to_twilio(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        with _mock_twilio(handler):
            ok = await SmsChannel(TWILIO_SETTINGS).send("+27821234567", OutboundMessage(body="Hi"))

        assert ok is True
        request = requests[0]
        assert str(request.url) == "https://twilio.test/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["authorization"].startswith("Basic ")
        form = parse_qs(request.content.decode())
        assert form == {"To": ["+27821234567"], "From": ["+27110000000"], "Body": ["Hi"]}

    async def test_long_body_is_truncated_before_sending(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(parse_qs(request.content.decode())["Body"][0])
            return httpx.Response(201, json={"sid": "SM2"})

        with _mock_twilio(handler):
            await SmsChannel(TWILIO_SETTINGS).send("+27821234567", OutboundMessage(body="z" * 200))

        assert len(bodies[0]) == 160
        assert bodies[0].endswith("...")

    async def test_gateway_rejection_returns_false(self):
        with _mock_twilio(lambda request: httpx.Response(400, json={"message": "bad"})):
            ok = await SmsChannel(TWILIO_SETTINGS).send("+27821234567", OutboundMessage(body="Hi"))

        assert ok is False

    async def test_network_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable")

        with _mock_twilio(handler):
            ok = await SmsChannel(TWILIO_SETTINGS).send("+27821234567", OutboundMessage(body="Hi"))

        assert ok is False

    async def test_missing_credentials_is_a_noop(self):
        channel = SmsChannel(Settings(twilio_account_sid="", twilio_auth_token=""))
        channel._post_message = AsyncMock()

        assert await channel.send("+27821234567", OutboundMessage(body="Hi")) is False
        channel._post_message.assert_not_called()


@pytest.mark.asyncio
class TestEmailChannel:
    async def test_sends_through_resend_with_attachment(self):
        message = scheduled_report_email(
            "Monthly", "Sea Point Flats", "monthly", b"%PDF", "satisfaction-report-2026-10-18.pdf"
        )
        send = MagicMock(return_value={"id": "em_1"})

        with patch("rentala.services.email_service.resend.Emails.send", send):
            ok = await EmailChannel(Settings(resend_api_key="re_test")).send(
                "owner@rentala.co.za", message
            )

        assert ok is True
        params = send.call_args[0][0]
        assert params["to"] == ["owner@rentala.co.za"]
        assert params["subject"] == "Monthly - Sea Point Flats"
        assert params["attachments"][0]["filename"] == "satisfaction-report-2026-10-18.pdf"
        assert params["attachments"][0]["content"] == "JVBERg=="

    async def test_provider_error_returns_false(self):
        send = MagicMock(side_effect=RuntimeError("rate limited"))

        with patch("rentala.services.email_service.resend.Emails.send", send):
            ok = await EmailChannel(Settings(resend_api_key="re_test")).send(
                "owner@rentala.co.za", OutboundMessage(body="x", subject="s")
            )

        assert ok is False

    async def test_missing_api_key_returns_false(self):
        send = MagicMock()

        with patch("rentala.services.email_service.resend.Emails.send", send):
            ok = await EmailChannel(Settings(resend_api_key="")).send(
                "owner@rentala.co.za", OutboundMessage(body="x", subject="s")
            )

        assert ok is False
        send.assert_not_called()


class TestSmsTargets:
    def test_prepare_target_uses_default_country_code(self):
        channel = SmsChannel(Settings(sms_default_country_code="27"))

        assert channel.prepare_target("0821234567") == "+27821234567"


class TestMessageBuilders:
    def test_overdue_rent_messages(self):
        email = overdue_rent_email("Thandi", "Sea Point Flats", Decimal("8500"), 7, "R")
        sms = overdue_rent_sms("Thandi", "Sea Point Flats", Decimal("8500"), 7, "R")

        assert email.subject == "Overdue Rent Payment - Sea Point Flats"
        assert "R 8500.00" in email.body
        assert "7 days overdue" in email.html
        assert "R8500" in sms.body
        assert "7 days overdue" in sms.body

    def test_lease_expiration_messages(self):
        from datetime import date

        email = lease_expiration_email("Thandi", "Sea Point Flats", date(2026, 11, 17), 30)
        sms = lease_expiration_sms("Thandi", "Sea Point Flats", 30)

        assert email.subject == "Lease Expiration Notice - Sea Point Flats"
        assert "2026-11-17" in email.body
        assert "expires in 30 days" in sms.body

    def test_html_is_escaped(self):
        email = overdue_rent_email("<b>Eve</b>", "Flat", 100, 7)

        assert "<b>Eve</b>" not in email.html
        assert "&lt;b&gt;Eve&lt;/b&gt;" in email.html
