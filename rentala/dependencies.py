from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.config import Settings, get_settings
from rentala.core.database import get_db
from rentala.services.bulk_dispatch import Channel
from rentala.services.email_service import EmailChannel
from rentala.services.report_pdf import ReportRenderer, default_report_renderer
from rentala.services.sms_service import SmsChannel

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """
    Opaque identifier of the authenticated caller.

    Authentication happens upstream; the gateway forwards the user id in
    the X-User-Id header. Raise 401 if it is missing.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return x_user_id.strip()[:64]


def get_email_channel() -> Channel:
    return EmailChannel()


def get_sms_channel() -> Channel:
    return SmsChannel()


def get_report_renderer() -> ReportRenderer:
    return default_report_renderer()


# Type aliases for authenticated endpoints
CurrentUser = Annotated[str, Depends(get_current_user_id)]
EmailTransport = Annotated[Channel, Depends(get_email_channel)]
SmsTransport = Annotated[Channel, Depends(get_sms_channel)]
Renderer = Annotated[ReportRenderer, Depends(get_report_renderer)]
