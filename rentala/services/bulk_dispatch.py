"""
Rate-limited sequential dispatch across delivery channels.

Channels (email, SMS) share one protocol so the report executor and the
notification sweep can push items through the same loop. Sends are strictly
sequential; the delay between attempts is backpressure against provider
rate limits, not concurrency control.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from rentala.config import get_settings
from rentala.core.errors import RecipientValidationError
from rentala.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DELAY_MS = 500


@dataclass
class Attachment:
    """Binary file attached to an outbound message."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class OutboundMessage:
    """Channel-neutral message. SMS uses body only; email uses all fields."""

    body: str
    subject: str = ""
    html: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class DispatchItem:
    """One recipient and the message destined for it."""

    target: str
    message: OutboundMessage
    reference: str | None = None  # caller tag for correlating outcomes


@dataclass
class DispatchOutcome:
    """Result of dispatching a single item."""

    item: DispatchItem
    success: bool
    error: str | None = None
    rejected: bool = False  # failed recipient validation, never attempted


class Channel(Protocol):
    """Protocol for delivery channels."""

    name: str

    def prepare_target(self, target: str) -> str:
        """Validate and normalize a recipient. Raises RecipientValidationError."""
        ...

    async def send(self, target: str, message: OutboundMessage) -> bool:
        """Deliver one message. Returns False on transport or configuration failure."""
        ...


async def iter_dispatch(
    channel: Channel,
    items: Iterable[DispatchItem],
    delay_ms: int = DEFAULT_DELAY_MS,
    timeout: float | None = None,
) -> AsyncIterator[DispatchOutcome]:
    """
    Send items one at a time, yielding the outcome of each.

    Invalid recipients are logged and skipped without a delay. Every real
    attempt is followed by a delay_ms pause regardless of its outcome, and a
    failure never stops the remaining items.

    Args:
        channel: Delivery channel
        items: Recipients and messages, in send order
        delay_ms: Pause after each attempt
        timeout: Per-send bound in seconds (defaults to transport_timeout_seconds)

    Yields:
        DispatchOutcome per item, in input order
    """
    if timeout is None:
        timeout = get_settings().transport_timeout_seconds

    for item in items:
        try:
            target = channel.prepare_target(item.target)
        except RecipientValidationError as e:
            logger.bind(channel=channel.name, recipient=e.recipient, reason=e.reason).warning(
                "dispatch_invalid_recipient"
            )
            yield DispatchOutcome(item=item, success=False, error=str(e), rejected=True)
            continue

        error = None
        try:
            success = await asyncio.wait_for(channel.send(target, item.message), timeout=timeout)
            if not success:
                error = f"{channel.name} delivery failed"
        except TimeoutError:
            success = False
            error = f"{channel.name} send timed out after {timeout}s"
            logger.bind(channel=channel.name, recipient=target).error("dispatch_timeout")
        except Exception as e:
            success = False
            error = str(e)
            logger.bind(channel=channel.name, recipient=target, error=error).error(
                "dispatch_error"
            )

        yield DispatchOutcome(item=item, success=success, error=error)

        await asyncio.sleep(delay_ms / 1000)


async def send_bulk(
    channel: Channel,
    items: Iterable[DispatchItem],
    delay_ms: int = DEFAULT_DELAY_MS,
    timeout: float | None = None,
) -> int:
    """
    Send items sequentially and return the number delivered.

    Returns:
        Count of successful sends
    """
    items = list(items)
    sent = 0
    async for outcome in iter_dispatch(channel, items, delay_ms=delay_ms, timeout=timeout):
        if outcome.success:
            sent += 1

    logger.bind(channel=channel.name, total=len(items), sent=sent).info("bulk_dispatch_completed")
    return sent
