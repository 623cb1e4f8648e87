"""Recipient validation and normalization for email and SMS delivery.

Free, local checks only. Anything rejected here raises
RecipientValidationError and is never handed to a gateway.
"""

import re

from rentala.core.errors import RecipientValidationError

# RFC 2606 reserved domains + common test domains
RESERVED_DOMAINS = frozenset(
    {
        "example.com",
        "example.org",
        "example.net",
        "test.com",
        "localhost",
        "localhost.localdomain",
        "invalid",
    }
)

# Reserved TLDs that should never be used
RESERVED_TLDS = frozenset({"test", "example", "invalid", "localhost"})

# Loose E.164 check: optional +, no leading zero, at most 15 digits
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")

# Separators people type into phone numbers
PHONE_SEPARATORS = re.compile(r"[\s\-().]")

SMS_MAX_LENGTH = 160
SMS_ELLIPSIS = "..."


def normalize_email(email: str) -> str:
    """
    Validate an email address and return it normalized (stripped, lowercased).

    Raises:
        RecipientValidationError: On malformed addresses or reserved domains
    """
    normalized = email.strip().lower()

    if normalized.count("@") != 1 or any(ch.isspace() for ch in normalized):
        raise RecipientValidationError(email, "Invalid email format")

    local, domain = normalized.split("@")
    if not local or not domain or "." not in domain:
        raise RecipientValidationError(email, "Invalid email format")

    if domain.startswith(".") or domain.endswith(".") or ".." in domain:
        raise RecipientValidationError(email, "Invalid email format")

    if domain in RESERVED_DOMAINS:
        raise RecipientValidationError(email, f"Reserved domain: {domain}")

    tld = domain.rsplit(".", 1)[-1]
    if tld in RESERVED_TLDS:
        raise RecipientValidationError(email, f"Reserved TLD: {tld}")

    return normalized


def validate_phone_number(phone: str) -> bool:
    """Loose international-format check on a phone number."""
    return bool(PHONE_PATTERN.match(PHONE_SEPARATORS.sub("", phone)))


def format_phone_number(phone: str, default_country_code: str = "27") -> str:
    """
    Convert a phone number toward E.164.

    Numbers already carrying a "+" are returned unchanged. A leading trunk
    "0" is replaced by the default country code; anything else just gets a
    "+" prefix.

    Examples:
        >>> format_phone_number("0821234567")
        '+27821234567'
        >>> format_phone_number("+27821234567")
        '+27821234567'
    """
    cleaned = PHONE_SEPARATORS.sub("", phone.strip())
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return f"+{default_country_code}{cleaned[1:]}"
    return f"+{cleaned}"


def normalize_phone(phone: str, default_country_code: str = "27") -> str:
    """
    Format a phone number and verify the result looks like E.164.

    Raises:
        RecipientValidationError: If the formatted number fails the check
    """
    formatted = format_phone_number(phone, default_country_code)
    if not PHONE_PATTERN.match(formatted):
        raise RecipientValidationError(phone, "Invalid phone number format")
    return formatted


def truncate_sms_body(body: str, limit: int = SMS_MAX_LENGTH) -> str:
    """Cap an SMS body at limit characters, ending truncated bodies with '...'."""
    if len(body) <= limit:
        return body
    return body[: limit - len(SMS_ELLIPSIS)] + SMS_ELLIPSIS
