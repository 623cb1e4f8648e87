"""Exception hierarchy for the scheduling and dispatch engine.

Interactive callers (API, CLI) see these raised; background jobs log them.
"""


class RentalaError(Exception):
    """Base class for all domain errors."""


class RecipientValidationError(RentalaError):
    """Malformed email address or phone number. Rejected before dispatch, never retried."""

    def __init__(self, recipient: str, reason: str) -> None:
        super().__init__(f"{reason}: {recipient}")
        self.recipient = recipient
        self.reason = reason


class TransportError(RentalaError):
    """Delivery gateway unreachable or rejected the message."""


class ConfigurationError(RentalaError):
    """Gateway credentials or sender identity missing."""


class RenderError(RentalaError):
    """Report rendering failed or timed out."""


class NextFireError(RentalaError):
    """No valid next-fire instant could be computed for a cadence."""


class ScheduleNotFoundError(RentalaError):
    """Report schedule does not exist or is not owned by the caller."""


class VersionNotFoundError(RentalaError):
    """Preference version does not exist or is not owned by the caller."""


class SuggestionNotFoundError(RentalaError):
    """Rollback suggestion does not exist or is not owned by the caller."""


class SuggestionStateError(RentalaError):
    """Rollback suggestion is no longer pending and cannot change state."""


class TenantNotFoundError(RentalaError):
    """Tenant has no lease on the given property, or the property is not the caller's."""
