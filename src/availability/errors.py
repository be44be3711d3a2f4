"""Error hierarchy for snapshot loading and booking validation.

The resolver itself never raises: every decision comes back as a
SlotDecision. These exceptions cover the edges around it (reading the
settings/bookings snapshot, validating query parameters, reserving a slot).

Transient failures are retried with tenacity, permanent ones are not:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def _get(self, params):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.availability.models import SlotDecision


class AvailabilityError(Exception):
    """Base exception for all availability errors."""

    pass


class TransientError(AvailabilityError):
    """Temporary failure that may succeed on retry.

    Examples: data API timeouts, 502/503 responses, dropped connections.
    """

    pass


class RateLimitError(TransientError):
    """The data API answered 429 - needs longer backoff."""

    pass


class PermanentError(AvailabilityError):
    """Failure that won't succeed on retry.

    Examples: malformed settings JSON, 404 from the data API.
    """

    pass


class AuthenticationError(PermanentError):
    """The data API rejected our credentials (401/403)."""

    pass


class InvalidRequestError(PermanentError):
    """Query parameters are missing or cannot be parsed."""

    pass


class SlotUnavailableError(PermanentError):
    """A reservation was attempted on a slot that cannot take it.

    Carries the decision that rejected it so callers can report the reason.
    """

    def __init__(self, decision: "SlotDecision") -> None:
        self.decision = decision
        super().__init__(
            f"Slot {decision.date} {decision.time} ({decision.technique}) "
            f"is not bookable: {decision.blocked_reason.value}"
        )
