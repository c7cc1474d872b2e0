"""Error taxonomy shared by the gateway, the view-models and the guard.

AuthRequired and ValidationFailure end in navigation. RemoteFailure is
surfaced as dismissible view state. PartialLookupFailure is never raised
past the aggregator; it is the record of one degraded buyer lookup.
"""

from __future__ import annotations


class DealDeskError(Exception):
    """Base class for all client errors."""


class AuthRequired(DealDeskError):
    """No usable session: the token is missing or the remote rejected it.

    Raised after the session store has been cleared, so callers only need
    to navigate to the login route.
    """

    def __init__(self, reason: str = "session_expired", role: str | None = None) -> None:
        self.reason = reason
        self.role = role
        super().__init__(f"Authentication required ({reason})")


class RemoteFailure(DealDeskError):
    """Non-2xx response (other than 401) or transport failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PartialLookupFailure(DealDeskError):
    """A single buyer-identity lookup failed during aggregation."""

    def __init__(self, buyer_id: str, detail: str | None = None) -> None:
        self.buyer_id = buyer_id
        self.detail = detail
        super().__init__(f"Buyer lookup failed for {buyer_id}")


class ValidationFailure(DealDeskError):
    """A local precondition is missing, e.g. no deal id in the route."""

    def __init__(self, message: str, redirect: str | None = None) -> None:
        self.message = message
        self.redirect = redirect
        super().__init__(message)
