"""
Application-level exceptions.

Each exception carries the HTTP status and a stable error code so the API
server can map any of them to a JSON response with a single handler.
"""

from __future__ import annotations


class ContributionReviewError(Exception):
    """Base class for all service errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ContributionReviewError):
    """Malformed or missing input; correctable by the caller."""

    status_code = 400
    code = "validation_error"


class AuthenticationError(ContributionReviewError):
    """Missing, malformed or expired credentials."""

    status_code = 401
    code = "authentication_required"


class ForbiddenError(ContributionReviewError):
    """Principal lacks the role or ownership for the operation."""

    status_code = 403
    code = "forbidden"


class NotFoundError(ContributionReviewError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(ContributionReviewError):
    """Requested status change is not allowed from the record's current status."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class RateLimitedError(ContributionReviewError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, *, retry_after_sec: int) -> None:
        super().__init__(message)
        self.retry_after_sec = retry_after_sec


class StorageError(ContributionReviewError):
    """Persistence failure. Logged in full; never surfaced verbatim to clients."""

    status_code = 500
    code = "storage_error"
