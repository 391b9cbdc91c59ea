"""
Core utilities: shared error taxonomy used by the store, the transition
engine, the access guard and the API server.
"""

from contribution_review.core.exceptions import (
    AuthenticationError,
    ContributionReviewError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitedError,
    StorageError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "ContributionReviewError",
    "ForbiddenError",
    "InvalidTransitionError",
    "NotFoundError",
    "RateLimitedError",
    "StorageError",
    "ValidationError",
]
