"""
Structured logging for the contribution review service.

JSON logs with timestamp, event_type and per-event keyword fields
(contribution_id, principal_id, status, ...). Use get_logger() in every module.
"""

from contribution_review.review_logging.logger import bind_principal, get_logger

__all__ = ["bind_principal", "get_logger"]
