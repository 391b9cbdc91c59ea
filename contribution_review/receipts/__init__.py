"""
Receipt file storage: validates type and size, writes bytes to disk and
returns the metadata the record store keeps.
"""

from contribution_review.receipts.storage import (
    ALLOWED_MIME_TYPES,
    ReceiptStore,
    sanitize_filename,
)

__all__ = ["ALLOWED_MIME_TYPES", "ReceiptStore", "sanitize_filename"]
