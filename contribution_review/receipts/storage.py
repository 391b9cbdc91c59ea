"""
Disk-backed receipt store.

Accepts PNG, JPEG and PDF uploads up to a size ceiling (5 MB by default).
File names are sanitised and prefixed with a timestamp and random suffix so
uploads never collide. Content is never inspected.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path

from contribution_review.core.exceptions import StorageError, ValidationError
from contribution_review.database.models import ReceiptRef
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

ALLOWED_MIME_TYPES = frozenset({"image/png", "image/jpeg", "application/pdf"})
# Non-standard aliases browsers still send
_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

DEFAULT_PUBLIC_PREFIX = "/uploads/receipts"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")


def sanitize_filename(name: str) -> str:
    """Replace anything outside [a-zA-Z0-9._-] with '_'; never returns an empty name."""
    base = Path(name or "").name
    safe = _UNSAFE_CHARS.sub("_", base).lstrip(".")
    return safe or "receipt"


class ReceiptStore:
    """Stores receipt bytes under `directory`; paths in ReceiptRef are public URL paths."""

    def __init__(
        self,
        directory: str | Path,
        *,
        max_bytes: int = 5 * 1024 * 1024,
        public_prefix: str = DEFAULT_PUBLIC_PREFIX,
    ) -> None:
        self._dir = Path(directory)
        self._max_bytes = max_bytes
        self._public_prefix = public_prefix.rstrip("/")

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def normalize_mime_type(self, mime_type: str | None) -> str:
        mime = (mime_type or "").split(";")[0].strip().lower()
        mime = _MIME_ALIASES.get(mime, mime)
        if mime not in ALLOWED_MIME_TYPES:
            raise ValidationError("invalid file type, only PNG, JPG and PDF are allowed")
        return mime

    def save(self, data: bytes, original_name: str, mime_type: str | None) -> ReceiptRef:
        mime = self.normalize_mime_type(mime_type)
        size = len(data)
        if size == 0:
            raise ValidationError("receipt file is empty")
        if size > self._max_bytes:
            mb = self._max_bytes // (1024 * 1024)
            limit = f"{mb} MB" if mb else f"{self._max_bytes} byte"
            raise ValidationError(f"receipt file exceeds the {limit} limit")
        original_name = (original_name or "").strip() or "receipt"
        filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{sanitize_filename(original_name)}"
        target = self._dir / filename
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.exception("receipt_write_failed", filename=filename, error=str(e))
            raise StorageError("could not store receipt file") from e
        logger.info("receipt_stored", filename=filename, mime_type=mime, size=size)
        return ReceiptRef(
            filename=filename,
            original_name=original_name,
            mime_type=mime,
            size=size,
            path=f"{self._public_prefix}/{filename}",
            uploaded_at=datetime.now(timezone.utc),
        )

    def delete(self, receipt: ReceiptRef) -> None:
        """Remove a stored file, e.g. when the submission that referenced it was rejected by validation."""
        target = self._dir / receipt.filename
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("receipt_delete_failed", filename=receipt.filename, error=str(e))
