"""
Contribution record store: validated creation and read-only projections.

Creates records in `pending` with a single `submitted` history entry. It never
touches user accounts or coin aggregates; those change only through the
review engine.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable

from contribution_review.core.exceptions import NotFoundError, ValidationError
from contribution_review.database.database import ContributionRepository, as_utc, utcnow
from contribution_review.database.models import (
    MAX_POINTS,
    MAX_USER_NOTES_LEN,
    OPEN_STATUSES,
    ContributionRecord,
    ContributionStats,
    ContributionStatus,
    HistoryAction,
    HistoryEntry,
    NewContribution,
    ReceiptRef,
    SubmissionMetadata,
)
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

MAX_CURRENCY_LEN = 16
MAX_WALLET_LEN = 128
MAX_TX_HASH_LEN = 128

SUBMITTED_NOTE = "Contribution submitted with receipt"


def parse_decimal(value: Decimal | str | int | float, field_name: str) -> Decimal:
    """Parse user input to a finite Decimal; floats go through str() to keep their printed value."""
    if isinstance(value, float):
        value = str(value)
    try:
        parsed = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number") from e
    if not parsed.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return parsed


def _points_fit(amount: Decimal, rate: Decimal) -> bool:
    """True if floor(amount * rate) fits the 64-bit points columns."""
    # exponents first, so absurd inputs never reach Decimal arithmetic
    if amount.adjusted() > 18 or rate.adjusted() > 18:
        return False
    return amount * rate < MAX_POINTS + 1


def _validate_receipt(receipt: ReceiptRef | None) -> ReceiptRef:
    if receipt is None:
        raise ValidationError("receipt is required")
    missing = [
        name
        for name in ("filename", "original_name", "mime_type", "path")
        if not (getattr(receipt, name, None) or "").strip()
    ]
    if receipt.size is None or receipt.size <= 0:
        missing.append("size")
    if receipt.uploaded_at is None:
        missing.append("uploaded_at")
    if missing:
        raise ValidationError("receipt is missing " + ", ".join(missing))
    return receipt


class ContributionRecordStore:
    """Creation and retrieval of contribution records."""

    def __init__(
        self,
        repository: ContributionRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repository
        self._clock = clock

    def submit(
        self,
        submitter_id: str,
        amount: Decimal | str | int | float,
        currency: str,
        wallet_address: str,
        receipt: ReceiptRef | None,
        transaction_hash: str | None = None,
        *,
        conversion_rate: Decimal | str | int | float,
        coin_id: int | None = None,
        user_notes: str | None = None,
        metadata: SubmissionMetadata | None = None,
    ) -> ContributionRecord:
        """
        Validate and persist a new contribution in `pending`.

        Raises ValidationError for a non-positive amount, empty currency or
        wallet, incomplete receipt metadata, negative conversion rate, an amount
        whose points would not fit in 64 bits, overlong notes, or a transaction
        hash that was already submitted.
        """
        submitter_id = (submitter_id or "").strip()
        if not submitter_id:
            raise ValidationError("submitter id is required")
        parsed_amount = parse_decimal(amount, "amount")
        if parsed_amount <= 0:
            raise ValidationError("amount must be greater than 0")
        currency = (currency or "").strip().upper()
        if not currency:
            raise ValidationError("currency is required")
        if len(currency) > MAX_CURRENCY_LEN:
            raise ValidationError(f"currency cannot exceed {MAX_CURRENCY_LEN} characters")
        wallet_address = (wallet_address or "").strip()
        if not wallet_address:
            raise ValidationError("wallet address is required")
        if len(wallet_address) > MAX_WALLET_LEN:
            raise ValidationError(f"wallet address cannot exceed {MAX_WALLET_LEN} characters")
        receipt = _validate_receipt(receipt)
        rate = parse_decimal(conversion_rate, "conversion rate")
        if rate < 0:
            raise ValidationError("conversion rate must not be negative")
        if not _points_fit(parsed_amount, rate):
            raise ValidationError("amount is too large to be credited at this conversion rate")
        transaction_hash = (transaction_hash or "").strip() or None
        if transaction_hash is not None and len(transaction_hash) > MAX_TX_HASH_LEN:
            raise ValidationError(f"transaction hash cannot exceed {MAX_TX_HASH_LEN} characters")
        user_notes = (user_notes or "").strip() or None
        if user_notes is not None and len(user_notes) > MAX_USER_NOTES_LEN:
            raise ValidationError(f"user notes cannot exceed {MAX_USER_NOTES_LEN} characters")

        now = self._clock()
        new = NewContribution(
            submitter_id=submitter_id,
            coin_id=coin_id,
            amount=parsed_amount,
            currency=currency,
            wallet_address=wallet_address,
            receipt=receipt,
            conversion_rate=rate,
            transaction_hash=transaction_hash,
            user_notes=user_notes,
            metadata=metadata or SubmissionMetadata(),
            created_at=now,
            first_entry=HistoryEntry(
                action=HistoryAction.SUBMITTED,
                performed_by=submitter_id,
                timestamp=now,
                previous_status=None,
                new_status=ContributionStatus.PENDING,
                notes=SUBMITTED_NOTE,
            ),
        )
        record = self._repo.insert_contribution(new)
        logger.info(
            "contribution_submitted",
            contribution_id=record.id,
            submitter_id=submitter_id,
            currency=currency,
            amount=str(parsed_amount),
        )
        return record

    def get(self, contribution_id: int) -> ContributionRecord:
        record = self._repo.load(contribution_id)
        if record is None:
            raise NotFoundError(f"contribution {contribution_id} not found")
        return record

    def list_by_submitter(
        self, submitter_id: str, status: ContributionStatus | None = None
    ) -> list[ContributionRecord]:
        return self._repo.list_contributions(
            submitter_id=submitter_id,
            statuses=[status] if status is not None else None,
        )

    def list_pending(self) -> list[ContributionRecord]:
        """Contributions still awaiting a decision (pending or under_review)."""
        return self._repo.list_contributions(statuses=OPEN_STATUSES)

    def list_by_date_range(
        self,
        start: datetime,
        end: datetime,
        status: ContributionStatus | None = None,
    ) -> list[ContributionRecord]:
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValidationError("start must not be after end")
        return self._repo.list_contributions(
            start=start,
            end=end,
            statuses=[status] if status is not None else None,
        )

    def stats(self) -> ContributionStats:
        return self._repo.contribution_stats()
