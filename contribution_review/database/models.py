"""
Domain models for database entities.

Contribution snapshots, history entries, coins and user accounts.
Snapshots are frozen: a transition produces a new snapshot instead of mutating
the loaded one. No ORM coupling so the repository backend stays swappable.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Any


class ContributionStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class HistoryAction(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    UPDATED = "updated"


class SubmissionSource(str, enum.Enum):
    WEB = "web"
    MOBILE = "mobile"
    API = "api"


OPEN_STATUSES = frozenset({ContributionStatus.PENDING, ContributionStatus.UNDER_REVIEW})
TERMINAL_STATUSES = frozenset({ContributionStatus.APPROVED, ContributionStatus.REJECTED})

STATUS_DISPLAY = {
    ContributionStatus.PENDING: "Pending Review",
    ContributionStatus.UNDER_REVIEW: "Under Review",
    ContributionStatus.APPROVED: "Approved",
    ContributionStatus.REJECTED: "Rejected",
}

MAX_USER_NOTES_LEN = 500
# review notes are stored both on the history entry and as the admin notes
MAX_HISTORY_NOTES_LEN = 500

# points columns are 64-bit integers
MAX_POINTS = 2**63 - 1


def calculate_points(amount: Decimal, conversion_rate: Decimal) -> int:
    """floor(amount * conversion_rate) computed in Decimal so 133.7 * 2 is exactly 267."""
    return int((amount * conversion_rate).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class ReceiptRef:
    """Metadata of a stored receipt file. Content is never inspected."""

    filename: str
    original_name: str
    mime_type: str
    size: int
    path: str
    uploaded_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "path": self.path,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One audit record of a status change (or of the submission itself)."""

    action: HistoryAction
    performed_by: str
    timestamp: datetime
    previous_status: ContributionStatus | None
    new_status: ContributionStatus
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "performed_by": self.performed_by,
            "timestamp": self.timestamp.isoformat(),
            "notes": self.notes,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value,
        }


@dataclass(frozen=True)
class SubmissionMetadata:
    ip_address: str | None = None
    user_agent: str | None = None
    submission_source: SubmissionSource = SubmissionSource.WEB


@dataclass(frozen=True)
class NewContribution:
    """Validated submission, not yet persisted."""

    submitter_id: str
    coin_id: int | None
    amount: Decimal
    currency: str
    wallet_address: str
    receipt: ReceiptRef
    conversion_rate: Decimal
    transaction_hash: str | None
    user_notes: str | None
    metadata: SubmissionMetadata
    created_at: datetime
    first_entry: HistoryEntry


@dataclass(frozen=True)
class ContributionRecord:
    """Persisted contribution snapshot as of `version`."""

    id: int
    submitter_id: str
    coin_id: int | None
    amount: Decimal
    currency: str
    wallet_address: str
    receipt: ReceiptRef
    conversion_rate: Decimal
    status: ContributionStatus
    version: int
    created_at: datetime
    updated_at: datetime
    transaction_hash: str | None = None
    points_awarded: int = 0
    credit_applied: bool = False
    reviewer_id: str | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    user_notes: str | None = None
    admin_notes: str | None = None
    metadata: SubmissionMetadata = field(default_factory=SubmissionMetadata)
    history: tuple[HistoryEntry, ...] = ()

    @property
    def calculated_points(self) -> int:
        return calculate_points(self.amount, self.conversion_rate)

    @property
    def status_display(self) -> str:
        return STATUS_DISPLAY.get(self.status, self.status.value)

    @property
    def is_pending(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_processed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def processing_time(self) -> timedelta | None:
        """Time from submission to first review action, None until reviewed."""
        if self.reviewed_at is None:
            return None
        return self.reviewed_at - self.created_at

    def to_dict(self) -> dict[str, Any]:
        processing = self.processing_time
        return {
            "id": self.id,
            "submitter_id": self.submitter_id,
            "coin_id": self.coin_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "wallet_address": self.wallet_address,
            "transaction_hash": self.transaction_hash,
            "receipt": self.receipt.to_dict(),
            "conversion_rate": str(self.conversion_rate),
            "points_awarded": self.points_awarded,
            "credit_applied": self.credit_applied,
            "status": self.status.value,
            "status_display": self.status_display,
            "is_pending": self.is_pending,
            "is_processed": self.is_processed,
            "reviewer_id": self.reviewer_id,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
            "processing_time_sec": processing.total_seconds() if processing is not None else None,
            "notes": {"user": self.user_notes, "admin": self.admin_notes},
            "history": [entry.to_dict() for entry in self.history],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CoinStats:
    total_contributions: int = 0
    total_amount: Decimal = Decimal("0")
    unique_contributors: int = 0
    total_points_awarded: int = 0
    last_contribution_at: datetime | None = None

    @property
    def average_contribution(self) -> Decimal:
        if self.total_contributions <= 0:
            return Decimal("0")
        return self.total_amount / self.total_contributions


@dataclass
class CoinRecord:
    """Registered currency a contribution can be made in."""

    id: int
    symbol: str
    name: str
    conversion_rate: Decimal
    is_active: bool
    wallet_address: str | None = None
    network: str | None = None
    memo: str | None = None
    minimum_amount: Decimal = Decimal("0.01")
    created_by: str | None = None
    stats: CoinStats = field(default_factory=CoinStats)

    @property
    def full_name(self) -> str:
        return f"{self.name} ({self.symbol})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "full_name": self.full_name,
            "conversion_rate": str(self.conversion_rate),
            "minimum_amount": str(self.minimum_amount),
            "is_active": self.is_active,
            "wallet_info": {
                "address": self.wallet_address,
                "network": self.network,
                "memo": self.memo,
            },
            "stats": {
                "total_contributions": self.stats.total_contributions,
                "total_amount": str(self.stats.total_amount),
                "unique_contributors": self.stats.unique_contributors,
                "total_points_awarded": self.stats.total_points_awarded,
                "average_contribution": str(self.stats.average_contribution),
                "last_contribution_at": (
                    self.stats.last_contribution_at.isoformat()
                    if self.stats.last_contribution_at
                    else None
                ),
            },
        }


@dataclass
class UserAccount:
    """Point and voting bookkeeping for one principal."""

    id: str
    points: int = 0
    voting_rights: int = 1
    total_contributions: int = 0
    approved_contributions: int = 0
    rejected_contributions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "points": self.points,
            "voting_rights": self.voting_rights,
            "stats": {
                "total_contributions": self.total_contributions,
                "approved_contributions": self.approved_contributions,
                "rejected_contributions": self.rejected_contributions,
            },
        }


@dataclass
class ContributionStats:
    """Aggregate over all contributions, grouped by status."""

    total: int = 0
    pending: int = 0
    under_review: int = 0
    approved: int = 0
    rejected: int = 0
    total_amount: Decimal = Decimal("0")
    total_points_awarded: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "under_review": self.under_review,
            "approved": self.approved,
            "rejected": self.rejected,
            "total_amount": str(self.total_amount),
            "total_points_awarded": self.total_points_awarded,
        }


@dataclass
class UserStats:
    """Aggregate over all user accounts. Active means at least one submission."""

    total_users: int = 0
    active_users: int = 0
    total_points: int = 0
    average_points: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_users": self.total_users,
            "active_users": self.active_users,
            "total_points": self.total_points,
            "average_points": self.average_points,
        }
