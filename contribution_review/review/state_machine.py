"""
Contribution review state machine.

Pure functions over frozen ContributionRecord snapshots: no I/O, no clock.
The engine loads a snapshot, asks plan_transition() for the next snapshot and
history entry, and persists them with a compare-and-swap.

    pending      --put_under_review--> under_review
    pending      --approve-----------> approved   (terminal)
    pending      --reject------------> rejected   (terminal)
    under_review --approve-----------> approved   (terminal)
    under_review --reject------------> rejected   (terminal)
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass
from datetime import datetime

from contribution_review.core.exceptions import InvalidTransitionError, ValidationError
from contribution_review.database.models import (
    MAX_HISTORY_NOTES_LEN,
    ContributionRecord,
    ContributionStatus,
    HistoryAction,
    HistoryEntry,
    calculate_points,
)


class ReviewAction(str, enum.Enum):
    PUT_UNDER_REVIEW = "put_under_review"
    APPROVE = "approve"
    REJECT = "reject"


TRANSITIONS: dict[tuple[ContributionStatus, ReviewAction], ContributionStatus] = {
    (ContributionStatus.PENDING, ReviewAction.PUT_UNDER_REVIEW): ContributionStatus.UNDER_REVIEW,
    (ContributionStatus.PENDING, ReviewAction.APPROVE): ContributionStatus.APPROVED,
    (ContributionStatus.PENDING, ReviewAction.REJECT): ContributionStatus.REJECTED,
    (ContributionStatus.UNDER_REVIEW, ReviewAction.APPROVE): ContributionStatus.APPROVED,
    (ContributionStatus.UNDER_REVIEW, ReviewAction.REJECT): ContributionStatus.REJECTED,
}

_HISTORY_ACTIONS = {
    ReviewAction.PUT_UNDER_REVIEW: HistoryAction.UNDER_REVIEW,
    ReviewAction.APPROVE: HistoryAction.APPROVED,
    ReviewAction.REJECT: HistoryAction.REJECTED,
}


@dataclass(frozen=True)
class TransitionPlan:
    """Snapshot before, snapshot after, and the single history entry linking them."""

    before: ContributionRecord
    after: ContributionRecord
    entry: HistoryEntry


def can_transition(current: ContributionStatus, action: ReviewAction) -> bool:
    return (current, action) in TRANSITIONS


def next_status(current: ContributionStatus, action: ReviewAction) -> ContributionStatus:
    """Return the target status or raise InvalidTransitionError."""
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(
            f"cannot {action.value.replace('_', ' ')} a contribution that is {current.value}",
            current_status=current.value,
        ) from None


def _clean_notes(notes: str | None) -> str | None:
    notes = (notes or "").strip() or None
    if notes is not None and len(notes) > MAX_HISTORY_NOTES_LEN:
        raise ValidationError(f"review notes cannot exceed {MAX_HISTORY_NOTES_LEN} characters")
    return notes


def plan_transition(
    record: ContributionRecord,
    action: ReviewAction,
    reviewer_id: str,
    *,
    now: datetime,
    notes: str | None = None,
) -> TransitionPlan:
    """
    Compute the snapshot that results from applying `action` to `record`.

    Approval fixes points_awarded = floor(amount * conversion_rate); the other
    actions leave it unchanged (0). Admin notes are replaced only when given.
    """
    new_status = next_status(record.status, action)
    notes = _clean_notes(notes)
    reviewer_id = (reviewer_id or "").strip()
    if not reviewer_id:
        raise ValidationError("reviewer id is required")

    entry = HistoryEntry(
        action=_HISTORY_ACTIONS[action],
        performed_by=reviewer_id,
        timestamp=now,
        previous_status=record.status,
        new_status=new_status,
        notes=notes,
    )
    changes: dict[str, object] = {
        "status": new_status,
        "version": record.version + 1,
        "reviewer_id": reviewer_id,
        "reviewed_at": now,
        "updated_at": now,
        "history": record.history + (entry,),
    }
    if notes is not None:
        changes["admin_notes"] = notes
    if new_status is ContributionStatus.APPROVED:
        changes["approved_at"] = now
        changes["points_awarded"] = calculate_points(record.amount, record.conversion_rate)
        changes["credit_applied"] = False
    elif new_status is ContributionStatus.REJECTED:
        changes["rejected_at"] = now

    return TransitionPlan(before=record, after=dataclasses.replace(record, **changes), entry=entry)
