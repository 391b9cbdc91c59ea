"""
Review transition engine: the only code that moves a contribution out of
pending / under_review.

Each call re-reads the persisted record, validates the transition against the
state table, and writes through compare_and_swap() keyed on status and
version. Of two concurrent reviewers on one record exactly one write matches;
the other re-reads and gets InvalidTransitionError.

Approval credits points in a second unit of work against the point credit
ledger (unique per contribution). A failed credit is retried once; after that
the record stays approved with credit_applied=False and StorageError is
raised. reconcile_pending_credits() finishes such records later.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from contribution_review.access.capabilities import Capability, Principal, require_capability
from contribution_review.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    StorageError,
)
from contribution_review.database.database import ContributionRepository, utcnow
from contribution_review.database.models import ContributionRecord
from contribution_review.review.state_machine import ReviewAction, plan_transition
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

CREDIT_ATTEMPTS = 2

_REJECT_COUNTERS = {"total_contributions": 1, "rejected_contributions": 1}


class ReviewTransitionEngine:
    """Applies approve / reject / put_under_review to stored contributions."""

    def __init__(
        self,
        repository: ContributionRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
        credit_attempts: int = CREDIT_ATTEMPTS,
    ) -> None:
        self._repo = repository
        self._clock = clock
        self._credit_attempts = max(1, credit_attempts)

    def approve(
        self, contribution_id: int, reviewer: Principal, notes: str | None = None
    ) -> ContributionRecord:
        return self._transition(contribution_id, ReviewAction.APPROVE, reviewer, notes)

    def reject(
        self, contribution_id: int, reviewer: Principal, notes: str | None = None
    ) -> ContributionRecord:
        return self._transition(contribution_id, ReviewAction.REJECT, reviewer, notes)

    def put_under_review(
        self, contribution_id: int, reviewer: Principal, notes: str | None = None
    ) -> ContributionRecord:
        return self._transition(contribution_id, ReviewAction.PUT_UNDER_REVIEW, reviewer, notes)

    def _load(self, contribution_id: int) -> ContributionRecord:
        record = self._repo.load(contribution_id)
        if record is None:
            raise NotFoundError(f"contribution {contribution_id} not found")
        return record

    def _transition(
        self,
        contribution_id: int,
        action: ReviewAction,
        reviewer: Principal,
        notes: str | None,
    ) -> ContributionRecord:
        require_capability(reviewer, [Capability.REVIEW_CONTRIBUTIONS])
        record = self._load(contribution_id)
        plan = plan_transition(record, action, reviewer.id, now=self._clock(), notes=notes)

        swapped = self._repo.compare_and_swap(
            plan.before,
            plan.after,
            plan.entry,
            user_counters=_REJECT_COUNTERS if action is ReviewAction.REJECT else None,
        )
        if not swapped:
            current = self._load(contribution_id)
            logger.warning(
                "contribution_transition_conflict",
                contribution_id=contribution_id,
                action=action.value,
                reviewer_id=reviewer.id,
                expected_status=record.status.value,
                current_status=current.status.value,
            )
            raise InvalidTransitionError(
                f"contribution {contribution_id} changed to {current.status.value} "
                f"before {action.value.replace('_', ' ')} could be applied",
                current_status=current.status.value,
            )

        logger.info(
            "contribution_transition",
            contribution_id=contribution_id,
            action=action.value,
            reviewer_id=reviewer.id,
            previous_status=plan.entry.previous_status.value,
            new_status=plan.entry.new_status.value,
            points_awarded=plan.after.points_awarded,
        )
        if action is ReviewAction.APPROVE:
            self._credit(plan.after)
        return self._load(contribution_id)

    def _credit(self, record: ContributionRecord) -> bool:
        """Apply the point credit, retrying once. Raises StorageError if it stays unapplied."""
        last_error: StorageError | None = None
        for attempt in range(1, self._credit_attempts + 1):
            try:
                applied = self._repo.apply_point_credit(record)
            except StorageError as e:
                last_error = e
                logger.warning(
                    "points_credit_failed",
                    contribution_id=record.id,
                    attempt=attempt,
                    error=str(e),
                )
                continue
            if applied:
                logger.info(
                    "points_credited",
                    contribution_id=record.id,
                    user_id=record.submitter_id,
                    points=record.points_awarded,
                )
            return applied
        logger.error(
            "points_credit_pending_reconciliation",
            contribution_id=record.id,
            user_id=record.submitter_id,
            points=record.points_awarded,
        )
        raise StorageError(
            f"contribution {record.id} approved but point credit is pending reconciliation"
        ) from last_error

    def reconcile_pending_credits(self, *, limit: int = 500) -> int:
        """Credit approved records whose credit marker is unset. Returns how many were applied now."""
        applied = 0
        failed = 0
        for record in self._repo.list_uncredited_approved(limit=limit):
            try:
                if self._credit(record):
                    applied += 1
            except StorageError:
                failed += 1
                logger.exception("reconcile_credit_failed", contribution_id=record.id)
        logger.info("reconcile_pending_credits", applied=applied, failed=failed)
        return applied
