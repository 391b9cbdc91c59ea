"""
Pytest tests for ReviewTransitionEngine: transitions, point crediting,
concurrent reviewers and credit reconciliation.

Uses a temporary SQLite DB via conftest fixtures. Mocks apply_point_credit where needed.
"""

from __future__ import annotations

import threading
from decimal import Decimal
from unittest.mock import patch

import pytest

from contribution_review.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
)
from contribution_review.database.models import ContributionStatus, HistoryAction
from contribution_review.review import ReviewTransitionEngine


def test_approve_credits_floor_of_amount_times_rate(engine, repository, submit, moderator, btc):
    record = submit(amount="133.7")

    approved = engine.approve(record.id, moderator, "verified on chain")

    assert approved.status is ContributionStatus.APPROVED
    assert approved.points_awarded == 267
    assert approved.credit_applied is True
    assert approved.reviewer_id == "mod-1"
    assert approved.approved_at is not None
    assert approved.admin_notes == "verified on chain"
    user = repository.get_user("user-1")
    assert user.points == 267
    assert user.total_contributions == 1
    assert user.approved_contributions == 1
    coin = repository.get_coin("BTC")
    assert coin.stats.total_contributions == 1
    assert coin.stats.unique_contributors == 1
    assert coin.stats.total_amount == Decimal("133.7")
    assert coin.stats.total_points_awarded == 267


def test_full_review_chain_records_three_history_entries(engine, submit, moderator):
    record = submit()
    engine.put_under_review(record.id, moderator)
    final = engine.approve(record.id, moderator)

    actions = [e.action for e in final.history]
    assert actions == [HistoryAction.SUBMITTED, HistoryAction.UNDER_REVIEW, HistoryAction.APPROVED]
    assert [e.new_status for e in final.history] == [
        ContributionStatus.PENDING,
        ContributionStatus.UNDER_REVIEW,
        ContributionStatus.APPROVED,
    ]
    assert final.version == 3


def test_reject_updates_counters_without_points(engine, repository, submit, moderator):
    record = submit()
    rejected = engine.reject(record.id, moderator, "receipt unreadable")

    assert rejected.status is ContributionStatus.REJECTED
    assert rejected.points_awarded == 0
    assert rejected.rejected_at is not None
    user = repository.get_user("user-1")
    assert user.points == 0
    assert user.total_contributions == 1
    assert user.rejected_contributions == 1
    assert user.approved_contributions == 0


@pytest.mark.parametrize("first", ["approve", "reject"])
@pytest.mark.parametrize("second", ["approve", "reject", "put_under_review"])
def test_terminal_records_cannot_transition(engine, submit, moderator, first, second):
    record = submit()
    getattr(engine, first)(record.id, moderator)

    with pytest.raises(InvalidTransitionError) as exc_info:
        getattr(engine, second)(record.id, moderator)
    assert exc_info.value.current_status in ("approved", "rejected")


def test_second_approval_does_not_credit_twice(engine, repository, submit, moderator):
    record = submit(amount="100")
    engine.approve(record.id, moderator)
    with pytest.raises(InvalidTransitionError):
        engine.approve(record.id, moderator)
    assert repository.get_user("user-1").points == 200


def test_point_credit_is_idempotent(engine, repository, submit, moderator):
    record = submit(amount="100")
    approved = engine.approve(record.id, moderator)

    assert repository.apply_point_credit(approved) is False
    assert repository.get_user("user-1").points == 200
    assert repository.get_coin("BTC").stats.total_contributions == 1


def test_user_role_cannot_review(engine, submit, member):
    record = submit()
    with pytest.raises(ForbiddenError):
        engine.approve(record.id, member)


def test_unknown_contribution_is_not_found(engine, moderator):
    with pytest.raises(NotFoundError):
        engine.reject(12345, moderator)


def test_stale_snapshot_loses_compare_and_swap(engine, repository, submit, moderator, admin):
    """A reviewer whose snapshot went stale gets InvalidTransitionError, not a second write."""
    record = submit()
    stale = repository.load(record.id)
    engine.reject(record.id, admin)

    real_load = repository.load
    calls = {"n": 0}

    def load_once_stale(contribution_id):
        calls["n"] += 1
        return stale if calls["n"] == 1 else real_load(contribution_id)

    with patch.object(repository, "load", side_effect=load_once_stale):
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.approve(record.id, moderator)

    assert exc_info.value.current_status == "rejected"
    final = repository.load(record.id)
    assert final.status is ContributionStatus.REJECTED
    assert len(final.history) == 2
    assert repository.get_user("user-1").points == 0


def test_concurrent_approve_and_reject_exactly_one_wins(repository, submit, moderator, admin):
    engine = ReviewTransitionEngine(repository, credit_attempts=5)
    record = submit(amount="100")
    barrier = threading.Barrier(2)
    outcomes: dict[str, object] = {}

    def run(name, action, principal):
        barrier.wait()
        try:
            outcomes[name] = getattr(engine, action)(record.id, principal)
        except InvalidTransitionError as e:
            outcomes[name] = e

    threads = [
        threading.Thread(target=run, args=("approve", "approve", moderator)),
        threading.Thread(target=run, args=("reject", "reject", admin)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    errors = [o for o in outcomes.values() if isinstance(o, InvalidTransitionError)]
    assert len(outcomes) == 2
    assert len(errors) == 1

    final = repository.load(record.id)
    terminal_entries = [
        e for e in final.history if e.action in (HistoryAction.APPROVED, HistoryAction.REJECTED)
    ]
    assert len(terminal_entries) == 1
    user = repository.get_user("user-1")
    if final.status is ContributionStatus.APPROVED:
        assert user.points == 200
        assert user.rejected_contributions == 0
    else:
        assert user.points == 0
        assert user.approved_contributions == 0


def test_failed_credit_is_reconciled(engine, repository, submit, moderator):
    record = submit(amount="133.7")

    with patch.object(repository, "apply_point_credit", side_effect=StorageError("db down")) as credit:
        with pytest.raises(StorageError):
            engine.approve(record.id, moderator)
    assert credit.call_count == 2

    pending = repository.load(record.id)
    assert pending.status is ContributionStatus.APPROVED
    assert pending.credit_applied is False
    assert repository.get_user("user-1") is None
    assert [r.id for r in repository.list_uncredited_approved()] == [record.id]

    assert engine.reconcile_pending_credits() == 1
    assert repository.get_user("user-1").points == 267
    assert repository.load(record.id).credit_applied is True
    assert engine.reconcile_pending_credits() == 0
    assert repository.get_user("user-1").points == 267


def test_credit_retry_succeeds_on_second_attempt(engine, repository, submit, moderator):
    record = submit(amount="100")
    real_credit = repository.apply_point_credit
    attempts = {"n": 0}

    def flaky(rec):
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise StorageError("transient")
        return real_credit(rec)

    with patch.object(repository, "apply_point_credit", side_effect=flaky):
        approved = engine.approve(record.id, moderator)

    assert approved.credit_applied is True
    assert repository.get_user("user-1").points == 200


def test_review_notes_at_limit_fill_admin_notes_and_history(engine, submit, moderator):
    notes = "n" * 500
    rejected = engine.reject(submit().id, moderator, notes)
    assert rejected.admin_notes == notes
    assert rejected.history[-1].notes == notes
