"""
Pytest tests for ContributionRecordStore: creation, validation and listings.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from contribution_review.core.exceptions import NotFoundError, StorageError, ValidationError
from contribution_review.database.models import ContributionStatus, HistoryAction
from contribution_review.review import ContributionRecordStore


def test_submit_creates_pending_record_with_one_history_entry(submit):
    record = submit(amount="133.7", transaction_hash="0xabc", user_notes="first one")

    assert record.id is not None
    assert record.status is ContributionStatus.PENDING
    assert record.version == 1
    assert record.amount == Decimal("133.7")
    assert record.currency == "BTC"
    assert record.points_awarded == 0
    assert record.credit_applied is False
    assert record.reviewer_id is None
    assert record.user_notes == "first one"
    assert len(record.history) == 1
    entry = record.history[0]
    assert entry.action is HistoryAction.SUBMITTED
    assert entry.performed_by == "user-1"
    assert entry.previous_status is None
    assert entry.new_status is ContributionStatus.PENDING


def test_submit_then_get_returns_same_record(store, submit):
    record = submit()
    loaded = store.get(record.id)
    assert loaded.id == record.id
    assert loaded.amount == record.amount
    assert loaded.receipt.filename == record.receipt.filename
    assert loaded.history == record.history


def test_submit_does_not_touch_user_account(repository, submit):
    submit()
    assert repository.get_user("user-1") is None


def test_currency_is_uppercased(store, receipt):
    record = store.submit("user-1", "60", " eth ", "0xwallet", receipt, conversion_rate="1")
    assert record.currency == "ETH"


def test_float_amount_keeps_printed_value(store, receipt):
    record = store.submit("user-1", 133.7, "BTC", "w", receipt, conversion_rate=2)
    assert record.amount == Decimal("133.7")
    assert record.calculated_points == 267


@pytest.mark.parametrize("amount", ["0", "-5", "abc", "NaN", "Infinity"])
def test_submit_rejects_bad_amounts(store, receipt, amount):
    with pytest.raises(ValidationError):
        store.submit("user-1", amount, "BTC", "wallet", receipt, conversion_rate="1")


def test_submit_rejects_missing_fields(store, receipt):
    with pytest.raises(ValidationError, match="currency"):
        store.submit("user-1", "10", "  ", "wallet", receipt, conversion_rate="1")
    with pytest.raises(ValidationError, match="wallet"):
        store.submit("user-1", "10", "BTC", "", receipt, conversion_rate="1")
    with pytest.raises(ValidationError, match="receipt"):
        store.submit("user-1", "10", "BTC", "wallet", None, conversion_rate="1")
    with pytest.raises(ValidationError, match="size"):
        store.submit("user-1", "10", "BTC", "wallet", replace(receipt, size=0), conversion_rate="1")
    with pytest.raises(ValidationError, match="conversion rate"):
        store.submit("user-1", "10", "BTC", "wallet", receipt, conversion_rate="-1")
    with pytest.raises(ValidationError, match="notes"):
        store.submit("user-1", "10", "BTC", "wallet", receipt, conversion_rate="1", user_notes="n" * 501)


def test_duplicate_transaction_hash_is_validation_error(submit):
    submit(transaction_hash="0xdup")
    with pytest.raises(ValidationError, match="transaction hash"):
        submit(transaction_hash="0xdup")


def test_get_unknown_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.get(999)


def test_list_by_submitter_newest_first_with_status_filter(store, submit, engine, moderator):
    first = submit(submitter_id="user-1")
    second = submit(submitter_id="user-1")
    submit(submitter_id="user-2")
    engine.reject(first.id, moderator)

    mine = store.list_by_submitter("user-1")
    assert [r.id for r in mine] == [second.id, first.id]
    rejected = store.list_by_submitter("user-1", ContributionStatus.REJECTED)
    assert [r.id for r in rejected] == [first.id]


def test_list_pending_includes_under_review(store, submit, engine, moderator):
    a = submit()
    b = submit()
    c = submit()
    engine.put_under_review(b.id, moderator)
    engine.approve(c.id, moderator)

    pending_ids = {r.id for r in store.list_pending()}
    assert pending_ids == {a.id, b.id}


def test_list_by_date_range(repository, receipt, btc):
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    clock_values = iter([t0, t0 + timedelta(days=10), t0 + timedelta(days=20)])
    store = ContributionRecordStore(repository, clock=lambda: next(clock_values))
    ids = [
        store.submit("user-1", "75", "BTC", "w", receipt, conversion_rate="2", coin_id=btc.id).id
        for _ in range(3)
    ]

    in_range = store.list_by_date_range(t0 + timedelta(days=5), t0 + timedelta(days=20))
    assert [r.id for r in in_range] == [ids[2], ids[1]]
    assert store.list_by_date_range(t0, t0 + timedelta(days=1), ContributionStatus.APPROVED) == []
    with pytest.raises(ValidationError):
        store.list_by_date_range(t0 + timedelta(days=1), t0)


def test_stats_counts_by_status(store, submit, engine, moderator):
    a = submit(amount="100")
    b = submit(amount="60")
    submit(amount="50")
    engine.approve(a.id, moderator)
    engine.reject(b.id, moderator)

    stats = store.stats()
    assert stats.total == 3
    assert stats.pending == 1
    assert stats.approved == 1
    assert stats.rejected == 1
    assert stats.under_review == 0
    assert stats.total_points_awarded == 200


@pytest.mark.parametrize("amount", ["1e19", "5000000000000000000", "1e999999999"])
def test_submit_rejects_amount_whose_points_overflow(submit, amount):
    with pytest.raises(ValidationError, match="too large"):
        submit(amount=amount)


def test_submit_accepts_largest_creditable_amount(store, receipt):
    record = store.submit(
        "user-1", str(2**63 - 1), "BTC", "w", receipt, conversion_rate="1"
    )
    assert record.calculated_points == 2**63 - 1


def test_point_overflow_in_storage_is_storage_error(repository):
    repository.adjust_user_points("user-1", 2**63 - 1)
    with pytest.raises(StorageError):
        repository.adjust_user_points("user-1", 2**63 - 1)
    assert repository.get_user("user-1").points == 2**63 - 1


def test_list_by_date_range_accepts_mixed_naive_and_aware_bounds(submit, store):
    record = submit()
    naive_end = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(days=1)
    aware_start = datetime(2000, 1, 1, tzinfo=timezone.utc)

    assert [r.id for r in store.list_by_date_range(aware_start, naive_end)] == [record.id]
    with pytest.raises(ValidationError):
        store.list_by_date_range(naive_end, aware_start)
