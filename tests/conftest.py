"""
Pytest fixtures for contribution review tests. Uses a temporary SQLite DB per test.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

JWT_SECRET = "test-secret"


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """
    Point settings at temporary storage. Unset DATABASE_URL so we use SQLite.
    Clears the settings cache before and after each test.
    """
    from contribution_review.config import get_settings

    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("AUTO_REGISTER_UNKNOWN_COINS", raising=False)
    monkeypatch.delenv("MIN_CONTRIBUTION_AMOUNT", raising=False)
    monkeypatch.setenv("DB_PATH", str(tmp_path / "contributions.db"))
    monkeypatch.setenv("RECEIPTS_DIR", str(tmp_path / "receipts"))
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def repository(tmp_path):
    from contribution_review.database import get_database

    return get_database(f"sqlite:///{tmp_path / 'contributions.db'}")


@pytest.fixture
def store(repository):
    from contribution_review.review import ContributionRecordStore

    return ContributionRecordStore(repository)


@pytest.fixture
def engine(repository):
    from contribution_review.review import ReviewTransitionEngine

    return ReviewTransitionEngine(repository)


@pytest.fixture
def receipt():
    """Receipt metadata as the upload layer would produce it."""
    from contribution_review.database.models import ReceiptRef

    return ReceiptRef(
        filename="1700000000000-42-receipt.png",
        original_name="receipt.png",
        mime_type="image/png",
        size=2048,
        path="/uploads/receipts/1700000000000-42-receipt.png",
        uploaded_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def btc(repository):
    """Registered BTC coin with conversion rate 2."""
    return repository.insert_coin(
        "BTC",
        "Bitcoin",
        conversion_rate=Decimal("2"),
        created_by="admin-1",
        network="Bitcoin",
    )


@pytest.fixture
def submit(store, receipt, btc):
    """Factory: submit a BTC contribution for `submitter_id`."""

    def _submit(amount="133.7", submitter_id="user-1", **kwargs):
        return store.submit(
            submitter_id,
            amount,
            "BTC",
            "bc1qexamplewalletaddress",
            receipt,
            conversion_rate=btc.conversion_rate,
            coin_id=btc.id,
            **kwargs,
        )

    return _submit


@pytest.fixture
def moderator():
    from contribution_review.access import Principal, Role

    return Principal(id="mod-1", role=Role.MODERATOR)


@pytest.fixture
def admin():
    from contribution_review.access import Principal, Role

    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def member():
    from contribution_review.access import Principal, Role

    return Principal(id="user-1", role=Role.USER)


@pytest.fixture
def services(repository):
    """ServiceContainer on the temporary DB with a small admission window for tests."""
    from contribution_review.access import InMemoryAdmissionControl
    from contribution_review.api_server import build_services

    return build_services(
        repository=repository,
        admission=InMemoryAdmissionControl(max_requests=1000, window_ms=60_000),
    )


@pytest.fixture
def client(services):
    """FastAPI TestClient with injected services."""
    from fastapi.testclient import TestClient

    from contribution_review.api_server.server import create_app

    return TestClient(create_app(services))


@pytest.fixture
def auth_header():
    """Factory: Authorization header for a principal id and role."""
    from contribution_review.access import create_access_token

    def _header(principal_id="user-1", role="user"):
        token = create_access_token(principal_id, role, secret=JWT_SECRET)
        return {"Authorization": f"Bearer {token}"}

    return _header
