"""
Pytest tests for environment-driven settings.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from contribution_review.config import get_settings


def test_defaults(tmp_path):
    settings = get_settings()
    assert settings.database_url == f"sqlite:///{tmp_path / 'contributions.db'}"
    assert settings.min_contribution_amount == Decimal("50")
    assert settings.rate_limit_max_requests == 100
    assert settings.rate_limit_window_ms == 900_000
    assert settings.max_receipt_bytes == 5 * 1024 * 1024
    assert settings.auto_register_unknown_coins is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/contributions")
    monkeypatch.setenv("MIN_CONTRIBUTION_AMOUNT", "25.5")
    monkeypatch.setenv("AUTO_REGISTER_UNKNOWN_COINS", "yes")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "7")
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.database_url == "postgresql://u:p@db/contributions"
    assert settings.min_contribution_amount == Decimal("25.5")
    assert settings.auto_register_unknown_coins is True
    assert settings.rate_limit_max_requests == 7


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize("name,value", [("RATE_LIMIT_MAX_REQUESTS", "many"), ("MIN_CONTRIBUTION_AMOUNT", "fifty")])
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    get_settings.cache_clear()
    with pytest.raises(ValueError, match=name):
        get_settings()
