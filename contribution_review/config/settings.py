"""
Application settings.

A frozen dataclass built from environment variables (after .env loading).
get_settings() caches the instance; tests call get_settings.cache_clear()
after changing the environment.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from contribution_review.config.env import (
    env_bool,
    env_int,
    env_str,
    get_database_url,
    load_service_env,
)

DEFAULT_RATE_LIMIT_MAX_REQUESTS = 100
DEFAULT_RATE_LIMIT_WINDOW_MS = 15 * 60 * 1000
DEFAULT_MAX_RECEIPT_BYTES = 5 * 1024 * 1024
DEFAULT_MIN_CONTRIBUTION_AMOUNT = "50"


@dataclass(frozen=True)
class Settings:
    """Typed service settings."""

    database_url: str
    receipts_dir: Path
    max_receipt_bytes: int
    min_contribution_amount: Decimal
    rate_limit_max_requests: int
    rate_limit_window_ms: int
    jwt_secret: str
    jwt_algorithm: str
    auto_register_unknown_coins: bool
    api_host: str
    api_port: int


def _decimal_setting(name: str, default: str) -> Decimal:
    raw = env_str(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from e


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the current application settings."""
    load_service_env()
    return Settings(
        database_url=get_database_url(),
        receipts_dir=Path(env_str("RECEIPTS_DIR", "uploads/receipts")),
        max_receipt_bytes=env_int("MAX_RECEIPT_BYTES", DEFAULT_MAX_RECEIPT_BYTES),
        min_contribution_amount=_decimal_setting(
            "MIN_CONTRIBUTION_AMOUNT", DEFAULT_MIN_CONTRIBUTION_AMOUNT
        ),
        rate_limit_max_requests=env_int(
            "RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS
        ),
        rate_limit_window_ms=env_int("RATE_LIMIT_WINDOW_MS", DEFAULT_RATE_LIMIT_WINDOW_MS),
        jwt_secret=env_str("JWT_SECRET", "change-me"),
        jwt_algorithm=env_str("JWT_ALGORITHM", "HS256"),
        auto_register_unknown_coins=env_bool("AUTO_REGISTER_UNKNOWN_COINS", False),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
    )
