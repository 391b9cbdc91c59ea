"""
Environment variable loading for the contribution review service.

- DATABASE_URL: SQLAlchemy URL (PostgreSQL in production); falls back to SQLite at DB_PATH
- RECEIPTS_DIR: directory for uploaded receipt files
- JWT_SECRET / JWT_ALGORITHM: bearer token verification
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is contribution_review/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

_TRUTHY = ("1", "true", "yes", "on")


def load_service_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    from dotenv import load_dotenv

    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str) -> str:
    """Return a stripped env value, or default when unset or blank."""
    return (os.getenv(name) or "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def get_database_url() -> str:
    """Return DATABASE_URL if set; else SQLite from DB_PATH (default contributions.db)."""
    url = (os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = env_str("DB_PATH", "contributions.db")
    return f"sqlite:///{path}"
