"""
Database layer: contributions with their history, coins, user accounts and
the point credit ledger.

SQLite by default via get_database(); any SQLAlchemy URL works (PostgreSQL in production).
"""

from contribution_review.database.database import (
    ContributionRepository,
    SQLAlchemyRepository,
    get_database,
)
from contribution_review.database.models import (
    CoinRecord,
    ContributionRecord,
    ContributionStats,
    ContributionStatus,
    HistoryAction,
    HistoryEntry,
    ReceiptRef,
    SubmissionMetadata,
    SubmissionSource,
    UserAccount,
)

__all__ = [
    "CoinRecord",
    "ContributionRecord",
    "ContributionRepository",
    "ContributionStats",
    "ContributionStatus",
    "HistoryAction",
    "HistoryEntry",
    "ReceiptRef",
    "SQLAlchemyRepository",
    "SubmissionMetadata",
    "SubmissionSource",
    "UserAccount",
    "get_database",
]
