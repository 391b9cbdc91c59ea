"""
SQLAlchemy models for contributions, their history, coins, user accounts and
the point credit ledger.

Decimal quantities (amounts, conversion rates) are stored as strings to avoid
float precision loss on SQLite. Timestamps are stored as UTC.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ContributionRow(Base):
    """One contribution; `version` is bumped on every status write (optimistic concurrency token)."""

    __tablename__ = "contributions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submitter_id = Column(String(64), nullable=False, index=True)
    coin_id = Column(Integer, ForeignKey("coins.id"), nullable=True, index=True)
    amount = Column(String(64), nullable=False)
    currency = Column(String(16), nullable=False)
    wallet_address = Column(String(128), nullable=False)
    transaction_hash = Column(String(128), nullable=True, unique=True)
    conversion_rate = Column(String(64), nullable=False)
    points_awarded = Column(BigInteger, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="pending", index=True)
    version = Column(Integer, nullable=False, default=1)
    credit_applied = Column(Boolean, nullable=False, default=False)
    reviewer_id = Column(String(64), nullable=True, index=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    user_notes = Column(String(500), nullable=True)
    admin_notes = Column(String(500), nullable=True)

    receipt_filename = Column(String(256), nullable=False)
    receipt_original_name = Column(String(256), nullable=False)
    receipt_mime_type = Column(String(64), nullable=False)
    receipt_size = Column(Integer, nullable=False)
    receipt_path = Column(String(512), nullable=False)
    receipt_uploaded_at = Column(DateTime(timezone=True), nullable=False)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    submission_source = Column(String(16), nullable=False, default="web")

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    history = relationship(
        "HistoryRow",
        order_by="HistoryRow.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_contributions_submitter_status", "submitter_id", "status"),
        Index("ix_contributions_status_created", "status", "created_at"),
    )


class HistoryRow(Base):
    """Append-only audit trail; one row per submission or status change."""

    __tablename__ = "contribution_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contribution_id = Column(
        Integer, ForeignKey("contributions.id"), nullable=False, index=True
    )
    action = Column(String(16), nullable=False)
    performed_by = Column(String(64), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    notes = Column(String(500), nullable=True)
    previous_status = Column(String(16), nullable=True)
    new_status = Column(String(16), nullable=False)


class CoinRow(Base):
    __tablename__ = "coins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(10), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    wallet_address = Column(String(128), nullable=True)
    network = Column(String(32), nullable=True)
    memo = Column(String(100), nullable=True)
    conversion_rate = Column(String(64), nullable=False, default="1")
    minimum_amount = Column(String(64), nullable=False, default="0.01")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    total_contributions = Column(Integer, nullable=False, default=0)
    total_amount = Column(String(64), nullable=False, default="0")
    unique_contributors = Column(Integer, nullable=False, default=0)
    total_points_awarded = Column(BigInteger, nullable=False, default=0)
    last_contribution_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class UserRow(Base):
    """Point balance and contribution counters; keyed by the authenticated principal id."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    points = Column(BigInteger, nullable=False, default=0, index=True)
    voting_rights = Column(Integer, nullable=False, default=1)
    total_contributions = Column(Integer, nullable=False, default=0)
    approved_contributions = Column(Integer, nullable=False, default=0)
    rejected_contributions = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PointCreditRow(Base):
    """
    Ledger of credited contributions. The unique contribution_id makes point
    crediting idempotent across retries and reconciliation runs.
    """

    __tablename__ = "point_credits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contribution_id = Column(Integer, ForeignKey("contributions.id"), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    coin_id = Column(Integer, nullable=True, index=True)
    points = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (UniqueConstraint("contribution_id", name="uq_point_credits_contribution"),)
