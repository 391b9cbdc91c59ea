"""
Persistence port and SQLAlchemy implementation.

All access goes through the abstract ContributionRepository; the review engine
only needs load() and compare_and_swap() plus the idempotent point credit.
SQLite is the default (DB_PATH); any SQLAlchemy URL (DATABASE_URL) works,
e.g. PostgreSQL in production.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator

from sqlalchemy import case, create_engine, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contribution_review.core.exceptions import StorageError, ValidationError
from contribution_review.database.models import (
    CoinRecord,
    CoinStats,
    ContributionRecord,
    ContributionStats,
    ContributionStatus,
    HistoryAction,
    HistoryEntry,
    NewContribution,
    ReceiptRef,
    SubmissionMetadata,
    SubmissionSource,
    UserAccount,
    UserStats,
)
from contribution_review.database.tables import (
    Base,
    CoinRow,
    ContributionRow,
    HistoryRow,
    PointCreditRow,
    UserRow,
)
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

# Counters a status change may increment on the submitter's account.
USER_COUNTER_COLUMNS = frozenset(
    {"total_contributions", "approved_contributions", "rejected_contributions"}
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC. Naive values (SQLite round trip) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# -----------------------------------------------------------------------------
# Abstract port
# -----------------------------------------------------------------------------


class ContributionRepository(ABC):
    """Storage interface for contributions, coins and user accounts."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    @abstractmethod
    def insert_contribution(self, new: NewContribution) -> ContributionRecord:
        """Persist a pending contribution with its first history entry."""
        ...

    @abstractmethod
    def load(self, contribution_id: int) -> ContributionRecord | None:
        ...

    @abstractmethod
    def list_contributions(
        self,
        *,
        submitter_id: str | None = None,
        statuses: Iterable[ContributionStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[ContributionRecord]:
        """Return contributions matching all given filters, newest first."""
        ...

    @abstractmethod
    def compare_and_swap(
        self,
        expected: ContributionRecord,
        updated: ContributionRecord,
        entry: HistoryEntry,
        *,
        user_counters: dict[str, int] | None = None,
    ) -> bool:
        """
        Write `updated` and append `entry` only if the stored record still has
        expected.status and expected.version. Optional submitter counter
        increments happen in the same unit of work. Returns False when the
        record changed underneath (nothing is written).
        """
        ...

    @abstractmethod
    def apply_point_credit(self, record: ContributionRecord) -> bool:
        """
        Credit record.points_awarded to the submitter and the coin stats once
        per contribution, then set credit_applied. Returns True if the credit
        was applied by this call, False if it had already been applied.
        """
        ...

    @abstractmethod
    def list_uncredited_approved(self, *, limit: int = 500) -> list[ContributionRecord]:
        ...

    @abstractmethod
    def contribution_stats(self) -> ContributionStats:
        ...

    @abstractmethod
    def get_coin(self, symbol: str) -> CoinRecord | None:
        ...

    @abstractmethod
    def insert_coin(
        self,
        symbol: str,
        name: str,
        *,
        conversion_rate: Decimal,
        created_by: str | None,
        is_active: bool = True,
        wallet_address: str | None = None,
        network: str | None = None,
        memo: str | None = None,
        minimum_amount: Decimal = Decimal("0.01"),
    ) -> CoinRecord:
        ...

    @abstractmethod
    def set_coin_active(self, symbol: str, is_active: bool) -> CoinRecord | None:
        ...

    @abstractmethod
    def list_coins(self, *, active_only: bool = True) -> list[CoinRecord]:
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> UserAccount | None:
        ...

    @abstractmethod
    def adjust_user_points(self, user_id: str, delta: int) -> UserAccount:
        """Add delta (may be negative) to a user's points; the balance never drops below 0."""
        ...

    @abstractmethod
    def set_voting_rights(self, user_id: str, voting_rights: int) -> UserAccount:
        ...

    @abstractmethod
    def leaderboard(self, *, limit: int = 10) -> list[UserAccount]:
        ...

    @abstractmethod
    def user_stats(self) -> UserStats:
        ...


# -----------------------------------------------------------------------------
# SQLAlchemy implementation
# -----------------------------------------------------------------------------


class SQLAlchemyRepository(ContributionRepository):
    """SQLAlchemy implementation; one short session per operation."""

    def __init__(self, url: str, *, timeout_sec: float = 15.0) -> None:
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout_sec
        self._url = url
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self._engine
        )
        logger.info("repository_engine", url=url.split("?")[0].split("//")[-1])

    @property
    def engine(self) -> Any:
        return self._engine

    @contextmanager
    def _session_scope(self, *, reraise_integrity: bool = False) -> Iterator[Session]:
        """
        Commit on success, roll back on error. Driver errors become StorageError;
        IntegrityError is re-raised as is when the caller handles unique conflicts itself.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if reraise_integrity:
                raise
            logger.exception("database_integrity_error", error=str(e))
            raise StorageError("database constraint violated") from e
        except (SQLAlchemyError, OverflowError) as e:
            # OverflowError: integer out of range for the driver (points columns)
            session.rollback()
            logger.exception("database_operation_failed", error=str(e))
            raise StorageError("database operation failed") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.exception("ensure_schema_failed", error=str(e))
            raise StorageError("could not create schema") from e
        logger.info("repository_schema_ready")

    # --- Row conversion ---

    @staticmethod
    def _history_entry(row: HistoryRow) -> HistoryEntry:
        return HistoryEntry(
            action=HistoryAction(row.action),
            performed_by=row.performed_by,
            timestamp=as_utc(row.timestamp),
            previous_status=ContributionStatus(row.previous_status) if row.previous_status else None,
            new_status=ContributionStatus(row.new_status),
            notes=row.notes,
        )

    @staticmethod
    def _history_row(contribution_id: int | None, entry: HistoryEntry) -> HistoryRow:
        row = HistoryRow(
            action=entry.action.value,
            performed_by=entry.performed_by,
            timestamp=entry.timestamp,
            notes=entry.notes,
            previous_status=entry.previous_status.value if entry.previous_status else None,
            new_status=entry.new_status.value,
        )
        if contribution_id is not None:
            row.contribution_id = contribution_id
        return row

    def _to_record(self, row: ContributionRow) -> ContributionRecord:
        return ContributionRecord(
            id=row.id,
            submitter_id=row.submitter_id,
            coin_id=row.coin_id,
            amount=Decimal(row.amount),
            currency=row.currency,
            wallet_address=row.wallet_address,
            receipt=ReceiptRef(
                filename=row.receipt_filename,
                original_name=row.receipt_original_name,
                mime_type=row.receipt_mime_type,
                size=row.receipt_size,
                path=row.receipt_path,
                uploaded_at=as_utc(row.receipt_uploaded_at),
            ),
            conversion_rate=Decimal(row.conversion_rate),
            status=ContributionStatus(row.status),
            version=row.version,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            transaction_hash=row.transaction_hash,
            points_awarded=row.points_awarded,
            credit_applied=bool(row.credit_applied),
            reviewer_id=row.reviewer_id,
            reviewed_at=as_utc(row.reviewed_at),
            approved_at=as_utc(row.approved_at),
            rejected_at=as_utc(row.rejected_at),
            user_notes=row.user_notes,
            admin_notes=row.admin_notes,
            metadata=SubmissionMetadata(
                ip_address=row.ip_address,
                user_agent=row.user_agent,
                submission_source=SubmissionSource(row.submission_source),
            ),
            history=tuple(self._history_entry(h) for h in row.history),
        )

    @staticmethod
    def _to_coin(row: CoinRow) -> CoinRecord:
        return CoinRecord(
            id=row.id,
            symbol=row.symbol,
            name=row.name,
            conversion_rate=Decimal(row.conversion_rate),
            is_active=bool(row.is_active),
            wallet_address=row.wallet_address,
            network=row.network,
            memo=row.memo,
            minimum_amount=Decimal(row.minimum_amount),
            created_by=row.created_by,
            stats=CoinStats(
                total_contributions=row.total_contributions,
                total_amount=Decimal(row.total_amount),
                unique_contributors=row.unique_contributors,
                total_points_awarded=row.total_points_awarded,
                last_contribution_at=as_utc(row.last_contribution_at),
            ),
        )

    @staticmethod
    def _to_user(row: UserRow) -> UserAccount:
        return UserAccount(
            id=row.id,
            points=row.points,
            voting_rights=row.voting_rights,
            total_contributions=row.total_contributions,
            approved_contributions=row.approved_contributions,
            rejected_contributions=row.rejected_contributions,
        )

    # --- Contributions ---

    def insert_contribution(self, new: NewContribution) -> ContributionRecord:
        row = ContributionRow(
            submitter_id=new.submitter_id,
            coin_id=new.coin_id,
            amount=str(new.amount),
            currency=new.currency,
            wallet_address=new.wallet_address,
            transaction_hash=new.transaction_hash,
            conversion_rate=str(new.conversion_rate),
            points_awarded=0,
            status=ContributionStatus.PENDING.value,
            version=1,
            credit_applied=False,
            user_notes=new.user_notes,
            receipt_filename=new.receipt.filename,
            receipt_original_name=new.receipt.original_name,
            receipt_mime_type=new.receipt.mime_type,
            receipt_size=new.receipt.size,
            receipt_path=new.receipt.path,
            receipt_uploaded_at=new.receipt.uploaded_at,
            ip_address=new.metadata.ip_address,
            user_agent=new.metadata.user_agent,
            submission_source=new.metadata.submission_source.value,
            created_at=new.created_at,
            updated_at=new.created_at,
        )
        row.history.append(self._history_row(None, new.first_entry))
        try:
            with self._session_scope(reraise_integrity=True) as session:
                session.add(row)
                session.flush()
                return self._to_record(row)
        except IntegrityError as e:
            # transaction_hash is the only unique column a caller can collide on
            raise ValidationError("transaction hash has already been submitted") from e

    def load(self, contribution_id: int) -> ContributionRecord | None:
        with self._session_scope() as session:
            row = session.get(ContributionRow, contribution_id)
            return self._to_record(row) if row is not None else None

    def list_contributions(
        self,
        *,
        submitter_id: str | None = None,
        statuses: Iterable[ContributionStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[ContributionRecord]:
        with self._session_scope() as session:
            q = session.query(ContributionRow)
            if submitter_id is not None:
                q = q.filter(ContributionRow.submitter_id == submitter_id)
            if statuses is not None:
                q = q.filter(ContributionRow.status.in_([s.value for s in statuses]))
            if start is not None:
                q = q.filter(ContributionRow.created_at >= as_utc(start))
            if end is not None:
                q = q.filter(ContributionRow.created_at <= as_utc(end))
            rows = (
                q.order_by(ContributionRow.created_at.desc(), ContributionRow.id.desc())
                .limit(limit)
                .all()
            )
            return [self._to_record(r) for r in rows]

    @staticmethod
    def _increment_user(session: Session, user_id: str, now: datetime, deltas: dict[str, int]) -> None:
        """Atomic counter increments; creates the account row on first use."""
        unknown = set(deltas) - USER_COUNTER_COLUMNS - {"points"}
        if unknown:
            raise ValueError(f"unknown user counters: {sorted(unknown)}")
        values: dict[Any, Any] = {
            getattr(UserRow, name): getattr(UserRow, name) + delta for name, delta in deltas.items()
        }
        values[UserRow.updated_at] = now
        updated = (
            session.query(UserRow)
            .filter(UserRow.id == user_id)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            counters = {
                "points": 0,
                "total_contributions": 0,
                "approved_contributions": 0,
                "rejected_contributions": 0,
            }
            counters.update(deltas)
            session.add(
                UserRow(id=user_id, voting_rights=1, created_at=now, updated_at=now, **counters)
            )
            session.flush()

    def compare_and_swap(
        self,
        expected: ContributionRecord,
        updated: ContributionRecord,
        entry: HistoryEntry,
        *,
        user_counters: dict[str, int] | None = None,
    ) -> bool:
        now = updated.updated_at
        try:
            with self._session_scope(reraise_integrity=True) as session:
                # Conditional update first: on SQLite this takes the write lock before any read.
                matched = (
                    session.query(ContributionRow)
                    .filter(
                        ContributionRow.id == expected.id,
                        ContributionRow.status == expected.status.value,
                        ContributionRow.version == expected.version,
                    )
                    .update(
                        {
                            ContributionRow.status: updated.status.value,
                            ContributionRow.version: updated.version,
                            ContributionRow.points_awarded: updated.points_awarded,
                            ContributionRow.credit_applied: updated.credit_applied,
                            ContributionRow.reviewer_id: updated.reviewer_id,
                            ContributionRow.reviewed_at: updated.reviewed_at,
                            ContributionRow.approved_at: updated.approved_at,
                            ContributionRow.rejected_at: updated.rejected_at,
                            ContributionRow.admin_notes: updated.admin_notes,
                            ContributionRow.updated_at: now,
                        },
                        synchronize_session=False,
                    )
                )
                if matched == 0:
                    return False
                session.add(self._history_row(expected.id, entry))
                if user_counters:
                    self._increment_user(session, updated.submitter_id, now, user_counters)
                return True
        except IntegrityError as e:
            logger.exception("compare_and_swap_integrity_error", contribution_id=expected.id)
            raise StorageError("status write conflicted with a concurrent account update") from e

    def apply_point_credit(self, record: ContributionRecord) -> bool:
        if record.status is not ContributionStatus.APPROVED:
            raise ValueError(f"contribution {record.id} is {record.status.value}, not approved")
        now = utcnow()
        try:
            with self._session_scope(reraise_integrity=True) as session:
                already = (
                    session.query(PointCreditRow.id)
                    .filter(PointCreditRow.contribution_id == record.id)
                    .first()
                )
                if already is None:
                    first_for_coin = record.coin_id is not None and (
                        session.query(PointCreditRow.id)
                        .filter(
                            PointCreditRow.user_id == record.submitter_id,
                            PointCreditRow.coin_id == record.coin_id,
                        )
                        .first()
                        is None
                    )
                    session.add(
                        PointCreditRow(
                            contribution_id=record.id,
                            user_id=record.submitter_id,
                            coin_id=record.coin_id,
                            points=record.points_awarded,
                            created_at=now,
                        )
                    )
                    session.flush()
                    self._increment_user(
                        session,
                        record.submitter_id,
                        now,
                        {
                            "points": record.points_awarded,
                            "total_contributions": 1,
                            "approved_contributions": 1,
                        },
                    )
                    if record.coin_id is not None:
                        coin = (
                            session.query(CoinRow)
                            .filter(CoinRow.id == record.coin_id)
                            .with_for_update()
                            .first()
                        )
                        if coin is not None:
                            coin.total_contributions += 1
                            coin.total_amount = str(Decimal(coin.total_amount) + record.amount)
                            coin.total_points_awarded += record.points_awarded
                            if first_for_coin:
                                coin.unique_contributors += 1
                            coin.last_contribution_at = now
                            coin.updated_at = now
                session.query(ContributionRow).filter(ContributionRow.id == record.id).update(
                    {ContributionRow.credit_applied: True}, synchronize_session=False
                )
                return already is None
        except IntegrityError:
            # Lost the ledger insert to a concurrent credit for the same contribution.
            logger.info("points_credit_already_recorded", contribution_id=record.id)
            with self._session_scope() as session:
                recorded = (
                    session.query(PointCreditRow.id)
                    .filter(PointCreditRow.contribution_id == record.id)
                    .first()
                )
                if recorded is None:
                    raise StorageError(f"point credit for contribution {record.id} could not be recorded")
                session.query(ContributionRow).filter(ContributionRow.id == record.id).update(
                    {ContributionRow.credit_applied: True}, synchronize_session=False
                )
            return False

    def list_uncredited_approved(self, *, limit: int = 500) -> list[ContributionRecord]:
        with self._session_scope() as session:
            rows = (
                session.query(ContributionRow)
                .filter(
                    ContributionRow.status == ContributionStatus.APPROVED.value,
                    ContributionRow.credit_applied.is_(False),
                )
                .order_by(ContributionRow.id)
                .limit(limit)
                .all()
            )
            return [self._to_record(r) for r in rows]

    def contribution_stats(self) -> ContributionStats:
        stats = ContributionStats()
        with self._session_scope() as session:
            rows = session.query(
                ContributionRow.status, ContributionRow.amount, ContributionRow.points_awarded
            ).all()
        for status, amount, points in rows:
            stats.total += 1
            stats.total_amount += Decimal(amount)
            stats.total_points_awarded += points or 0
            setattr(stats, status, getattr(stats, status) + 1)
        return stats

    # --- Coins ---

    def get_coin(self, symbol: str) -> CoinRecord | None:
        with self._session_scope() as session:
            row = session.query(CoinRow).filter(CoinRow.symbol == symbol).first()
            return self._to_coin(row) if row is not None else None

    def insert_coin(
        self,
        symbol: str,
        name: str,
        *,
        conversion_rate: Decimal,
        created_by: str | None,
        is_active: bool = True,
        wallet_address: str | None = None,
        network: str | None = None,
        memo: str | None = None,
        minimum_amount: Decimal = Decimal("0.01"),
    ) -> CoinRecord:
        now = utcnow()
        row = CoinRow(
            symbol=symbol,
            name=name,
            conversion_rate=str(conversion_rate),
            minimum_amount=str(minimum_amount),
            is_active=is_active,
            wallet_address=wallet_address,
            network=network,
            memo=memo,
            total_contributions=0,
            total_amount="0",
            unique_contributors=0,
            total_points_awarded=0,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session_scope(reraise_integrity=True) as session:
                session.add(row)
                session.flush()
                return self._to_coin(row)
        except IntegrityError as e:
            raise ValidationError(f"coin {symbol} is already registered") from e

    def set_coin_active(self, symbol: str, is_active: bool) -> CoinRecord | None:
        with self._session_scope() as session:
            row = session.query(CoinRow).filter(CoinRow.symbol == symbol).first()
            if row is None:
                return None
            row.is_active = is_active
            row.updated_at = utcnow()
            session.flush()
            return self._to_coin(row)

    def list_coins(self, *, active_only: bool = True) -> list[CoinRecord]:
        with self._session_scope() as session:
            q = session.query(CoinRow)
            if active_only:
                q = q.filter(CoinRow.is_active.is_(True))
            rows = q.order_by(CoinRow.total_contributions.desc(), CoinRow.name).all()
            return [self._to_coin(r) for r in rows]

    # --- Users ---

    def get_user(self, user_id: str) -> UserAccount | None:
        with self._session_scope() as session:
            row = session.get(UserRow, user_id)
            return self._to_user(row) if row is not None else None

    def _get_or_create_user(self, session: Session, user_id: str, now: datetime) -> UserRow:
        row = session.get(UserRow, user_id)
        if row is None:
            row = UserRow(
                id=user_id,
                points=0,
                voting_rights=1,
                total_contributions=0,
                approved_contributions=0,
                rejected_contributions=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
        return row

    def adjust_user_points(self, user_id: str, delta: int) -> UserAccount:
        now = utcnow()
        with self._session_scope() as session:
            row = self._get_or_create_user(session, user_id, now)
            row.points = max(0, row.points + delta)
            row.updated_at = now
            session.flush()
            return self._to_user(row)

    def set_voting_rights(self, user_id: str, voting_rights: int) -> UserAccount:
        now = utcnow()
        with self._session_scope() as session:
            row = self._get_or_create_user(session, user_id, now)
            row.voting_rights = voting_rights
            row.updated_at = now
            session.flush()
            return self._to_user(row)

    def leaderboard(self, *, limit: int = 10) -> list[UserAccount]:
        with self._session_scope() as session:
            rows = (
                session.query(UserRow)
                .order_by(UserRow.points.desc(), UserRow.created_at.asc())
                .limit(limit)
                .all()
            )
            return [self._to_user(r) for r in rows]

    def user_stats(self) -> UserStats:
        with self._session_scope() as session:
            total, active, points = session.query(
                func.count(UserRow.id),
                func.coalesce(func.sum(case((UserRow.total_contributions > 0, 1), else_=0)), 0),
                func.coalesce(func.sum(UserRow.points), 0),
            ).one()
        return UserStats(
            total_users=total,
            active_users=int(active),
            total_points=int(points),
            average_points=round(int(points) / total, 2) if total else 0.0,
        )


def get_database(url: str | None = None) -> SQLAlchemyRepository:
    """
    Return a repository with its schema created.

    url: SQLAlchemy URL. Default: Settings.database_url (DATABASE_URL, else SQLite at DB_PATH).
    """
    if url is None:
        from contribution_review.config import get_settings

        url = get_settings().database_url
    repo = SQLAlchemyRepository(url)
    repo.ensure_schema()
    return repo
