"""SQLAlchemy ORM models for pm_session.

These mirror the tables created by the Alembic migrations and are used to
build the schema for store tests. DO NOT add/remove columns here without a
corresponding migration.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.pm_common.database import Base

_ACTIVE_STATUS = text("status IN ('open', 'closing')")
_UNSETTLED = text("settled = false")
# Lifetime totals outgrow BIGINT; balances and stakes stay bounded by MAX_WEI
_WEI_TOTAL = Numeric(78, 0)


class SessionORM(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_sessions_balance_gte_0"),
        CheckConstraint("initial_deposit > 0", name="ck_sessions_deposit_gt_0"),
        CheckConstraint(
            "status IN ('open', 'closing', 'closed')", name="ck_sessions_status"
        ),
        # At most one open/closing session per user
        Index(
            "uq_sessions_active_user",
            "user_address",
            unique=True,
            postgresql_where=_ACTIVE_STATUS,
            sqlite_where=_ACTIVE_STATUS,
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    relay_session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    initial_deposit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    current_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_bet_amount: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False, default=0)
    total_won: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False, default=0)
    total_lost: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    settlement_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SessionBetORM(Base):
    __tablename__ = "session_bets"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_session_bets_amount_gt_0"),
        Index(
            "ix_session_bets_market_unsettled",
            "market_id",
            postgresql_where=_UNSETTLED,
            sqlite_where=_UNSETTLED,
        ),
        Index("ix_session_bets_session_time", "session_id", "created_at"),
    )

    # SQLite only auto-increments INTEGER PRIMARY KEY
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("sessions.id"), nullable=False
    )
    market_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    side: Mapped[bool] = mapped_column(Boolean, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    won: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    pnl: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    leaderboard_credited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # No delete path; bets are mutated once by settlement and kept forever
