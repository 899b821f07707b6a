"""SQLAlchemy ORM models for pm_settlement.

These mirror the tables created by the Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.pm_common.database import Base

_WEI_TOTAL = Numeric(78, 0)


class MarketSettlementORM(Base):
    __tablename__ = "market_settlements"
    __table_args__ = (
        CheckConstraint("bets_settled >= 0", name="ck_market_settlements_bets_gte_0"),
    )

    market_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    resolved_yes: Mapped[bool] = mapped_column(Boolean, nullable=False)
    chain_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    chain_settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    leaderboard_done_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sessions_done_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    bets_settled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LeaderboardORM(Base):
    __tablename__ = "leaderboard"
    __table_args__ = (
        CheckConstraint("wins + losses = bets", name="ck_leaderboard_counts"),
        CheckConstraint("volume_wei >= 0", name="ck_leaderboard_volume_gte_0"),
        Index("ix_leaderboard_pnl", "pnl_wei"),
    )

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    pnl_wei: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False, default=0)
    bets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volume_wei: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ChainBetCreditORM(Base):
    """One row per custody BetPlaced log already counted on the leaderboard."""

    __tablename__ = "chain_bet_credits"
    __table_args__ = (
        CheckConstraint("amount_wei >= 0", name="ck_chain_bet_credits_amount_gte_0"),
        Index("ix_chain_bet_credits_market", "market_id"),
    )

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    market_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)
    side: Mapped[bool] = mapped_column(Boolean, nullable=False)
    amount_wei: Mapped[int] = mapped_column(_WEI_TOTAL, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
