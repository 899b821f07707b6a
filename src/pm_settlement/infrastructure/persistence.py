"""Settlement progress and leaderboard repositories.

Transaction ownership: The CALLER is responsible for committing or rolling
back via `unit_of_work(db)`.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, TextClause, bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_chain.client import ChainBet
from src.pm_common.datetime_utils import as_utc
from src.pm_common.enums import SettlementStep
from src.pm_common.errors import InternalError
from src.pm_session.domain.models import SessionBet
from src.pm_session.infrastructure.persistence import BET_COLUMNS, row_to_bet
from src.pm_settlement.domain.models import (
    LeaderboardEntry,
    LeaderboardStats,
    SettlementRecord,
)

_TS = DateTime(timezone=True)


def _sql(statement: str) -> TextClause:
    return text(statement).bindparams(bindparam("now", type_=_TS))


# ---------------------------------------------------------------------------
# SQL: market_settlements
# ---------------------------------------------------------------------------

_SETTLEMENT_COLUMNS = """
    market_id, resolved_yes, chain_tx_hash, chain_settled_at,
    leaderboard_done_at, sessions_done_at, bets_settled, created_at, updated_at
"""

# First resolution wins; a re-run never flips the recorded outcome
_INSERT_SETTLEMENT_SQL = _sql("""
    INSERT INTO market_settlements
        (market_id, resolved_yes, chain_tx_hash, chain_settled_at,
         leaderboard_done_at, sessions_done_at, bets_settled, created_at, updated_at)
    VALUES
        (:market_id, :resolved_yes, NULL, NULL, NULL, NULL, 0, :now, :now)
    ON CONFLICT (market_id) DO NOTHING
""")

_GET_SETTLEMENT_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM market_settlements
    WHERE market_id = :market_id
""")

_RECORD_CHAIN_SQL = _sql("""
    UPDATE market_settlements
    SET chain_tx_hash = :tx_hash,
        chain_settled_at = :now,
        updated_at = :now
    WHERE market_id = :market_id AND chain_settled_at IS NULL
""")

# The sweeps run on every settlement; the first completion time is kept
_MARK_LEADERBOARD_DONE_SQL = _sql("""
    UPDATE market_settlements
    SET leaderboard_done_at = COALESCE(leaderboard_done_at, :now),
        updated_at = :now
    WHERE market_id = :market_id
""")

_MARK_SESSIONS_DONE_SQL = _sql("""
    UPDATE market_settlements
    SET sessions_done_at = COALESCE(sessions_done_at, :now),
        bets_settled = bets_settled + :bets_settled,
        updated_at = :now
    WHERE market_id = :market_id
""")

# ---------------------------------------------------------------------------
# SQL: leaderboard
# ---------------------------------------------------------------------------

_LIST_UNCREDITED_BETS_SQL = text(f"""
    SELECT {BET_COLUMNS}
    FROM session_bets
    WHERE market_id = :market_id AND leaderboard_credited = FALSE
    ORDER BY id
""")

_MARK_BET_CREDITED_SQL = text("""
    UPDATE session_bets
    SET leaderboard_credited = TRUE
    WHERE id = :bet_id AND leaderboard_credited = FALSE
    RETURNING id
""")

# Per-log guard for custody bets; a conflict means the log was already counted
_INSERT_CHAIN_CREDIT_SQL = _sql("""
    INSERT INTO chain_bet_credits
        (tx_hash, log_index, market_id, user_address, side, amount_wei,
         block_number, credited_at)
    VALUES
        (:tx_hash, :log_index, :market_id, :user_address, :side, :amount,
         :block_number, :now)
    ON CONFLICT (tx_hash, log_index) DO NOTHING
    RETURNING tx_hash
""")

_UPSERT_LEADERBOARD_SQL = _sql("""
    INSERT INTO leaderboard
        (address, pnl_wei, bets, wins, losses, volume_wei, updated_at)
    VALUES
        (:address, :pnl, 1, :wins, :losses, :volume, :now)
    ON CONFLICT (address) DO UPDATE
    SET pnl_wei    = leaderboard.pnl_wei    + excluded.pnl_wei,
        bets       = leaderboard.bets       + 1,
        wins       = leaderboard.wins       + excluded.wins,
        losses     = leaderboard.losses     + excluded.losses,
        volume_wei = leaderboard.volume_wei + excluded.volume_wei,
        updated_at = excluded.updated_at
""")

_TOP_SQL = text("""
    SELECT address, pnl_wei, bets, wins, losses, volume_wei
    FROM leaderboard
    ORDER BY pnl_wei DESC, volume_wei DESC, address
    LIMIT :limit
""")

_STATS_SQL = text("""
    SELECT COUNT(*) AS users,
           COALESCE(SUM(bets), 0) AS total_bets,
           COALESCE(SUM(volume_wei), 0) AS total_volume
    FROM leaderboard
""")


def _row_to_record(row: Any) -> SettlementRecord:
    return SettlementRecord(
        market_id=row.market_id,
        resolved_yes=bool(row.resolved_yes),
        chain_tx_hash=row.chain_tx_hash,
        chain_settled_at=as_utc(row.chain_settled_at),
        leaderboard_done_at=as_utc(row.leaderboard_done_at),
        sessions_done_at=as_utc(row.sessions_done_at),
        bets_settled=int(row.bets_settled),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class SettlementRepository:
    async def get(self, db: AsyncSession, market_id: str) -> SettlementRecord | None:
        result = await db.execute(_GET_SETTLEMENT_SQL, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def get_or_create(
        self, db: AsyncSession, market_id: str, resolved_yes: bool, now: datetime
    ) -> SettlementRecord:
        await db.execute(
            _INSERT_SETTLEMENT_SQL,
            {"market_id": market_id, "resolved_yes": resolved_yes, "now": now},
        )
        record = await self.get(db, market_id)
        if record is None:
            raise InternalError(f"Settlement record for {market_id} missing after upsert")
        return record

    async def record_chain_tx(
        self, db: AsyncSession, market_id: str, tx_hash: str | None, now: datetime
    ) -> None:
        await db.execute(
            _RECORD_CHAIN_SQL, {"market_id": market_id, "tx_hash": tx_hash, "now": now}
        )

    async def mark_step_done(
        self,
        db: AsyncSession,
        market_id: str,
        step: SettlementStep,
        now: datetime,
        bets_settled: int = 0,
    ) -> None:
        if step == SettlementStep.LEADERBOARD:
            await db.execute(_MARK_LEADERBOARD_DONE_SQL, {"market_id": market_id, "now": now})
        elif step == SettlementStep.SESSIONS:
            await db.execute(
                _MARK_SESSIONS_DONE_SQL,
                {"market_id": market_id, "bets_settled": bets_settled, "now": now},
            )
        else:
            raise InternalError(f"Step {step} is recorded via record_chain_tx")


class LeaderboardRepository:
    async def list_uncredited_bets(
        self, db: AsyncSession, market_id: str
    ) -> list[SessionBet]:
        result = await db.execute(_LIST_UNCREDITED_BETS_SQL, {"market_id": market_id})
        return [row_to_bet(row) for row in result.fetchall()]

    async def credit_bet(
        self,
        db: AsyncSession,
        bet_id: int,
        address: str,
        pnl: int,
        won: bool,
        volume: int,
        now: datetime,
    ) -> bool:
        """Count one bet towards its owner's row. False if it was already counted."""
        result = await db.execute(_MARK_BET_CREDITED_SQL, {"bet_id": bet_id})
        if result.fetchone() is None:
            return False
        await self._add_to_row(db, address, pnl, won, volume, now)
        return True

    async def credit_chain_bet(
        self, db: AsyncSession, bet: ChainBet, pnl: int, won: bool, now: datetime
    ) -> bool:
        """Count one custody BetPlaced log. False if that log was already counted."""
        result = await db.execute(
            _INSERT_CHAIN_CREDIT_SQL,
            {
                "tx_hash": bet.tx_hash,
                "log_index": bet.log_index,
                "market_id": bet.market_id,
                "user_address": bet.user_address,
                "side": bet.side,
                "amount": bet.amount,
                "block_number": bet.block_number,
                "now": now,
            },
        )
        if result.fetchone() is None:
            return False
        await self._add_to_row(db, bet.user_address, pnl, won, bet.amount, now)
        return True

    async def _add_to_row(
        self,
        db: AsyncSession,
        address: str,
        pnl: int,
        won: bool,
        volume: int,
        now: datetime,
    ) -> None:
        await db.execute(
            _UPSERT_LEADERBOARD_SQL,
            {
                "address": address,
                "pnl": pnl,
                "wins": 1 if won else 0,
                "losses": 0 if won else 1,
                "volume": volume,
                "now": now,
            },
        )

    async def top(self, db: AsyncSession, limit: int) -> list[LeaderboardEntry]:
        result = await db.execute(_TOP_SQL, {"limit": limit})
        return [
            LeaderboardEntry(
                address=row.address,
                pnl=int(row.pnl_wei),
                bets=int(row.bets),
                wins=int(row.wins),
                losses=int(row.losses),
                volume=int(row.volume_wei),
            )
            for row in result.fetchall()
        ]

    async def stats(self, db: AsyncSession) -> LeaderboardStats:
        result = await db.execute(_STATS_SQL)
        row = result.one()
        return LeaderboardStats(
            users=int(row.users),
            total_bets=int(row.total_bets),
            total_volume=int(row.total_volume),
        )
