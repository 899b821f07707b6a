"""Repository Protocols for settlement progress and the leaderboard."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_chain.client import ChainBet
from src.pm_common.enums import SettlementStep
from src.pm_session.domain.models import SessionBet
from src.pm_settlement.domain.models import (
    LeaderboardEntry,
    LeaderboardStats,
    SettlementRecord,
)


class SettlementRepositoryProtocol(Protocol):
    async def get(self, db: AsyncSession, market_id: str) -> SettlementRecord | None: ...

    async def get_or_create(
        self, db: AsyncSession, market_id: str, resolved_yes: bool, now: datetime
    ) -> SettlementRecord: ...

    async def record_chain_tx(
        self, db: AsyncSession, market_id: str, tx_hash: str | None, now: datetime
    ) -> None: ...

    async def mark_step_done(
        self,
        db: AsyncSession,
        market_id: str,
        step: SettlementStep,
        now: datetime,
        bets_settled: int = 0,
    ) -> None: ...


class LeaderboardRepositoryProtocol(Protocol):
    async def list_uncredited_bets(
        self, db: AsyncSession, market_id: str
    ) -> list[SessionBet]: ...

    async def credit_bet(
        self,
        db: AsyncSession,
        bet_id: int,
        address: str,
        pnl: int,
        won: bool,
        volume: int,
        now: datetime,
    ) -> bool: ...

    async def credit_chain_bet(
        self, db: AsyncSession, bet: ChainBet, pnl: int, won: bool, now: datetime
    ) -> bool: ...

    async def top(self, db: AsyncSession, limit: int) -> list[LeaderboardEntry]: ...

    async def stats(self, db: AsyncSession) -> LeaderboardStats: ...
