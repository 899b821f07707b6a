"""LeaderboardService: per-address PnL, win/loss and volume totals.

Each bet is counted at most once. Session bets carry a `leaderboard_credited`
flag flipped by a conditional UPDATE; custody BetPlaced logs get a
`chain_bet_credits` row keyed by (tx_hash, log_index). Either guard is
written in the same transaction that adds to the address row.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_chain.client import ChainBet
from src.pm_common.database import unit_of_work
from src.pm_common.datetime_utils import utc_now
from src.pm_settlement.domain.models import LeaderboardEntry, LeaderboardStats
from src.pm_settlement.domain.repository import LeaderboardRepositoryProtocol
from src.pm_settlement.domain.rules import bet_outcome
from src.pm_settlement.infrastructure.persistence import LeaderboardRepository

logger = logging.getLogger("pm.settlement")

DEFAULT_TOP_LIMIT = 10


class LeaderboardService:
    def __init__(self, repo: LeaderboardRepositoryProtocol | None = None) -> None:
        self._repo: LeaderboardRepositoryProtocol = repo or LeaderboardRepository()

    async def credit_market(
        self, db: AsyncSession, market_id: str, resolved_yes: bool
    ) -> int:
        """Credit every not-yet-counted bet of a market; returns bets credited now."""
        bets = await self._repo.list_uncredited_bets(db, market_id)
        credited = 0
        for bet in bets:
            outcome = bet_outcome(bet.side, bet.amount, resolved_yes)
            async with unit_of_work(db):
                counted = await self._repo.credit_bet(
                    db,
                    bet.id,
                    bet.user_address,
                    outcome.pnl,
                    outcome.won,
                    bet.amount,
                    utc_now(),
                )
            if counted:
                credited += 1
        logger.info("Leaderboard credited %d bets for market %s", credited, market_id)
        return credited

    async def credit_chain_bets(
        self, db: AsyncSession, bets: list[ChainBet], resolved_yes: bool
    ) -> int:
        """Credit custody BetPlaced logs; each (tx_hash, log_index) counts once."""
        credited = 0
        for bet in bets:
            outcome = bet_outcome(bet.side, bet.amount, resolved_yes)
            async with unit_of_work(db):
                counted = await self._repo.credit_chain_bet(
                    db, bet, outcome.pnl, outcome.won, utc_now()
                )
            if counted:
                credited += 1
        if bets:
            logger.info(
                "Leaderboard credited %d of %d on-chain bets for market %s",
                credited, len(bets), bets[0].market_id,
            )
        return credited

    async def top(self, db: AsyncSession, limit: int = DEFAULT_TOP_LIMIT) -> list[LeaderboardEntry]:
        return await self._repo.top(db, limit)

    async def stats(self, db: AsyncSession) -> LeaderboardStats:
        return await self._repo.stats(db)
