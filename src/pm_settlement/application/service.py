"""SettlementTrigger: resolve a market and push the outcome everywhere.

Runs under a per-market Redis lock. Progress is recorded per step in
`market_settlements`:

    chain        custody.settleMarket(keccak(marketId), resolvedYes)
    leaderboard  per-bet PnL / win / loss / volume totals, session bets and
                 custody BetPlaced logs
    sessions     credit winning bets back into their sessions

The chain step is sent once per market. The leaderboard and sessions sweeps
run on every settlement and pick up only bets not yet counted, so a bet
placed after an earlier run is still settled. A failing step is logged and
reported; it never aborts the other steps.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_chain.client import ChainService
from src.pm_common.database import safe_rollback, unit_of_work
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import SettlementStep, StepStatus
from src.pm_common.errors import (
    AppError,
    ExternalServiceDegradedError,
    MarketCancelledError,
    SettlementInProgressError,
)
from src.pm_common.redis_client import RedisLock
from src.pm_oracle.client import MarketOracleProtocol
from src.pm_session.application.service import SessionManager, validate_market_id
from src.pm_settlement.application.leaderboard import LeaderboardService
from src.pm_settlement.domain.models import SettlementRecord, SettlementReport, StepResult
from src.pm_settlement.domain.repository import SettlementRepositoryProtocol
from src.pm_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger("pm.settlement")

LOCK_KEY = "settlement:lock:{market_id}"


class SettlementTrigger:
    def __init__(
        self,
        session_manager: SessionManager,
        leaderboard: LeaderboardService,
        oracle: MarketOracleProtocol,
        chain: ChainService,
        redis: Redis,
        lock_ttl_seconds: int = 300,
        repo: SettlementRepositoryProtocol | None = None,
    ) -> None:
        self._sessions = session_manager
        self._leaderboard = leaderboard
        self._oracle = oracle
        self._chain = chain
        self._redis = redis
        self._lock_ttl = lock_ttl_seconds
        self._repo: SettlementRepositoryProtocol = repo or SettlementRepository()

    async def settle(self, db: AsyncSession, market_id: str) -> SettlementReport:
        market_id = validate_market_id(market_id)
        lock = RedisLock(
            self._redis,
            LOCK_KEY.format(market_id=market_id),
            uuid.uuid4().hex,
            self._lock_ttl,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise ExternalServiceDegradedError("redis", f"settlement lock: {exc}") from exc
        if not acquired:
            raise SettlementInProgressError(market_id)

        try:
            return await self._settle_locked(db, market_id)
        finally:
            try:
                await lock.release()
            except RedisError as exc:
                logger.warning("Lock release for %s failed, expires in %ds: %s",
                               market_id, self._lock_ttl, exc)

    async def _settle_locked(self, db: AsyncSession, market_id: str) -> SettlementReport:
        resolution = await self._oracle.get_resolution(market_id)
        if resolution.cancelled:
            logger.info("Market %s was cancelled, nothing to settle", market_id)
            raise MarketCancelledError(market_id)

        async with unit_of_work(db):
            record = await self._repo.get_or_create(
                db, market_id, resolution.resolved_yes, utc_now()
            )
        if record.resolved_yes != resolution.resolved_yes:
            logger.warning(
                "Market %s resolution changed since first settlement; keeping %s",
                market_id, "YES" if record.resolved_yes else "NO",
            )

        report = SettlementReport(
            market_id=market_id,
            outcome="YES" if record.resolved_yes else "NO",
            chain_tx_hash=record.chain_tx_hash,
            bets_settled=0,
            leaderboard_credited=0,
        )
        report.steps.append(await self._chain_step(db, record, report))
        report.steps.append(await self._leaderboard_step(db, record, report))
        report.steps.append(await self._sessions_step(db, record, report))

        logger.info(
            "Settlement of %s (%s): %s",
            market_id, report.outcome,
            ", ".join(f"{s.step.value}={s.status.value}" for s in report.steps),
        )
        return report

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _chain_step(
        self, db: AsyncSession, record: SettlementRecord, report: SettlementReport
    ) -> StepResult:
        if record.chain_settled_at is not None:
            return StepResult(SettlementStep.CHAIN, StepStatus.SKIPPED)
        if not self._chain.enabled:
            return StepResult(SettlementStep.CHAIN, StepStatus.DISABLED)

        async def run() -> None:
            tx_hash = await self._chain.settle_market(record.market_id, record.resolved_yes)
            async with unit_of_work(db):
                await self._repo.record_chain_tx(db, record.market_id, tx_hash, utc_now())
            report.chain_tx_hash = tx_hash

        return await self._run_step(db, SettlementStep.CHAIN, record.market_id, run)

    async def _leaderboard_step(
        self, db: AsyncSession, record: SettlementRecord, report: SettlementReport
    ) -> StepResult:
        async def run() -> None:
            report.leaderboard_credited = await self._leaderboard.credit_market(
                db, record.market_id, record.resolved_yes
            )
            if self._chain.reads_enabled:
                chain_bets = await self._chain.get_bet_events(record.market_id)
                report.leaderboard_credited += await self._leaderboard.credit_chain_bets(
                    db, chain_bets, record.resolved_yes
                )
            async with unit_of_work(db):
                await self._repo.mark_step_done(
                    db, record.market_id, SettlementStep.LEADERBOARD, utc_now()
                )

        return await self._run_step(db, SettlementStep.LEADERBOARD, record.market_id, run)

    async def _sessions_step(
        self, db: AsyncSession, record: SettlementRecord, report: SettlementReport
    ) -> StepResult:
        async def run() -> None:
            report.bets_settled = await self._sessions.settle_bets_for_market(
                db, record.market_id, record.resolved_yes
            )
            async with unit_of_work(db):
                await self._repo.mark_step_done(
                    db,
                    record.market_id,
                    SettlementStep.SESSIONS,
                    utc_now(),
                    bets_settled=report.bets_settled,
                )

        return await self._run_step(db, SettlementStep.SESSIONS, record.market_id, run)

    async def _run_step(
        self,
        db: AsyncSession,
        step: SettlementStep,
        market_id: str,
        run: Callable[[], Awaitable[None]],
    ) -> StepResult:
        try:
            await run()
        except (AppError, SQLAlchemyError) as exc:
            detail = exc.message if isinstance(exc, AppError) else exc.__class__.__name__
            logger.error("Settlement step %s failed for %s: %s", step.value, market_id, detail)
            await safe_rollback(db)
            return StepResult(step, StepStatus.FAILED, detail)
        return StepResult(step, StepStatus.DONE)
