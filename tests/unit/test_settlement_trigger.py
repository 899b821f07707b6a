"""Unit tests for SettlementTrigger with mocked collaborators."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.pm_chain.client import ChainBet
from src.pm_common.enums import ResolutionOutcome, SettlementStep, StepStatus
from src.pm_common.errors import (
    ExternalServiceDegradedError,
    MarketCancelledError,
    MarketNotResolvedError,
    PersistenceError,
    SettlementInProgressError,
)
from src.pm_oracle.models import Resolution
from src.pm_settlement.application.service import SettlementTrigger
from src.pm_settlement.domain.models import SettlementRecord

NOW = datetime(2026, 10, 1, tzinfo=UTC)


def _resolution(outcome: ResolutionOutcome = ResolutionOutcome.YES) -> Resolution:
    return Resolution(market_id="mkt-1", outcome=outcome, probability=1.0, resolved_at=NOW)


def _record(**done: datetime | str) -> SettlementRecord:
    return SettlementRecord(market_id="mkt-1", resolved_yes=True, **done)  # type: ignore[arg-type]


class _Fixture:
    def __init__(self, chain_enabled: bool = True) -> None:
        self.redis = AsyncMock()
        self.redis.set.return_value = True
        self.oracle = AsyncMock()
        self.oracle.get_resolution.return_value = _resolution()
        self.chain = MagicMock()
        self.chain.enabled = chain_enabled
        self.chain.reads_enabled = False
        self.chain.settle_market = AsyncMock(return_value="0xfeed")
        self.sessions = AsyncMock()
        self.sessions.settle_bets_for_market.return_value = 3
        self.leaderboard = AsyncMock()
        self.leaderboard.credit_market.return_value = 3
        self.repo = AsyncMock()
        self.repo.get_or_create.return_value = _record()
        self.db = AsyncMock()

    def trigger(self) -> SettlementTrigger:
        return SettlementTrigger(
            self.sessions,
            self.leaderboard,
            self.oracle,
            self.chain,
            self.redis,
            lock_ttl_seconds=60,
            repo=self.repo,
        )


def _statuses(report) -> dict[SettlementStep, StepStatus]:  # type: ignore[no-untyped-def]
    return {s.step: s.status for s in report.steps}


class TestLocking:
    async def test_lock_taken_with_nx_and_ttl_then_released(self) -> None:
        f = _Fixture()
        await f.trigger().settle(f.db, "mkt-1")

        args, kwargs = f.redis.set.call_args
        assert args[0] == "settlement:lock:mkt-1"
        assert kwargs == {"nx": True, "ex": 60}
        token = args[1]
        eval_args = f.redis.eval.call_args.args
        assert eval_args[1:] == (1, "settlement:lock:mkt-1", token)

    async def test_held_lock_rejects(self) -> None:
        f = _Fixture()
        f.redis.set.return_value = None
        with pytest.raises(SettlementInProgressError):
            await f.trigger().settle(f.db, "mkt-1")
        f.oracle.get_resolution.assert_not_called()
        f.redis.eval.assert_not_called()

    async def test_redis_down_is_degraded(self) -> None:
        f = _Fixture()
        f.redis.set.side_effect = RedisConnectionError("refused")
        with pytest.raises(ExternalServiceDegradedError) as exc_info:
            await f.trigger().settle(f.db, "mkt-1")
        assert exc_info.value.service == "redis"

    async def test_lock_released_when_oracle_fails(self) -> None:
        f = _Fixture()
        f.oracle.get_resolution.side_effect = MarketNotResolvedError("mkt-1")
        with pytest.raises(MarketNotResolvedError):
            await f.trigger().settle(f.db, "mkt-1")
        f.redis.eval.assert_awaited_once()


class TestResolution:
    async def test_cancelled_market_changes_nothing(self) -> None:
        f = _Fixture()
        f.oracle.get_resolution.return_value = _resolution(ResolutionOutcome.CANCEL)
        with pytest.raises(MarketCancelledError):
            await f.trigger().settle(f.db, "mkt-1")
        f.repo.get_or_create.assert_not_called()
        f.sessions.settle_bets_for_market.assert_not_called()

    async def test_recorded_outcome_wins_over_new_resolution(self) -> None:
        f = _Fixture()
        f.oracle.get_resolution.return_value = _resolution(ResolutionOutcome.NO)
        # first run recorded YES
        report = await f.trigger().settle(f.db, "mkt-1")
        assert report.outcome == "YES"
        f.sessions.settle_bets_for_market.assert_awaited_once_with(f.db, "mkt-1", True)


class TestSteps:
    async def test_full_run(self) -> None:
        f = _Fixture()
        report = await f.trigger().settle(f.db, "mkt-1")

        assert _statuses(report) == {
            SettlementStep.CHAIN: StepStatus.DONE,
            SettlementStep.LEADERBOARD: StepStatus.DONE,
            SettlementStep.SESSIONS: StepStatus.DONE,
        }
        assert report.complete
        assert report.chain_tx_hash == "0xfeed"
        assert report.bets_settled == 3
        assert report.leaderboard_credited == 3
        f.chain.settle_market.assert_awaited_once_with("mkt-1", True)
        f.repo.record_chain_tx.assert_awaited_once()
        assert f.repo.mark_step_done.await_count == 2

    async def test_chain_disabled(self) -> None:
        f = _Fixture(chain_enabled=False)
        report = await f.trigger().settle(f.db, "mkt-1")

        assert _statuses(report)[SettlementStep.CHAIN] == StepStatus.DISABLED
        assert report.complete
        f.chain.settle_market.assert_not_called()

    async def test_rerun_skips_chain_but_sweeps_again(self) -> None:
        f = _Fixture()
        f.sessions.settle_bets_for_market.return_value = 1
        f.leaderboard.credit_market.return_value = 1
        f.repo.get_or_create.return_value = _record(
            chain_tx_hash="0xold",
            chain_settled_at=NOW,
            leaderboard_done_at=NOW,
            sessions_done_at=NOW,
        )
        report = await f.trigger().settle(f.db, "mkt-1")

        assert _statuses(report) == {
            SettlementStep.CHAIN: StepStatus.SKIPPED,
            SettlementStep.LEADERBOARD: StepStatus.DONE,
            SettlementStep.SESSIONS: StepStatus.DONE,
        }
        assert report.chain_tx_hash == "0xold"
        assert report.bets_settled == 1
        f.chain.settle_market.assert_not_called()
        f.leaderboard.credit_market.assert_awaited_once_with(f.db, "mkt-1", True)
        f.sessions.settle_bets_for_market.assert_awaited_once_with(f.db, "mkt-1", True)

    async def test_on_chain_bets_credited_when_custody_readable(self) -> None:
        f = _Fixture()
        f.chain.reads_enabled = True
        chain_bets = [ChainBet("mkt-1", "0xA", True, 1000, "0x" + "aa" * 32, 0, 7)]
        f.chain.get_bet_events = AsyncMock(return_value=chain_bets)
        f.leaderboard.credit_chain_bets.return_value = 1

        report = await f.trigger().settle(f.db, "mkt-1")

        assert report.leaderboard_credited == 4
        f.chain.get_bet_events.assert_awaited_once_with("mkt-1")
        f.leaderboard.credit_chain_bets.assert_awaited_once_with(f.db, chain_bets, True)

    async def test_log_read_failure_fails_leaderboard_only(self) -> None:
        f = _Fixture()
        f.chain.reads_enabled = True
        f.chain.get_bet_events = AsyncMock(
            side_effect=ExternalServiceDegradedError("chain", "rpc down")
        )

        report = await f.trigger().settle(f.db, "mkt-1")

        statuses = _statuses(report)
        assert statuses[SettlementStep.LEADERBOARD] == StepStatus.FAILED
        assert statuses[SettlementStep.SESSIONS] == StepStatus.DONE
        recorded = [c.args[2] for c in f.repo.mark_step_done.call_args_list]
        assert SettlementStep.LEADERBOARD not in recorded

    async def test_chain_failure_does_not_stop_other_steps(self) -> None:
        f = _Fixture()
        f.chain.settle_market.side_effect = ExternalServiceDegradedError("chain", "reverted")
        report = await f.trigger().settle(f.db, "mkt-1")

        statuses = _statuses(report)
        assert statuses[SettlementStep.CHAIN] == StepStatus.FAILED
        assert statuses[SettlementStep.LEADERBOARD] == StepStatus.DONE
        assert statuses[SettlementStep.SESSIONS] == StepStatus.DONE
        assert not report.complete
        assert "reverted" in (report.steps[0].detail or "")
        f.repo.record_chain_tx.assert_not_called()

    async def test_sessions_failure_reported(self) -> None:
        f = _Fixture()
        f.sessions.settle_bets_for_market.side_effect = PersistenceError()
        report = await f.trigger().settle(f.db, "mkt-1")

        assert _statuses(report)[SettlementStep.SESSIONS] == StepStatus.FAILED
        f.db.rollback.assert_awaited()
        # sessions step not recorded, so a re-run retries it
        recorded = [c.args[2] for c in f.repo.mark_step_done.call_args_list]
        assert SettlementStep.SESSIONS not in recorded
