"""Unit tests for SessionManager using a mock repository and relay."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError
from web3 import Web3

from src.pm_common.errors import (
    ExternalServiceDegradedError,
    InsufficientBalanceError,
    InternalError,
    InvalidArgumentError,
    SessionNotFoundError,
)
from src.pm_common.wei import MAX_WEI, eth_to_wei
from src.pm_relay.messages import BetEvent
from src.pm_session.application.service import SessionManager, normalize_address
from src.pm_session.domain.models import Session, SessionBet

USER = Web3.to_checksum_address("0x" + "ab" * 20)
DEPOSIT = 10_000_000_000_000_000  # 0.01 ETH


def _make_session(
    balance: int = DEPOSIT,
    status: str = "open",
    relay_session_id: str | None = None,
) -> Session:
    return Session(
        id="s-1",
        user_address=USER,
        initial_deposit=DEPOSIT,
        current_balance=balance,
        total_bet_amount=DEPOSIT - balance,
        total_won=0,
        total_lost=0,
        status=status,
        version=0,
        opened_at=datetime.now(UTC),
        relay_session_id=relay_session_id,
    )


def _make_bet(bet_id: int = 1, side: bool = True, amount: int = 1000) -> SessionBet:
    return SessionBet(
        id=bet_id,
        session_id="s-1",
        market_id="mkt-1",
        user_address=USER,
        side=side,
        amount=amount,
    )


def _make_relay() -> MagicMock:
    relay = MagicMock()
    relay.open_session = AsyncMock(return_value="relay-1")
    relay.close_session = AsyncMock()
    return relay


class TestNormalizeAddress:
    def test_lowercase_is_checksummed(self) -> None:
        assert normalize_address("0x" + "ab" * 20) == USER

    def test_whitespace_stripped(self) -> None:
        assert normalize_address(f"  {USER} ") == USER

    @pytest.mark.parametrize("bad", ["", "0x123", "not-an-address", "0x" + "zz" * 20])
    def test_invalid_rejected(self, bad: str) -> None:
        with pytest.raises(InvalidArgumentError):
            normalize_address(bad)


class TestOpenSession:
    async def test_returns_existing_active_session(self) -> None:
        repo = AsyncMock()
        repo.get_active_session.return_value = _make_session()
        relay = _make_relay()
        manager = SessionManager(relay, repo=repo)

        session = await manager.open_session(AsyncMock(), USER, DEPOSIT)

        assert session.id == "s-1"
        repo.create_session.assert_not_called()
        relay.open_session.assert_not_called()

    async def test_creates_session_with_relay_reference(self) -> None:
        repo = AsyncMock()
        repo.get_active_session.return_value = None
        repo.create_session.return_value = _make_session(relay_session_id="relay-1")
        db = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)

        session = await manager.open_session(db, "0x" + "ab" * 20, DEPOSIT)

        assert session.relay_session_id == "relay-1"
        args = repo.create_session.call_args.args
        assert args[2] == USER
        assert args[3] == DEPOSIT
        assert args[4] == "relay-1"
        db.commit.assert_awaited_once()

    async def test_relay_failure_does_not_block_open(self) -> None:
        repo = AsyncMock()
        repo.get_active_session.return_value = None
        repo.create_session.return_value = _make_session()
        relay = _make_relay()
        relay.open_session.side_effect = ExternalServiceDegradedError("relay", "not connected")
        manager = SessionManager(relay, repo=repo)

        await manager.open_session(AsyncMock(), USER, DEPOSIT)

        assert repo.create_session.call_args.args[4] is None

    async def test_lost_race_returns_winner(self) -> None:
        winner = _make_session()
        repo = AsyncMock()
        repo.get_active_session.side_effect = [None, winner]
        repo.create_session.side_effect = IntegrityError("INSERT", {}, Exception("dup"))
        db = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)

        session = await manager.open_session(db, USER, DEPOSIT)

        assert session is winner
        db.rollback.assert_awaited()

    async def test_conflict_without_winner_is_internal_error(self) -> None:
        repo = AsyncMock()
        repo.get_active_session.return_value = None
        repo.create_session.side_effect = IntegrityError("INSERT", {}, Exception("dup"))
        manager = SessionManager(_make_relay(), repo=repo)

        with pytest.raises(InternalError):
            await manager.open_session(AsyncMock(), USER, DEPOSIT)

    @pytest.mark.parametrize("deposit", [0, -1])
    async def test_non_positive_deposit_rejected(self, deposit: int) -> None:
        repo = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(InvalidArgumentError):
            await manager.open_session(AsyncMock(), USER, deposit)
        repo.get_active_session.assert_not_called()

    @pytest.mark.parametrize("deposit", [MAX_WEI + 1, eth_to_wei("10")])
    async def test_deposit_above_ceiling_rejected(self, deposit: int) -> None:
        repo = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(InvalidArgumentError):
            await manager.open_session(AsyncMock(), USER, deposit)
        repo.create_session.assert_not_called()

    async def test_read_transaction_ended_before_relay_call(self) -> None:
        repo = AsyncMock()
        repo.get_active_session.return_value = None
        repo.create_session.return_value = _make_session()
        db = AsyncMock()
        relay = _make_relay()

        async def open_relay_session(*_args: object) -> str:
            db.rollback.assert_awaited_once()
            return "relay-1"

        relay.open_session.side_effect = open_relay_session
        manager = SessionManager(relay, repo=repo)

        await manager.open_session(db, USER, DEPOSIT)

        relay.open_session.assert_awaited_once()
        db.commit.assert_awaited_once()

class TestPlaceBet:
    async def test_debits_and_publishes(self) -> None:
        repo = AsyncMock()
        repo.debit_and_insert_bet.return_value = (
            _make_session(balance=DEPOSIT - 1000),
            _make_bet(7, amount=1000),
        )
        relay = _make_relay()
        manager = SessionManager(relay, repo=repo)

        placement = await manager.place_bet(AsyncMock(), "s-1", "mkt-1", USER, True, 1000)

        assert placement.bet_id == 7
        assert placement.new_balance == DEPOSIT - 1000
        relay.publish.assert_called_once_with(
            BetEvent(market_id="mkt-1", side=True, amount_wei=1000, user_address=USER)
        )

    async def test_rejection_propagates_and_nothing_published(self) -> None:
        repo = AsyncMock()
        repo.debit_and_insert_bet.side_effect = InsufficientBalanceError(2000, 1000)
        relay = _make_relay()
        db = AsyncMock()
        manager = SessionManager(relay, repo=repo)

        with pytest.raises(InsufficientBalanceError):
            await manager.place_bet(db, "s-1", "mkt-1", USER, True, 2000)

        relay.publish.assert_not_called()
        db.rollback.assert_awaited()
        db.commit.assert_not_awaited()

    @pytest.mark.parametrize("market_id", ["", "   ", "m" * 65])
    async def test_bad_market_id(self, market_id: str) -> None:
        manager = SessionManager(_make_relay(), repo=AsyncMock())
        with pytest.raises(InvalidArgumentError):
            await manager.place_bet(AsyncMock(), "s-1", market_id, USER, True, 1000)

    async def test_zero_amount(self) -> None:
        manager = SessionManager(_make_relay(), repo=AsyncMock())
        with pytest.raises(InvalidArgumentError):
            await manager.place_bet(AsyncMock(), "s-1", "mkt-1", USER, True, 0)

    async def test_amount_above_ceiling(self) -> None:
        repo = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(InvalidArgumentError):
            await manager.place_bet(AsyncMock(), "s-1", "mkt-1", USER, True, MAX_WEI + 1)
        repo.debit_and_insert_bet.assert_not_called()


class TestCloseSession:
    async def test_returns_frozen_balance_and_closes_relay(self) -> None:
        repo = AsyncMock()
        repo.mark_closing.return_value = _make_session(
            balance=7000, status="closing", relay_session_id="relay-1"
        )
        relay = _make_relay()
        manager = SessionManager(relay, repo=repo)

        result = await manager.close_session(AsyncMock(), "s-1")

        assert result.session_id == "s-1"
        assert result.final_balance == 7000
        relay.close_session.assert_awaited_once_with("relay-1")

    async def test_no_relay_reference_skips_relay(self) -> None:
        repo = AsyncMock()
        repo.mark_closing.return_value = _make_session(status="closing")
        relay = _make_relay()
        manager = SessionManager(relay, repo=repo)

        await manager.close_session(AsyncMock(), "s-1")

        relay.close_session.assert_not_called()

    async def test_relay_close_failure_is_swallowed(self) -> None:
        repo = AsyncMock()
        repo.mark_closing.return_value = _make_session(status="closing", relay_session_id="r")
        relay = _make_relay()
        relay.close_session.side_effect = ExternalServiceDegradedError("relay", "timeout")
        manager = SessionManager(relay, repo=repo)

        result = await manager.close_session(AsyncMock(), "s-1")

        assert result.final_balance == DEPOSIT


class TestFinalizeSession:
    async def test_empty_hash_rejected(self) -> None:
        repo = AsyncMock()
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(InvalidArgumentError):
            await manager.finalize_session(AsyncMock(), "s-1", "  ")
        repo.mark_closed.assert_not_called()

    async def test_passes_trimmed_hash(self) -> None:
        repo = AsyncMock()
        repo.mark_closed.return_value = _make_session(status="closed")
        manager = SessionManager(_make_relay(), repo=repo)

        await manager.finalize_session(AsyncMock(), "s-1", " 0xabc ")

        assert repo.mark_closed.call_args.args[2] == "0xabc"


class TestQueries:
    async def test_get_session_not_found(self) -> None:
        repo = AsyncMock()
        repo.get_session.return_value = None
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(SessionNotFoundError):
            await manager.get_session(AsyncMock(), "missing")

    async def test_list_bets_requires_session(self) -> None:
        repo = AsyncMock()
        repo.get_session.return_value = None
        manager = SessionManager(_make_relay(), repo=repo)
        with pytest.raises(SessionNotFoundError):
            await manager.list_session_bets(AsyncMock(), "missing")
        repo.list_session_bets.assert_not_called()


class TestSettleBetsForMarket:
    async def test_counts_only_bets_updated_now(self) -> None:
        repo = AsyncMock()
        repo.list_unsettled_bets_for_market.return_value = [
            _make_bet(1, side=True, amount=1000),
            _make_bet(2, side=False, amount=500),
        ]
        # bet 2 was settled by a concurrent sweep in between
        repo.settle_bet_and_credit.side_effect = [_make_bet(1), None]
        manager = SessionManager(_make_relay(), repo=repo)

        settled = await manager.settle_bets_for_market(AsyncMock(), "mkt-1", True)

        assert settled == 1
        first = repo.settle_bet_and_credit.call_args_list[0].args
        assert first[1:5] == (1, True, 1000, 2000)
        second = repo.settle_bet_and_credit.call_args_list[1].args
        assert second[1:5] == (2, False, -500, 0)

    async def test_nothing_to_settle(self) -> None:
        repo = AsyncMock()
        repo.list_unsettled_bets_for_market.return_value = []
        manager = SessionManager(_make_relay(), repo=repo)
        assert await manager.settle_bets_for_market(AsyncMock(), "mkt-1", False) == 0
