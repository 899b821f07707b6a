"""Tests for the even-money win/loss rule."""

from src.pm_settlement.domain.rules import PAYOUT_MULTIPLE, bet_outcome


class TestBetOutcome:
    def test_yes_bet_on_yes_market_wins(self) -> None:
        out = bet_outcome(side=True, amount=1000, resolved_yes=True)
        assert out.won is True
        assert out.pnl == 1000
        assert out.payout == 1000 * PAYOUT_MULTIPLE

    def test_no_bet_on_no_market_wins(self) -> None:
        out = bet_outcome(side=False, amount=500, resolved_yes=False)
        assert out.won is True
        assert out.payout == 1000

    def test_losing_bet_pays_nothing(self) -> None:
        out = bet_outcome(side=False, amount=1000, resolved_yes=True)
        assert out.won is False
        assert out.pnl == -1000
        assert out.payout == 0

    def test_payout_minus_stake_equals_pnl_for_winner(self) -> None:
        out = bet_outcome(side=True, amount=42, resolved_yes=True)
        assert out.payout - 42 == out.pnl
