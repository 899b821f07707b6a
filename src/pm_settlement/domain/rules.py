"""Win/loss rule shared by the session sweep and the leaderboard.

Fixed-stake, even-money model: the stake was already deducted at placement,
so a winner gets stake + equal payout back (2x amount) and a loser gets 0.
"""

from dataclasses import dataclass

PAYOUT_MULTIPLE = 2


@dataclass(frozen=True)
class BetOutcome:
    won: bool
    pnl: int      # wei, +amount / -amount
    payout: int   # wei credited back to the session


def bet_outcome(side: bool, amount: int, resolved_yes: bool) -> BetOutcome:
    won = side == resolved_yes
    if won:
        return BetOutcome(won=True, pnl=amount, payout=amount * PAYOUT_MULTIPLE)
    return BetOutcome(won=False, pnl=-amount, payout=0)
