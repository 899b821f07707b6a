"""Domain models for pm_session: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.pm_common.enums import SessionStatus


@dataclass
class Session:
    id: str
    user_address: str
    initial_deposit: int     # wei, trusted from the caller
    current_balance: int     # wei, authoritative off-chain balance
    total_bet_amount: int    # wei
    total_won: int           # wei
    total_lost: int          # wei
    status: str              # SessionStatus value
    version: int
    opened_at: datetime
    relay_session_id: str | None = None
    closed_at: datetime | None = None
    settlement_tx_hash: str | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.OPEN, SessionStatus.CLOSING)


@dataclass
class SessionBet:
    id: int                  # BIGSERIAL
    session_id: str
    market_id: str
    user_address: str
    side: bool               # True = YES
    amount: int              # wei, deducted at placement
    settled: bool = False
    won: bool | None = None
    pnl: int | None = None   # wei, +amount / -amount once settled
    leaderboard_credited: bool = False
    created_at: datetime | None = None
    settled_at: datetime | None = None


@dataclass
class BetPlacement:
    bet_id: int
    new_balance: int  # wei


@dataclass
class SessionClose:
    session_id: str
    final_balance: int  # wei, snapshot taken atomically with open -> closing
