"""Pydantic schemas for pm_session API.

Amounts come in as decimal ETH and go out as both wei (int) and a decimal
ETH display string.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.pm_common.wei import MAX_ETH, eth_to_wei, wei_to_display
from src.pm_session.domain.models import BetPlacement, Session, SessionBet, SessionClose

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OpenSessionRequest(BaseModel):
    user_address: str = Field(..., min_length=1, max_length=42)
    deposit_amount: Decimal = Field(
        ..., gt=0, le=MAX_ETH, decimal_places=18, description="On-chain deposit in ETH"
    )

    @property
    def deposit_wei(self) -> int:
        return eth_to_wei(self.deposit_amount)


class PlaceBetRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    market_id: str = Field(..., min_length=1, max_length=64)
    user_address: str = Field(..., min_length=1, max_length=42)
    side: bool = Field(..., description="true = YES, false = NO")
    amount: Decimal = Field(
        ..., gt=0, le=MAX_ETH, decimal_places=18, description="Stake in ETH"
    )

    @property
    def amount_wei(self) -> int:
        return eth_to_wei(self.amount)


class CloseSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)


class FinalizeSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    tx_hash: str = Field(..., min_length=1, max_length=66)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    id: str
    user_address: str
    status: str
    balance_wei: int
    balance: str
    initial_deposit_wei: int
    initial_deposit: str
    total_bet_amount_wei: int
    total_won_wei: int
    total_lost_wei: int
    relay_session_id: str | None
    opened_at: str
    closed_at: str | None
    settlement_tx_hash: str | None

    @classmethod
    def from_domain(cls, s: Session) -> "SessionResponse":
        return cls(
            id=s.id,
            user_address=s.user_address,
            status=s.status,
            balance_wei=s.current_balance,
            balance=wei_to_display(s.current_balance),
            initial_deposit_wei=s.initial_deposit,
            initial_deposit=wei_to_display(s.initial_deposit),
            total_bet_amount_wei=s.total_bet_amount,
            total_won_wei=s.total_won,
            total_lost_wei=s.total_lost,
            relay_session_id=s.relay_session_id,
            opened_at=s.opened_at.isoformat(),
            closed_at=s.closed_at.isoformat() if s.closed_at else None,
            settlement_tx_hash=s.settlement_tx_hash,
        )


class PlaceBetResponse(BaseModel):
    bet_id: int
    new_balance_wei: int
    new_balance: str

    @classmethod
    def from_domain(cls, p: BetPlacement) -> "PlaceBetResponse":
        return cls(
            bet_id=p.bet_id,
            new_balance_wei=p.new_balance,
            new_balance=wei_to_display(p.new_balance),
        )


class CloseSessionResponse(BaseModel):
    session_id: str
    final_balance_wei: int
    final_balance: str

    @classmethod
    def from_domain(cls, c: SessionClose) -> "CloseSessionResponse":
        return cls(
            session_id=c.session_id,
            final_balance_wei=c.final_balance,
            final_balance=wei_to_display(c.final_balance),
        )


class FinalizeSessionResponse(BaseModel):
    success: bool
    session_id: str
    settlement_tx_hash: str | None


class SessionBetItem(BaseModel):
    id: int
    market_id: str
    side: bool
    amount_wei: int
    amount: str
    settled: bool
    won: bool | None
    pnl_wei: int | None
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, b: SessionBet) -> "SessionBetItem":
        return cls(
            id=b.id,
            market_id=b.market_id,
            side=b.side,
            amount_wei=b.amount,
            amount=wei_to_display(b.amount),
            settled=b.settled,
            won=b.won,
            pnl_wei=b.pnl,
            created_at=b.created_at.isoformat() if b.created_at else "",
        )


class SessionBetsResponse(BaseModel):
    session_id: str
    items: list[SessionBetItem]
