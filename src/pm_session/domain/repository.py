"""Repository Protocol: the ledger store contract.

Only atomic, session-scoped operations are exposed; there is no
read-then-write API for balances. Unit tests inject a mock that conforms
to this Protocol. Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_session.domain.models import Session, SessionBet


class SessionRepositoryProtocol(Protocol):
    async def get_session(self, db: AsyncSession, session_id: str) -> Session | None: ...

    async def get_active_session(
        self, db: AsyncSession, user_address: str
    ) -> Session | None: ...

    async def create_session(
        self,
        db: AsyncSession,
        session_id: str,
        user_address: str,
        deposit: int,
        relay_session_id: str | None,
        now: datetime,
    ) -> Session: ...

    async def debit_and_insert_bet(
        self,
        db: AsyncSession,
        session_id: str,
        market_id: str,
        user_address: str,
        side: bool,
        amount: int,
        now: datetime,
    ) -> tuple[Session, SessionBet]: ...

    async def mark_closing(
        self, db: AsyncSession, session_id: str, now: datetime
    ) -> Session: ...

    async def mark_closed(
        self, db: AsyncSession, session_id: str, tx_hash: str, now: datetime
    ) -> Session: ...

    async def list_session_bets(
        self, db: AsyncSession, session_id: str
    ) -> list[SessionBet]: ...

    async def list_unsettled_bets_for_market(
        self, db: AsyncSession, market_id: str
    ) -> list[SessionBet]: ...

    async def settle_bet_and_credit(
        self,
        db: AsyncSession,
        bet_id: int,
        won: bool,
        pnl: int,
        payout: int,
        now: datetime,
    ) -> SessionBet | None: ...
