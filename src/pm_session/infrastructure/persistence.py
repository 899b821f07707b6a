"""SessionRepository: concrete implementation of SessionRepositoryProtocol.

All balance-mutating operations use a single conditional UPDATE ... RETURNING.
The row lock taken by the UPDATE serializes concurrent mutations of one
session; a result of 0 rows means a precondition was violated, and only
then is the session re-read to report which one.

Transaction ownership: The CALLER (SessionManager) is responsible for
committing or rolling back via `unit_of_work(db)`.
"""

from datetime import datetime
from typing import Any, NoReturn

from sqlalchemy import DateTime, TextClause, bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.datetime_utils import as_utc
from src.pm_common.enums import SessionStatus
from src.pm_common.errors import (
    InsufficientBalanceError,
    InternalError,
    InvalidArgumentError,
    SessionAlreadyFinalizedError,
    SessionNotClosingError,
    SessionNotFoundError,
    SessionNotOpenError,
)
from src.pm_common.wei import MAX_WEI
from src.pm_session.domain.models import Session, SessionBet

_TS = DateTime(timezone=True)


def _sql(statement: str, *timestamp_params: str) -> TextClause:
    """text() with typed timestamp binds so every driver gets a proper value."""
    clause = text(statement)
    if timestamp_params:
        clause = clause.bindparams(*(bindparam(p, type_=_TS) for p in timestamp_params))
    return clause


_SESSION_COLUMNS = """
    id, user_address, relay_session_id, initial_deposit, current_balance,
    total_bet_amount, total_won, total_lost, status, version,
    opened_at, closed_at, settlement_tx_hash, updated_at
"""

BET_COLUMNS = """
    id, session_id, market_id, user_address, side, amount,
    settled, won, pnl, leaderboard_credited, created_at, settled_at
"""

# ---------------------------------------------------------------------------
# SQL: sessions
# ---------------------------------------------------------------------------

_GET_SESSION_SQL = _sql(f"""
    SELECT {_SESSION_COLUMNS}
    FROM sessions
    WHERE id = :session_id
""")

_GET_ACTIVE_SESSION_SQL = _sql(f"""
    SELECT {_SESSION_COLUMNS}
    FROM sessions
    WHERE user_address = :user_address
      AND status IN ('open', 'closing')
    ORDER BY opened_at DESC
    LIMIT 1
""")

_INSERT_SESSION_SQL = _sql(f"""
    INSERT INTO sessions
        (id, user_address, relay_session_id, initial_deposit, current_balance,
         total_bet_amount, total_won, total_lost, status, version,
         opened_at, closed_at, settlement_tx_hash, updated_at)
    VALUES
        (:session_id, :user_address, :relay_session_id, :deposit, :deposit,
         0, 0, 0, 'open', 0,
         :now, NULL, NULL, :now)
    RETURNING {_SESSION_COLUMNS}
""", "now")

# Worst case every unsettled stake pays out 2x; that balance must stay within
# max_wei. Unsettled stake = total_bet_amount - total_won - total_lost.
_DEBIT_SQL = _sql(f"""
    UPDATE sessions
    SET current_balance  = current_balance  - :amount,
        total_bet_amount = total_bet_amount + :stake,
        version = version + 1,
        updated_at = :now
    WHERE id = :session_id
      AND status = 'open'
      AND user_address = :user_address
      AND current_balance >= :amount
      AND 2 * (total_bet_amount - total_won - total_lost)
          <= :max_wei - current_balance - :amount
    RETURNING {_SESSION_COLUMNS}
""", "now")

_MARK_CLOSING_SQL = _sql(f"""
    UPDATE sessions
    SET status = 'closing',
        version = version + 1,
        updated_at = :now
    WHERE id = :session_id AND status = 'open'
    RETURNING {_SESSION_COLUMNS}
""", "now")

_MARK_CLOSED_SQL = _sql(f"""
    UPDATE sessions
    SET status = 'closed',
        closed_at = :now,
        settlement_tx_hash = :tx_hash,
        version = version + 1,
        updated_at = :now
    WHERE id = :session_id AND status = 'closing'
    RETURNING {_SESSION_COLUMNS}
""", "now")

_CREDIT_SESSION_SQL = _sql("""
    UPDATE sessions
    SET current_balance = current_balance + :payout,
        total_won  = total_won  + :won_amount,
        total_lost = total_lost + :lost_amount,
        version = version + 1,
        updated_at = :now
    WHERE id = :session_id
    RETURNING id
""", "now")

# ---------------------------------------------------------------------------
# SQL: session_bets
# ---------------------------------------------------------------------------

_INSERT_BET_SQL = _sql(f"""
    INSERT INTO session_bets
        (session_id, market_id, user_address, side, amount,
         settled, won, pnl, leaderboard_credited, created_at, settled_at)
    VALUES
        (:session_id, :market_id, :user_address, :side, :amount,
         FALSE, NULL, NULL, FALSE, :now, NULL)
    RETURNING {BET_COLUMNS}
""", "now")

_LIST_SESSION_BETS_SQL = _sql(f"""
    SELECT {BET_COLUMNS}
    FROM session_bets
    WHERE session_id = :session_id
    ORDER BY created_at DESC, id DESC
""")

_LIST_UNSETTLED_FOR_MARKET_SQL = _sql(f"""
    SELECT {BET_COLUMNS}
    FROM session_bets
    WHERE market_id = :market_id AND settled = FALSE
    ORDER BY id
""")

_SETTLE_BET_SQL = _sql(f"""
    UPDATE session_bets
    SET settled = TRUE,
        won = :won,
        pnl = :pnl,
        settled_at = :now
    WHERE id = :bet_id AND settled = FALSE
    RETURNING {BET_COLUMNS}
""", "now")


def _row_to_session(row: Any) -> Session:
    return Session(
        id=str(row.id),
        user_address=row.user_address,
        relay_session_id=row.relay_session_id,
        initial_deposit=int(row.initial_deposit),
        current_balance=int(row.current_balance),
        total_bet_amount=int(row.total_bet_amount),
        total_won=int(row.total_won),
        total_lost=int(row.total_lost),
        status=row.status,
        version=int(row.version),
        opened_at=as_utc(row.opened_at),  # type: ignore[arg-type]
        closed_at=as_utc(row.closed_at),
        settlement_tx_hash=row.settlement_tx_hash,
        updated_at=as_utc(row.updated_at),
    )


def row_to_bet(row: Any) -> SessionBet:
    return SessionBet(
        id=int(row.id),
        session_id=str(row.session_id),
        market_id=row.market_id,
        user_address=row.user_address,
        side=bool(row.side),
        amount=int(row.amount),
        settled=bool(row.settled),
        won=None if row.won is None else bool(row.won),
        pnl=None if row.pnl is None else int(row.pnl),
        leaderboard_credited=bool(row.leaderboard_credited),
        created_at=as_utc(row.created_at),
        settled_at=as_utc(row.settled_at),
    )


class SessionRepository:
    """Concrete repository: all mutations atomic at the SQL level."""

    async def get_session(self, db: AsyncSession, session_id: str) -> Session | None:
        result = await db.execute(_GET_SESSION_SQL, {"session_id": session_id})
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def get_active_session(
        self, db: AsyncSession, user_address: str
    ) -> Session | None:
        result = await db.execute(_GET_ACTIVE_SESSION_SQL, {"user_address": user_address})
        row = result.fetchone()
        return _row_to_session(row) if row else None

    async def create_session(
        self,
        db: AsyncSession,
        session_id: str,
        user_address: str,
        deposit: int,
        relay_session_id: str | None,
        now: datetime,
    ) -> Session:
        # IntegrityError from uq_sessions_active_user propagates to the caller
        result = await db.execute(
            _INSERT_SESSION_SQL,
            {
                "session_id": session_id,
                "user_address": user_address,
                "relay_session_id": relay_session_id,
                "deposit": deposit,
                "now": now,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Session insert returned no rows: this should never happen")
        return _row_to_session(row)

    async def debit_and_insert_bet(
        self,
        db: AsyncSession,
        session_id: str,
        market_id: str,
        user_address: str,
        side: bool,
        amount: int,
        now: datetime,
    ) -> tuple[Session, SessionBet]:
        result = await db.execute(
            _DEBIT_SQL,
            {
                "session_id": session_id,
                "user_address": user_address,
                "amount": amount,
                "stake": amount,
                "max_wei": MAX_WEI,
                "now": now,
            },
        )
        row = result.fetchone()
        if row is None:
            await self._raise_debit_rejection(db, session_id, user_address, amount)
        session = _row_to_session(row)
        bet_result = await db.execute(
            _INSERT_BET_SQL,
            {
                "session_id": session_id,
                "market_id": market_id,
                "user_address": user_address,
                "side": side,
                "amount": amount,
                "now": now,
            },
        )
        bet_row = bet_result.fetchone()
        if bet_row is None:
            raise InternalError("Bet insert returned no rows: this should never happen")
        return session, row_to_bet(bet_row)

    async def _raise_debit_rejection(
        self, db: AsyncSession, session_id: str, user_address: str, amount: int
    ) -> NoReturn:
        session = await self.get_session(db, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status != SessionStatus.OPEN:
            raise SessionNotOpenError(session_id, session.status)
        if session.user_address != user_address:
            raise InvalidArgumentError(f"session {session_id} does not belong to {user_address}")
        if session.current_balance < amount:
            raise InsufficientBalanceError(amount, session.current_balance)
        raise InvalidArgumentError(
            f"stake of {amount} wei could raise session {session_id} above {MAX_WEI} wei"
        )

    async def mark_closing(
        self, db: AsyncSession, session_id: str, now: datetime
    ) -> Session:
        result = await db.execute(_MARK_CLOSING_SQL, {"session_id": session_id, "now": now})
        row = result.fetchone()
        if row is None:
            session = await self.get_session(db, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            raise SessionNotOpenError(session_id, session.status)
        return _row_to_session(row)

    async def mark_closed(
        self, db: AsyncSession, session_id: str, tx_hash: str, now: datetime
    ) -> Session:
        result = await db.execute(
            _MARK_CLOSED_SQL,
            {"session_id": session_id, "tx_hash": tx_hash, "now": now},
        )
        row = result.fetchone()
        if row is not None:
            return _row_to_session(row)

        session = await self.get_session(db, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.status == SessionStatus.CLOSED:
            if session.settlement_tx_hash == tx_hash:
                return session
            raise SessionAlreadyFinalizedError(session_id, session.settlement_tx_hash)
        raise SessionNotClosingError(session_id, session.status)

    async def list_session_bets(
        self, db: AsyncSession, session_id: str
    ) -> list[SessionBet]:
        result = await db.execute(_LIST_SESSION_BETS_SQL, {"session_id": session_id})
        return [row_to_bet(row) for row in result.fetchall()]

    async def list_unsettled_bets_for_market(
        self, db: AsyncSession, market_id: str
    ) -> list[SessionBet]:
        result = await db.execute(_LIST_UNSETTLED_FOR_MARKET_SQL, {"market_id": market_id})
        return [row_to_bet(row) for row in result.fetchall()]

    async def settle_bet_and_credit(
        self,
        db: AsyncSession,
        bet_id: int,
        won: bool,
        pnl: int,
        payout: int,
        now: datetime,
    ) -> SessionBet | None:
        """Mark one bet settled and credit its session. None if already settled."""
        result = await db.execute(
            _SETTLE_BET_SQL,
            {"bet_id": bet_id, "won": won, "pnl": pnl, "now": now},
        )
        row = result.fetchone()
        if row is None:
            return None
        bet = row_to_bet(row)
        credit = await db.execute(
            _CREDIT_SESSION_SQL,
            {
                "session_id": bet.session_id,
                "payout": payout,
                "won_amount": bet.amount if won else 0,
                "lost_amount": 0 if won else bet.amount,
                "now": now,
            },
        )
        if credit.fetchone() is None:
            raise InternalError(f"Session {bet.session_id} for bet {bet_id} vanished")
        return bet
