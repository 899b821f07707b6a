"""SessionManager: owner of the session state machine.

    open ──close──> closing ──finalize──> closed

Every balance-affecting step is one repository call inside
`unit_of_work(db)`, so it either lands completely or not at all. Relay
calls happen outside those transactions and can never fail an operation.
"""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from src.pm_common.database import safe_rollback, unit_of_work
from src.pm_common.datetime_utils import utc_now
from src.pm_common.errors import (
    ExternalServiceDegradedError,
    InternalError,
    InvalidArgumentError,
    SessionNotFoundError,
)
from src.pm_common.wei import MAX_WEI
from src.pm_relay.client import NotificationRelayProtocol
from src.pm_relay.messages import BetEvent
from src.pm_session.domain.models import BetPlacement, Session, SessionBet, SessionClose
from src.pm_session.domain.repository import SessionRepositoryProtocol
from src.pm_session.infrastructure.persistence import SessionRepository
from src.pm_settlement.domain.rules import bet_outcome

logger = logging.getLogger("pm.session")

MAX_MARKET_ID_LENGTH = 64


def normalize_address(user_address: str) -> str:
    """Checksum-format an EVM address; anything else is an InvalidArgument."""
    candidate = (user_address or "").strip()
    if not Web3.is_address(candidate):
        raise InvalidArgumentError(f"not a valid address: {user_address!r}")
    return Web3.to_checksum_address(candidate)


def _require_amount(name: str, amount: int) -> None:
    if amount <= 0:
        raise InvalidArgumentError(f"{name} must be positive, got {amount}")
    if amount > MAX_WEI:
        raise InvalidArgumentError(f"{name} exceeds the maximum of {MAX_WEI} wei, got {amount}")


def validate_market_id(market_id: str) -> str:
    market_id = (market_id or "").strip()
    if not market_id or len(market_id) > MAX_MARKET_ID_LENGTH:
        raise InvalidArgumentError("market_id must be 1-64 characters")
    return market_id


class SessionManager:
    def __init__(
        self,
        relay: NotificationRelayProtocol,
        repo: SessionRepositoryProtocol | None = None,
    ) -> None:
        self._relay = relay
        self._repo: SessionRepositoryProtocol = repo or SessionRepository()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_session(self, db: AsyncSession, session_id: str) -> Session:
        session = await self._repo.get_session(db, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def get_active_session(self, db: AsyncSession, user_address: str) -> Session | None:
        return await self._repo.get_active_session(db, normalize_address(user_address))

    async def list_session_bets(self, db: AsyncSession, session_id: str) -> list[SessionBet]:
        await self.get_session(db, session_id)
        return await self._repo.list_session_bets(db, session_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open_session(
        self, db: AsyncSession, user_address: str, deposit_wei: int
    ) -> Session:
        """Open an off-chain balance backed by a caller-asserted deposit.

        Idempotent per user: an existing open/closing session is returned
        unchanged. The deposit amount is trusted, not verified on-chain.
        """
        address = normalize_address(user_address)
        _require_amount("deposit", deposit_wei)

        existing = await self._repo.get_active_session(db, address)
        if existing is not None:
            logger.info("User %s already has active session %s", address, existing.id)
            return existing
        # End the read transaction; the relay call below may take seconds
        await safe_rollback(db)

        relay_session_id: str | None = None
        try:
            relay_session_id = await self._relay.open_session(address, deposit_wei)
        except ExternalServiceDegradedError as exc:
            logger.warning("Relay session open failed, continuing locally: %s", exc.message)

        try:
            async with unit_of_work(db):
                session = await self._repo.create_session(
                    db, str(uuid.uuid4()), address, deposit_wei, relay_session_id, utc_now()
                )
        except IntegrityError:
            # Lost the race against a concurrent open for the same user
            winner = await self._repo.get_active_session(db, address)
            if winner is None:
                raise InternalError(f"Active session for {address} conflicted but not found")
            return winner

        logger.info("Session opened for %s: %s (deposit=%d wei)", address, session.id, deposit_wei)
        return session

    async def place_bet(
        self,
        db: AsyncSession,
        session_id: str,
        market_id: str,
        user_address: str,
        side: bool,
        amount_wei: int,
    ) -> BetPlacement:
        address = normalize_address(user_address)
        market_id = validate_market_id(market_id)
        _require_amount("amount", amount_wei)

        async with unit_of_work(db):
            session, bet = await self._repo.debit_and_insert_bet(
                db, session_id, market_id, address, side, amount_wei, utc_now()
            )

        self._relay.publish(
            BetEvent(market_id=market_id, side=side, amount_wei=amount_wei, user_address=address)
        )
        logger.info(
            "Bet %d placed in session %s: %d wei on %s (market %s)",
            bet.id, session_id, amount_wei, "YES" if side else "NO", market_id,
        )
        return BetPlacement(bet_id=bet.id, new_balance=session.current_balance)

    async def close_session(self, db: AsyncSession, session_id: str) -> SessionClose:
        """Freeze the balance (open -> closing) and report it for withdrawal."""
        async with unit_of_work(db):
            session = await self._repo.mark_closing(db, session_id, utc_now())

        if session.relay_session_id:
            try:
                await self._relay.close_session(session.relay_session_id)
            except ExternalServiceDegradedError as exc:
                logger.warning("Relay session close failed: %s", exc.message)

        logger.info(
            "Session %s marked for closing. Final balance: %d wei",
            session_id, session.current_balance,
        )
        return SessionClose(session_id=session_id, final_balance=session.current_balance)

    async def finalize_session(
        self, db: AsyncSession, session_id: str, settlement_tx_hash: str
    ) -> Session:
        """closing -> closed once the withdrawal tx is known.

        Same hash twice is a no-op; a different hash on a closed session is
        rejected. The hash itself is not checked against the chain.
        """
        tx_hash = (settlement_tx_hash or "").strip()
        if not tx_hash:
            raise InvalidArgumentError("settlement_tx_hash is required")

        async with unit_of_work(db):
            session = await self._repo.mark_closed(db, session_id, tx_hash, utc_now())

        logger.info("Session %s finalized with tx: %s", session_id, tx_hash)
        return session

    # ------------------------------------------------------------------
    # Settlement sweep
    # ------------------------------------------------------------------

    async def settle_bets_for_market(
        self, db: AsyncSession, market_id: str, resolved_yes: bool
    ) -> int:
        """Settle every unsettled bet of a market; returns bets settled by this call.

        One transaction per bet. A bet settled concurrently (or by an earlier
        run) matches nothing and is neither counted nor credited again.
        """
        market_id = validate_market_id(market_id)
        bets = await self._repo.list_unsettled_bets_for_market(db, market_id)

        settled = 0
        for bet in bets:
            outcome = bet_outcome(bet.side, bet.amount, resolved_yes)
            async with unit_of_work(db):
                updated = await self._repo.settle_bet_and_credit(
                    db, bet.id, outcome.won, outcome.pnl, outcome.payout, utc_now()
                )
            if updated is not None:
                settled += 1

        logger.info("Settled %d session bets for market %s", settled, market_id)
        return settled
