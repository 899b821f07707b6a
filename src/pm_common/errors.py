"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Request
  2xxx: Session
  3xxx: Market / Settlement
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Request ---

class InvalidArgumentError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1001, f"Invalid argument: {detail}", 422)


# --- 2xxx: Session ---

class SessionNotFoundError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(2001, f"Session not found: {session_id}", 404)


class SessionNotOpenError(AppError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(2002, f"Session {session_id} is not open (status={status})", 409)


class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2003,
            f"Insufficient balance: required {required} wei, available {available} wei",
            422,
        )


class SessionNotClosingError(AppError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(
            2004, f"Session {session_id} must be closing to finalize (status={status})", 409
        )


class SessionAlreadyFinalizedError(AppError):
    def __init__(self, session_id: str, tx_hash: str | None) -> None:
        super().__init__(
            2005, f"Session {session_id} already finalized with tx {tx_hash}", 409
        )


# --- 3xxx: Market / Settlement ---

class MarketNotResolvedError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not resolved yet: {market_id}", 409)


class MarketCancelledError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3002, f"Market cancelled: {market_id}", 400)


class SettlementInProgressError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3003, f"Settlement already running for market {market_id}", 409)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PersistenceError(AppError):
    """Store unavailable. Nothing was applied; the caller may retry."""

    def __init__(self, detail: str = "Ledger store unavailable") -> None:
        super().__init__(9003, detail, 503)


class ExternalServiceDegradedError(AppError):
    def __init__(self, service: str, detail: str) -> None:
        self.service = service
        super().__init__(9004, f"{service} unavailable: {detail}", 502)
