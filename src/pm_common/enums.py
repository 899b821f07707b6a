"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class SessionStatus(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ResolutionOutcome(str, Enum):
    YES = "YES"
    NO = "NO"
    CANCEL = "CANCEL"


class SettlementStep(str, Enum):
    CHAIN = "chain"
    LEADERBOARD = "leaderboard"
    SESSIONS = "sessions"


class StepStatus(str, Enum):
    DONE = "done"          # completed in this run
    SKIPPED = "skipped"    # completed by an earlier run
    DISABLED = "disabled"  # collaborator not configured
    FAILED = "failed"
