"""Domain models for pm_settlement: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.pm_common.enums import SettlementStep, StepStatus


@dataclass
class SettlementRecord:
    """Progress of one market's settlement; a set timestamp means the step is done."""

    market_id: str
    resolved_yes: bool
    chain_tx_hash: str | None = None
    chain_settled_at: datetime | None = None
    leaderboard_done_at: datetime | None = None
    sessions_done_at: datetime | None = None
    bets_settled: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LeaderboardEntry:
    address: str
    pnl: int          # wei, signed
    bets: int
    wins: int
    losses: int
    volume: int       # wei

    @property
    def win_rate(self) -> float:
        return self.wins / self.bets * 100 if self.bets else 0.0


@dataclass
class LeaderboardStats:
    users: int
    total_bets: int
    total_volume: int  # wei


@dataclass
class StepResult:
    step: SettlementStep
    status: StepStatus
    detail: str | None = None


@dataclass
class SettlementReport:
    market_id: str
    outcome: str
    chain_tx_hash: str | None
    bets_settled: int                 # by this run
    leaderboard_credited: int         # by this run
    steps: list[StepResult] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return all(
            s.status in (StepStatus.DONE, StepStatus.SKIPPED, StepStatus.DISABLED)
            for s in self.steps
        )
