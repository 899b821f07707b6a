"""Pydantic schemas for the settlement and leaderboard API."""

from pydantic import BaseModel

from src.pm_common.wei import wei_to_display
from src.pm_settlement.domain.models import (
    LeaderboardEntry,
    LeaderboardStats,
    SettlementReport,
)


class StepResultItem(BaseModel):
    step: str
    status: str
    detail: str | None


class SettlementResponse(BaseModel):
    market_id: str
    outcome: str
    chain_tx_hash: str | None
    bets_settled: int
    leaderboard_credited: int
    complete: bool
    steps: list[StepResultItem]

    @classmethod
    def from_domain(cls, r: SettlementReport) -> "SettlementResponse":
        return cls(
            market_id=r.market_id,
            outcome=r.outcome,
            chain_tx_hash=r.chain_tx_hash,
            bets_settled=r.bets_settled,
            leaderboard_credited=r.leaderboard_credited,
            complete=r.complete,
            steps=[
                StepResultItem(step=s.step.value, status=s.status.value, detail=s.detail)
                for s in r.steps
            ],
        )


class LeaderboardItem(BaseModel):
    rank: int
    address: str
    pnl_wei: int
    pnl: str
    bets: int
    wins: int
    losses: int
    win_rate: float
    volume_wei: int
    volume: str

    @classmethod
    def from_domain(cls, rank: int, e: LeaderboardEntry) -> "LeaderboardItem":
        return cls(
            rank=rank,
            address=e.address,
            pnl_wei=e.pnl,
            pnl=wei_to_display(e.pnl),
            bets=e.bets,
            wins=e.wins,
            losses=e.losses,
            win_rate=round(e.win_rate, 1),
            volume_wei=e.volume,
            volume=wei_to_display(e.volume),
        )


class LeaderboardStatsItem(BaseModel):
    users: int
    total_bets: int
    total_volume_wei: int
    total_volume: str

    @classmethod
    def from_domain(cls, s: LeaderboardStats) -> "LeaderboardStatsItem":
        return cls(
            users=s.users,
            total_bets=s.total_bets,
            total_volume_wei=s.total_volume,
            total_volume=wei_to_display(s.total_volume),
        )


class LeaderboardResponse(BaseModel):
    items: list[LeaderboardItem]
    stats: LeaderboardStatsItem
