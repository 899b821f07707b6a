"""pm_settlement REST API: settlement trigger and leaderboard."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.dependencies import (
    get_db_session,
    get_leaderboard,
    get_settlement_trigger,
)
from src.pm_settlement.application.leaderboard import DEFAULT_TOP_LIMIT, LeaderboardService
from src.pm_settlement.application.schemas import (
    LeaderboardItem,
    LeaderboardResponse,
    LeaderboardStatsItem,
    SettlementResponse,
)
from src.pm_settlement.application.service import SettlementTrigger

router = APIRouter(tags=["settlement"])

Db = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/settle/{market_id}")
async def settle_market(
    market_id: str,
    db: Db,
    trigger: Annotated[SettlementTrigger, Depends(get_settlement_trigger)],
    request: Request,
) -> ApiResponse:
    report = await trigger.settle(db, market_id)
    return success_response(SettlementResponse.from_domain(report).model_dump(), request)


@router.get("/leaderboard")
async def get_leaderboard_top(
    db: Db,
    leaderboard: Annotated[LeaderboardService, Depends(get_leaderboard)],
    request: Request,
    limit: int = Query(DEFAULT_TOP_LIMIT, ge=1, le=100),
) -> ApiResponse:
    entries = await leaderboard.top(db, limit)
    stats = await leaderboard.stats(db)
    data = LeaderboardResponse(
        items=[LeaderboardItem.from_domain(i + 1, e) for i, e in enumerate(entries)],
        stats=LeaderboardStatsItem.from_domain(stats),
    )
    return success_response(data.model_dump(), request)
