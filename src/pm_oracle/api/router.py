"""Market listing API: active oracle markets for the betting UI."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from config.settings import settings
from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.dependencies import get_oracle
from src.pm_oracle.client import MarketOracleProtocol

router = APIRouter(prefix="/markets", tags=["markets"])


@router.get("")
async def list_markets(
    oracle: Annotated[MarketOracleProtocol, Depends(get_oracle)],
    request: Request,
) -> ApiResponse:
    markets = await oracle.list_active_markets(settings.ACTIVE_MARKETS_LIMIT)
    data = [
        {
            "id": m.id,
            "question": m.question,
            "probability": m.probability,
            "volume": m.volume,
            "url": m.url,
        }
        for m in markets
    ]
    return success_response(data, request)
