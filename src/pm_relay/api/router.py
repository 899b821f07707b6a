"""Relay passthrough: forward a bet event to the notification relay."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from src.pm_common.response import ApiResponse, success_response
from src.pm_common.wei import MAX_ETH, eth_to_wei
from src.pm_gateway.dependencies import get_relay
from src.pm_relay.client import NotificationRelayProtocol
from src.pm_relay.messages import BetEvent
from src.pm_session.application.service import normalize_address, validate_market_id

router = APIRouter(prefix="/relay", tags=["relay"])


class RelayBetRequest(BaseModel):
    market_id: str = Field(..., min_length=1, max_length=64)
    side: bool
    amount: Decimal = Field(..., gt=0, le=MAX_ETH, decimal_places=18)
    user_address: str = Field(..., min_length=1, max_length=42)


@router.post("")
async def relay_bet(
    body: RelayBetRequest,
    relay: Annotated[NotificationRelayProtocol, Depends(get_relay)],
    request: Request,
) -> ApiResponse:
    """Best effort: the event is queued, never awaited."""
    relay.publish(
        BetEvent(
            market_id=validate_market_id(body.market_id),
            side=body.side,
            amount_wei=eth_to_wei(body.amount),
            user_address=normalize_address(body.user_address),
        )
    )
    return success_response({"relayed": True}, request)
