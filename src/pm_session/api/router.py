"""pm_session REST API: session lifecycle and off-chain bets."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.dependencies import get_db_session, get_session_manager
from src.pm_session.application.schemas import (
    CloseSessionRequest,
    CloseSessionResponse,
    FinalizeSessionRequest,
    FinalizeSessionResponse,
    OpenSessionRequest,
    PlaceBetRequest,
    PlaceBetResponse,
    SessionBetItem,
    SessionBetsResponse,
    SessionResponse,
)
from src.pm_session.application.service import SessionManager

router = APIRouter(prefix="/session", tags=["session"])

Db = Annotated[AsyncSession, Depends(get_db_session)]
Manager = Annotated[SessionManager, Depends(get_session_manager)]


@router.post("/open")
async def open_session(
    body: OpenSessionRequest, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    session = await manager.open_session(db, body.user_address, body.deposit_wei)
    return success_response(SessionResponse.from_domain(session).model_dump(), request)


@router.get("/active")
async def get_active_session(
    db: Db,
    manager: Manager,
    request: Request,
    user_address: str = Query(..., min_length=1, max_length=42),
) -> ApiResponse:
    session = await manager.get_active_session(db, user_address)
    data = SessionResponse.from_domain(session).model_dump() if session else None
    return success_response(data, request)


@router.post("/bet")
async def place_bet(
    body: PlaceBetRequest, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    placement = await manager.place_bet(
        db, body.session_id, body.market_id, body.user_address, body.side, body.amount_wei
    )
    return success_response(PlaceBetResponse.from_domain(placement).model_dump(), request)


@router.post("/close")
async def close_session(
    body: CloseSessionRequest, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    closed = await manager.close_session(db, body.session_id)
    return success_response(CloseSessionResponse.from_domain(closed).model_dump(), request)


@router.post("/finalize")
async def finalize_session(
    body: FinalizeSessionRequest, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    session = await manager.finalize_session(db, body.session_id, body.tx_hash)
    data = FinalizeSessionResponse(
        success=True,
        session_id=session.id,
        settlement_tx_hash=session.settlement_tx_hash,
    )
    return success_response(data.model_dump(), request)


@router.get("/{session_id}")
async def get_session(
    session_id: str, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    session = await manager.get_session(db, session_id)
    return success_response(SessionResponse.from_domain(session).model_dump(), request)


@router.get("/{session_id}/bets")
async def list_session_bets(
    session_id: str, db: Db, manager: Manager, request: Request
) -> ApiResponse:
    bets = await manager.list_session_bets(db, session_id)
    data = SessionBetsResponse(
        session_id=session_id,
        items=[SessionBetItem.from_domain(b) for b in bets],
    )
    return success_response(data.model_dump(), request)
