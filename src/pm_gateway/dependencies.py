"""FastAPI dependencies resolving services from the app's ServiceContainer.

Usage in any router:
    from src.pm_gateway.dependencies import get_db_session, get_session_manager

    @router.post("/bet")
    async def bet(db: AsyncSession = Depends(get_db_session),
                  manager: SessionManager = Depends(get_session_manager)):
        ...
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.container import ServiceContainer
from src.pm_oracle.client import MarketOracleProtocol
from src.pm_relay.client import NotificationRelayProtocol
from src.pm_session.application.service import SessionManager
from src.pm_settlement.application.leaderboard import LeaderboardService
from src.pm_settlement.application.service import SettlementTrigger


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container  # type: ignore[no-any-return]


async def get_db_session(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[AsyncSession, None]:
    """Yields an AsyncSession, auto-closes after request."""
    async with container.session_factory() as session:
        yield session


def get_session_manager(
    container: ServiceContainer = Depends(get_container),
) -> SessionManager:
    return container.session_manager


def get_settlement_trigger(
    container: ServiceContainer = Depends(get_container),
) -> SettlementTrigger:
    return container.settlement_trigger


def get_leaderboard(
    container: ServiceContainer = Depends(get_container),
) -> LeaderboardService:
    return container.leaderboard


def get_oracle(container: ServiceContainer = Depends(get_container)) -> MarketOracleProtocol:
    return container.oracle


def get_relay(container: ServiceContainer = Depends(get_container)) -> NotificationRelayProtocol:
    return container.relay
