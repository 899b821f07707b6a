"""Service container: every long-lived client in one place.

Built once in the FastAPI lifespan and stored on `app.state.container`.
Routers reach services through `src.pm_gateway.dependencies`; tests build a
container by hand with fakes and assign it to `app.state.container`.
"""

import logging
from dataclasses import dataclass

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config.settings import Settings
from src.pm_chain.client import ChainService
from src.pm_common.database import create_engine, create_session_factory
from src.pm_common.redis_client import close_redis, create_redis
from src.pm_oracle.client import ManifoldOracle
from src.pm_relay.client import RelayClient
from src.pm_session.application.service import SessionManager
from src.pm_settlement.application.leaderboard import LeaderboardService
from src.pm_settlement.application.service import SettlementTrigger

logger = logging.getLogger("pm.container")


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: Redis
    relay: RelayClient
    chain: ChainService
    oracle: ManifoldOracle
    session_manager: SessionManager
    leaderboard: LeaderboardService
    settlement_trigger: SettlementTrigger

    async def close(self) -> None:
        """Release everything in reverse dependency order."""
        await self.relay.stop()
        await self.oracle.close()
        await self.chain.close()
        await close_redis(self.redis)
        await self.engine.dispose()
        logger.info("Service container closed")


async def build_container(settings: Settings) -> ServiceContainer:
    engine = create_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )
    redis = create_redis(settings.REDIS_URL)
    relay = RelayClient(
        settings.RELAY_URL,
        request_timeout=settings.RELAY_REQUEST_TIMEOUT_SECONDS,
        queue_size=settings.RELAY_QUEUE_SIZE,
        reconnect_delay=settings.RELAY_RECONNECT_SECONDS,
    )
    chain = ChainService(
        settings.CHAIN_RPC_URL,
        settings.CUSTODY_ADDRESS,
        settings.ORACLE_PRIVATE_KEY,
        receipt_timeout=settings.CHAIN_RECEIPT_TIMEOUT_SECONDS,
        events_from_block=settings.CHAIN_EVENTS_FROM_BLOCK,
    )
    oracle = ManifoldOracle(settings.MANIFOLD_API_URL, timeout=settings.ORACLE_TIMEOUT_SECONDS)

    session_manager = SessionManager(relay)
    leaderboard = LeaderboardService()
    trigger = SettlementTrigger(
        session_manager,
        leaderboard,
        oracle,
        chain,
        redis,
        lock_ttl_seconds=settings.SETTLEMENT_LOCK_TTL_SECONDS,
    )

    await relay.start()
    logger.info(
        "Service container ready (relay=%s, chain=%s)",
        "on" if relay.enabled else "off",
        "on" if chain.enabled else "off",
    )
    return ServiceContainer(
        engine=engine,
        session_factory=create_session_factory(engine),
        redis=redis,
        relay=relay,
        chain=chain,
        oracle=oracle,
        session_manager=session_manager,
        leaderboard=leaderboard,
        settlement_trigger=trigger,
    )
