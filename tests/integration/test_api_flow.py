"""HTTP flow through ASGITransport with a hand-built service container."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from web3 import Web3

from src.container import ServiceContainer
from src.main import app
from src.pm_common.enums import ResolutionOutcome
from src.pm_common.errors import MarketNotResolvedError
from src.pm_oracle.models import OracleMarket, Resolution
from src.pm_relay.client import RelayClient
from src.pm_session.application.service import SessionManager
from src.pm_settlement.application.leaderboard import LeaderboardService
from src.pm_settlement.application.service import SettlementTrigger

USER = Web3.to_checksum_address("0x" + "3c" * 20)


@pytest.fixture
def oracle() -> AsyncMock:
    oracle = AsyncMock()
    oracle.get_resolution.return_value = Resolution(
        market_id="mkt-1", outcome=ResolutionOutcome.YES, probability=1.0, resolved_at=None
    )
    oracle.list_active_markets.return_value = [
        OracleMarket(
            id="mkt-1", question="Rain?", probability=0.6, volume=10.0,
            is_resolved=False, url="https://manifold.test/mkt-1",
        )
    ]
    return oracle


@pytest.fixture
async def client(
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    relay: RelayClient,
    manager: SessionManager,
    redis: AsyncMock,
    chain_disabled: MagicMock,
    oracle: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    leaderboard = LeaderboardService()
    app.state.container = ServiceContainer(
        engine=engine,
        session_factory=session_factory,
        redis=redis,
        relay=relay,
        chain=chain_disabled,
        oracle=oracle,
        session_manager=manager,
        leaderboard=leaderboard,
        settlement_trigger=SettlementTrigger(
            manager, leaderboard, oracle, chain_disabled, redis
        ),
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.container


class TestSessionApi:
    async def test_full_flow(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/session/open", json={"user_address": USER, "deposit_amount": "0.01"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == 0
        assert resp.headers["X-Request-ID"] == body["request_id"]
        session_id = body["data"]["id"]
        assert body["data"]["balance"] == "0.01"

        for side in (True, True, False):
            resp = await client.post(
                "/api/v1/session/bet",
                json={
                    "session_id": session_id,
                    "market_id": "mkt-1",
                    "user_address": USER,
                    "side": side,
                    "amount": "0.001",
                },
            )
            assert resp.status_code == 200
        assert resp.json()["data"]["new_balance"] == "0.007"

        resp = await client.post("/api/v1/session/close", json={"session_id": session_id})
        assert resp.json()["data"]["final_balance"] == "0.007"

        resp = await client.post("/api/v1/settle/mkt-1")
        settle = resp.json()["data"]
        assert settle["bets_settled"] == 3
        assert settle["complete"] is True

        resp = await client.get(f"/api/v1/session/{session_id}")
        assert resp.json()["data"]["balance"] == "0.011"

        resp = await client.get(f"/api/v1/session/{session_id}/bets")
        assert len(resp.json()["data"]["items"]) == 3

        resp = await client.post(
            "/api/v1/session/finalize", json={"session_id": session_id, "tx_hash": "0xabc"}
        )
        assert resp.json()["data"] == {
            "success": True,
            "session_id": session_id,
            "settlement_tx_hash": "0xabc",
        }

        resp = await client.get("/api/v1/session/active", params={"user_address": USER})
        assert resp.json()["data"] is None

        resp = await client.get("/api/v1/leaderboard")
        board = resp.json()["data"]
        assert board["items"][0]["address"] == USER
        assert board["items"][0]["pnl"] == "0.001"
        assert board["stats"]["total_bets"] == 3

    async def test_overdraw_is_422_with_code(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/session/open", json={"user_address": USER, "deposit_amount": "0.001"}
        )
        session_id = resp.json()["data"]["id"]

        resp = await client.post(
            "/api/v1/session/bet",
            json={
                "session_id": session_id,
                "market_id": "mkt-1",
                "user_address": USER,
                "side": True,
                "amount": "0.002",
            },
        )

        assert resp.status_code == 422
        assert resp.json()["code"] == 2003
        assert resp.json()["data"] is None

    async def test_unknown_session_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/session/nope")
        assert resp.status_code == 404
        assert resp.json()["code"] == 2001

    async def test_validation_error_uses_envelope(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/session/open", json={"user_address": USER, "deposit_amount": "-1"}
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 1001

    async def test_deposit_above_ceiling_is_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/session/open", json={"user_address": USER, "deposit_amount": "10"}
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 1001

    async def test_bad_address_rejected(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/session/open", json={"user_address": "0x123", "deposit_amount": "0.01"}
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == 1001


class TestOtherApis:
    async def test_markets(self, client: AsyncClient, oracle: AsyncMock) -> None:
        resp = await client.get("/api/v1/markets")
        data = resp.json()["data"]
        assert data[0]["id"] == "mkt-1"
        assert data[0]["question"] == "Rain?"
        oracle.list_active_markets.assert_awaited_once()

    async def test_settle_unresolved_is_409(self, client: AsyncClient, oracle: AsyncMock) -> None:
        oracle.get_resolution.side_effect = MarketNotResolvedError("mkt-1")
        resp = await client.post("/api/v1/settle/mkt-1")
        assert resp.status_code == 409
        assert resp.json()["code"] == 3001

    async def test_relay_is_best_effort(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/relay",
            json={"market_id": "mkt-1", "side": False, "amount": "0.001", "user_address": USER},
        )
        assert resp.status_code == 200
        assert resp.json()["data"] == {"relayed": True}

    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.json()["status"] == "ok"
