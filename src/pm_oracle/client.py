"""Market oracle adapter for the Manifold public API. Pure queries, no state."""

import logging
from typing import Any, Protocol

import httpx

from src.pm_common.enums import ResolutionOutcome
from src.pm_common.errors import ExternalServiceDegradedError, MarketNotResolvedError
from src.pm_oracle.models import OracleMarket, Resolution, outcome_from_resolution

logger = logging.getLogger("pm.oracle")

_SERVICE = "oracle"


class MarketOracleProtocol(Protocol):
    async def list_active_markets(self, limit: int) -> list[OracleMarket]: ...

    async def get_resolution(self, market_id: str) -> Resolution: ...


class ManifoldOracle:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def list_markets(self, limit: int = 50) -> list[OracleMarket]:
        """Top markets by volume. Oracle failures yield an empty list."""
        try:
            data = await self._get_json("/markets", params={"limit": limit, "order": "volume"})
        except ExternalServiceDegradedError as exc:
            logger.error("Manifold market listing failed: %s", exc.message)
            return []
        if not isinstance(data, list):
            logger.error("Manifold market listing returned %s", type(data).__name__)
            return []
        markets = []
        for raw in data:
            try:
                markets.append(OracleMarket.from_api(raw))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed market entry")
        return markets

    async def list_active_markets(self, limit: int) -> list[OracleMarket]:
        markets = await self.list_markets()
        return [m for m in markets if not m.is_resolved][:limit]

    async def get_market(self, market_id: str) -> OracleMarket:
        data = await self._get_json(f"/market/{market_id}")
        try:
            return OracleMarket.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceDegradedError(_SERVICE, f"malformed market {market_id}") from exc

    async def get_resolution(self, market_id: str) -> Resolution:
        market = await self.get_market(market_id)
        if not market.is_resolved:
            raise MarketNotResolvedError(market_id)

        outcome = outcome_from_resolution(market.resolution)
        probability = market.resolution_probability
        if probability is None:
            probability = 1.0 if outcome == ResolutionOutcome.YES else 0.0
        return Resolution(
            market_id=market_id,
            outcome=outcome,
            probability=probability,
            resolved_at=market.resolution_time,
        )

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceDegradedError(
                _SERVICE, f"GET {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceDegradedError(_SERVICE, f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceDegradedError(_SERVICE, f"GET {path} returned non-JSON") from exc
