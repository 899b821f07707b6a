"""Best-effort notification relay over a websocket.

Nothing here is load-bearing for balances: bet events are queued and sent
by a background task, request/response calls wait at most
`request_timeout` seconds, and every failure is reported as
ExternalServiceDegradedError (or a log line) instead of blocking callers.

Lifecycle (start/stop) belongs to the service container.
"""

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any, Protocol

import websockets

from src.pm_common.errors import ExternalServiceDegradedError
from src.pm_relay.messages import BetEvent, request_message

logger = logging.getLogger("pm.relay")

_SERVICE = "relay"


class NotificationRelayProtocol(Protocol):
    def publish(self, event: BetEvent) -> None: ...

    async def open_session(self, user_address: str, amount_wei: int) -> str | None: ...

    async def close_session(self, relay_session_id: str) -> None: ...


class RelayClient:
    def __init__(
        self,
        url: str,
        request_timeout: float = 5.0,
        queue_size: int = 1000,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._url = url
        self._request_timeout = request_timeout
        self._reconnect_delay = reconnect_delay
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ws: Any = None
        self._runner: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Relay disabled (no RELAY_URL)")
            return
        if self._runner is None:
            self._runner = asyncio.create_task(self._run(), name="relay-supervisor")

    async def stop(self) -> None:
        if self._runner is not None:
            self._runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._runner
            self._runner = None
        self._fail_pending("relay stopped")

    # ------------------------------------------------------------------
    # Fire-and-forget
    # ------------------------------------------------------------------

    def publish(self, event: BetEvent) -> None:
        """Queue a bet event. Never blocks, never raises."""
        if not self.enabled:
            return
        try:
            self._queue.put_nowait(event.to_message())
        except asyncio.QueueFull:
            logger.warning("Relay queue full, dropping bet event for market %s", event.market_id)

    # ------------------------------------------------------------------
    # Request/response with bounded wait
    # ------------------------------------------------------------------

    async def open_session(self, user_address: str, amount_wei: int) -> str | None:
        if not self.enabled:
            return None
        result = await self._request(
            "open_session", {"user": user_address, "amount": str(amount_wei)}
        )
        session_id = result.get("session_id")
        return str(session_id) if session_id else None

    async def close_session(self, relay_session_id: str) -> None:
        if not self.enabled:
            return
        await self._request("close_session", {"session_id": relay_session_id})

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        ws = self._ws
        if ws is None:
            raise ExternalServiceDegradedError(_SERVICE, "not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await ws.send(json.dumps(request_message(request_id, method, params)))
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except asyncio.TimeoutError as exc:
            raise ExternalServiceDegradedError(
                _SERVICE, f"{method} timed out after {self._request_timeout}s"
            ) from exc
        except (websockets.ConnectionClosed, OSError) as exc:
            raise ExternalServiceDegradedError(_SERVICE, f"{method} failed: {exc}") from exc
        finally:
            self._pending.pop(request_id, None)

    # ------------------------------------------------------------------
    # Connection supervision
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            try:
                async with websockets.connect(
                    self._url, open_timeout=10, ping_interval=20
                ) as ws:
                    self._ws = ws
                    logger.info("Relay connected: %s", self._url)
                    await self._pump(ws)
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
                logger.warning("Relay connection lost: %s", exc)
            finally:
                self._ws = None
                self._fail_pending("relay disconnected")
            await asyncio.sleep(self._reconnect_delay)

    async def _pump(self, ws: Any) -> None:
        sender = asyncio.create_task(self._drain(ws), name="relay-sender")
        try:
            async for raw in ws:
                self._dispatch(raw)
        finally:
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender

    async def _drain(self, ws: Any) -> None:
        while True:
            message = await self._queue.get()
            try:
                await ws.send(json.dumps(message))
                logger.debug("Relayed bet for market %s", message.get("marketId"))
            except websockets.ConnectionClosed:
                logger.warning("Relay closed while sending, bet for market %s dropped",
                               message.get("marketId"))
                return

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Relay sent non-JSON message")
            return
        if not isinstance(message, dict):
            return

        future = self._pending.get(str(message.get("id")))
        if future is None:
            logger.debug("Relay message: %s", message.get("type"))
            return
        if future.done():
            return
        if message.get("error"):
            future.set_exception(
                ExternalServiceDegradedError(_SERVICE, str(message["error"]))
            )
        else:
            result = message.get("result")
            future.set_result(result if isinstance(result, dict) else {})

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ExternalServiceDegradedError(_SERVICE, reason))
        self._pending.clear()
