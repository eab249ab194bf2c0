"""Browser-level Chrome DevTools Protocol connection.

One WebSocket to the browser target carries every tab's traffic using flat
sessions: commands for a tab carry its ``sessionId`` and events arrive tagged
with it.  Command responses are correlated by id; everything else is pushed
onto an event channel that the session controller drains.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from chrome_bridge.errors import CDPConnectionError, CDPError, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CDPEvent:
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None


# ---------------------------------------------------------------------------
# HTTP discovery
# ---------------------------------------------------------------------------


async def _get_json(cdp_url: str, path: str, timeout: float = 5.0) -> Any:
    url = cdp_url.rstrip("/") + path
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as e:
        raise CDPConnectionError(f"Cannot reach browser debugging endpoint {url}: {e}") from e
    except ValueError as e:
        raise CDPConnectionError(f"Invalid JSON from {url}") from e


async def list_targets(cdp_url: str) -> list[dict[str, Any]]:
    """Return the inspectable targets listed by ``/json/list``."""
    targets = await _get_json(cdp_url, "/json/list")
    if not isinstance(targets, list):
        raise CDPConnectionError(f"Unexpected target list from {cdp_url}")
    return targets


async def discover_browser_ws_url(cdp_url: str) -> str:
    """Resolve the browser-level WebSocket URL through ``/json/version``."""
    version = await _get_json(cdp_url, "/json/version")
    ws_url = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
    if not ws_url:
        raise CDPConnectionError(f"No webSocketDebuggerUrl advertised by {cdp_url}")
    return ws_url


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class CDPConnection:
    """JSON-RPC style client for one browser debugging WebSocket."""

    def __init__(self, ws_url: str, timeout: float = 30.0) -> None:
        self._ws_url = ws_url
        self._timeout = timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._events: asyncio.Queue[CDPEvent | None] = asyncio.Queue()

    @property
    def ws_url(self) -> str:
        return self._ws_url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def connect(self) -> None:
        try:
            self._ws = await connect(self._ws_url, max_size=None, ping_interval=None)
        except (OSError, WebSocketException, TimeoutError) as e:
            raise CDPConnectionError(f"Failed to connect to {self._ws_url}: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"Connected to browser at {self._ws_url}")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Issue a CDP command and return its ``result`` object.

        *timeout* overrides the connection-wide deadline for this command.
        """
        if not self.is_connected or self._ws is None:
            raise TransportError("Browser connection is not open")

        message_id = next(self._ids)
        message: dict[str, Any] = {"id": message_id, "method": method, "params": params or {}}
        if session_id is not None:
            message["sessionId"] = session_id

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future
        try:
            await self._ws.send(json.dumps(message))
            async with asyncio.timeout(timeout or self._timeout):
                return await future
        except CDPError as e:
            e.method = method
            raise
        except TimeoutError:
            raise TransportError(f"CDP command {method} timed out") from None
        except ConnectionClosed as e:
            raise TransportError(f"Browser connection closed: {e}") from e
        finally:
            self._pending.pop(message_id, None)

    async def events(self) -> AsyncIterator[CDPEvent]:
        """Yield browser events until the connection closes."""
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Discarding non-JSON frame from browser")
                    continue
                self._dispatch(message)
        except ConnectionClosed as e:
            logger.info(f"Browser connection closed: {e}")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(TransportError("Browser connection closed"))
            self._pending.clear()
            self._events.put_nowait(None)

    def _dispatch(self, message: dict[str, Any]) -> None:
        message_id = message.get("id")
        if message_id is not None:
            future = self._pending.get(message_id)
            if future is None or future.done():
                return
            error = message.get("error")
            if error:
                future.set_exception(
                    CDPError(error.get("message", str(error)), code=error.get("code"))
                )
            else:
                future.set_result(message.get("result") or {})
            return

        method = message.get("method")
        if method:
            self._events.put_nowait(
                CDPEvent(
                    method=method,
                    params=message.get("params") or {},
                    session_id=message.get("sessionId"),
                )
            )
