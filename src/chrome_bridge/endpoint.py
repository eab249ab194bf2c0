"""Bridge endpoint: the long-lived browser-side connection to the relay.

The endpoint dials the relay, announces itself with the handshake frame and
then executes every command the relay forwards, answering each with the same
``id``.  When the socket drops it waits a fixed interval and dials again,
moving through the candidate relay addresses on failed attempts.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from chrome_bridge.config import EndpointSettings, load_persisted_relay_url
from chrome_bridge.errors import BridgeError, ConfigurationError
from chrome_bridge.executor import CommandExecutor
from chrome_bridge.models import (
    CommandFrame,
    FrameError,
    Handshake,
    ResponseFrame,
    dump_frame,
    parse_frame,
)

logger = logging.getLogger(__name__)


class EndpointState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


class TransportEndpoint:
    def __init__(
        self,
        executor: CommandExecutor,
        settings: EndpointSettings | None = None,
        relay_url: str | None = None,
    ) -> None:
        self._executor = executor
        self._settings = settings or EndpointSettings()
        self._override = relay_url or self._settings.relay_url
        self._candidates: list[str] = []
        self._index = 0
        self._state = EndpointState.DISCONNECTED
        self._ws: ClientConnection | None = None
        self._stopping = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> EndpointState:
        return self._state

    def _set_state(self, state: EndpointState) -> None:
        if state != self._state:
            logger.debug(f"Endpoint state {self._state.value} -> {state.value}")
            self._state = state

    # -- Relay address resolution --------------------------------------------

    def resolve_candidates(self) -> list[str]:
        """Relay URLs in priority order: override, persisted, default, fallbacks."""
        config_file = self._settings.config_file
        urls = [
            self._override,
            load_persisted_relay_url(config_file) if config_file is not None else None,
            self._settings.default_relay_url,
            *self._settings.fallback_relay_urls,
        ]
        return list(dict.fromkeys(url for url in urls if url))

    def next_candidate(self) -> str:
        """Current candidate, re-resolving the list once it is exhausted.

        Raises ConfigurationError when no relay address is configured at all.
        """
        if self._index >= len(self._candidates):
            self._candidates = self.resolve_candidates()
            self._index = 0
        if not self._candidates:
            raise ConfigurationError(
                "No relay address configured (set CHROME_BRIDGE_RELAY_URL or "
                "CHROME_BRIDGE_DEFAULT_RELAY_URL)"
            )
        return self._candidates[self._index]

    # -- Connection loop -----------------------------------------------------

    async def run(self) -> None:
        """Keep a relay connection open until :meth:`stop` is called."""
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                url = self.next_candidate()
            except ConfigurationError as e:
                logger.error(f"Endpoint stopping: {e}")
                self._set_state(EndpointState.DISCONNECTED)
                raise
            self._set_state(EndpointState.CONNECTING)
            try:
                async with connect(url, max_size=None) as ws:
                    self._ws = ws
                    self._set_state(EndpointState.OPEN)
                    logger.info(f"Connected to relay at {url}")
                    await ws.send(dump_frame(Handshake()))
                    await self._serve(ws)
                self._set_state(EndpointState.CLOSED)
                logger.info(f"Relay connection to {url} closed")
            except (OSError, WebSocketException, TimeoutError) as e:
                self._set_state(EndpointState.ERRORED)
                logger.debug(f"Relay at {url} unavailable: {e}")
                self._index += 1
            finally:
                self._ws = None

            if self._stopping.is_set():
                break
            self._set_state(EndpointState.RECONNECT_SCHEDULED)
            try:
                async with asyncio.timeout(self._settings.reconnect_interval):
                    await self._stopping.wait()
            except TimeoutError:
                pass
        self._set_state(EndpointState.DISCONNECTED)

    async def _serve(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    frame = parse_frame(raw)
                except FrameError as e:
                    logger.warning(f"Ignoring malformed frame from relay: {e}")
                    continue
                if not isinstance(frame, CommandFrame):
                    logger.debug(f"Ignoring non-command frame: {type(frame).__name__}")
                    continue
                task = asyncio.create_task(self._execute(ws, frame))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except ConnectionClosed as e:
            logger.info(f"Relay connection lost: {e}")

    async def _execute(self, ws: ClientConnection, frame: CommandFrame) -> None:
        logger.debug(f"Executing {frame.command!r} (request {frame.id})")
        try:
            result = await self._executor.handle(frame.command, frame.params)
            reply = ResponseFrame.success(frame.id, result)
        except BridgeError as e:
            reply = ResponseFrame.failure(frame.id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error executing {frame.command!r}")
            reply = ResponseFrame.failure(frame.id, str(e) or type(e).__name__)
        try:
            await ws.send(dump_frame(reply))
        except ConnectionClosed:
            logger.warning(f"Relay went away before response to request {frame.id}")

    async def stop(self) -> None:
        """Close the relay connection, cancel running commands and release the browser."""
        self._stopping.set()
        if self._ws is not None:
            await self._ws.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._executor.close()

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "candidates": list(self._candidates),
            "inFlight": len(self._tasks),
        }
