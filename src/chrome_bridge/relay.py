"""Relay: rendezvous point between controllers and the bridge endpoint.

Any number of short-lived controller connections send commands; a single
endpoint connection (registered by its ``{"type": "connected"}`` handshake)
executes them.  Each forwarded command gets a relay-local request id and a
deadline, and the endpoint's response is routed back to the controller that
sent the command by that id only, never by arrival order.  A newer handshake
takes over forwarding, but a replaced endpoint that is still open may go on
answering the requests it was sent.

All state lives on the :class:`Relay` instance and is only touched from the
event loop, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from chrome_bridge.errors import (
    BridgeError,
    NotConnectedError,
    RequestTimeoutError,
    TransportError,
)
from chrome_bridge.models import (
    STATUS_COMMAND,
    CommandFrame,
    FrameError,
    Handshake,
    ResponseFrame,
    dump_frame,
    parse_frame,
)

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A command forwarded to the endpoint and not yet answered."""

    request_id: int
    command: str
    future: asyncio.Future[ResponseFrame]
    deadline: float
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)


class Relay:
    def __init__(self, request_timeout: float = 30.0) -> None:
        self._request_timeout = request_timeout
        self._extension: ServerConnection | None = None
        # Every open connection that has sent the handshake, current or replaced
        self._endpoints: set[ServerConnection] = set()
        self._pending: dict[int, PendingRequest] = {}
        self._next_id = 0
        self._server: Server | None = None

    # -- State ---------------------------------------------------------------

    @property
    def extension_connected(self) -> bool:
        return self._extension is not None

    @property
    def pending(self) -> dict[int, PendingRequest]:
        """Read-only view of in-flight requests, keyed by request id."""
        return dict(self._pending)

    def status(self) -> dict[str, Any]:
        return {
            "extensionConnected": self.extension_connected,
            "pending": len(self._pending),
        }

    def register_extension(self, connection: ServerConnection) -> None:
        """Make *connection* the endpoint, replacing any previous one."""
        if self._extension is not None and self._extension is not connection:
            logger.info("Bridge endpoint re-registered, replacing previous connection")
        else:
            logger.info("Bridge endpoint connected")
        self._extension = connection
        self._endpoints.add(connection)

    def unregister_extension(self, connection: ServerConnection) -> None:
        # In-flight requests are left to expire through their own timers.
        self._endpoints.discard(connection)
        if self._extension is connection:
            self._extension = None
            logger.info(
                f"Bridge endpoint disconnected ({len(self._pending)} request(s) in flight)"
            )

    # -- Multiplexing --------------------------------------------------------

    async def request(self, frame: CommandFrame) -> ResponseFrame:
        """Forward *frame* to the endpoint and wait for its correlated response.

        Raises NotConnectedError without creating a pending request when no
        endpoint is registered, and RequestTimeoutError once the deadline passes.
        """
        extension = self._extension
        if extension is None:
            raise NotConnectedError()

        self._next_id += 1
        request_id = self._next_id
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            request_id=request_id,
            command=frame.command,
            future=loop.create_future(),
            deadline=loop.time() + self._request_timeout,
        )
        pending.timer = loop.call_at(pending.deadline, self._expire, request_id)
        self._pending[request_id] = pending

        try:
            await extension.send(dump_frame(frame.forwarded(request_id)))
            logger.debug(f"Forwarded {frame.command!r} as request {request_id}")
            return await pending.future
        except ConnectionClosed as e:
            self._discard(request_id)
            raise TransportError(f"Bridge endpoint connection lost: {e}") from e
        except asyncio.CancelledError:
            self._discard(request_id)
            raise

    def resolve(self, response: ResponseFrame) -> bool:
        """Complete the pending request matching *response*. Returns False if none."""
        if not isinstance(response.id, int):
            logger.debug(f"Dropping response without a request id: {response.error!r}")
            return False
        pending = self._pending.pop(response.id, None)
        if pending is None:
            logger.debug(f"Dropping response for unknown or expired request {response.id}")
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.future.done():
            pending.future.set_result(response)
        return True

    def _expire(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        logger.warning(f"Request {request_id} ({pending.command!r}) timed out")
        if not pending.future.done():
            pending.future.set_exception(RequestTimeoutError())

    def _discard(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()

    # -- Connection handling -------------------------------------------------

    async def handler(self, connection: ServerConnection) -> None:
        """Serve one WebSocket connection (controller or endpoint)."""
        peer = connection.remote_address
        logger.debug(f"Connection opened from {peer}")
        tasks: set[asyncio.Task[None]] = set()
        try:
            async for raw in connection:
                try:
                    frame = parse_frame(raw)
                except FrameError as e:
                    await self._reply(connection, ResponseFrame.failure(None, str(e)))
                    continue

                if isinstance(frame, Handshake):
                    self.register_extension(connection)
                elif isinstance(frame, ResponseFrame):
                    if connection in self._endpoints:
                        self.resolve(frame)
                    else:
                        logger.debug(f"Ignoring response frame from non-endpoint peer {peer}")
                else:
                    task = asyncio.create_task(self._serve_command(connection, frame))
                    tasks.add(task)
                    task.add_done_callback(tasks.discard)
        except ConnectionClosed:
            pass
        finally:
            self.unregister_extension(connection)
            logger.debug(f"Connection closed from {peer}")

    async def _serve_command(self, connection: ServerConnection, frame: CommandFrame) -> None:
        if frame.command == STATUS_COMMAND:
            await self._reply(connection, ResponseFrame.success(frame.id, self.status()))
            return
        try:
            response = await self.request(frame)
            reply = ResponseFrame(id=frame.id, result=response.result, error=response.error)
        except BridgeError as e:
            reply = ResponseFrame.failure(frame.id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error relaying {frame.command!r}")
            reply = ResponseFrame.failure(frame.id, str(e))
        if reply.error is not None:
            logger.info(f"Command {frame.command!r} failed: {reply.error}")
        await self._reply(connection, reply)

    @staticmethod
    async def _reply(connection: ServerConnection, reply: ResponseFrame) -> None:
        try:
            await connection.send(dump_frame(reply))
        except ConnectionClosed:
            logger.debug("Controller went away before its response was delivered")

    # -- Server lifecycle ----------------------------------------------------

    async def start(self, host: str, port: int) -> Server:
        self._server = await serve(self.handler, host, port, max_size=None)
        logger.info(f"Relay listening on ws://{host}:{port}")
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        for pending in list(self._pending.values()):
            self._discard(pending.request_id)
            if not pending.future.done():
                pending.future.set_exception(TransportError("Relay shutting down"))

    async def serve_forever(self, host: str, port: int) -> None:
        server = await self.start(host, port)
        try:
            await server.serve_forever()
        finally:
            await self.close()
