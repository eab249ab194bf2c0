"""Per-tab debugging sessions and their console/network capture.

A tab is either detached or attached.  Attaching is idempotent; detaching
happens on an explicit command, on the browser's own detach notification, or
when the tab goes away, and all three paths end in :meth:`SessionController.drop`,
which discards the session together with its buffers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from chrome_bridge.cdp.buffers import EventBuffer, console_buffer, network_buffer
from chrome_bridge.cdp.connection import CDPEvent
from chrome_bridge.errors import AttachError, BridgeError, CDPError, NotAttachedError

logger = logging.getLogger(__name__)

_NOT_ATTACHED_MARKERS = (
    "not attached",
    "session with given id not found",
    "no session with given id",
)
_ATTACH_ATTEMPTS = 2


class CommandSender(Protocol):
    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> dict[str, Any]: ...


@dataclass
class DebuggingSession:
    tab_id: str
    # None when the browser reported the tab as already attached elsewhere
    session_id: str | None
    console: EventBuffer = field(default_factory=console_buffer)
    network: EventBuffer = field(default_factory=network_buffer)


class SessionStore:
    """Owns every live DebuggingSession, at most one per tab."""

    def __init__(self) -> None:
        self._sessions: dict[str, DebuggingSession] = {}

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, tab_id: str) -> DebuggingSession | None:
        return self._sessions.get(tab_id)

    def add(self, session: DebuggingSession) -> DebuggingSession:
        self._sessions[session.tab_id] = session
        return session

    def remove(self, tab_id: str) -> DebuggingSession | None:
        return self._sessions.pop(tab_id, None)

    def tab_for_session(self, session_id: str) -> str | None:
        for session in self._sessions.values():
            if session.session_id == session_id:
                return session.tab_id
        return None

    def tabs(self) -> list[str]:
        return list(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()


def is_not_attached_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _NOT_ATTACHED_MARKERS)


def _arg_text(arg: dict[str, Any]) -> str:
    value = arg.get("value")
    if value is None:
        return str(arg.get("description") or "")
    if isinstance(value, str):
        return value
    return json.dumps(value)


class SessionController:
    """Attaches the debugger to tabs and records their console/network events."""

    def __init__(self, connection: CommandSender, store: SessionStore | None = None) -> None:
        self._connection = connection
        self._store = store if store is not None else SessionStore()
        self._attaching: dict[str, asyncio.Task[DebuggingSession]] = {}

    @property
    def store(self) -> SessionStore:
        return self._store

    def is_attached(self, tab_id: str) -> bool:
        return tab_id in self._store

    # -- Lifecycle -----------------------------------------------------------

    async def attach(self, tab_id: str) -> DebuggingSession:
        """Attach to *tab_id* unless already attached. Raises AttachError.

        If the browser keeps reporting the tab as attached to another debugger,
        the tab is still recorded as attached but with no session id: only
        ``evaluate`` works on it and no console or network events are captured.
        """
        existing = self._store.get(tab_id)
        if existing is not None:
            return existing
        # Concurrent callers share one attach round trip.
        task = self._attaching.get(tab_id)
        if task is None:
            task = asyncio.create_task(self._attach(tab_id))
            self._attaching[tab_id] = task
            task.add_done_callback(lambda _: self._attaching.pop(tab_id, None))
        return await asyncio.shield(task)

    async def _attach(self, tab_id: str) -> DebuggingSession:
        result: dict[str, Any] | None = None
        for attempt in range(1, _ATTACH_ATTEMPTS + 1):
            try:
                result = await self._connection.send(
                    "Target.attachToTarget", {"targetId": tab_id, "flatten": True}
                )
                break
            except CDPError as e:
                if "already attached" not in str(e).lower():
                    raise AttachError(f"Debugger attach failed: {e}") from e
                logger.info(f"Tab {tab_id} reported as already attached (attempt {attempt})")

        if result is None:
            logger.warning(
                f"Tab {tab_id} is held by another debugger; recording it as attached "
                f"without a session, so console/network capture is unavailable"
            )
            return self._store.add(DebuggingSession(tab_id=tab_id, session_id=None))

        session = self._store.add(
            DebuggingSession(tab_id=tab_id, session_id=result.get("sessionId"))
        )
        try:
            await self.send(tab_id, "Runtime.enable")
            await self.send(tab_id, "Network.enable", {"maxPostDataSize": 65536})
        except BridgeError as e:
            self.drop(tab_id, "capture setup failed")
            raise AttachError(f"Debugger attach failed: {e}") from e
        logger.info(f"Debugger attached to tab {tab_id} (session {session.session_id})")
        return session

    async def detach(self, tab_id: str) -> bool:
        """Detach from *tab_id*. Returns False if it was not attached."""
        session = self._store.get(tab_id)
        if session is None:
            return False
        if session.session_id is not None:
            try:
                await self._connection.send(
                    "Target.detachFromTarget", {"sessionId": session.session_id}
                )
            except BridgeError as e:
                # The tab may already be gone; the local state is dropped regardless.
                logger.debug(f"Detach from tab {tab_id} failed: {e}")
        self.drop(tab_id, "detach requested")
        return True

    def drop(self, tab_id: str, reason: str) -> None:
        """Forget the session for *tab_id* and discard its buffered events."""
        if self._store.remove(tab_id) is not None:
            logger.info(f"Debugging session for tab {tab_id} dropped: {reason}")

    def reset(self) -> None:
        """Forget every session (the browser connection is gone)."""
        if len(self._store):
            logger.info(f"Dropping {len(self._store)} debugging session(s)")
        self._store.clear()

    # -- Commands ------------------------------------------------------------

    async def send(
        self, tab_id: str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send a CDP command over the tab's session."""
        session = self._store.get(tab_id)
        if session is None or session.session_id is None:
            raise NotAttachedError(f"Debugger is not attached to tab {tab_id}")
        try:
            return await self._connection.send(method, params, session_id=session.session_id)
        except CDPError as e:
            if is_not_attached_error(e):
                raise NotAttachedError(str(e)) from e
            raise

    def read_console(
        self, tab_id: str, limit: int = 100, clear: bool = False
    ) -> list[dict[str, Any]]:
        session = self._store.get(tab_id)
        return session.console.read(limit, clear) if session else []

    def read_network(
        self, tab_id: str, limit: int = 50, clear: bool = False
    ) -> list[dict[str, Any]]:
        session = self._store.get(tab_id)
        return session.network.read(limit, clear) if session else []

    # -- Event ingestion -----------------------------------------------------

    async def run(self, events: AsyncIterator[CDPEvent]) -> None:
        """Drain the browser event channel until it closes."""
        async for event in events:
            try:
                self.ingest(event)
            except Exception:
                logger.exception(f"Error ingesting {event.method}")

    def ingest(self, event: CDPEvent) -> None:
        params = event.params

        if event.method == "Target.detachedFromTarget":
            tab_id = self._store.tab_for_session(params.get("sessionId", ""))
            if tab_id is not None:
                self.drop(tab_id, "detached by browser")
            return
        if event.method == "Target.targetDestroyed":
            target_id = params.get("targetId")
            if target_id:
                self.drop(target_id, "tab closed")
            return

        if event.session_id is None:
            return
        tab_id = self._store.tab_for_session(event.session_id)
        if tab_id is None:
            return
        session = self._store.get(tab_id)
        assert session is not None

        if event.method == "Runtime.consoleAPICalled":
            session.console.append(
                {
                    "type": params.get("type"),
                    "text": " ".join(_arg_text(a) for a in params.get("args") or []),
                    "timestamp": params.get("timestamp"),
                }
            )
        elif event.method == "Runtime.exceptionThrown":
            details = params.get("exceptionDetails") or {}
            description = (details.get("exception") or {}).get("description", "")
            session.console.append(
                {
                    "type": "error",
                    "text": f"{details.get('text')}: {description}",
                    "timestamp": params.get("timestamp"),
                }
            )
        elif event.method == "Network.responseReceived":
            response = params.get("response") or {}
            session.network.append(
                {
                    "type": params.get("type"),
                    "url": response.get("url"),
                    "status": response.get("status"),
                    "mimeType": response.get("mimeType"),
                    "requestId": params.get("requestId"),
                    "timestamp": params.get("timestamp"),
                }
            )
