"""Lazy link to one browser: connection, debugging sessions and tab lookup."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from chrome_bridge.cdp.connection import CDPConnection, discover_browser_ws_url
from chrome_bridge.cdp.session import SessionController
from chrome_bridge.errors import AttachError, BridgeError, CDPError, TabNotFoundError

logger = logging.getLogger(__name__)


class BrowserLink:
    """Owns the browser-level CDP connection and the session controller.

    The connection is opened on first use and re-opened on the next command
    after it drops; every debugging session dies with the connection that
    carried it.  The link also tracks the "active" tab, i.e. the tab that
    commands without a ``tabId`` act on.
    """

    def __init__(
        self,
        cdp_url: str,
        timeout: float = 30.0,
        connection_factory: Callable[..., CDPConnection] = CDPConnection,
    ) -> None:
        self._cdp_url = cdp_url
        self._timeout = timeout
        self._connection_factory = connection_factory
        self._connection: CDPConnection | None = None
        self._ingest_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._active_tab: str | None = None
        self.sessions = SessionController(self)

    @property
    def cdp_url(self) -> str:
        return self._cdp_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def active_tab(self) -> str | None:
        return self._active_tab

    def set_active(self, tab_id: str | None) -> None:
        self._active_tab = tab_id

    # ── lifecycle ───────────────────────────────────────────────

    async def ensure_connected(self) -> CDPConnection:
        async with self._lock:
            connection = self._connection
            if connection is not None and connection.is_connected:
                return connection
            if connection is not None:
                self._drop_connection(connection)

            ws_url = await discover_browser_ws_url(self._cdp_url)
            connection = self._connection_factory(ws_url, timeout=self._timeout)
            await connection.connect()
            self._connection = connection
            self._ingest_task = asyncio.create_task(self._ingest(connection))
            # Needed for Target.targetDestroyed on tab close
            await connection.send("Target.setDiscoverTargets", {"discover": True})
            return connection

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
        if self._ingest_task is not None:
            try:
                await self._ingest_task
            except asyncio.CancelledError:
                pass
            self._ingest_task = None
        self.sessions.reset()

    async def _ingest(self, connection: CDPConnection) -> None:
        await self.sessions.run(connection.events())
        if self._connection is connection:
            logger.warning("Browser connection lost, dropping debugging sessions")
            self._drop_connection(connection)

    def _drop_connection(self, connection: CDPConnection) -> None:
        if self._connection is connection:
            self._connection = None
        self.sessions.reset()

    # ── commands ────────────────────────────────────────────────

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a CDP command, connecting to the browser first if needed."""
        connection = await self.ensure_connected()
        return await connection.send(method, params, session_id=session_id, timeout=timeout)

    async def page_targets(self) -> list[dict[str, Any]]:
        result = await self.send("Target.getTargets")
        return [t for t in result.get("targetInfos", []) if t.get("type") == "page"]

    async def target_info(self, tab_id: str) -> dict[str, Any]:
        try:
            result = await self.send("Target.getTargetInfo", {"targetId": tab_id})
        except CDPError:
            raise TabNotFoundError(f"Tab not found: {tab_id}") from None
        info = result.get("targetInfo") or {}
        if info.get("type") != "page":
            raise TabNotFoundError(f"Tab not found: {tab_id}")
        return info

    async def resolve_tab(self, tab_id: Any = None) -> str:
        """Return *tab_id* if it names a page, else the active tab.

        Raises TabNotFoundError when neither exists.
        """
        if tab_id:
            tab_id = str(tab_id)
            await self.target_info(tab_id)
            return tab_id

        page_ids = [t["targetId"] for t in await self.page_targets()]
        if self._active_tab in page_ids:
            return self._active_tab
        if not page_ids:
            raise TabNotFoundError("No active tab found")
        self._active_tab = page_ids[0]
        return self._active_tab

    @asynccontextmanager
    async def scratch_session(self, tab_id: str) -> AsyncIterator[str]:
        """Open a short-lived session on *tab_id*, yield its id, then detach.

        Scratch sessions are never recorded by the session controller, so the
        tab's attached/detached state is unaffected.
        """
        try:
            result = await self.send(
                "Target.attachToTarget", {"targetId": tab_id, "flatten": True}
            )
        except CDPError as e:
            raise AttachError(f"Could not open a session on tab {tab_id}: {e}") from e
        session_id = result["sessionId"]
        try:
            yield session_id
        finally:
            try:
                await self.send("Target.detachFromTarget", {"sessionId": session_id})
            except BridgeError as e:
                logger.debug(f"Scratch session {session_id} detach failed: {e}")
