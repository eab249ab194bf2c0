"""Shared fixtures for chrome-bridge tests."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.cdp.connection import CDPEvent
from chrome_bridge.errors import CDPError

PAGE = {
    "targetId": "T1",
    "type": "page",
    "url": "https://example.com/",
    "title": "Example",
}


class FakeCDPConnection:
    """Stands in for CDPConnection: records every command and answers from handlers.

    A handler is a result dict, an exception to raise, or a callable taking
    ``(params, session_id)`` that returns a result or raises.
    """

    def __init__(self, ws_url: str = "ws://127.0.0.1:9222/devtools/browser/x", timeout: float = 30.0) -> None:
        self.ws_url = ws_url
        self.timeout = timeout
        self.is_connected = True
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []
        self.handlers: dict[str, Any] = {}
        # Last per-call timeout seen for each method
        self.timeouts: dict[str, float | None] = {}
        self.targets: list[dict[str, Any]] = [dict(PAGE)]
        self._session_ids = itertools.count(1)
        self._closed = asyncio.Event()

    async def connect(self) -> None:
        self.is_connected = True

    async def close(self) -> None:
        self.is_connected = False
        self._closed.set()

    async def events(self):
        await self._closed.wait()
        return
        yield

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        params = params or {}
        self.calls.append((method, params, session_id))
        self.timeouts[method] = timeout
        handler = self.handlers.get(method)
        if handler is None:
            return self._default(method, params)
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(params, session_id)
        return handler

    def _default(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if method == "Target.attachToTarget":
            return {"sessionId": f"S{next(self._session_ids)}"}
        if method == "Target.getTargets":
            return {"targetInfos": list(self.targets)}
        if method == "Target.getTargetInfo":
            for target in self.targets:
                if target["targetId"] == params.get("targetId"):
                    return {"targetInfo": target}
            raise CDPError("No target with given id found", code=-32602)
        return {}

    # -- Inspection helpers --

    def methods(self) -> list[str]:
        return [method for method, _, _ in self.calls]

    def calls_for(self, method: str) -> list[tuple[dict[str, Any], str | None]]:
        return [(params, sid) for m, params, sid in self.calls if m == method]


def _console_event(session_id: str, text: str, timestamp: float = 1.0) -> CDPEvent:
    return CDPEvent(
        method="Runtime.consoleAPICalled",
        params={"type": "log", "args": [{"type": "string", "value": text}], "timestamp": timestamp},
        session_id=session_id,
    )


@pytest.fixture
def console_event():
    """Factory for Runtime.consoleAPICalled events."""
    return _console_event


@pytest.fixture
def cdp() -> FakeCDPConnection:
    return FakeCDPConnection()


@pytest.fixture
def browser(cdp: FakeCDPConnection) -> BrowserLink:
    """A BrowserLink already 'connected' to the fake connection."""
    link = BrowserLink("http://127.0.0.1:9222")
    link._connection = cdp  # type: ignore[assignment]
    return link
