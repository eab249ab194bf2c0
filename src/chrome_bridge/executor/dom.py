"""Commands delegated to the in-page DOM runtime (``page_runtime.js``)."""

from __future__ import annotations

import json
import logging
from importlib import resources
from typing import Any

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.errors import ElementNotFoundError, ExecutionError
from chrome_bridge.executor.commands import CommandName, flag, number
from chrome_bridge.executor.scripts import exception_message

logger = logging.getLogger(__name__)

WORLD_NAME = "chrome-bridge"

_FLAG_PARAMS = ("clear", "pressEnter", "append", "outer")
_NUMBER_PARAMS = ("x", "y", "timeout", "limit")
# Matches the waitForElement default in page_runtime.js
_DEFAULT_WAIT_MS = 10000
# Head room for the CDP round trip beyond the in-page wait
_WAIT_MARGIN = 5.0


def load_runtime() -> str:
    return resources.files("chrome_bridge.executor").joinpath("page_runtime.js").read_text(
        encoding="utf-8"
    )


class DomStrategy:
    """Evaluates the runtime in an isolated world of the tab's main frame.

    Each command uses a scratch CDP session, so DOM commands never attach
    the debugger or touch the tab's console/network capture.
    """

    def __init__(self, browser: BrowserLink, runtime_source: str | None = None) -> None:
        self._browser = browser
        self._runtime = (runtime_source or load_runtime()).strip()

    def expression(self, name: CommandName, params: dict[str, Any]) -> str:
        return f"({self._runtime})({json.dumps(name.value)}, {json.dumps(params)})"

    @staticmethod
    def _normalize(params: dict[str, Any]) -> dict[str, Any]:
        normalized = {k: v for k, v in params.items() if k != "tabId" and v is not None}
        for key in _FLAG_PARAMS:
            if key in normalized:
                normalized[key] = flag(normalized, key, False)
        for key in _NUMBER_PARAMS:
            if key in normalized:
                normalized[key] = number(normalized, key)
        return normalized

    def evaluate_timeout(self, name: CommandName, params: dict[str, Any]) -> float | None:
        """CDP deadline for the evaluate call, or None for the link default.

        A ``waitForElement`` poll may outlast the default, so its deadline is
        stretched past the requested wait and the page reports the timeout.
        """
        if name is not CommandName.WAIT_FOR_ELEMENT:
            return None
        wait = params.get("timeout", _DEFAULT_WAIT_MS) / 1000
        return max(self._browser.timeout, wait + _WAIT_MARGIN)

    async def run(self, name: CommandName, params: dict[str, Any]) -> Any:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        normalized = self._normalize(params)
        expression = self.expression(name, normalized)

        async with self._browser.scratch_session(tab_id) as session_id:
            tree = await self._browser.send("Page.getFrameTree", session_id=session_id)
            frame_id = tree["frameTree"]["frame"]["id"]
            world = await self._browser.send(
                "Page.createIsolatedWorld",
                {"frameId": frame_id, "worldName": WORLD_NAME},
                session_id=session_id,
            )
            result = await self._browser.send(
                "Runtime.evaluate",
                {
                    "expression": expression,
                    "contextId": world["executionContextId"],
                    "awaitPromise": True,
                    "returnByValue": True,
                },
                session_id=session_id,
                timeout=self.evaluate_timeout(name, normalized),
            )

        details = result.get("exceptionDetails")
        if details:
            message = exception_message(details)
            logger.debug(f"{name.value} failed in tab {tab_id}: {message}")
            if message.startswith(("Element not found", "File input not found")):
                raise ElementNotFoundError(message)
            raise ExecutionError(message)
        return (result.get("result") or {}).get("value")
