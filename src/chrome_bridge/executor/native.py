"""Commands executed through native CDP primitives.

These bypass in-page script restrictions such as content-security-policy:
script runs in the page's main world via ``Runtime.evaluate`` and input is
synthesized by the browser itself (``Input.*``), not dispatched from script.
"""

from __future__ import annotations

import logging
from typing import Any

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.errors import (
    ElementNotFoundError,
    ExecutionError,
    InvalidParamsError,
    NotAttachedError,
    UnknownCommandError,
)
from chrome_bridge.executor.commands import CommandName, flag, number, require
from chrome_bridge.executor.scripts import (
    commit_input,
    element_center,
    evaluate_expression,
    exception_message,
    focus_element,
    scroll_into_view,
)

logger = logging.getLogger(__name__)

DEFAULT_FILE_INPUT = 'input[type="file"]'

_ENTER_KEY = {
    "key": "Enter",
    "code": "Enter",
    "windowsVirtualKeyCode": 13,
    "nativeVirtualKeyCode": 13,
}


class NativeStrategy:
    """Runs a command as a ``cmd_<name>`` handler over the tab's CDP session."""

    def __init__(self, browser: BrowserLink) -> None:
        self._browser = browser
        self._sessions = browser.sessions

    async def run(self, name: CommandName, params: dict[str, Any]) -> Any:
        handler = getattr(self, f"cmd_{name.name.lower()}", None)
        if handler is None:
            raise UnknownCommandError(name.value)
        return await handler(params)

    # -- Helpers -------------------------------------------------------------

    async def _attached_tab(self, params: dict[str, Any]) -> str:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        await self._sessions.attach(tab_id)
        return tab_id

    async def _on_tab(
        self, tab_id: str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send one command over a scratch session, leaving debugging state alone."""
        async with self._browser.scratch_session(tab_id) as session_id:
            return await self._browser.send(method, params, session_id=session_id)

    @staticmethod
    def _capture_params(params: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        fmt = params.get("format") or "png"
        capture: dict[str, Any] = {"format": fmt}
        if fmt != "png":
            capture["quality"] = int(number(params, "quality", 100) or 100)
        return fmt, capture

    # -- Script and input ----------------------------------------------------

    async def cmd_evaluate(self, params: dict[str, Any]) -> dict[str, Any]:
        """Evaluate a script in the page's main world.

        A session the browser dropped underneath us is re-attached once and
        the evaluation retried; a second failure propagates.
        """
        script = str(require(params, "script"))
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        request = {
            "expression": evaluate_expression(script),
            "returnByValue": True,
            "awaitPromise": flag(params, "awaitPromise", True),
            "timeout": number(params, "timeout", 10000),
        }

        retried = False
        while True:
            await self._sessions.attach(tab_id)
            try:
                result = await self._sessions.send(tab_id, "Runtime.evaluate", request)
                break
            except NotAttachedError:
                if retried:
                    raise
                retried = True
                logger.info(f"Session for tab {tab_id} lost, re-attaching")
                self._sessions.drop(tab_id, "not attached")

        details = result.get("exceptionDetails")
        if details:
            description = (details.get("exception") or {}).get("description")
            return {"error": description or details.get("text") or "Evaluation error"}
        return {"result": (result.get("result") or {}).get("value")}

    async def cmd_cdp_click(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._attached_tab(params)
        x, y = number(params, "x"), number(params, "y")
        selector = params.get("selector")

        if selector and (x is None or y is None):
            result = await self._sessions.send(
                tab_id,
                "Runtime.evaluate",
                {"expression": element_center(selector), "returnByValue": True},
            )
            point = (result.get("result") or {}).get("value")
            if not point:
                raise ElementNotFoundError(f"Element not found: {selector}")
            x, y = point["x"], point["y"]
        if x is None or y is None:
            raise InvalidParamsError("cdpClick needs a selector or both x and y")

        button = params.get("button") or "left"
        click_count = int(number(params, "clickCount", 1) or 1)
        await self._sessions.send(
            tab_id, "Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y}
        )
        for phase in ("mousePressed", "mouseReleased"):
            await self._sessions.send(
                tab_id,
                "Input.dispatchMouseEvent",
                {"type": phase, "x": x, "y": y, "button": button, "clickCount": click_count},
            )
        return {"success": True, "clicked": {"x": x, "y": y}}

    async def _run_in_page(self, tab_id: str, expression: str) -> Any:
        """Evaluate a helper script in the main world, mapping page errors."""
        result = await self._sessions.send(
            tab_id,
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True, "awaitPromise": False},
        )
        details = result.get("exceptionDetails")
        if details:
            message = exception_message(details)
            if message.startswith("Element not found"):
                raise ElementNotFoundError(message)
            raise ExecutionError(message)
        return (result.get("result") or {}).get("value")

    async def cmd_cdp_type(self, params: dict[str, Any]) -> dict[str, Any]:
        text = params.get("text")
        if text is None:
            raise InvalidParamsError("Missing required parameter: text")
        text = str(text)
        tab_id = await self._attached_tab(params)

        selector = params.get("selector")
        if selector:
            await self._run_in_page(tab_id, focus_element(selector, flag(params, "clear", True)))
        await self._sessions.send(tab_id, "Input.insertText", {"text": text})
        if selector:
            await self._run_in_page(tab_id, commit_input(selector, fire_input=not text))
        if flag(params, "pressEnter", False):
            for phase in ("keyDown", "keyUp"):
                await self._sessions.send(
                    tab_id, "Input.dispatchKeyEvent", {"type": phase, **_ENTER_KEY}
                )
        return {"success": True, "typed": text}

    async def cmd_cdp_scroll(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._attached_tab(params)
        selector = params.get("selector")
        if selector:
            await self._sessions.send(
                tab_id,
                "Runtime.evaluate",
                {"expression": scroll_into_view(selector), "returnByValue": True},
            )
            return {"success": True, "scrolledTo": selector}

        delta_x = number(params, "deltaX", 0) or 0
        delta_y = number(params, "deltaY", 0) or 0
        await self._sessions.send(
            tab_id,
            "Input.dispatchMouseEvent",
            {
                "type": "mouseWheel",
                "x": number(params, "x", 0) or 100,
                "y": number(params, "y", 0) or 100,
                "deltaX": delta_x,
                "deltaY": delta_y or 300,
            },
        )
        return {"success": True, "scrolled": {"deltaX": delta_x, "deltaY": delta_y or 300}}

    async def cmd_cdp_screenshot(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._attached_tab(params)
        fmt, capture = self._capture_params(params)
        result = await self._sessions.send(tab_id, "Page.captureScreenshot", capture)
        return {"dataUrl": f"data:image/{fmt};base64,{result['data']}"}

    async def cmd_screenshot(self, params: dict[str, Any]) -> dict[str, Any]:
        """Capture the visible tab without attaching the debugger."""
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        fmt, capture = self._capture_params(params)
        result = await self._on_tab(tab_id, "Page.captureScreenshot", capture)
        return {"dataUrl": f"data:image/{fmt};base64,{result['data']}"}

    async def cmd_cdp_upload_file(self, params: dict[str, Any]) -> dict[str, Any]:
        files = require(params, "filePaths")
        if isinstance(files, str):
            files = [files]
        selector = params.get("selector") or DEFAULT_FILE_INPUT
        tab_id = await self._attached_tab(params)

        document = await self._sessions.send(tab_id, "DOM.getDocument")
        node = await self._sessions.send(
            tab_id,
            "DOM.querySelector",
            {"nodeId": document["root"]["nodeId"], "selector": selector},
        )
        if not node.get("nodeId"):
            raise ElementNotFoundError(f"File input not found: {selector}")
        await self._sessions.send(
            tab_id, "DOM.setFileInputFiles", {"nodeId": node["nodeId"], "files": files}
        )
        return {"success": True, "uploaded": files}

    # -- Telemetry and debugger control --------------------------------------

    async def cmd_read_console(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        limit = int(number(params, "limit", 100) or 100)
        messages = self._sessions.read_console(tab_id, limit, flag(params, "clear", False))
        return {"messages": messages, "count": len(messages)}

    async def cmd_read_network(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        limit = int(number(params, "limit", 50) or 50)
        requests = self._sessions.read_network(tab_id, limit, flag(params, "clear", False))
        return {"requests": requests, "count": len(requests)}

    async def cmd_debugger_attach(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._attached_tab(params)
        return {"success": True, "tabId": tab_id}

    async def cmd_debugger_detach(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        await self._sessions.detach(tab_id)
        return {"success": True, "tabId": tab_id}

    # -- Navigation and tabs -------------------------------------------------

    async def cmd_navigate(self, params: dict[str, Any]) -> dict[str, Any]:
        url = str(require(params, "url"))
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        result = await self._on_tab(tab_id, "Page.navigate", {"url": url})
        if result.get("errorText"):
            raise ExecutionError(f"Navigation to {url} failed: {result['errorText']}")
        return {"success": True, "tabId": tab_id}

    async def cmd_new_tab(self, params: dict[str, Any]) -> dict[str, Any]:
        result = await self._browser.send(
            "Target.createTarget", {"url": params.get("url") or "about:blank"}
        )
        tab_id = result["targetId"]
        self._browser.set_active(tab_id)
        return {"success": True, "tabId": tab_id}

    async def cmd_close_tab(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        await self._browser.send("Target.closeTarget", {"targetId": tab_id})
        self._sessions.drop(tab_id, "tab closed")
        if self._browser.active_tab == tab_id:
            self._browser.set_active(None)
        return {"success": True}

    async def cmd_get_tabs(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        targets = await self._browser.page_targets()
        ids = [t["targetId"] for t in targets]
        active = self._browser.active_tab
        if active not in ids:
            active = ids[0] if ids else None
        return [
            {
                "id": t["targetId"],
                "url": t.get("url"),
                "title": t.get("title"),
                "active": t["targetId"] == active,
            }
            for t in targets
        ]

    async def cmd_switch_tab(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = str(require(params, "tabId"))
        await self._browser.target_info(tab_id)
        await self._browser.send("Target.activateTarget", {"targetId": tab_id})
        self._browser.set_active(tab_id)
        return {"success": True, "tabId": tab_id}

    async def _step_history(self, params: dict[str, Any], offset: int) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        async with self._browser.scratch_session(tab_id) as session_id:
            history = await self._browser.send(
                "Page.getNavigationHistory", session_id=session_id
            )
            index = history.get("currentIndex", 0) + offset
            entries = history.get("entries") or []
            if 0 <= index < len(entries):
                await self._browser.send(
                    "Page.navigateToHistoryEntry",
                    {"entryId": entries[index]["id"]},
                    session_id=session_id,
                )
        return {"success": True}

    async def cmd_go_back(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._step_history(params, -1)

    async def cmd_go_forward(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._step_history(params, 1)

    async def cmd_reload(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        await self._on_tab(tab_id, "Page.reload")
        return {"success": True}

    async def cmd_get_page_info(self, params: dict[str, Any]) -> dict[str, Any]:
        tab_id = await self._browser.resolve_tab(params.get("tabId"))
        info = await self._browser.target_info(tab_id)
        return {"tabId": tab_id, "url": info.get("url"), "title": info.get("title")}
