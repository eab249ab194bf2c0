"""
chrome-bridge MCP server

Exposes the relay's browser commands as MCP tools over stdio, so an agent
can drive the bridged browser.  Every tool is one controller round trip
through :func:`chrome_bridge.client.send_command`; the relay address and
timeout come from :class:`~chrome_bridge.config.ClientSettings`.

Install:
    pip install chrome-bridge && chrome-bridge-mcp
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote_plus

# Third-Party Libraries
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

# Local
from chrome_bridge import setup_logging
from chrome_bridge.client import read_upload, send_command
from chrome_bridge.config import ClientSettings

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.google.com/search?q="
SEARCH_SETTLE_SECONDS = 2.0

mcp = FastMCP("chrome-bridge")


async def call_relay(command: str, params: dict[str, Any] | None = None) -> Any:
    """Send *command* through the relay and return its result, or raise ToolError."""
    settings = ClientSettings()
    params = {k: v for k, v in (params or {}).items() if v is not None}
    response = await asyncio.to_thread(
        send_command, command, params, url=settings.url, timeout=settings.timeout
    )
    if response.get("error"):
        logger.info(f"{command} failed: {response['error']}")
        raise ToolError(response["error"])
    return response.get("result")


def _as_text(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False)


# ── Navigation ──────────────────────────────────────────────


@mcp.tool(annotations=ToolAnnotations(title="Open URL", openWorldHint=True))
async def chrome_navigate(url: str) -> str:
    """Open *url* in the active tab and wait for it to load."""
    return _as_text(await call_relay("navigate", {"url": url}))


@mcp.tool(annotations=ToolAnnotations(title="Open New Tab", openWorldHint=True))
async def chrome_new_tab(url: str | None = None) -> str:
    """Open a new tab (about:blank when no URL is given) and make it active."""
    return _as_text(await call_relay("newTab", {"url": url}))


@mcp.tool(annotations=ToolAnnotations(title="List Tabs", readOnlyHint=True))
async def chrome_get_tabs() -> str:
    """List every open tab with its id, title, URL and active flag."""
    return _as_text(await call_relay("getTabs"))


@mcp.tool(annotations=ToolAnnotations(title="Switch Tab", idempotentHint=True))
async def chrome_switch_tab(tab_id: str) -> str:
    """Bring the tab with id *tab_id* to the front."""
    return _as_text(await call_relay("switchTab", {"tabId": tab_id}))


# ── Native (CDP) input ──────────────────────────────────────


@mcp.tool(annotations=ToolAnnotations(title="Evaluate JavaScript"))
async def chrome_evaluate(
    script: str, await_promise: bool = True, timeout: int | None = None
) -> str:
    """Run JavaScript in the page's main world, bypassing the page CSP.

    Page globals (e.g. ``window.selectize``) are reachable.  *timeout* is in
    milliseconds and defaults to 10000.
    """
    return _as_text(
        await call_relay(
            "evaluate", {"script": script, "awaitPromise": await_promise, "timeout": timeout}
        )
    )


@mcp.tool(annotations=ToolAnnotations(title="Native Click"))
async def chrome_cdp_click(
    selector: str | None = None, x: float | None = None, y: float | None = None
) -> str:
    """Click with real mouse events, at *selector*'s centre or at (x, y)."""
    return _as_text(await call_relay("cdpClick", {"selector": selector, "x": x, "y": y}))


@mcp.tool(annotations=ToolAnnotations(title="Native Type"))
async def chrome_cdp_type(
    text: str,
    selector: str | None = None,
    clear: bool = True,
    press_enter: bool = False,
) -> str:
    """Type *text* with real key events, so keydown listeners see every character."""
    return _as_text(
        await call_relay(
            "cdpType",
            {"selector": selector, "text": text, "clear": clear, "pressEnter": press_enter},
        )
    )


# ── DOM commands ────────────────────────────────────────────


@mcp.tool(annotations=ToolAnnotations(title="DOM Click"))
async def chrome_click(selector: str) -> str:
    """Click an element (CSS selector or XPath) through the DOM."""
    return _as_text(await call_relay("click", {"selector": selector}))


@mcp.tool(annotations=ToolAnnotations(title="DOM Type"))
async def chrome_type(selector: str, text: str, press_enter: bool = False) -> str:
    """Set an input's value through the DOM and fire input/change events."""
    return _as_text(
        await call_relay("type", {"selector": selector, "text": text, "pressEnter": press_enter})
    )


@mcp.tool(annotations=ToolAnnotations(title="Get Text", readOnlyHint=True))
async def chrome_get_text(selector: str | None = None) -> str:
    """Visible text of an element, or of the whole page without a selector."""
    return _as_text(await call_relay("getText", {"selector": selector}))


@mcp.tool(annotations=ToolAnnotations(title="Get Element", readOnlyHint=True))
async def chrome_get_element(selector: str) -> str:
    """Tag, attributes, bounding box and text of one element."""
    return _as_text(await call_relay("getElement", {"selector": selector}))


@mcp.tool(annotations=ToolAnnotations(title="Get Elements", readOnlyHint=True))
async def chrome_get_elements(selector: str, limit: int | None = None) -> str:
    """Summaries of every matching element (up to *limit*, default 100)."""
    return _as_text(await call_relay("getElements", {"selector": selector, "limit": limit}))


@mcp.tool(annotations=ToolAnnotations(title="Get HTML", readOnlyHint=True))
async def chrome_get_html(selector: str | None = None, outer: bool = False) -> str:
    """innerHTML (or outerHTML) of an element, or of the whole page."""
    return _as_text(await call_relay("getHtml", {"selector": selector, "outer": outer}))


@mcp.tool(annotations=ToolAnnotations(title="Wait For Element", readOnlyHint=True))
async def chrome_wait_for_element(selector: str, timeout: int | None = None) -> str:
    """Wait until *selector* matches.

    Returns ``{"found": false, "timeout": true}`` rather than an error once
    *timeout* milliseconds (default 10000) pass.
    """
    return _as_text(
        await call_relay("waitForElement", {"selector": selector, "timeout": timeout})
    )


@mcp.tool(annotations=ToolAnnotations(title="Set HTML"))
async def chrome_set_html(selector: str, html: str) -> str:
    """Replace the content of a contenteditable editor (Redactor and the like)."""
    return _as_text(await call_relay("setHtml", {"selector": selector, "html": html}))


@mcp.tool(annotations=ToolAnnotations(title="Upload File"))
async def chrome_upload_file(file_path: str, selector: str | None = None) -> str:
    """Put a local file into a file input (the first one on the page by default)."""
    try:
        params = read_upload(file_path)
    except FileNotFoundError as e:
        raise ToolError(str(e)) from e
    params["selector"] = selector
    return _as_text(await call_relay("uploadFile", params))


# ── Page state ──────────────────────────────────────────────


@mcp.tool(annotations=ToolAnnotations(title="Screenshot", readOnlyHint=True))
async def chrome_screenshot() -> str:
    """Capture the visible viewport of the active tab as an image data URL."""
    return _as_text(await call_relay("screenshot"))


@mcp.tool(annotations=ToolAnnotations(title="Get Page Info", readOnlyHint=True))
async def chrome_get_page_info() -> str:
    """Tab id, URL and title of the active tab."""
    return _as_text(await call_relay("getPageInfo"))


@mcp.tool(annotations=ToolAnnotations(title="Read Console", readOnlyHint=True))
async def chrome_read_console(limit: int | None = None, clear: bool = False) -> str:
    """Console messages and uncaught exceptions captured for the active tab."""
    return _as_text(await call_relay("readConsole", {"limit": limit, "clear": clear}))


@mcp.tool(annotations=ToolAnnotations(title="Read Network", readOnlyHint=True))
async def chrome_read_network(limit: int | None = None, clear: bool = False) -> str:
    """Network responses captured for the active tab (default 50)."""
    return _as_text(await call_relay("readNetwork", {"limit": limit, "clear": clear}))


@mcp.tool(annotations=ToolAnnotations(title="Search The Web", openWorldHint=True))
async def chrome_search_web(query: str) -> str:
    """Run a Google search in the active tab and return the result page's text."""
    await call_relay("navigate", {"url": SEARCH_URL + quote_plus(query)})
    await asyncio.sleep(SEARCH_SETTLE_SECONDS)
    return _as_text(await call_relay("getText"))


def main():
    """Entry point for the chrome-bridge-mcp console script."""
    setup_logging()
    logger.info("Starting chrome-bridge MCP server")
    mcp.run()


if __name__ == "__main__":
    main()
