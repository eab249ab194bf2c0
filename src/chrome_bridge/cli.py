"""Argparse-based CLI for chrome-bridge.

Browser commands are sent to the relay through the client module; the
service subcommands (``serve``, ``endpoint``, ``targets``, ``set-relay``,
``status``) are handled here directly.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from chrome_bridge import __version__, run_bridge, run_endpoint, setup_logging
from chrome_bridge.cdp.connection import list_targets
from chrome_bridge.client import read_upload, relay_status, send_command
from chrome_bridge.config import (
    PROFILES,
    ClientSettings,
    EndpointSettings,
    RelaySettings,
    get_profile,
    save_persisted_relay_url,
)
from chrome_bridge.errors import BridgeError

SERVICE_COMMANDS = ("serve", "endpoint", "targets", "set-relay", "status")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _int(value: str | None, default: int) -> int:
    """Integer value of *value*, or *default* when missing, invalid or zero."""
    if value is None:
        return default
    try:
        return int(value) or default
    except ValueError:
        return default


def _looks_like_selector(value: str | None) -> bool:
    return value is not None and value.startswith(("#", ".", "//"))


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def build_params(args: argparse.Namespace) -> dict[str, Any]:
    """Map positional arguments of a browser command onto its params."""
    command = args.command
    params: dict[str, Any] = {}

    if command in ("navigate", "newTab"):
        params["url"] = args.url
    elif command in ("click", "cdpClick"):
        params["selector"] = args.selector
        if args.x is not None and args.y is not None:
            params["x"] = args.x
            params["y"] = args.y
    elif command in ("type", "cdpType"):
        params["selector"] = args.selector
        params["text"] = args.text
        params["clear"] = args.clear != "false"
        params["pressEnter"] = args.press_enter == "true"
    elif command == "cdpScroll":
        if _looks_like_selector(args.first):
            params["selector"] = args.first
        else:
            params["deltaX"] = _int(args.first, 0)
            params["deltaY"] = _int(args.second, 300)
    elif command == "scroll":
        if _looks_like_selector(args.first):
            params["selector"] = args.first
        else:
            params["x"] = _int(args.first, 0)
            params["y"] = _int(args.second, 0)
    elif command in ("getElement", "getText", "waitForElement"):
        params["selector"] = args.selector
        if args.timeout:
            params["timeout"] = _int(args.timeout, 10000)
    elif command == "getElements":
        params["selector"] = args.selector
        params["limit"] = _int(args.limit, 100)
    elif command == "getHtml":
        params["selector"] = args.selector
        params["outer"] = args.outer == "true"
    elif command == "getAttribute":
        params["selector"] = args.selector
        params["attribute"] = args.attribute
    elif command in ("switchTab", "closeTab"):
        params["tabId"] = args.tab_id
    elif command in ("screenshot", "cdpScreenshot"):
        params["format"] = args.format or "png"
        params["quality"] = _int(args.quality, 100)
    elif command == "evaluate":
        params["script"] = " ".join(args.script)
    elif command == "readConsole":
        params["limit"] = _int(args.limit, 100)
        params["clear"] = args.clear == "true"
    elif command == "readNetwork":
        params["limit"] = _int(args.limit, 50)
        params["clear"] = args.clear == "true"
    elif command == "uploadFile":
        try:
            params.update(read_upload(args.path))
        except FileNotFoundError as e:
            _fail(str(e))
        params["selector"] = args.selector
    elif command == "cdpUploadFile":
        params["filePaths"] = [str(Path(p).resolve()) for p in args.paths]
        params["selector"] = args.selector
    elif command == "setHtml":
        params["selector"] = args.selector
        html_file = Path(args.html[0]) if len(args.html) == 1 else None
        if html_file is not None and html_file.is_file():
            params["html"] = html_file.read_text(encoding="utf-8")
        else:
            params["html"] = " ".join(args.html)

    if args.tab is not None and "tabId" not in params:
        params["tabId"] = args.tab
    return {k: v for k, v in params.items() if v is not None}


# ---------------------------------------------------------------------------
# Subparser registration
# ---------------------------------------------------------------------------


def _register_subcommands(subparsers: argparse._SubParsersAction) -> None:
    """Register every subcommand on *subparsers*."""

    # ── Navigation ─────────────────────────────────────────────────────

    p = subparsers.add_parser("navigate", help="Navigate to a URL")
    p.add_argument("url", help="URL to navigate to")

    p = subparsers.add_parser("newTab", help="Open a new tab")
    p.add_argument("url", nargs="?", default=None, help="Initial URL (default: about:blank)")

    p = subparsers.add_parser("closeTab", help="Close a tab (default: active tab)")
    p.add_argument("tab_id", nargs="?", default=None, help="Tab id")

    subparsers.add_parser("getTabs", help="List open tabs")

    p = subparsers.add_parser("switchTab", help="Activate a tab")
    p.add_argument("tab_id", help="Tab id")

    subparsers.add_parser("goBack", help="Go back in history")
    subparsers.add_parser("goForward", help="Go forward in history")
    subparsers.add_parser("reload", help="Reload the page")
    subparsers.add_parser("getPageInfo", help="Show tab id, URL and title")

    # ── Native (CDP) ───────────────────────────────────────────────────

    p = subparsers.add_parser("evaluate", help="Run JavaScript in the page's main world")
    p.add_argument("script", nargs="+", help="Script source (joined with spaces)")

    for name, help_text in (
        ("cdpClick", "Native mouse click on a selector or coordinates"),
        ("click", "DOM click on a selector or coordinates"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("selector", help="CSS or XPath selector (use _ with coordinates)")
        p.add_argument("x", nargs="?", type=int, default=None, help="X coordinate")
        p.add_argument("y", nargs="?", type=int, default=None, help="Y coordinate")

    for name, help_text in (
        ("cdpType", "Native text input"),
        ("type", "DOM text input"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("selector", help="CSS or XPath selector")
        p.add_argument("text", help="Text to type")
        p.add_argument("clear", nargs="?", default="true", help="Clear first (default: true)")
        p.add_argument(
            "press_enter", nargs="?", default="false", help="Press Enter after (default: false)"
        )

    p = subparsers.add_parser("cdpScroll", help="Scroll to a selector or by a wheel delta")
    p.add_argument("first", nargs="?", default=None, help="Selector or deltaX")
    p.add_argument("second", nargs="?", default=None, help="deltaY (default: 300)")

    for name in ("cdpScreenshot", "screenshot"):
        p = subparsers.add_parser(name, help="Capture the visible tab")
        p.add_argument("format", nargs="?", default="png", help="png, jpeg or webp")
        p.add_argument("quality", nargs="?", default=None, help="Quality (default: 100)")

    p = subparsers.add_parser("cdpUploadFile", help="Set files on a file input")
    p.add_argument("paths", nargs="+", help="Files to upload")
    p.add_argument("--selector", default=None, help='File input selector (default: input[type="file"])')

    # ── Console / network ──────────────────────────────────────────────

    for name, default_limit in (("readConsole", 100), ("readNetwork", 50)):
        p = subparsers.add_parser(name, help=f"Read captured {name[4:].lower()} entries")
        p.add_argument("limit", nargs="?", default=None, help=f"Max entries (default: {default_limit})")
        p.add_argument("clear", nargs="?", default="false", help="Clear after reading")

    subparsers.add_parser("debuggerAttach", help="Attach the debugger to the tab")
    subparsers.add_parser("debuggerDetach", help="Detach the debugger from the tab")

    # ── DOM ────────────────────────────────────────────────────────────

    p = subparsers.add_parser("scroll", help="Scroll to a selector or by x/y")
    p.add_argument("first", nargs="?", default=None, help="Selector or x")
    p.add_argument("second", nargs="?", default=None, help="y")

    for name, help_text in (
        ("getElement", "Describe an element"),
        ("getText", "Get text of an element (default: body)"),
        ("waitForElement", "Wait until an element exists"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument(
            "selector", nargs="?" if name == "getText" else None, default=None, help="Selector"
        )
        p.add_argument("timeout", nargs="?", default=None, help="Timeout in ms")

    p = subparsers.add_parser("getElements", help="Describe all matching elements")
    p.add_argument("selector", help="Selector")
    p.add_argument("limit", nargs="?", default=None, help="Max elements (default: 100)")

    p = subparsers.add_parser("getHtml", help="Get HTML (default: whole document)")
    p.add_argument("selector", nargs="?", default=None, help="Selector")
    p.add_argument("outer", nargs="?", default="false", help="Outer HTML (true/false)")

    p = subparsers.add_parser("getAttribute", help="Get an attribute value")
    p.add_argument("selector", help="Selector")
    p.add_argument("attribute", help="Attribute name")

    p = subparsers.add_parser("uploadFile", help="Upload a local file through the page")
    p.add_argument("path", help="File to upload")
    p.add_argument("selector", nargs="?", default=None, help="File input selector")

    p = subparsers.add_parser("setHtml", help="Set innerHTML (rich-text editors)")
    p.add_argument("selector", help="Selector")
    p.add_argument("html", nargs="+", help="HTML, or a path to an HTML file")

    # ── Services ───────────────────────────────────────────────────────

    p = subparsers.add_parser("serve", help="Run the relay")
    p.add_argument("--profile", choices=sorted(PROFILES), default="human", help="Relay profile")
    p.add_argument("--host", default=None, help="Bind address")
    p.add_argument("--port", type=int, default=None, help="Listen port (default: from profile)")
    p.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")

    p = subparsers.add_parser("endpoint", help="Run the browser-side endpoint")
    p.add_argument("--relay", default=None, help="Relay URL (overrides all others)")
    p.add_argument("--cdp", default=None, help="Browser debugging URL")

    p = subparsers.add_parser("targets", help="List inspectable browser targets")
    p.add_argument("--cdp", default=None, help="Browser debugging URL")

    p = subparsers.add_parser("set-relay", help="Persist the endpoint's relay URL")
    p.add_argument("url", nargs="?", default=None, help="Relay URL (omit to clear)")

    subparsers.add_parser("status", help="Show whether an endpoint is connected")


# ---------------------------------------------------------------------------
# Service commands
# ---------------------------------------------------------------------------


def _run_service(args: argparse.Namespace) -> None:
    if args.command == "serve":
        setup_logging(args.verbose)
        profile = get_profile(args.profile)
        settings = RelaySettings()
        overrides: dict[str, Any] = {"port": args.port or profile.relay_port}
        if args.host:
            overrides["host"] = args.host
        if args.timeout:
            overrides["request_timeout"] = args.timeout
        settings = settings.model_copy(update=overrides)
        try:
            asyncio.run(run_bridge(profile, settings))
        except KeyboardInterrupt:
            pass
        except BridgeError as e:
            _fail(str(e))
        return

    if args.command == "endpoint":
        setup_logging(args.verbose)
        settings = EndpointSettings()
        if args.cdp:
            settings = settings.model_copy(update={"cdp_url": args.cdp})
        try:
            asyncio.run(run_endpoint(settings, relay_url=args.relay))
        except KeyboardInterrupt:
            pass
        except BridgeError as e:
            _fail(str(e))
        return

    if args.command == "targets":
        cdp_url = args.cdp or EndpointSettings().cdp_url
        try:
            targets = asyncio.run(list_targets(cdp_url))
        except BridgeError as e:
            _fail(str(e))
            return
        _print_json(
            [
                {"id": t.get("id"), "type": t.get("type"), "title": t.get("title"), "url": t.get("url")}
                for t in targets
            ]
        )
        return

    if args.command == "set-relay":
        config_file = EndpointSettings().config_file
        if config_file is None:
            _fail("No endpoint config file configured")
        save_persisted_relay_url(config_file, args.url)
        if args.url:
            print(f"Relay URL {args.url} saved to {config_file}")
        else:
            print(f"Relay URL cleared from {config_file}")
        return

    if args.command == "status":
        response = relay_status(args.url)
        if response.get("error"):
            _fail(response["error"])
        _print_json(response.get("result"))


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate handler."""

    parser = argparse.ArgumentParser(
        prog="chrome-bridge",
        description="Drive a running Chromium browser through a WebSocket relay",
    )
    parser.add_argument("--url", default=None, help="Relay URL (default: ws://localhost:$CHROME_BRIDGE_PORT)")
    parser.add_argument("--tab", default=None, help="Tab id to act on (default: active tab)")
    parser.add_argument("--timeout", dest="client_timeout", type=float, default=None, help="Response timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging for services")
    parser.add_argument("--version", action="store_true", help="Print version")

    subparsers = parser.add_subparsers(dest="command")
    _register_subcommands(subparsers)

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.version:
        print(__version__)
        return

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command in SERVICE_COMMANDS:
        _run_service(args)
        return

    # All other commands go to the relay
    settings = ClientSettings()
    response = send_command(
        args.command,
        build_params(args),
        url=args.url or settings.url,
        timeout=args.client_timeout or settings.timeout,
    )
    if response.get("error"):
        _fail(response["error"])
    _print_json(response.get("result"))
