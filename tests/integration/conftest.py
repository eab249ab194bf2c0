"""Shared fixtures for chrome-bridge integration tests.

These fixtures launch a real headless Chromium with remote debugging on a
free port and drive it through BrowserLink.  Every test gets a fresh browser
(function-scoped) with its own profile directory.  Tests are skipped when no
Chromium binary is installed; set CHROME_BRIDGE_TEST_BROWSER to point at one.
"""

from __future__ import annotations

import os
import shutil
import socket
import subprocess
import time
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.executor import CommandExecutor

BROWSER_NAMES = (
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
)


def _find_browser() -> str | None:
    override = os.environ.get("CHROME_BRIDGE_TEST_BROWSER")
    if override:
        return override
    for name in BROWSER_NAMES:
        path = shutil.which(name)
        if path:
            return path
    return None


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _wait_for_devtools(cdp_url: str, process: subprocess.Popen, timeout: float = 20.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if process.poll() is not None:
            pytest.fail(f"Chromium exited early with code {process.returncode}")
        try:
            httpx.get(f"{cdp_url}/json/version", timeout=1.0).raise_for_status()
            return
        except httpx.HTTPError:
            time.sleep(0.1)
    pytest.fail(f"Chromium did not expose DevTools at {cdp_url}")


# ---------------------------------------------------------------------------
# Browser fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def chromium(tmp_path: Path) -> Iterator[str]:
    """Launch headless Chromium, yield its DevTools HTTP URL, then kill it."""
    binary = _find_browser()
    if binary is None:
        pytest.skip("No Chromium binary found")

    port = _free_port()
    process = subprocess.Popen(
        [
            binary,
            "--headless=new",
            "--no-sandbox",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-gpu",
            f"--remote-debugging-port={port}",
            f"--user-data-dir={tmp_path / 'profile'}",
            "about:blank",
        ],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    cdp_url = f"http://127.0.0.1:{port}"
    try:
        _wait_for_devtools(cdp_url, process)
        yield cdp_url
    finally:
        process.terminate()
        try:
            process.wait(timeout=10)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


@pytest_asyncio.fixture
async def executor(chromium: str):
    """A CommandExecutor wired to the launched browser."""
    executor = CommandExecutor(BrowserLink(chromium, timeout=10.0))
    try:
        yield executor
    finally:
        await executor.close()

