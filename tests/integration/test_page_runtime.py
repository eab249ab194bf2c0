"""Integration tests running the page scripts in a real browser.

The unit tests stub ``Runtime.evaluate``; these execute ``page_runtime.js``
and the native helper scripts inside headless Chromium end to end through
CommandExecutor and BrowserLink.
"""

from __future__ import annotations

import time
import urllib.parse

import pytest

from chrome_bridge.errors import BridgeError
from chrome_bridge.executor import CommandExecutor

EDITOR_PAGE = """<html><body data-ready>
<div id="editor" contenteditable="true"><p>Old <b>content</b></p></div>
<script>
  window.counts = { input: 0, change: 0 };
  const editor = document.getElementById('editor');
  editor.addEventListener('input', () => window.counts.input++);
  editor.addEventListener('change', () => window.counts.change++);
</script>
</body></html>"""


async def open_page(executor: CommandExecutor, html: str) -> None:
    """Load *html* into the active tab and wait until its body is present."""
    await executor.handle("navigate", {"url": "data:text/html," + urllib.parse.quote(html)})
    deadline = time.monotonic() + 10
    while time.monotonic() < deadline:
        try:
            result = await executor.handle(
                "waitForElement", {"selector": "body[data-ready]", "timeout": 500}
            )
        except BridgeError:
            # The isolated world went away with the previous document
            continue
        if result.get("found"):
            return
    pytest.fail("Test page never finished loading")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_wait_for_missing_element_times_out_as_a_result(executor: CommandExecutor) -> None:
    """waitForElement polls for its full timeout and reports it instead of raising."""
    await open_page(executor, "<html><body data-ready><p>Nothing to see</p></body></html>")

    started = time.monotonic()
    result = await executor.handle("waitForElement", {"selector": "#never", "timeout": 2000})
    elapsed = time.monotonic() - started

    assert result == {"found": False, "timeout": True}
    assert elapsed >= 1.9, f"returned after {elapsed:.2f}s"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_wait_for_element_that_appears(executor: CommandExecutor) -> None:
    """An element added mid-wait is found before the timeout."""
    await open_page(
        executor,
        """<html><body data-ready><script>
        setTimeout(() => {
          const el = document.createElement('div');
          el.id = 'late';
          document.body.appendChild(el);
        }, 300);
        </script></body></html>""",
    )

    result = await executor.handle("waitForElement", {"selector": "#late", "timeout": 5000})

    assert result == {"found": True}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_cdp_type_replaces_contenteditable(executor: CommandExecutor) -> None:
    """Native typing into a rich-text editor replaces it and fires input/change once each."""
    await open_page(executor, EDITOR_PAGE)

    result = await executor.handle(
        "cdpType", {"selector": "#editor", "text": "Hello", "clear": True, "append": False}
    )
    state = await executor.handle(
        "evaluate",
        {
            "script": "({input: window.counts.input, change: window.counts.change, "
            "text: document.getElementById('editor').textContent})"
        },
    )

    assert result == {"success": True, "typed": "Hello"}
    assert state["result"] == {"input": 1, "change": 1, "text": "Hello"}
