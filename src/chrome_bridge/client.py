"""Synchronous controller client for the relay.

Each call opens a WebSocket to the relay, sends one command frame and waits
for the single response frame.
"""

from __future__ import annotations

import base64
import json
import mimetypes
from pathlib import Path
from typing import Any

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from chrome_bridge.config import ClientSettings
from chrome_bridge.models import STATUS_COMMAND


def send_command(
    command: str,
    params: dict | None = None,
    url: str | None = None,
    timeout: float = 35.0,
) -> dict:
    """Send *command* to the relay and return the response frame.

    Returns a dict with either a ``result`` key or an ``error`` key holding a
    human-readable message; connection problems are reported the same way.
    """
    url = url or ClientSettings().url
    try:
        with connect(url, open_timeout=timeout, max_size=None) as ws:
            ws.send(json.dumps({"command": command, "params": params or {}}))
            raw = ws.recv(timeout=timeout)
    except TimeoutError:
        return {"error": f"Connection timeout after {timeout}s"}
    except ConnectionRefusedError:
        return {"error": f"Relay at {url} is not running"}
    except (OSError, WebSocketException) as e:
        return {"error": f"Connection error: {e}"}

    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        return {"error": "Invalid response from relay"}
    if not isinstance(data, dict):
        return {"error": "Invalid response from relay"}
    return data


def relay_status(url: str | None = None, timeout: float = 5.0) -> dict:
    """Ask the relay whether an endpoint is connected."""
    return send_command(STATUS_COMMAND, url=url, timeout=timeout)


def read_upload(path: str | Path) -> dict[str, Any]:
    """Encode a local file as ``uploadFile`` params. Raises FileNotFoundError."""
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    mime_type, _ = mimetypes.guess_type(file_path.name)
    return {
        "data": base64.b64encode(file_path.read_bytes()).decode("ascii"),
        "filename": file_path.name,
        "mimeType": mime_type or "application/octet-stream",
    }
