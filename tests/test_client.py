"""Tests for chrome_bridge.client."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from websockets.exceptions import InvalidURI

from chrome_bridge.client import relay_status, send_command


def _mock_connect(reply: str | None = None, error: Exception | None = None) -> MagicMock:
    connect = MagicMock()
    if error is not None:
        connect.side_effect = error
        return connect
    ws = connect.return_value.__enter__.return_value
    ws.recv.return_value = reply
    return connect


class TestSendCommand:
    """One frame out, one frame back, errors as dicts."""

    def test_round_trip(self):
        connect = _mock_connect(json.dumps({"result": {"tabId": "T1"}}))
        with patch("chrome_bridge.client.connect", connect):
            response = send_command("getPageInfo", {"tabId": "T1"}, url="ws://relay:8765", timeout=5)

        assert response == {"result": {"tabId": "T1"}}
        connect.assert_called_once_with("ws://relay:8765", open_timeout=5, max_size=None)
        ws = connect.return_value.__enter__.return_value
        sent = json.loads(ws.send.call_args.args[0])
        assert sent == {"command": "getPageInfo", "params": {"tabId": "T1"}}
        ws.recv.assert_called_once_with(timeout=5)

    def test_default_url_from_settings(self, monkeypatch):
        monkeypatch.setenv("CHROME_BRIDGE_PORT", "8766")
        monkeypatch.delenv("CHROME_BRIDGE_HOST", raising=False)
        connect = _mock_connect(json.dumps({"result": None}))
        with patch("chrome_bridge.client.connect", connect):
            send_command("reload")

        assert connect.call_args.args[0] == "ws://localhost:8766"

    def test_relay_error_passes_through(self):
        connect = _mock_connect(json.dumps({"error": "Chrome extension not connected"}))
        with patch("chrome_bridge.client.connect", connect):
            assert send_command("getTabs", url="ws://x") == {"error": "Chrome extension not connected"}

    def test_refused(self):
        with patch("chrome_bridge.client.connect", _mock_connect(error=ConnectionRefusedError())):
            response = send_command("getTabs", url="ws://localhost:8765")

        assert response == {"error": "Relay at ws://localhost:8765 is not running"}

    def test_timeout(self):
        connect = _mock_connect("")
        connect.return_value.__enter__.return_value.recv.side_effect = TimeoutError()
        with patch("chrome_bridge.client.connect", connect):
            response = send_command("waitForElement", url="ws://x", timeout=2.0)

        assert response == {"error": "Connection timeout after 2.0s"}

    def test_protocol_error(self):
        with patch("chrome_bridge.client.connect", _mock_connect(error=InvalidURI("nope", "bad scheme"))):
            response = send_command("getTabs", url="nope")

        assert response["error"].startswith("Connection error:")

    def test_invalid_reply(self):
        for reply in ("not json", "[1, 2]"):
            with patch("chrome_bridge.client.connect", _mock_connect(reply)):
                assert send_command("getTabs", url="ws://x") == {"error": "Invalid response from relay"}


class TestRelayStatus:
    def test_sends_status_command(self):
        connect = _mock_connect(json.dumps({"result": {"extensionConnected": True, "pending": 0}}))
        with patch("chrome_bridge.client.connect", connect):
            response = relay_status("ws://x")

        ws = connect.return_value.__enter__.return_value
        assert json.loads(ws.send.call_args.args[0])["command"] == "relayStatus"
        assert response["result"]["extensionConnected"] is True
