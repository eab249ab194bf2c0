"""Tests for chrome_bridge.endpoint.TransportEndpoint."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from chrome_bridge.config import EndpointSettings, save_persisted_relay_url
from chrome_bridge.endpoint import EndpointState, TransportEndpoint
from chrome_bridge.errors import ConfigurationError, ElementNotFoundError
from chrome_bridge.models import CommandFrame, ResponseFrame
from chrome_bridge.relay import Relay


@pytest.fixture
def executor() -> MagicMock:
    executor = MagicMock()
    executor.handle = AsyncMock(return_value={"ok": True})
    executor.close = AsyncMock()
    return executor


@pytest.fixture
def settings(tmp_path) -> EndpointSettings:
    return EndpointSettings(
        relay_url=None,
        default_relay_url="ws://127.0.0.1:8765",
        fallback_relay_urls=["ws://localhost:8765", "ws://host.docker.internal:8765"],
        config_file=tmp_path / "endpoint.json",
        reconnect_interval=0.05,
    )


# ---------------------------------------------------------------------------
# Relay address resolution
# ---------------------------------------------------------------------------


class TestCandidates:
    """Override, persisted, default and fallback addresses."""

    def test_defaults_only(self, executor, settings):
        endpoint = TransportEndpoint(executor, settings)
        assert endpoint.resolve_candidates() == [
            "ws://127.0.0.1:8765",
            "ws://localhost:8765",
            "ws://host.docker.internal:8765",
        ]

    def test_priority_order(self, executor, settings):
        save_persisted_relay_url(settings.config_file, "ws://192.168.1.4:8765")
        endpoint = TransportEndpoint(executor, settings, relay_url="ws://10.0.0.1:8765")

        assert endpoint.resolve_candidates()[:3] == [
            "ws://10.0.0.1:8765",
            "ws://192.168.1.4:8765",
            "ws://127.0.0.1:8765",
        ]

    def test_duplicates_removed(self, executor, settings):
        save_persisted_relay_url(settings.config_file, "ws://localhost:8765")
        endpoint = TransportEndpoint(executor, settings)

        candidates = endpoint.resolve_candidates()

        assert candidates[0] == "ws://localhost:8765"
        assert candidates.count("ws://localhost:8765") == 1

    def test_next_candidate_cycles_and_rereads(self, executor, settings):
        endpoint = TransportEndpoint(executor, settings)
        seen = []
        for _ in range(3):
            seen.append(endpoint.next_candidate())
            endpoint._index += 1
        assert seen == endpoint.resolve_candidates()

        save_persisted_relay_url(settings.config_file, "ws://192.168.1.9:8765")
        assert endpoint.next_candidate() == "ws://192.168.1.9:8765"

    def test_no_candidates_is_a_configuration_error(self, executor, settings):
        settings.default_relay_url = ""
        settings.fallback_relay_urls = []
        endpoint = TransportEndpoint(executor, settings)

        with pytest.raises(ConfigurationError, match="No relay address configured"):
            endpoint.next_candidate()

    def test_without_config_file_skips_persisted(self, executor, settings):
        save_persisted_relay_url(settings.config_file, "ws://192.168.1.4:8765")
        settings.config_file = None
        endpoint = TransportEndpoint(executor, settings)

        assert "ws://192.168.1.4:8765" not in endpoint.resolve_candidates()


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


class TestExecute:
    """Every forwarded command gets exactly one correlated reply."""

    @pytest.fixture
    def ws(self) -> MagicMock:
        ws = MagicMock()
        ws.send = AsyncMock()
        return ws

    @staticmethod
    def _reply(ws: MagicMock) -> dict:
        ws.send.assert_awaited_once()
        return json.loads(ws.send.await_args.args[0])

    @pytest.mark.asyncio
    async def test_success(self, executor, settings, ws):
        endpoint = TransportEndpoint(executor, settings)

        await endpoint._execute(ws, CommandFrame(command="getTabs", params={}, id=7))

        executor.handle.assert_awaited_once_with("getTabs", {})
        assert self._reply(ws) == {"id": 7, "result": {"ok": True}}

    @pytest.mark.asyncio
    async def test_bridge_error(self, executor, settings, ws):
        executor.handle.side_effect = ElementNotFoundError("Element not found: #x")
        endpoint = TransportEndpoint(executor, settings)

        await endpoint._execute(ws, CommandFrame(command="click", params={"selector": "#x"}, id=8))

        assert self._reply(ws) == {"id": 8, "error": "Element not found: #x"}

    @pytest.mark.asyncio
    async def test_unexpected_error(self, executor, settings, ws):
        executor.handle.side_effect = KeyError()
        endpoint = TransportEndpoint(executor, settings)

        await endpoint._execute(ws, CommandFrame(command="getTabs", id=9))

        assert self._reply(ws) == {"id": 9, "error": "KeyError"}

    @pytest.mark.asyncio
    async def test_null_result(self, executor, settings, ws):
        executor.handle.return_value = None
        endpoint = TransportEndpoint(executor, settings)

        await endpoint._execute(ws, CommandFrame(command="getText", id=10))

        assert self._reply(ws) == {"id": 10, "result": None}


# ---------------------------------------------------------------------------
# Connection loop
# ---------------------------------------------------------------------------


class TestRun:
    """Dialing, handshake, reconnect and stop against a real relay."""

    @pytest.mark.asyncio
    async def test_connects_through_fallback_and_serves(self, executor, settings):
        relay = Relay(request_timeout=2.0)
        server = await relay.start("127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        settings.default_relay_url = "ws://127.0.0.1:1"
        settings.fallback_relay_urls = [f"ws://127.0.0.1:{port}"]
        endpoint = TransportEndpoint(executor, settings)

        task = asyncio.create_task(endpoint.run())
        try:
            async with asyncio.timeout(5):
                while not relay.extension_connected:
                    await asyncio.sleep(0.01)
            assert endpoint.state is EndpointState.OPEN

            response = await relay.request(CommandFrame(command="getPageInfo", params={"tabId": "T1"}))

            assert response == ResponseFrame(id=1, result={"ok": True})
            executor.handle.assert_awaited_once_with("getPageInfo", {"tabId": "T1"})
        finally:
            await endpoint.stop()
            await asyncio.wait_for(task, 2)
            await relay.close()

        assert endpoint.state is EndpointState.DISCONNECTED
        executor.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_while_waiting_to_reconnect(self, executor, settings):
        settings.default_relay_url = "ws://127.0.0.1:1"
        settings.fallback_relay_urls = []
        settings.reconnect_interval = 30.0
        endpoint = TransportEndpoint(executor, settings)

        task = asyncio.create_task(endpoint.run())
        async with asyncio.timeout(5):
            while endpoint.state is not EndpointState.RECONNECT_SCHEDULED:
                await asyncio.sleep(0.01)
        await endpoint.stop()

        await asyncio.wait_for(task, 1)
        assert endpoint.state is EndpointState.DISCONNECTED
        assert endpoint.status()["candidates"] == ["ws://127.0.0.1:1"]

    @pytest.mark.asyncio
    async def test_run_without_relay_address_raises(self, executor, settings):
        settings.default_relay_url = ""
        settings.fallback_relay_urls = []
        endpoint = TransportEndpoint(executor, settings)

        with pytest.raises(ConfigurationError):
            await asyncio.wait_for(endpoint.run(), 2)
        assert endpoint.state is EndpointState.DISCONNECTED
