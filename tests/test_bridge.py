"""Tests for the service wiring in chrome_bridge."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from chrome_bridge import build_endpoint, embedded_endpoint_settings, run_endpoint
from chrome_bridge.config import PROFILES, EndpointSettings, save_persisted_relay_url
from chrome_bridge.errors import ConfigurationError


class TestEmbeddedEndpoint:
    """The automation profile's endpoint only dials its own relay."""

    def test_ignores_persisted_relay_address(self, monkeypatch, tmp_path):
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        save_persisted_relay_url(EndpointSettings().config_file, "ws://127.0.0.1:8765")

        settings = embedded_endpoint_settings(PROFILES["automation"], 8766)
        endpoint = build_endpoint(settings, relay_url=settings.relay_url)

        assert settings.config_file is None
        assert settings.cdp_url == "http://127.0.0.1:9223"
        assert endpoint.resolve_candidates() == ["ws://127.0.0.1:8766"]


class TestRunEndpoint:
    @pytest.mark.asyncio
    async def test_returns_when_no_relay_is_configured(self):
        settings = EndpointSettings(
            relay_url=None,
            default_relay_url="",
            fallback_relay_urls=[],
            config_file=None,
        )

        with pytest.raises(ConfigurationError):
            async with asyncio.timeout(5):
                await run_endpoint(settings)
