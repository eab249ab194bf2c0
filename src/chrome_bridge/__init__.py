"""chrome-bridge: drive a running Chromium browser through a WebSocket relay."""

import asyncio
import logging
import signal

from .cdp import BrowserLink
from .config import EndpointSettings, Profile, RelaySettings
from .endpoint import TransportEndpoint
from .executor import CommandExecutor
from .relay import Relay

__version__ = "2.0.0"

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_endpoint(settings: EndpointSettings, relay_url: str | None = None) -> TransportEndpoint:
    """Wire a browser link, an executor and an endpoint together."""
    browser = BrowserLink(settings.cdp_url, timeout=settings.cdp_timeout)
    return TransportEndpoint(CommandExecutor(browser), settings, relay_url=relay_url)


def embedded_endpoint_settings(profile: Profile, port: int) -> EndpointSettings:
    """Settings for an endpoint that only ever dials its own relay on *port*.

    The persisted relay address is shared with standalone endpoints, so it is
    not consulted here.
    """
    local_url = f"ws://127.0.0.1:{port}"
    return EndpointSettings(
        relay_url=local_url,
        cdp_url=profile.cdp_url,
        default_relay_url=local_url,
        fallback_relay_urls=[],
        config_file=None,
    )


async def _wait_for_shutdown(*tasks: asyncio.Task[None]) -> None:
    """Block until SIGINT/SIGTERM, or until one of *tasks* ends on its own."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    stop_task = asyncio.create_task(stop_event.wait())
    try:
        await asyncio.wait({stop_task, *tasks}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_task.cancel()


async def run_bridge(profile: Profile, settings: RelaySettings) -> None:
    """Run a relay, plus an embedded endpoint when the profile asks for one."""
    relay = Relay(request_timeout=settings.request_timeout)
    await relay.start(settings.host, settings.port)

    endpoint: TransportEndpoint | None = None
    endpoint_task: asyncio.Task[None] | None = None
    if profile.embedded_endpoint:
        endpoint_settings = embedded_endpoint_settings(profile, settings.port)
        endpoint = build_endpoint(endpoint_settings, relay_url=endpoint_settings.relay_url)
        endpoint_task = asyncio.create_task(endpoint.run())
        logger.info(f"Embedded endpoint driving browser at {profile.cdp_url}")

    logger.info(f"Bridge profile {profile.name!r} ready on port {settings.port}")
    try:
        await _wait_for_shutdown(*([endpoint_task] if endpoint_task else []))
    finally:
        if endpoint is not None and endpoint_task is not None:
            await endpoint.stop()
            await endpoint_task
        await relay.close()
        logger.info("Bridge stopped")


async def run_endpoint(settings: EndpointSettings, relay_url: str | None = None) -> None:
    """Run a standalone endpoint until interrupted or until it gives up."""
    endpoint = build_endpoint(settings, relay_url=relay_url)
    task = asyncio.create_task(endpoint.run())
    logger.info(f"Endpoint driving browser at {settings.cdp_url}")
    try:
        await _wait_for_shutdown(task)
    finally:
        await endpoint.stop()
        await task
