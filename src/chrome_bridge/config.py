"""Configuration for the relay, the bridge endpoint and the controller client."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_RELAY_PORT = 8765
AUTOMATION_RELAY_PORT = 8766


def _default_config_file() -> Path:
    return Path.home() / ".chrome-bridge" / "endpoint.json"


class RelaySettings(BaseSettings):
    """Relay server configuration."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_RELAY_PORT
    request_timeout: float = 30.0  # seconds before a pending request fails

    model_config = SettingsConfigDict(env_prefix="CHROME_BRIDGE_RELAY_")


class EndpointSettings(BaseSettings):
    """Bridge endpoint configuration."""

    # Relay address resolution (highest priority first)
    relay_url: str | None = None
    default_relay_url: str = f"ws://127.0.0.1:{DEFAULT_RELAY_PORT}"
    fallback_relay_urls: list[str] = Field(
        default_factory=lambda: [
            f"ws://localhost:{DEFAULT_RELAY_PORT}",
            f"ws://host.docker.internal:{DEFAULT_RELAY_PORT}",
        ]
    )
    # None disables the persisted address
    config_file: Path | None = Field(default_factory=_default_config_file)
    reconnect_interval: float = 3.0

    # Browser debugging endpoint
    cdp_url: str = "http://127.0.0.1:9222"
    cdp_timeout: float = 30.0

    model_config = SettingsConfigDict(env_prefix="CHROME_BRIDGE_")


class ClientSettings(BaseSettings):
    """Controller-side settings used by the CLI."""

    host: str = "localhost"
    port: int = DEFAULT_RELAY_PORT
    timeout: float = 35.0

    model_config = SettingsConfigDict(env_prefix="CHROME_BRIDGE_")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"


class Profile(BaseModel):
    """A relay bound to one browser profile."""

    name: str
    relay_port: int
    cdp_url: str
    embedded_endpoint: bool = False


PROFILES: dict[str, Profile] = {
    # Human-facing browser: the endpoint runs as its own process.
    "human": Profile(
        name="human",
        relay_port=DEFAULT_RELAY_PORT,
        cdp_url="http://127.0.0.1:9222",
    ),
    # Automation-only browser: the relay drives it with an embedded endpoint.
    "automation": Profile(
        name="automation",
        relay_port=AUTOMATION_RELAY_PORT,
        cdp_url="http://127.0.0.1:9223",
        embedded_endpoint=True,
    ),
}


def get_profile(name: str) -> Profile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown profile {name!r}, expected one of: {', '.join(PROFILES)}"
        ) from None


def load_persisted_relay_url(path: Path) -> str | None:
    """Read the stored relay address, returning None if unset or unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable endpoint config {path}: {e}")
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("relayUrl")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def save_persisted_relay_url(path: Path, url: str | None) -> None:
    """Store (or clear, when *url* is None) the relay address."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data: dict = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                data = loaded
        except json.JSONDecodeError:
            pass
    if url:
        data["relayUrl"] = url
    else:
        data.pop("relayUrl", None)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
