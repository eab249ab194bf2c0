"""Command names, their execution strategy and parameter helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from chrome_bridge.errors import InvalidParamsError, UnknownCommandError


class CommandName(str, Enum):
    # Script and native input
    EVALUATE = "evaluate"
    CDP_CLICK = "cdpClick"
    CDP_TYPE = "cdpType"
    CDP_SCROLL = "cdpScroll"
    CDP_SCREENSHOT = "cdpScreenshot"
    CDP_UPLOAD_FILE = "cdpUploadFile"
    SCREENSHOT = "screenshot"
    # Telemetry and debugger control
    READ_CONSOLE = "readConsole"
    READ_NETWORK = "readNetwork"
    DEBUGGER_ATTACH = "debuggerAttach"
    DEBUGGER_DETACH = "debuggerDetach"
    # Navigation and tabs
    NAVIGATE = "navigate"
    NEW_TAB = "newTab"
    CLOSE_TAB = "closeTab"
    GET_TABS = "getTabs"
    SWITCH_TAB = "switchTab"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"
    RELOAD = "reload"
    GET_PAGE_INFO = "getPageInfo"
    # In-page DOM runtime
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    GET_ELEMENT = "getElement"
    GET_ELEMENTS = "getElements"
    GET_TEXT = "getText"
    GET_HTML = "getHtml"
    GET_ATTRIBUTE = "getAttribute"
    WAIT_FOR_ELEMENT = "waitForElement"
    UPLOAD_FILE = "uploadFile"
    SET_HTML = "setHtml"


class Strategy(str, Enum):
    NATIVE = "native"
    DOM = "dom"


_DOM_COMMANDS = {
    CommandName.CLICK,
    CommandName.TYPE,
    CommandName.SCROLL,
    CommandName.GET_ELEMENT,
    CommandName.GET_ELEMENTS,
    CommandName.GET_TEXT,
    CommandName.GET_HTML,
    CommandName.GET_ATTRIBUTE,
    CommandName.WAIT_FOR_ELEMENT,
    CommandName.UPLOAD_FILE,
    CommandName.SET_HTML,
}

STRATEGIES: dict[CommandName, Strategy] = {
    name: Strategy.DOM if name in _DOM_COMMANDS else Strategy.NATIVE for name in CommandName
}


class ExecutionStrategy(Protocol):
    async def run(self, name: CommandName, params: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class Command:
    name: CommandName
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, name: str, params: dict[str, Any] | None = None) -> Command:
        """Build a Command, raising UnknownCommandError for unsupported names."""
        try:
            command_name = CommandName(name)
        except ValueError:
            raise UnknownCommandError(name) from None
        return cls(name=command_name, params=dict(params or {}))

    @property
    def strategy(self) -> Strategy:
        return STRATEGIES[self.name]


# ---------------------------------------------------------------------------
# Parameter coercion
# ---------------------------------------------------------------------------


def require(params: dict[str, Any], key: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise InvalidParamsError(f"Missing required parameter: {key}")
    return value


def number(params: dict[str, Any], key: str, default: float | None = None) -> float | None:
    value = params.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise InvalidParamsError(f"Parameter {key} must be a number")
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value) if "." in str(value) else int(value)
    except ValueError:
        raise InvalidParamsError(f"Parameter {key} must be a number, got {value!r}") from None


def flag(params: dict[str, Any], key: str, default: bool) -> bool:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)
