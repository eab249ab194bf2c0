"""Exception hierarchy shared by the relay, the endpoint and the executor.

Every error ends up as the ``error`` string of a response envelope, so the
message of each exception is what the controller eventually prints.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all chrome-bridge errors."""


# -- transport ---------------------------------------------------------------


class TransportError(BridgeError):
    """A socket was refused, closed or timed out."""


class CDPConnectionError(TransportError):
    """The browser debugging endpoint could not be reached."""


# -- configuration -----------------------------------------------------------


class ConfigurationError(BridgeError):
    """Settings leave the bridge with nothing it can do."""


# -- routing -----------------------------------------------------------------


class NotConnectedError(BridgeError):
    """No in-browser endpoint is registered with the relay."""

    def __init__(self, message: str = "Chrome extension not connected") -> None:
        super().__init__(message)


class RequestTimeoutError(BridgeError):
    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(message)


# -- protocol / session ------------------------------------------------------


class CDPError(BridgeError):
    """A CDP command returned an error object."""

    def __init__(self, message: str, code: int | None = None, method: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.method = method


class AttachError(BridgeError):
    """Attaching the debugger to a tab failed."""


class NotAttachedError(BridgeError):
    """The tab has no live debugging session."""


# -- execution ---------------------------------------------------------------


class ExecutionError(BridgeError):
    """A command ran but could not do what was asked."""


class ElementNotFoundError(ExecutionError):
    pass


class TabNotFoundError(ExecutionError):
    pass


class UnknownCommandError(ExecutionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown command: {name}")
        self.name = name


class InvalidParamsError(ExecutionError):
    pass
