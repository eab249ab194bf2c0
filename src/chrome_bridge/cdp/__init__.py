"""Chrome DevTools Protocol plumbing."""

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.cdp.buffers import EventBuffer
from chrome_bridge.cdp.connection import CDPConnection, CDPEvent
from chrome_bridge.cdp.session import DebuggingSession, SessionController, SessionStore

__all__ = [
    "BrowserLink",
    "CDPConnection",
    "CDPEvent",
    "DebuggingSession",
    "EventBuffer",
    "SessionController",
    "SessionStore",
]
