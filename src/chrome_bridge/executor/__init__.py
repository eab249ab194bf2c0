"""Command executor: maps a command onto the native or DOM strategy."""

from __future__ import annotations

import logging
from typing import Any

from chrome_bridge.cdp.browser import BrowserLink
from chrome_bridge.executor.commands import (
    STRATEGIES,
    Command,
    CommandName,
    ExecutionStrategy,
    Strategy,
)
from chrome_bridge.executor.dom import DomStrategy
from chrome_bridge.executor.native import NativeStrategy

logger = logging.getLogger(__name__)

__all__ = [
    "STRATEGIES",
    "Command",
    "CommandExecutor",
    "CommandName",
    "DomStrategy",
    "ExecutionStrategy",
    "NativeStrategy",
    "Strategy",
]


class CommandExecutor:
    def __init__(
        self,
        browser: BrowserLink,
        native: ExecutionStrategy | None = None,
        dom: ExecutionStrategy | None = None,
    ) -> None:
        self.browser = browser
        self._strategies: dict[Strategy, ExecutionStrategy] = {
            Strategy.NATIVE: native or NativeStrategy(browser),
            Strategy.DOM: dom or DomStrategy(browser),
        }

    async def execute(self, command: Command) -> Any:
        strategy = self._strategies[command.strategy]
        logger.debug(f"Executing {command.name.value} via {command.strategy.value} strategy")
        return await strategy.run(command.name, command.params)

    async def handle(self, name: str, params: dict[str, Any] | None = None) -> Any:
        """Parse and execute a raw command. Raises UnknownCommandError."""
        return await self.execute(Command.parse(name, params))

    async def close(self) -> None:
        await self.browser.close()
