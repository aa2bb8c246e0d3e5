"""
Tool registry with dispatch table for MCP server.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import CallTimeoutError, NotConnectedError, RemoteError
from .types import HandlerFunc, ToolResult

if TYPE_CHECKING:
    from ..bridge import HeliosBridge

logger = logging.getLogger("mcp.helios.registry")

NOT_CONNECTED_SUGGESTION = (
    "Open the Helios extension popup and click Connect, then retry (the bridge listens on ws://{host}:{port})"
)
TIMEOUT_SUGGESTION = "The page may still be busy; retry, or call ping to check the extension is responsive"


class ToolRegistry:
    """Registry for tool handlers; maps bridge failures to tool error results."""

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFunc] = {}

    def register_many(self, handlers: dict[str, HandlerFunc]) -> None:
        """Register multiple handlers at once."""
        self._handlers.update(handlers)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def dispatch(self, name: str, bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
        """
        Dispatch tool call to the registered handler.

        Raises:
            KeyError: If tool not found
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"Unknown tool: {name}")

        try:
            return handler(bridge, arguments)
        except NotConnectedError as exc:
            logger.info("tool_not_connected tool=%s", name)
            cfg = bridge.config
            return ToolResult.error(
                str(exc),
                tool=name,
                suggestion=NOT_CONNECTED_SUGGESTION.format(host=cfg.listen_host, port=cfg.listen_port),
            )
        except CallTimeoutError as exc:
            logger.info("tool_timeout tool=%s id=%s", name, exc.call_id)
            return ToolResult.error(str(exc), tool=name, suggestion=TIMEOUT_SUGGESTION)
        except RemoteError as exc:
            logger.info("tool_remote_error tool=%s message=%s", name, exc.message)
            return ToolResult.error(exc.message, tool=name)


def create_default_registry() -> ToolRegistry:
    from .handlers import TOOL_HANDLERS

    registry = ToolRegistry()
    registry.register_many(TOOL_HANDLERS)
    return registry
