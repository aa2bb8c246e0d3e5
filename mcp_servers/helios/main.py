"""
Helios MCP server: bridges an MCP client (stdio) to the Helios Chrome extension (WebSocket).

This module provides the main entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

from .bridge import HeliosBridge
from .config import BridgeConfig
from .errors import BridgeError
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.redaction import redact_jsonrpc_for_log, redact_tool_arguments
from .server.registry import create_default_registry
from .server.types import ToolResult

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("mcp.helios")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
]


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    data = json.dumps(payload, ensure_ascii=False)
    sys.stdout.buffer.write((data + "\n").encode())
    sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read JSON-RPC message from stdin. Returns None on EOF, {} for a blank or garbled line."""
    line = sys.stdin.buffer.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    try:
        msg = json.loads(line.decode())
    except ValueError:
        logger.warning("stdin_frame_invalid len=%d", len(line))
        return {}
    if not isinstance(msg, dict):
        return {}
    if os.environ.get("MCP_TRACE"):
        logger.info("recv %s", redact_jsonrpc_for_log(msg))
    return msg


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(self, bridge: HeliosBridge | None = None, *, start_gateway: bool = True) -> None:
        self.config = bridge.config if bridge is not None else BridgeConfig.from_env()
        self.bridge = bridge if bridge is not None else HeliosBridge(self.config)
        self.registry = create_default_registry()
        self.bridge_error: str | None = None

        if start_gateway:
            try:
                self.bridge.start()
            except Exception as exc:  # noqa: BLE001
                # Fail-soft: keep serving MCP so tool calls can report the problem.
                self.bridge_error = str(exc)
                logger.error("bridge_start_failed: %s", exc)

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        """Handle initialize request."""
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": initialize_result(protocol),
            }
        )

    def handle_list_tools(self, request_id: Any) -> None:
        """Handle tools/list request."""
        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"tools": tools_list()},
            }
        )

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        safe_args = redact_tool_arguments(name, arguments)
        logger.info("tool=%s args=%s", name, safe_args)

    def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        self._log_call(name, arguments)

        try:
            if not name:
                result = ToolResult.error("Missing tool name")
            elif not self.registry.has(name):
                result = ToolResult.error(f"Unknown tool: {name}", tool=name)
            elif self.bridge_error and not self.bridge.is_connected():
                result = ToolResult.error(f"Extension gateway is not running: {self.bridge_error}", tool=name)
            else:
                result = self.registry.dispatch(name, self.bridge, arguments)
        except BridgeError as exc:
            logger.info("bridge_error tool=%s err=%s", name, exc)
            result = ToolResult.error(str(exc), tool=name)
        except Exception as exc:
            logger.exception("tool_call_failed")
            result = ToolResult.error(str(exc), tool=name)

        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"content": result.to_content_list(), "isError": result.is_error},
            }
        )

    def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to appropriate handler."""
        if not message:
            return

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif method == "notifications/initialized":
            return
        elif method in ("tools/list", "list_tools"):
            self.handle_list_tools(request_id)
        elif method in ("tools/call", "call_tool"):
            name = params.get("name")
            arguments = params.get("arguments") or {}
            self.handle_call_tool(request_id, name or "", arguments)
        elif method == "ping":
            _write_message({"jsonrpc": "2.0", "id": request_id, "result": {}})
        elif request_id is None:
            # Unknown notification: nothing to answer.
            return
        else:
            _write_message(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method {method} not found"},
                }
            )

    def close(self) -> None:
        self.bridge.stop()


def main() -> None:
    """Main entry point for MCP server."""
    server = McpServer()
    logger.info("Starting Helios MCP server (ws://%s:%s)", server.config.listen_host, server.config.listen_port)
    try:
        while True:
            message = _read_message()
            if message is None:
                break
            server.dispatch(message)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down...")
        server.close()


if __name__ == "__main__":
    main()
