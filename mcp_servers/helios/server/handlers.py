"""Tool handlers: thin pass-throughs from MCP tool calls to the bridge.

Handlers raise ``BridgeError`` subclasses untouched; the registry turns them
into error results.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Any

from .types import HandlerFunc, ToolResult

if TYPE_CHECKING:
    from ..bridge import HeliosBridge

SCREENSHOT_COST_HINT = (
    "Screenshot used ~1500 tokens. Next time, consider read_page (~400 tokens) unless you need visual verification."
)

_DATA_URL_PREFIX_RE = re.compile(r"^data:image/\w+;base64,")

_DEFAULT_NAVIGATE_WAIT_MS = 1000
_MAX_NAVIGATE_WAIT_MS = 30000


def _passthrough(name: str) -> HandlerFunc:
    def handler(bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
        return ToolResult.json(bridge.call(name, arguments))

    handler.__name__ = f"handle_{name}"
    return handler


def handle_ping(bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
    return ToolResult.json(bridge.call("ping"))


def handle_tabs_list(bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
    return ToolResult.json(bridge.call("tabs_list"))


def handle_navigate_and_read(bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
    tab_id = arguments.get("tabId")
    bridge.call("navigate", {"url": arguments.get("url"), "tabId": tab_id})

    raw_wait = arguments.get("waitMs")
    try:
        wait_ms = _DEFAULT_NAVIGATE_WAIT_MS if raw_wait is None else int(raw_wait)
    except (TypeError, ValueError):
        wait_ms = _DEFAULT_NAVIGATE_WAIT_MS
    wait_ms = max(0, min(wait_ms, _MAX_NAVIGATE_WAIT_MS))
    if wait_ms:
        time.sleep(wait_ms / 1000.0)

    return ToolResult.json(bridge.call("read_page", {"tabId": tab_id}))


def handle_screenshot(bridge: HeliosBridge, arguments: dict[str, Any]) -> ToolResult:
    result = bridge.call("screenshot", arguments)
    data_url = result.get("dataUrl") if isinstance(result, dict) else None
    if not isinstance(data_url, str) or not data_url:
        return ToolResult.error("Screenshot data is empty", tool="screenshot")
    mime_type = "image/jpeg" if data_url.startswith("data:image/jpeg") else "image/png"
    data_b64 = _DATA_URL_PREFIX_RE.sub("", data_url)
    return ToolResult.with_image(SCREENSHOT_COST_HINT, data_b64, mime_type)


TOOL_HANDLERS: dict[str, HandlerFunc] = {
    "ping": handle_ping,
    "tabs_list": handle_tabs_list,
    "navigate": _passthrough("navigate"),
    "click": _passthrough("click"),
    "type": _passthrough("type"),
    "read_page": _passthrough("read_page"),
    "navigate_and_read": handle_navigate_and_read,
    "screenshot": handle_screenshot,
    "console_logs": _passthrough("console_logs"),
    "evaluate": _passthrough("evaluate"),
}
