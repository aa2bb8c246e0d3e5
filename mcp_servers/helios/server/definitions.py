"""Tool schema definitions exposed through tools/list."""

from __future__ import annotations

from typing import Any

_TAB_ID: dict[str, Any] = {"type": "number", "description": "Tab ID. If not provided, uses active tab."}


def _schema(properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties or {}, "required": required or []}


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "ping",
        "description": "Test connection to browser extension. Returns pong if connected.",
        "inputSchema": _schema(),
    },
    {
        "name": "tabs_list",
        "description": "List all open browser tabs with their IDs, URLs, and titles.",
        "inputSchema": _schema(),
    },
    {
        "name": "navigate",
        "description": "Navigate a tab to a URL. If no tabId provided, uses the active tab.",
        "inputSchema": _schema(
            {
                "url": {"type": "string", "description": "The URL to navigate to"},
                "tabId": {"type": "number", "description": "Tab ID to navigate. If not provided, uses active tab."},
            },
            ["url"],
        ),
    },
    {
        "name": "click",
        "description": "Click an element on the page by CSS selector or coordinates.",
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "selector": {"type": "string", "description": "CSS selector of element to click"},
                "x": {"type": "number", "description": "X coordinate to click (used if no selector)"},
                "y": {"type": "number", "description": "Y coordinate to click (used if no selector)"},
            }
        ),
    },
    {
        "name": "type",
        "description": "Type text into an input element.",
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "selector": {"type": "string", "description": "CSS selector of input element"},
                "text": {"type": "string", "description": "Text to type"},
                "clear": {"type": "boolean", "description": "Clear existing text before typing (default: true)"},
            },
            ["selector", "text"],
        ),
    },
    {
        "name": "read_page",
        "description": (
            "PREFERRED: Get structured DOM representation. Returns interactive elements with refs. "
            "Uses ~200-500 tokens vs ~1500 for screenshots. Use this FIRST to understand page structure "
            "before taking actions. Only use screenshot if you need to verify visual layout."
        ),
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "selector": {"type": "string", "description": "CSS selector to scope reading (default: body)"},
                "maxElements": {"type": "number", "description": "Maximum elements to return (default: 100)"},
            }
        ),
    },
    {
        "name": "navigate_and_read",
        "description": (
            "EFFICIENT: Navigate to URL and immediately read page structure in one call. "
            "Saves a round-trip vs navigate + read_page separately."
        ),
        "inputSchema": _schema(
            {
                "url": {"type": "string", "description": "The URL to navigate to"},
                "tabId": _TAB_ID,
                "waitMs": {"type": "number", "description": "Milliseconds to wait after navigation (default: 1000)"},
            },
            ["url"],
        ),
    },
    {
        "name": "screenshot",
        "description": (
            "EXPENSIVE (~1500 tokens): Capture visible area as image. Only use when you MUST verify visual "
            "layout, colors, or positioning. For finding/clicking elements, use read_page instead."
        ),
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "format": {
                    "type": "string",
                    "enum": ["jpeg", "png"],
                    "description": "Image format (default: jpeg - smaller/cheaper)",
                },
                "quality": {"type": "number", "description": "JPEG quality 0-100 (default: 60 for efficiency)"},
            }
        ),
    },
    {
        "name": "console_logs",
        "description": (
            "Read console logs from the page. Injects a log interceptor if not already present. "
            "Essential for debugging."
        ),
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "clear": {"type": "boolean", "description": "Clear logs after reading (default: false)"},
                "level": {
                    "type": "string",
                    "enum": ["all", "log", "warn", "error", "info", "debug"],
                    "description": "Filter by log level (default: all)",
                },
                "limit": {"type": "number", "description": "Max number of logs to return (default: 100)"},
            }
        ),
    },
    {
        "name": "evaluate",
        "description": (
            "Execute JavaScript code in the page context. Returns the result. "
            "Use for custom automation or debugging."
        ),
        "inputSchema": _schema(
            {
                "tabId": _TAB_ID,
                "code": {"type": "string", "description": "JavaScript code to execute"},
            },
            ["code"],
        ),
    },
]
