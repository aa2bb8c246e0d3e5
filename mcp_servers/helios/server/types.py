"""
Type definitions for MCP server responses and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..bridge import HeliosBridge


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    data: Any | None = None

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        """Pretty-printed JSON text, the way the extension's replies are shown to the agent."""
        return cls(content=[ToolContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False))], data=data)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        suggestion: str | None = None,
    ) -> ToolResult:
        lines = [message]
        if suggestion:
            lines.append(f"Suggestion: {suggestion}")
        payload: dict[str, Any] = {"ok": False, "error": message}
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
        return cls(content=[ToolContent(type="text", text="\n".join(lines))], is_error=True, data=payload)

    @classmethod
    def with_image(cls, text: str, data_b64: str, mime_type: str = "image/png", data: Any | None = None) -> ToolResult:
        """Create result with text and image content. Omits image if data is empty."""
        if not data_b64:
            return cls.error("Screenshot data is empty")
        return cls(
            content=[
                ToolContent(type="text", text=text or ""),
                ToolContent(type="image", data=data_b64, mime_type=mime_type),
            ],
            data=data,
        )

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]


HandlerFunc = Callable[["HeliosBridge", dict[str, Any]], ToolResult]
