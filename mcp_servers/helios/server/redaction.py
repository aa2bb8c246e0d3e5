"""Redaction helpers for logging tool calls and JSON-RPC traffic.

Typed text, evaluated code and screenshots never reach the log verbatim.
"""

from __future__ import annotations

from typing import Any

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "cookie",
    "authorization",
    "api_key",
    "apikey",
)

# Arguments that carry user content rather than addressing info.
_CONTENT_ARGS: dict[str, set[str]] = {
    "type": {"text"},
    "evaluate": {"code"},
}

_MAX_LOG_STR = 200


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k == "auth":
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)


def _summary(value: Any) -> str:
    if isinstance(value, str):
        return f"<redacted str len={len(value)}>"
    if isinstance(value, (list, tuple)):
        return f"<redacted list len={len(value)}>"
    if isinstance(value, dict):
        return f"<redacted dict keys={len(value)}>"
    return "<redacted>"


def _redact_any(value: Any, *, key: str | None) -> Any:
    if key is not None and is_sensitive_key(key):
        return _summary(value)
    if isinstance(value, dict):
        return {k: _redact_any(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_any(v, key=None) for v in value]
    if isinstance(value, str) and len(value) > _MAX_LOG_STR:
        return value[:_MAX_LOG_STR] + f"...<truncated len={len(value)}>"
    return value


def redact_tool_arguments(tool: str, args: dict[str, Any]) -> dict[str, Any]:
    """Redact tool arguments for safe logging."""
    if not isinstance(args, dict):
        return {}
    content_keys = _CONTENT_ARGS.get(tool, set())
    out: dict[str, Any] = {}
    for k, v in args.items():
        if k in content_keys:
            out[k] = _summary(v)
        else:
            out[k] = _redact_any(v, key=str(k))
    return out


def redact_jsonrpc_for_log(payload: dict[str, Any]) -> dict[str, Any]:
    msg = dict(payload)
    if msg.get("method") in {"tools/call", "call_tool"} and isinstance(msg.get("params"), dict):
        params = dict(msg["params"])
        name = params.get("name")
        args = params.get("arguments")
        if isinstance(name, str) and isinstance(args, dict):
            params["arguments"] = redact_tool_arguments(name, args)
        msg["params"] = params
    return msg
