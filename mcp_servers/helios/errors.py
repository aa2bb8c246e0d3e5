"""Error taxonomy for the extension bridge.

Every error a caller of ``CallDispatcher.submit`` can observe derives from
``BridgeError`` so the MCP front end can render it as a tool failure.
"""

from __future__ import annotations


class BridgeError(Exception):
    pass


class NotConnectedError(BridgeError):
    """No usable peer at call time (or the write to it failed)."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Browser extension not connected. Please ensure the Helios extension is installed and connected."
        )


class CallTimeoutError(BridgeError):
    """The deadline elapsed before a reply arrived."""

    def __init__(self, call_id: str, timeout_ms: int | None = None, *, name: str | None = None) -> None:
        self.call_id = call_id
        self.timeout_ms = timeout_ms
        self.name = name
        if timeout_ms is not None:
            message = f"Request timed out after {timeout_ms}ms"
        else:
            message = "Request timed out"
        if name:
            message = f"{message}: {name}"
        super().__init__(message)


class RemoteError(BridgeError):
    """The peer answered ``ok: false``; the message is passed through verbatim."""

    def __init__(self, message: str, *, call_id: str | None = None) -> None:
        self.message = message
        self.call_id = call_id
        super().__init__(message)


class DecodeError(BridgeError):
    pass


class DuplicateIdError(BridgeError):
    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__(f"Correlation id already pending: {call_id}")
