from __future__ import annotations

from concurrent.futures import Future
from typing import Any

from .config import BridgeConfig
from .dispatcher import CallDispatcher
from .gateway import BridgeGateway
from .peer import PeerConnectionManager
from .pending import PendingCallTable


class HeliosBridge:
    """Wires the bridge pieces together: one instance per process.

    The MCP front end only talks to ``submit``/``call``; the gateway feeds the
    peer manager, the manager hands replies to the dispatcher.
    """

    def __init__(self, config: BridgeConfig | None = None) -> None:
        self.config = config or BridgeConfig.from_env()
        self.peers = PeerConnectionManager()
        self.pending = PendingCallTable()
        self.dispatcher = CallDispatcher(
            self.peers,
            pending=self.pending,
            default_timeout_ms=self.config.request_timeout_ms,
        )
        self.gateway = BridgeGateway(self.config, self.peers)

    def start(self, *, wait_timeout: float = 5.0) -> None:
        self.gateway.start(wait_timeout=wait_timeout)

    def stop(self, *, timeout: float = 2.0) -> None:
        self.gateway.stop(timeout=timeout)
        self.dispatcher.close()

    def submit(self, name: str, payload: Any = None, timeout_ms: int | None = None) -> Future:
        return self.dispatcher.submit(name, payload, timeout_ms)

    def call(self, name: str, payload: Any = None, timeout_ms: int | None = None) -> Any:
        return self.dispatcher.call(name, payload, timeout_ms)

    def is_connected(self) -> bool:
        return self.peers.is_connected()

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        return self.peers.wait_for_connection(timeout=timeout)

    def status(self) -> dict[str, Any]:
        return {
            **self.gateway.status(),
            "pendingCalls": len(self.pending),
            "requestTimeoutMs": self.config.request_timeout_ms,
        }
