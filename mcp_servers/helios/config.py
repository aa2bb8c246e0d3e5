from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_LISTEN_HOST = "127.0.0.1"
DEFAULT_LISTEN_PORT = 9333
DEFAULT_REQUEST_TIMEOUT_MS = 30000


def _int_env(name: str, *, default: int, lo: int, hi: int) -> int:
    try:
        val = int(os.environ.get(name) or default)
    except Exception:
        val = default
    if val < lo or val > hi:
        return default
    return val


@dataclass(slots=True)
class BridgeConfig:
    listen_port: int = DEFAULT_LISTEN_PORT
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    # Gateway bind address (process-level, not part of the bridge core).
    listen_host: str = DEFAULT_LISTEN_HOST

    @classmethod
    def from_env(cls) -> BridgeConfig:
        host = (os.environ.get("HELIOS_LISTEN_HOST") or "").strip() or DEFAULT_LISTEN_HOST
        port = _int_env("HELIOS_LISTEN_PORT", default=DEFAULT_LISTEN_PORT, lo=1, hi=65535)
        timeout_ms = _int_env(
            "HELIOS_REQUEST_TIMEOUT_MS",
            default=DEFAULT_REQUEST_TIMEOUT_MS,
            lo=1,
            hi=3_600_000,
        )
        return cls(listen_port=port, request_timeout_ms=timeout_ms, listen_host=host)
