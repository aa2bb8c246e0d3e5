from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from typing import Any

from .config import BridgeConfig
from .peer import PeerConnectionManager

_LOGGER = logging.getLogger("mcp.helios.gateway")

_MAX_FRAME_BYTES = 8_000_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _import_websockets():
    try:
        import websockets  # type: ignore[import-not-found]

        return websockets
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The extension gateway requires the 'websockets' Python package. Install it (pip install websockets)."
        ) from exc


def _format_remote(ws: Any) -> str | None:
    addr = getattr(ws, "remote_address", None)
    if isinstance(addr, (tuple, list)) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return str(addr) if addr else None


class WebSocketTransport:
    """Thread-safe handle on one server-side WebSocket connection.

    Sends are scheduled on the gateway loop; one ``send`` is one text message.
    """

    def __init__(self, ws: Any, loop: asyncio.AbstractEventLoop, *, send_timeout: float = 5.0) -> None:
        self._ws = ws
        self._loop = loop
        self._send_timeout = float(send_timeout)
        self._tasks: set[asyncio.Task] = set()

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _spawn(self, coro: Any, what: str) -> None:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._task_done(t, what))

    def _task_done(self, task: asyncio.Task, what: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.info("ws_%s_failed err=%s", what, exc)

    def send(self, data: bytes) -> None:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else str(data)
        if self._on_loop_thread():
            # Blocking on our own loop would deadlock; schedule and log failures.
            self._spawn(self._ws.send(text), "send")
            return
        fut = asyncio.run_coroutine_threadsafe(self._ws.send(text), self._loop)
        fut.result(timeout=self._send_timeout)

    def close(self) -> None:
        if self._loop.is_closed():
            return
        if self._on_loop_thread():
            self._spawn(self._ws.close(), "close")
            return
        with contextlib.suppress(RuntimeError):
            asyncio.run_coroutine_threadsafe(self._ws.close(), self._loop)


class BridgeGateway:
    """Local WebSocket listener the browser extension connects to.

    Runs its own asyncio loop in a daemon thread. Every accepted connection is
    handed to the ``PeerConnectionManager``, which keeps only the newest one.
    """

    def __init__(self, config: BridgeConfig, peers: PeerConnectionManager) -> None:
        self.config = config
        self.peers = peers
        self.host = config.listen_host
        self.port = int(config.listen_port)
        self._configured_port = int(config.listen_port)

        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._server: Any | None = None
        self._bind_error: str | None = None
        self._started_at_ms = 0

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._ready.clear()
        with self._lock:
            self._bind_error = None
            self._server = None

        t = threading.Thread(target=self._run_thread, name="helios-gateway", daemon=True)
        self._thread = t
        t.start()

        self._ready.wait(timeout=max(0.05, float(wait_timeout)))
        with self._lock:
            server = self._server
            bind_error = self._bind_error
        if server is not None:
            return
        if bind_error:
            raise RuntimeError(f"Extension gateway bind failed on {self.host}:{self.port}: {bind_error}")
        raise RuntimeError(f"Extension gateway failed to start on {self.host}:{self.port}")

    def stop(self, *, timeout: float = 2.0) -> None:
        loop = self._loop
        stop_event = self._stop_event
        if loop is not None and stop_event is not None and not loop.is_closed():
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop_event.set)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)
        self._thread = None
        self.peers.detach()

    def status(self) -> dict[str, Any]:
        with self._lock:
            listening = self._server is not None
            bind_error = self._bind_error
            started_at = self._started_at_ms
        return {
            "listening": listening,
            "host": self.host,
            "port": self.port,
            "configuredPort": self._configured_port,
            **({"bindError": bind_error} if bind_error else {}),
            **({"serverStartedAtMs": started_at} if started_at else {}),
            "peer": self.peers.status(),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        try:
            asyncio.run(self._run_async())
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._bind_error = self._bind_error or str(exc)
            _LOGGER.error("gateway_loop_failed err=%s", exc)
        finally:
            self._ready.set()

    async def _run_async(self) -> None:
        websockets = _import_websockets()
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        try:
            server = await websockets.serve(
                self._handle_connection,
                self.host,
                int(self.port),
                max_size=_MAX_FRAME_BYTES,
                ping_interval=20,
                ping_timeout=20,
            )
        except OSError as exc:
            with self._lock:
                self._bind_error = str(exc)
            _LOGGER.error("gateway_bind_failed host=%s port=%s err=%s", self.host, self.port, exc)
            return

        bound_port = self.port
        with contextlib.suppress(Exception):
            bound_port = int(list(server.sockets)[0].getsockname()[1])
        with self._lock:
            self._server = server
            self.port = bound_port
            self._started_at_ms = _now_ms()
        _LOGGER.info("gateway_listening url=ws://%s:%s", self.host, self.port)
        self._ready.set()

        try:
            await self._stop_event.wait()
        finally:
            with self._lock:
                self._server = None
            server.close()
            with contextlib.suppress(Exception):
                await server.wait_closed()
            _LOGGER.info("gateway_stopped")

    async def _handle_connection(self, ws: Any) -> None:
        loop = asyncio.get_running_loop()
        transport = WebSocketTransport(ws, loop)
        self.peers.attach(transport, remote=_format_remote(ws))
        try:
            async for raw in ws:
                self.peers.on_message(transport, raw)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.info("peer_socket_closed err=%s", exc)
        finally:
            self.peers.on_close(transport)
