from __future__ import annotations

import asyncio
import json
import logging
import socket
import threading
import time

import pytest

from mcp_servers.helios.bridge import HeliosBridge
from mcp_servers.helios.config import BridgeConfig
from mcp_servers.helios.errors import CallTimeoutError, NotConnectedError, RemoteError
from mcp_servers.helios.gateway import WebSocketTransport

websockets = pytest.importorskip("websockets")


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _bridge() -> HeliosBridge:
    bridge = HeliosBridge(BridgeConfig(listen_port=_free_port(), request_timeout_ms=2000))
    bridge.start(wait_timeout=5.0)
    return bridge


async def _respond(ws, *, tag: str, stop: threading.Event) -> None:
    while not stop.is_set():
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=0.2)
        except asyncio.TimeoutError:
            continue
        msg = json.loads(raw)
        if msg.get("type") == "hold":
            continue
        if msg.get("type") == "ping":
            reply = {"id": msg["id"], "success": True, "data": {"pong": True, "peer": tag}}
        elif msg.get("type") == "echo":
            reply = {"id": msg["id"], "success": True, "data": msg.get("payload")}
        else:
            reply = {"id": msg["id"], "success": False, "error": f"Unknown message type: {msg.get('type')}"}
        await ws.send(json.dumps(reply))


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_gateway_roundtrip_with_extension_stub() -> None:
    bridge = _bridge()
    stop = threading.Event()
    errors: list[BaseException] = []

    def _extension() -> None:
        async def _main() -> None:
            async with websockets.connect(f"ws://127.0.0.1:{bridge.gateway.port}", ping_interval=None) as ws:
                # Garbage first: must be dropped without closing the connection.
                await ws.send("this is not json")
                await _respond(ws, tag="only", stop=stop)

        try:
            asyncio.run(_main())
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    t = threading.Thread(target=_extension, daemon=True)
    t.start()
    try:
        assert bridge.wait_for_connection(timeout=3.0) is True
        assert bridge.call("ping", timeout_ms=2000) == {"pong": True, "peer": "only"}
        assert bridge.call("echo", {"nested": {"a": [1, 2]}}, timeout_ms=2000) == {"nested": {"a": [1, 2]}}
        with pytest.raises(RemoteError) as excinfo:
            bridge.call("screenshot", timeout_ms=2000)
        assert excinfo.value.message == "Unknown message type: screenshot"

        held = bridge.submit("hold", timeout_ms=300)
        st = bridge.status()
        assert st["listening"] is True
        assert st["peer"]["connected"] is True
        assert st["pendingCalls"] == 1
        with pytest.raises(CallTimeoutError):
            held.result(timeout=3.0)
        assert bridge.status()["pendingCalls"] == 0
    finally:
        stop.set()
        t.join(timeout=3.0)
        bridge.stop()
    assert not errors


def test_second_connection_replaces_first() -> None:
    bridge = _bridge()
    stop = threading.Event()
    second_ready = threading.Event()
    first_closed = threading.Event()

    def _extensions() -> None:
        async def _main() -> None:
            uri = f"ws://127.0.0.1:{bridge.gateway.port}"
            first = await websockets.connect(uri, ping_interval=None)
            while bridge.peers.current() is None:
                await asyncio.sleep(0.01)
            first_session = bridge.peers.current().session_id

            async with websockets.connect(uri, ping_interval=None) as second:
                while bridge.peers.current() is None or bridge.peers.current().session_id == first_session:
                    await asyncio.sleep(0.01)
                second_ready.set()
                try:
                    await asyncio.wait_for(first.wait_closed(), timeout=2.0)
                    first_closed.set()
                except asyncio.TimeoutError:
                    pass
                await _respond(second, tag="second", stop=stop)

        asyncio.run(_main())

    t = threading.Thread(target=_extensions, daemon=True)
    t.start()
    try:
        assert second_ready.wait(timeout=3.0)
        assert first_closed.wait(timeout=3.0)
        assert bridge.call("ping", timeout_ms=2000) == {"pong": True, "peer": "second"}
    finally:
        stop.set()
        t.join(timeout=3.0)
        bridge.stop()


def test_disconnect_returns_bridge_to_no_peer() -> None:
    bridge = _bridge()

    async def _connect_and_leave() -> None:
        async with websockets.connect(f"ws://127.0.0.1:{bridge.gateway.port}", ping_interval=None):
            await asyncio.sleep(0.05)

    try:
        asyncio.run(_connect_and_leave())
        assert _wait_until(lambda: not bridge.is_connected())
        with pytest.raises(NotConnectedError):
            bridge.submit("ping").result(timeout=0)
    finally:
        bridge.stop()


def test_submit_without_extension_is_not_connected() -> None:
    bridge = _bridge()
    try:
        with pytest.raises(NotConnectedError):
            bridge.call("ping")
        assert bridge.status()["peer"]["connected"] is False
    finally:
        bridge.stop()


def test_start_fails_when_port_is_taken() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = int(busy.getsockname()[1])

        bridge = HeliosBridge(BridgeConfig(listen_port=port))
        with pytest.raises(RuntimeError) as excinfo:
            bridge.start(wait_timeout=3.0)
        assert "bind failed" in str(excinfo.value)
        assert bridge.gateway.status()["listening"] is False
        bridge.stop()


def test_send_failure_on_gateway_loop_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    class _BrokenSocket:
        async def send(self, text: str) -> None:
            raise ConnectionError("peer went away")

        async def close(self) -> None:
            return None

    async def _main() -> WebSocketTransport:
        transport = WebSocketTransport(_BrokenSocket(), asyncio.get_running_loop())
        transport.send(b'{"id":"msg_1","type":"ping"}')
        transport.close()
        for _ in range(5):
            await asyncio.sleep(0)
        return transport

    with caplog.at_level(logging.INFO, logger="mcp.helios.gateway"):
        transport = asyncio.run(_main())
    assert "ws_send_failed" in caplog.text
    assert "peer went away" in caplog.text
    assert transport._tasks == set()
