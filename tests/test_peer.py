from __future__ import annotations

import logging
import threading

import pytest

from mcp_servers.helios.codec import CallEnvelope, ResultEnvelope, encode
from mcp_servers.helios.errors import NotConnectedError
from mcp_servers.helios.peer import PeerConnectionManager, PeerState


class _FakeTransport:
    def __init__(self, *, fail_send: bool = False, fail_close: bool = False) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self.fail_send = fail_send
        self.fail_close = fail_close

    def send(self, data: bytes) -> None:
        if self.fail_send or self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise OSError("close failed")


def _manager() -> tuple[PeerConnectionManager, list[ResultEnvelope]]:
    results: list[ResultEnvelope] = []
    return PeerConnectionManager(on_result=results.append), results


# ═══════════════════════════════════════════════════════════════════════════════
# STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════════════


def test_starts_without_peer_and_refuses_sends() -> None:
    mgr, _ = _manager()
    assert mgr.state is PeerState.NO_PEER
    assert mgr.is_connected() is False
    assert mgr.current() is None
    with pytest.raises(NotConnectedError):
        mgr.send(b"{}")


def test_attach_activates_and_sends_to_transport() -> None:
    mgr, _ = _manager()
    t = _FakeTransport()
    session = mgr.attach(t, remote="127.0.0.1:5555")
    assert mgr.state is PeerState.PEER_ACTIVE
    assert mgr.current() is session
    assert session.transport is t
    mgr.send(b"frame")
    assert t.sent == [b"frame"]
    st = mgr.status()
    assert st["connected"] is True
    assert st["sessionId"] == session.session_id
    assert st["remote"] == "127.0.0.1:5555"


def test_new_transport_replaces_and_closes_old_one() -> None:
    mgr, _ = _manager()
    old = _FakeTransport()
    new = _FakeTransport()
    s1 = mgr.attach(old)
    s2 = mgr.attach(new)

    assert old.closed is True
    assert new.closed is False
    assert s1.session_id != s2.session_id
    assert mgr.current() is s2

    mgr.send(b"after")
    assert old.sent == []
    assert new.sent == [b"after"]


def test_close_errors_on_replacement_are_ignored() -> None:
    mgr, _ = _manager()
    mgr.attach(_FakeTransport(fail_close=True))
    new = _FakeTransport()
    mgr.attach(new)
    assert mgr.current().transport is new


def test_close_of_replaced_transport_keeps_new_peer() -> None:
    mgr, _ = _manager()
    old = _FakeTransport()
    new = _FakeTransport()
    mgr.attach(old)
    mgr.attach(new)

    assert mgr.on_close(old) is False
    assert mgr.state is PeerState.PEER_ACTIVE
    assert mgr.current().transport is new


def test_close_of_current_transport_drops_to_no_peer() -> None:
    mgr, _ = _manager()
    t = _FakeTransport()
    mgr.attach(t)
    assert mgr.on_close(t) is True
    assert mgr.state is PeerState.NO_PEER
    assert mgr.on_close(t) is False
    with pytest.raises(NotConnectedError):
        mgr.send(b"x")


def test_detach_closes_current_transport() -> None:
    mgr, _ = _manager()
    t = _FakeTransport()
    mgr.attach(t)
    mgr.detach()
    assert t.closed is True
    assert mgr.is_connected() is False
    mgr.detach()


def test_failed_transport_write_surfaces_as_not_connected() -> None:
    mgr, _ = _manager()
    mgr.attach(_FakeTransport(fail_send=True))
    with pytest.raises(NotConnectedError) as excinfo:
        mgr.send(b"x")
    assert "socket closed" in str(excinfo.value)


def test_wait_for_connection_unblocks_on_attach() -> None:
    mgr, _ = _manager()
    assert mgr.wait_for_connection(timeout=0.01) is False

    timer = threading.Timer(0.05, lambda: mgr.attach(_FakeTransport()))
    timer.start()
    try:
        assert mgr.wait_for_connection(timeout=2.0) is True
    finally:
        timer.cancel()


# ═══════════════════════════════════════════════════════════════════════════════
# INBOUND FRAMES
# ═══════════════════════════════════════════════════════════════════════════════


def test_result_frames_are_forwarded() -> None:
    mgr, results = _manager()
    t = _FakeTransport()
    mgr.attach(t)
    mgr.on_message(t, encode(ResultEnvelope.success("msg_1", {"pong": True})))
    mgr.on_message(t, '{"id": "msg_2", "success": false, "error": "nope"}')
    assert results == [
        ResultEnvelope.success("msg_1", {"pong": True}),
        ResultEnvelope.failure("msg_2", "nope"),
    ]


def test_malformed_frame_is_logged_and_connection_stays_open(caplog: pytest.LogCaptureFixture) -> None:
    mgr, results = _manager()
    t = _FakeTransport()
    mgr.attach(t)
    with caplog.at_level(logging.WARNING, logger="mcp.helios.peer"):
        mgr.on_message(t, b"{not json")
    assert "frame_decode_failed" in caplog.text
    assert results == []
    assert mgr.is_connected() is True
    assert t.closed is False

    mgr.on_message(t, encode(ResultEnvelope.success("msg_1")))
    assert results == [ResultEnvelope.success("msg_1")]


def test_frames_from_replaced_transport_are_dropped() -> None:
    mgr, results = _manager()
    old = _FakeTransport()
    mgr.attach(old)
    mgr.attach(_FakeTransport())
    mgr.on_message(old, encode(ResultEnvelope.success("msg_1", "stale")))
    assert results == []


def test_call_frames_from_peer_are_ignored() -> None:
    mgr, results = _manager()
    t = _FakeTransport()
    mgr.attach(t)
    mgr.on_message(t, encode(CallEnvelope(id="msg_9", name="ping")))
    assert results == []


def test_every_state_change_is_logged_once(caplog: pytest.LogCaptureFixture) -> None:
    mgr, _ = _manager()
    old = _FakeTransport()
    new = _FakeTransport()
    with caplog.at_level(logging.INFO, logger="mcp.helios.peer"):
        s1 = mgr.attach(old, remote="127.0.0.1:1")
        s2 = mgr.attach(new)
        mgr.on_close(new)
        mgr.detach()

    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("peer_state")]
    assert lines == [
        f"peer_state no_peer->peer_active session={s1.session_id} remote=127.0.0.1:1",
        f"peer_state peer_active->peer_active session={s2.session_id} remote=-",
        f"peer_state peer_active->no_peer session={s2.session_id} remote=-",
    ]
