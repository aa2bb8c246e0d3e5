from __future__ import annotations

import enum
import logging
import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .codec import CallEnvelope, ResultEnvelope, decode
from .errors import DecodeError, NotConnectedError

_LOGGER = logging.getLogger("mcp.helios.peer")


def _now_ms() -> int:
    return int(time.time() * 1000)


class Transport(Protocol):
    """One transport-level connection to the browser-side agent.

    ``send`` writes one complete message and must be safe to call from any
    thread; it raises on failure.
    """

    def send(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class PeerState(enum.Enum):
    NO_PEER = "no_peer"
    PEER_ACTIVE = "peer_active"


@dataclass(frozen=True, slots=True)
class PeerSession:
    transport: Any
    session_id: str
    connected_at_ms: int
    remote: str | None = None


class PeerConnectionManager:
    """Owns the single logical connection to the browser extension.

    A new transport replaces the current one (the old one is closed first).
    Loss is detected lazily: ``on_close`` only drops the session, calls that
    were in flight on it run into their own deadlines.
    """

    def __init__(self, *, on_result: Callable[[ResultEnvelope], None] | None = None) -> None:
        self._lock = threading.Lock()
        self._state = PeerState.NO_PEER
        self._session: PeerSession | None = None
        self._on_result = on_result
        self._connected = threading.Event()
        self._seq = 0

    def set_result_handler(self, on_result: Callable[[ResultEnvelope], None] | None) -> None:
        self._on_result = on_result

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> PeerState:
        with self._lock:
            return self._state

    def current(self) -> PeerSession | None:
        with self._lock:
            return self._session

    def is_connected(self) -> bool:
        with self._lock:
            return self._state is PeerState.PEER_ACTIVE

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        return bool(self._connected.wait(timeout=max(0.0, float(timeout))))

    def status(self) -> dict[str, Any]:
        with self._lock:
            session = self._session
            state = self._state
        return {
            "state": state.value,
            "connected": state is PeerState.PEER_ACTIVE,
            **({"sessionId": session.session_id} if session is not None else {}),
            **({"connectedAtMs": session.connected_at_ms} if session is not None else {}),
            **({"remote": session.remote} if session is not None and session.remote else {}),
        }

    def _transition(self, state: PeerState, session: PeerSession | None) -> PeerSession | None:
        """Swap state + session. Caller holds ``self._lock``; returns the previous session."""
        previous = self._session
        prev_state = self._state
        self._state = state
        self._session = session
        if prev_state is not state or previous is not session:
            subject = session if session is not None else previous
            _LOGGER.info(
                "peer_state %s->%s session=%s remote=%s",
                prev_state.value,
                state.value,
                subject.session_id if subject is not None else "-",
                (subject.remote if subject is not None else None) or "-",
            )
        if state is PeerState.PEER_ACTIVE:
            self._connected.set()
        else:
            self._connected.clear()
        return previous

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def attach(self, transport: Any, *, remote: str | None = None) -> PeerSession:
        with self._lock:
            self._seq += 1
            session = PeerSession(
                transport=transport,
                session_id=f"ext-{_now_ms()}-{os.getpid()}-{self._seq}",
                connected_at_ms=_now_ms(),
                remote=remote,
            )
            previous = self._transition(PeerState.PEER_ACTIVE, session)

        if previous is not None and previous.transport is not transport:
            _LOGGER.info("peer_replaced old=%s new=%s", previous.session_id, session.session_id)
            try:
                previous.transport.close()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.debug("peer_close_failed session=%s err=%s", previous.session_id, exc)
        return session

    def on_close(self, transport: Any) -> bool:
        """Drop the session if ``transport`` is still the current one."""
        with self._lock:
            session = self._session
            if session is None or session.transport is not transport:
                return False
            self._transition(PeerState.NO_PEER, None)
        return True

    def detach(self) -> None:
        """Close and forget the current peer (bridge shutdown)."""
        with self._lock:
            previous = self._transition(PeerState.NO_PEER, None)
        if previous is None:
            return
        try:
            previous.transport.close()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.debug("peer_close_failed session=%s err=%s", previous.session_id, exc)

    # ─────────────────────────────────────────────────────────────────────────
    # I/O
    # ─────────────────────────────────────────────────────────────────────────

    def send(self, data: bytes) -> None:
        with self._lock:
            session = self._session
        if session is None:
            raise NotConnectedError()
        try:
            session.transport.send(data)
        except NotConnectedError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise NotConnectedError(f"Extension send failed: {exc}") from exc

    def on_message(self, transport: Any, data: bytes | str) -> None:
        with self._lock:
            session = self._session
        if session is None or session.transport is not transport:
            _LOGGER.debug("frame_from_stale_peer dropped")
            return

        try:
            envelope = decode(data)
        except DecodeError as exc:
            _LOGGER.warning("frame_decode_failed session=%s err=%s", session.session_id, exc)
            return

        if isinstance(envelope, CallEnvelope):
            _LOGGER.debug("unexpected_call_from_peer id=%s type=%s", envelope.id, envelope.name)
            return

        handler = self._on_result
        if handler is None:
            _LOGGER.debug("result_without_handler id=%s", envelope.id)
            return
        handler(envelope)
