from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from concurrent.futures import Future, InvalidStateError
from typing import Any

from .codec import CallEnvelope, ResultEnvelope, encode
from .errors import DuplicateIdError, NotConnectedError, RemoteError
from .peer import PeerConnectionManager
from .pending import Outcome, PendingCallTable

_LOGGER = logging.getLogger("mcp.helios.dispatcher")

_MAX_ID_ATTEMPTS = 16


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_message_id() -> str:
    return f"msg_{_now_ms()}_{secrets.token_hex(4)}"


def _failed(exc: BaseException) -> Future:
    fut: Future = Future()
    fut.set_exception(exc)
    return fut


class CallDispatcher:
    """Entry point for tool calls: correlate, send, and wait for the reply.

    ``submit`` returns a ``concurrent.futures.Future`` so callers on any thread
    can block on it (``fut.result()``) or wrap it for asyncio
    (``asyncio.wrap_future``).
    """

    def __init__(
        self,
        peers: PeerConnectionManager,
        *,
        pending: PendingCallTable | None = None,
        default_timeout_ms: int = 30000,
        id_factory: Callable[[], str] = generate_message_id,
    ) -> None:
        self.peers = peers
        self.pending = pending if pending is not None else PendingCallTable()
        self.default_timeout_ms = int(default_timeout_ms)
        self._id_factory = id_factory
        peers.set_result_handler(self._on_result)

    def submit(self, name: str, payload: Any = None, timeout_ms: int | None = None) -> Future:
        if not isinstance(name, str) or not name.strip():
            return _failed(ValueError("call name is required"))
        if not self.peers.is_connected():
            return _failed(NotConnectedError())

        try:
            timeout_ms = max(1, int(timeout_ms) if timeout_ms is not None else self.default_timeout_ms)
        except (TypeError, ValueError, OverflowError) as exc:
            return _failed(exc)
        fut: Future = Future()

        def _on_settle(outcome: Outcome) -> None:
            _resolve(fut, outcome)

        deadline = time.monotonic() + timeout_ms / 1000.0
        call_id: str | None = None
        data = b""
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate in self.pending:
                continue
            try:
                data = encode(CallEnvelope(id=candidate, name=name, payload=payload))
            except (TypeError, ValueError) as exc:
                return _failed(exc)
            try:
                self.pending.register(candidate, deadline, _on_settle, timeout_ms=timeout_ms, name=name)
            except DuplicateIdError:
                # Another submitter registered the same id in between; draw again.
                continue
            call_id = candidate
            break
        if call_id is None:
            return _failed(RuntimeError("could not allocate a unique correlation id"))

        try:
            self.peers.send(data)
        except NotConnectedError as exc:
            _LOGGER.info("send_failed id=%s name=%s err=%s", call_id, name, exc)
            self.pending.settle(call_id, exc)
        return fut

    def call(self, name: str, payload: Any = None, timeout_ms: int | None = None) -> Any:
        """Blocking variant of ``submit``: returns the reply data or raises."""
        return self.submit(name, payload, timeout_ms).result()

    def close(self) -> int:
        return self.pending.fail_all(NotConnectedError("Bridge stopped"))

    def _on_result(self, envelope: ResultEnvelope) -> None:
        self.pending.settle(envelope.id, envelope)


def _resolve(fut: Future, outcome: Outcome) -> None:
    # An abandoned (cancelled) future still settles its pending entry; the value is dropped.
    if fut.done():
        return
    try:
        if isinstance(outcome, ResultEnvelope):
            if outcome.ok:
                fut.set_result(outcome.data)
            else:
                fut.set_exception(RemoteError(outcome.error or "Unknown error", call_id=outcome.id))
        else:
            fut.set_exception(outcome)
    except InvalidStateError:
        pass
