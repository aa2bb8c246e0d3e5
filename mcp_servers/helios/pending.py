from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .codec import ResultEnvelope
from .errors import BridgeError, CallTimeoutError, DuplicateIdError

_LOGGER = logging.getLogger("mcp.helios.pending")

# A settled call receives either the peer's reply or the bridge error that ended it.
Outcome = ResultEnvelope | BridgeError
SettleCallback = Callable[[Outcome], None]


class _Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], Any]], _Timer]


def _thread_timer(delay: float, fn: Callable[[], Any]) -> _Timer:
    t = threading.Timer(delay, fn)
    t.daemon = True
    return t


@dataclass(slots=True)
class _PendingCall:
    call_id: str
    deadline: float
    on_settle: SettleCallback
    timeout_ms: int | None
    name: str | None
    timer: _Timer | None = None


class PendingCallTable:
    """In-flight calls keyed by correlation id.

    Removal from the map is the single point of truth for "already handled":
    whichever of the reply path (``settle``) and the timer path (``expire``)
    pops the entry first wins, the other becomes a no-op.
    """

    def __init__(self, *, timer_factory: TimerFactory | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _PendingCall] = {}
        self._timer_factory = timer_factory or _thread_timer

    def __contains__(self, call_id: object) -> bool:
        with self._lock:
            return call_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def register(
        self,
        call_id: str,
        deadline: float,
        on_settle: SettleCallback,
        *,
        timeout_ms: int | None = None,
        name: str | None = None,
    ) -> None:
        """Track ``call_id`` until it settles or ``deadline`` (monotonic seconds) passes."""
        entry = _PendingCall(
            call_id=call_id,
            deadline=float(deadline),
            on_settle=on_settle,
            timeout_ms=timeout_ms,
            name=name,
        )
        delay = max(0.0, entry.deadline - time.monotonic())
        timer = self._timer_factory(delay, lambda: self.expire(call_id))
        entry.timer = timer
        with self._lock:
            if call_id in self._entries:
                raise DuplicateIdError(call_id)
            self._entries[call_id] = entry
        timer.start()

    def settle(self, call_id: str, outcome: Outcome) -> bool:
        with self._lock:
            entry = self._entries.pop(call_id, None)
        if entry is None:
            _LOGGER.debug("late_or_unknown_reply id=%s", call_id)
            return False
        if entry.timer is not None:
            entry.timer.cancel()
        self._invoke(entry, outcome)
        return True

    def expire(self, call_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(call_id, None)
        if entry is None:
            return False
        _LOGGER.info("call_timeout id=%s name=%s timeout_ms=%s", call_id, entry.name, entry.timeout_ms)
        self._invoke(entry, CallTimeoutError(call_id, entry.timeout_ms, name=entry.name))
        return True

    def fail_all(self, error: BridgeError) -> int:
        """Settle every pending call with ``error``. Returns how many were settled."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
            self._invoke(entry, error)
        return len(entries)

    @staticmethod
    def _invoke(entry: _PendingCall, outcome: Outcome) -> None:
        try:
            entry.on_settle(outcome)
        except Exception:
            _LOGGER.exception("settle_callback_failed id=%s", entry.call_id)
