"""Wire format between the bridge and the browser extension.

One envelope per WebSocket message (the message boundary is the frame
boundary), encoded as compact UTF-8 JSON:

- request:  {"id": "...", "type": "<call name>", "payload": <json>}
- response: {"id": "...", "success": true, "data": <json>}
            {"id": "...", "success": false, "error": "<message>"}

``ok`` is accepted as a synonym of ``success`` when decoding.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .errors import DecodeError

UNKNOWN_REMOTE_ERROR = "Unknown error"


@dataclass(frozen=True, slots=True)
class CallEnvelope:
    id: str
    name: str
    payload: Any = None


@dataclass(frozen=True, slots=True)
class ResultEnvelope:
    id: str
    ok: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def success(cls, call_id: str, data: Any = None) -> ResultEnvelope:
        return cls(id=call_id, ok=True, data=data)

    @classmethod
    def failure(cls, call_id: str, error: str) -> ResultEnvelope:
        return cls(id=call_id, ok=False, error=error)


Envelope = CallEnvelope | ResultEnvelope


def _dumps(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":")).encode("utf-8")


def encode(envelope: Envelope) -> bytes:
    if isinstance(envelope, CallEnvelope):
        msg: dict[str, Any] = {"id": envelope.id, "type": envelope.name}
        if envelope.payload is not None:
            msg["payload"] = envelope.payload
        return _dumps(msg)
    if isinstance(envelope, ResultEnvelope):
        msg = {"id": envelope.id, "success": bool(envelope.ok)}
        if envelope.ok:
            msg["data"] = envelope.data
        else:
            msg["error"] = envelope.error or UNKNOWN_REMOTE_ERROR
        return _dumps(msg)
    raise TypeError(f"cannot encode {type(envelope).__name__}")


def decode(data: bytes | bytearray | str) -> Envelope:
    """Decode one frame. Raises ``DecodeError`` on anything malformed."""
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"frame is not valid UTF-8: {exc}") from exc
    elif isinstance(data, str):
        text = data
    else:
        raise DecodeError(f"unsupported frame type: {type(data).__name__}")

    try:
        msg = json.loads(text)
    except ValueError as exc:
        raise DecodeError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(msg, dict):
        raise DecodeError("frame must be a JSON object")

    call_id = msg.get("id")
    if not isinstance(call_id, str) or not call_id:
        raise DecodeError("frame is missing a string id")

    if "success" in msg or "ok" in msg:
        ok = msg["success"] if "success" in msg else msg["ok"]
        if not isinstance(ok, bool):
            raise DecodeError(f"result {call_id}: success flag must be a boolean")
        if ok:
            return ResultEnvelope(id=call_id, ok=True, data=msg.get("data"))
        err = msg.get("error")
        if err is None or err == "":
            err = UNKNOWN_REMOTE_ERROR
        if not isinstance(err, str):
            raise DecodeError(f"result {call_id}: error must be a string")
        return ResultEnvelope(id=call_id, ok=False, error=err)

    if "type" in msg:
        name = msg.get("type")
        if not isinstance(name, str) or not name:
            raise DecodeError(f"call {call_id}: type must be a non-empty string")
        return CallEnvelope(id=call_id, name=name, payload=msg.get("payload"))

    raise DecodeError(f"frame {call_id} is neither a call nor a result")
