"""Newline-delimited JSON framing for canvas envelopes."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..contracts.v1.ipc import (
    CANVAS_MESSAGE_TYPES,
    CONTROLLER_MESSAGE_TYPES,
    CanvasMessage,
    ControllerMessage,
    Envelope,
    UnknownMessage,
)

logger = logging.getLogger("tuicanvas.ipc.codec")

Sender = Literal["canvas", "controller"]
ErrorCallback = Callable[["ProtocolError"], None]

MAX_LINE_BYTES = 2_000_000

_CANVAS_ADAPTER: TypeAdapter[Any] = TypeAdapter(CanvasMessage)
_CONTROLLER_ADAPTER: TypeAdapter[Any] = TypeAdapter(ControllerMessage)


class ProtocolError(ValueError):
    """A line on the wire that is not a valid envelope."""

    def __init__(self, message: str, *, line: str = ""):
        super().__init__(message)
        self.line = line


def encode(envelope: Union[BaseModel, Mapping[str, Any]]) -> bytes:
    if isinstance(envelope, BaseModel):
        to_wire = getattr(envelope, "to_wire", None)
        obj: Dict[str, Any] = to_wire() if callable(to_wire) else envelope.model_dump()
    else:
        obj = dict(envelope)
    return (json.dumps(obj, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


def decode_line(line: str, *, sender: Sender) -> Envelope:
    """Parse one line sent by `sender`. Raises ProtocolError."""
    try:
        obj = json.loads(line)
    except ValueError as e:
        raise ProtocolError(f"invalid json: {e}", line=line) from e
    if not isinstance(obj, dict):
        raise ProtocolError("envelope is not an object", line=line)
    tag = obj.get("type")
    if not isinstance(tag, str) or not tag:
        raise ProtocolError("envelope has no type", line=line)

    known = CANVAS_MESSAGE_TYPES if sender == "canvas" else CONTROLLER_MESSAGE_TYPES
    if tag not in known:
        return UnknownMessage(type=tag, raw=obj)

    adapter = _CANVAS_ADAPTER if sender == "canvas" else _CONTROLLER_ADAPTER
    try:
        return adapter.validate_python(obj)
    except ValidationError as e:
        raise ProtocolError(f"invalid {tag} envelope: {e.error_count()} error(s)", line=line) from e


def decode_buffer(
    buf: bytes,
    *,
    sender: Sender,
    on_error: Optional[ErrorCallback] = None,
) -> Tuple[List[Envelope], bytes]:
    """Split `buf` into complete envelopes plus the trailing partial line.

    Bad lines go to `on_error` and are skipped; decoding never raises.
    """
    *lines, rest = buf.split(b"\n")
    out: List[Envelope] = []
    for raw in lines:
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            continue
        try:
            out.append(decode_line(text, sender=sender))
        except ProtocolError as e:
            _report(e, on_error)
    return out, rest


def _report(err: ProtocolError, on_error: Optional[ErrorCallback]) -> None:
    logger.warning("dropping malformed envelope: %s", err)
    if on_error is None:
        return
    try:
        on_error(err)
    except Exception:
        logger.exception("protocol error callback failed")


class LineDecoder:
    """Incremental decoder; tolerates arbitrary chunk boundaries."""

    def __init__(self, *, sender: Sender, on_error: Optional[ErrorCallback] = None, max_line_bytes: int = MAX_LINE_BYTES):
        self._sender: Sender = sender
        self._on_error = on_error
        self._max = int(max_line_bytes)
        self._buf = b""

    @property
    def pending(self) -> bytes:
        return self._buf

    def feed(self, chunk: bytes) -> List[Envelope]:
        if not chunk:
            return []
        envelopes, self._buf = decode_buffer(self._buf + chunk, sender=self._sender, on_error=self._on_error)
        if len(self._buf) > self._max:
            dropped = self._buf
            self._buf = b""
            _report(ProtocolError(f"line exceeds {self._max} bytes", line=dropped[:80].decode("utf-8", "replace")), self._on_error)
        return envelopes
