"""Canvas-side connection to the controller's rendezvous endpoint."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel

from ..contracts.v1.ipc import Envelope
from .codec import LineDecoder, ProtocolError, encode

logger = logging.getLogger("tuicanvas.ipc.connector")

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_DELAY_S = 0.1


class CanvasConnectionError(ConnectionError):
    """The controller endpoint could not be reached."""


@dataclass
class ConnectorHandlers:
    on_message: Callable[[Envelope], None]
    on_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None


class PeerConnection:
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, handlers: ConnectorHandlers):
        self._reader = reader
        self._writer = writer
        self._handlers = handlers
        self._connected = True
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._read_loop())

    async def _read_loop(self) -> None:
        def _on_bad_line(err: ProtocolError) -> None:
            self._call(self._handlers.on_error, err)

        decoder = LineDecoder(sender="controller", on_error=_on_bad_line)
        try:
            while True:
                chunk = await self._reader.read(65536)
                if not chunk:
                    break
                for env in decoder.feed(chunk):
                    self._call(self._handlers.on_message, env)
        except (ConnectionError, OSError) as e:
            self._call(self._handlers.on_error, e)
        finally:
            was_connected = self._connected
            self._connected = False
            if was_connected:
                self._call(self._handlers.on_disconnect)

    @staticmethod
    def _call(cb: Optional[Callable[..., None]], *args: Any) -> None:
        if cb is None:
            return
        try:
            cb(*args)
        except Exception:
            logger.exception("connector handler failed")

    def send(self, envelope: Union[BaseModel, Mapping[str, Any]]) -> bool:
        if not self._connected or self._writer.is_closing():
            logger.debug("not connected; dropping outbound envelope")
            return False
        try:
            self._writer.write(encode(envelope))
            return True
        except (ConnectionError, OSError, RuntimeError) as e:
            logger.debug("send failed: %s", e)
            return False

    async def drain(self) -> None:
        try:
            await self._writer.drain()
        except (ConnectionError, OSError):
            pass

    async def close(self) -> None:
        self._connected = False
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)


async def connect(endpoint: Path, handlers: ConnectorHandlers) -> PeerConnection:
    reader, writer = await asyncio.open_unix_connection(str(endpoint))
    conn = PeerConnection(reader, writer, handlers)
    conn.start()
    return conn


async def connect_with_retry(
    endpoint: Path,
    handlers: ConnectorHandlers,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY_S,
) -> PeerConnection:
    """Dial `endpoint`, waiting `delay` seconds after each failed attempt.

    The caller is expected to send a `ready` envelope right after this returns.
    """
    last_error: Optional[BaseException] = None
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            conn = await connect(Path(endpoint), handlers)
            logger.debug("connected on attempt %d", attempt, extra={"endpoint": str(endpoint)})
            return conn
        except OSError as e:
            last_error = e
            logger.debug("connect attempt %d/%d failed: %s", attempt, attempts, e, extra={"endpoint": str(endpoint)})
            await asyncio.sleep(delay)
    raise CanvasConnectionError(f"failed to connect to controller at {endpoint} after {attempts} attempts") from last_error
