"""Controller-side rendezvous listener (Unix domain socket)."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Literal, Mapping, Optional, Set, Union

from pydantic import BaseModel

from ..contracts.v1.ipc import Envelope
from ..util.fs import unlink_quiet
from .codec import LineDecoder, ProtocolError, encode

logger = logging.getLogger("tuicanvas.ipc.listener")

SecondPeerPolicy = Literal["accept", "reject"]


@dataclass
class ListenerHandlers:
    on_message: Callable[[Envelope], None]
    on_peer_connect: Optional[Callable[[], None]] = None
    on_peer_disconnect: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None


def _invoke(cb: Optional[Callable[..., None]], *args: Any) -> None:
    if cb is None:
        return
    try:
        cb(*args)
    except Exception:
        logger.exception("listener handler failed")


class ProtocolListener:
    """Binds one endpoint and relays envelopes to and from its peer.

    One peer per instance is expected. With the "accept" policy a second
    connection is served like the first; "reject" closes it immediately.
    """

    def __init__(
        self,
        endpoint: Path,
        handlers: ListenerHandlers,
        *,
        second_peer_policy: SecondPeerPolicy = "accept",
    ):
        self.endpoint = Path(endpoint)
        self._handlers = handlers
        self._policy: SecondPeerPolicy = second_peer_policy
        self._server: Optional[asyncio.AbstractServer] = None
        self._writers: List[asyncio.StreamWriter] = []
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._peers_seen = 0
        self._closing = False

    @property
    def peer_count(self) -> int:
        return len(self._writers)

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        """Bind and listen. The endpoint exists when this returns."""
        if self._server is not None:
            return
        self.endpoint.parent.mkdir(parents=True, exist_ok=True)
        if unlink_quiet(self.endpoint):
            logger.debug("removed stale endpoint", extra={"endpoint": str(self.endpoint)})
        self._server = await asyncio.start_unix_server(self._serve_peer, path=str(self.endpoint))
        logger.debug("listening", extra={"endpoint": str(self.endpoint)})

    async def _serve_peer(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        if self._closing or (self._policy == "reject" and self._peers_seen > 0):
            logger.info("rejecting extra peer", extra={"endpoint": str(self.endpoint)})
            writer.close()
            if task is not None:
                self._tasks.discard(task)
            return

        self._peers_seen += 1
        self._writers.append(writer)
        _invoke(self._handlers.on_peer_connect)

        def _on_bad_line(err: ProtocolError) -> None:
            _invoke(self._handlers.on_error, err)

        decoder = LineDecoder(sender="canvas", on_error=_on_bad_line)
        try:
            while True:
                chunk = await reader.read(65536)
                if not chunk:
                    break
                for env in decoder.feed(chunk):
                    _invoke(self._handlers.on_message, env)
        except (ConnectionError, OSError) as e:
            if not self._closing:
                _invoke(self._handlers.on_error, e)
        finally:
            if writer in self._writers:
                self._writers.remove(writer)
            try:
                writer.close()
            except (ConnectionError, OSError, RuntimeError):
                pass
            if task is not None:
                self._tasks.discard(task)
            if not self._closing:
                _invoke(self._handlers.on_peer_disconnect)

    def send(self, envelope: Union[BaseModel, Mapping[str, Any]]) -> int:
        """Write to every connected peer; returns how many were written to."""
        data = encode(envelope)
        sent = 0
        for w in list(self._writers):
            if w.is_closing():
                continue
            try:
                w.write(data)
                sent += 1
            except (ConnectionError, OSError, RuntimeError) as e:
                logger.debug("send failed: %s", e, extra={"endpoint": str(self.endpoint)})
        return sent

    async def drain(self) -> None:
        for w in list(self._writers):
            try:
                await w.drain()
            except (ConnectionError, OSError):
                pass

    async def close(self) -> None:
        """Stop serving, drop peers and delete the endpoint artifact."""
        if self._closing:
            return
        self._closing = True
        server, self._server = self._server, None
        if server is not None:
            server.close()
        for w in list(self._writers):
            try:
                w.close()
            except (ConnectionError, OSError, RuntimeError):
                pass
        self._writers.clear()
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if server is not None:
            try:
                await asyncio.wait_for(server.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                logger.debug("server close timed out", extra={"endpoint": str(self.endpoint)})
        unlink_quiet(self.endpoint)
        logger.debug("listener closed", extra={"endpoint": str(self.endpoint)})


async def create_listener(
    endpoint: Path,
    handlers: ListenerHandlers,
    *,
    second_peer_policy: SecondPeerPolicy = "accept",
) -> ProtocolListener:
    listener = ProtocolListener(endpoint, handlers, second_peer_policy=second_peer_policy)
    await listener.start()
    return listener
