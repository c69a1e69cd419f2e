"""Canvas-side session: the helper a canvas process uses to talk to its controller.

A canvas is launched with `--id`, `--scenario` and optionally `--socket` and
`--config-file` (or `--config`). When the controller endpoint cannot be
reached the session stays in standalone mode: outbound envelopes are dropped
and the canvas keeps running as a plain display.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from ..contracts.v1.ipc import (
    CancelledMessage,
    CloseMessage,
    ContentMessage,
    Envelope,
    ErrorMessage,
    GetContentMessage,
    GetSelectionMessage,
    PingMessage,
    PongMessage,
    ReadyMessage,
    SelectedMessage,
    SelectionMessage,
    UpdateMessage,
)
from ..ipc.connector import (
    CanvasConnectionError,
    ConnectorHandlers,
    PeerConnection,
    connect_with_retry,
)
from ..kernel.settings import load_settings
from ..util.fs import read_text

logger = logging.getLogger("tuicanvas.canvas")


@dataclass
class CanvasArgs:
    instance_id: str
    scenario: str
    endpoint: Optional[Path]
    config: Any


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=True, description="tuicanvas canvas process")
    p.add_argument("--id", dest="instance_id", default="", help="Canvas instance id")
    p.add_argument("--scenario", default="default", help="Scenario to render")
    p.add_argument("--socket", default="", help="Controller rendezvous endpoint")
    p.add_argument("--config-file", dest="config_file", default="", help="JSON config hand-off file")
    p.add_argument("--config", default="", help="Inline JSON config")
    return p


def _parse_config(text: str, source: str) -> Any:
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        logger.warning("ignoring unparsable config from %s: %s", source, e)
        return None


def parse_canvas_args(argv: Optional[Sequence[str]] = None) -> CanvasArgs:
    """Parse the launch arguments; unknown arguments are left for the canvas."""
    ns, _ = build_arg_parser().parse_known_args(argv)
    config: Any = None
    if ns.config_file:
        config = _parse_config(read_text(Path(ns.config_file)), ns.config_file)
    elif ns.config:
        config = _parse_config(ns.config, "--config")
    return CanvasArgs(
        instance_id=str(ns.instance_id or ""),
        scenario=str(ns.scenario or "default"),
        endpoint=Path(ns.socket) if ns.socket else None,
        config=config,
    )


class CanvasSession:
    def __init__(
        self,
        args: CanvasArgs,
        *,
        capabilities: Optional[List[str]] = None,
        on_update: Optional[Callable[[Any], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        get_selection: Optional[Callable[[], Any]] = None,
        get_content: Optional[Callable[[], Any]] = None,
    ):
        self.args = args
        self.config = args.config
        self.capabilities = capabilities
        self.on_update = on_update
        self.on_close = on_close
        self.get_selection = get_selection
        self.get_content = get_content
        self._conn: Optional[PeerConnection] = None
        self._closed: Optional[asyncio.Event] = None

    @classmethod
    def from_argv(cls, argv: Optional[Sequence[str]] = None, **kwargs: Any) -> "CanvasSession":
        return cls(parse_canvas_args(argv), **kwargs)

    @property
    def instance_id(self) -> str:
        return self.args.instance_id

    @property
    def scenario(self) -> str:
        return self.args.scenario

    @property
    def connected(self) -> bool:
        return self._conn is not None and self._conn.connected

    @property
    def standalone(self) -> bool:
        return self._conn is None

    def _log_extra(self) -> dict:
        return {"instance_id": self.instance_id, "scenario": self.scenario}

    async def start(
        self,
        *,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> bool:
        """Connect and announce `ready`. Returns False in standalone mode.

        Retry bounds default to the `connect_attempts` and `connect_delay_s`
        settings.
        """
        self._closed = asyncio.Event()
        if self.args.endpoint is None:
            logger.info("no controller endpoint; running standalone", extra=self._log_extra())
            return False
        handlers = ConnectorHandlers(on_message=self._on_message, on_disconnect=self._on_disconnect)
        if max_attempts is None or delay is None:
            s = load_settings()
            max_attempts = s.connect_attempts if max_attempts is None else max_attempts
            delay = s.connect_delay_s if delay is None else delay
        try:
            self._conn = await connect_with_retry(self.args.endpoint, handlers, max_attempts=max_attempts, delay=delay)
        except CanvasConnectionError as e:
            logger.warning("controller unreachable, running standalone: %s", e, extra=self._log_extra())
            return False
        self._conn.send(ReadyMessage(scenario=self.scenario, capabilities=self.capabilities))
        await self._conn.drain()
        return True

    def _on_message(self, env: Envelope) -> None:
        if isinstance(env, PingMessage):
            self._send(PongMessage())
        elif isinstance(env, CloseMessage):
            logger.info("close requested by controller", extra=self._log_extra())
            self._mark_closed()
        elif isinstance(env, UpdateMessage):
            self.config = env.config
            if self.on_update is not None:
                self.on_update(env.config)
        elif isinstance(env, GetSelectionMessage):
            self._send(SelectionMessage(data=self.get_selection() if self.get_selection else None))
        elif isinstance(env, GetContentMessage):
            self._send(ContentMessage(data=self.get_content() if self.get_content else None))
        else:
            logger.debug("ignoring %s envelope", getattr(env, "type", "?"), extra=self._log_extra())

    def _on_disconnect(self) -> None:
        self._mark_closed()

    def _mark_closed(self) -> None:
        first = self._closed is not None and not self._closed.is_set()
        if self._closed is not None:
            self._closed.set()
        if first and self.on_close is not None:
            self.on_close()

    def _send(self, envelope: Any) -> bool:
        if self._conn is None:
            return False
        return self._conn.send(envelope)

    async def _send_final(self, envelope: Any) -> bool:
        ok = self._send(envelope)
        if self._conn is not None:
            await self._conn.drain()
        return ok

    async def send_selected(self, data: Any) -> bool:
        return await self._send_final(SelectedMessage(data=data))

    async def send_cancelled(self, reason: Optional[str] = None) -> bool:
        return await self._send_final(CancelledMessage(reason=reason))

    async def send_error(self, message: str) -> bool:
        return await self._send_final(ErrorMessage(message=message))

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Wait until the controller closes us or goes away."""
        if self._closed is None:
            return False
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
