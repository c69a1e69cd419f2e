"""Spawn orchestration: run one canvas and wait for its result.

Each run owns a CanvasInstance: a rendezvous listener, an event channel fed
by the listener, and a single-shot result. Listener callbacks only enqueue
events; the await loop is the sole consumer and the only place that resolves
the instance, so exactly one terminal event wins and later ones are dropped.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel

from ..contracts.v1.canvas import CanvasResult, LaunchResult
from ..contracts.v1.ipc import (
    CancelledMessage,
    CloseMessage,
    Envelope,
    ErrorMessage,
    PingMessage,
    ReadyMessage,
    SelectedMessage,
    UpdateMessage,
)
from ..ipc.listener import ListenerHandlers, ProtocolListener, create_listener
from ..kernel.pane_store import FilePaneStore
from ..kernel.panes import PaneManager
from ..kernel.scope import compute_scope
from ..kernel.registry import CanvasRegistry, UnknownCanvasError, UnknownScenarioError, load_registry
from ..kernel.settings import CanvasSettings, load_settings
from ..paths import config_file_path, socket_path
from ..runners import default_backend
from ..util.fs import unlink_quiet
from .launch import Launcher, PaneLauncher, SpawnError, build_launch_command, dump_config, write_config_file

logger = logging.getLogger("tuicanvas.orchestrator")

TIMEOUT_ERROR = "Timeout waiting for user selection"
DISCONNECT_ERROR = "Canvas disconnected unexpectedly"
CANCELLED_ERROR = "Cancelled by controller"

LAUNCH_PREP_ERRORS = (TypeError, ValueError, OSError, SpawnError)


class InstanceState(str, Enum):
    SPAWNING = "spawning"
    LISTENING = "listening"
    PEER_CONNECTED = "peer_connected"
    AWAITING_SELECTION = "awaiting_selection"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    PEER_DISCONNECTED = "peer_disconnected"
    SPAWN_FAILED = "spawn_failed"


TERMINAL_STATES = frozenset(
    {
        InstanceState.RESOLVED,
        InstanceState.TIMED_OUT,
        InstanceState.PEER_DISCONNECTED,
        InstanceState.SPAWN_FAILED,
    }
)


@dataclass
class InstanceEvent:
    kind: Literal["connect", "message", "disconnect", "error"]
    envelope: Optional[Envelope] = None
    error: Optional[Exception] = None


class CanvasInstance:
    def __init__(self, instance_id: str, *, kind: str, scenario: str, endpoint: Path):
        self.instance_id = instance_id
        self.kind = kind
        self.scenario = scenario
        self.endpoint = endpoint
        self.state = InstanceState.SPAWNING
        self.events: "asyncio.Queue[InstanceEvent]" = asyncio.Queue()
        self.listener: Optional[ProtocolListener] = None
        self.config_file: Optional[Path] = None
        self.pane_id: Optional[str] = None
        self._result: Optional[CanvasResult] = None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Optional[CanvasResult]:
        return self._result

    def log_extra(self) -> Dict[str, str]:
        extra = {"instance_id": self.instance_id, "kind": self.kind, "scenario": self.scenario}
        if self.pane_id:
            extra["pane_id"] = self.pane_id
        return extra

    def transition(self, state: InstanceState) -> None:
        if self.state in TERMINAL_STATES or self.state == state:
            return
        logger.debug("%s -> %s", self.state.value, state.value, extra=self.log_extra())
        self.state = state

    def resolve(self, state: InstanceState, result: CanvasResult) -> bool:
        """Set the final result. Only the first call has any effect."""
        if self._result is not None:
            return False
        self.transition(state)
        self._result = result.model_copy(update={"instance_id": self.instance_id, "pane_id": self.pane_id})
        logger.info(
            "canvas resolved: %s success=%s",
            state.value,
            result.success,
            extra=self.log_extra(),
        )
        return True

    def handlers(self) -> ListenerHandlers:
        put = self.events.put_nowait
        return ListenerHandlers(
            on_message=lambda env: put(InstanceEvent("message", envelope=env)),
            on_peer_connect=lambda: put(InstanceEvent("connect")),
            on_peer_disconnect=lambda: put(InstanceEvent("disconnect")),
            on_error=lambda e: put(InstanceEvent("error", error=e)),
        )


def _call_hook(hook: Optional[Callable[[Any], None]], env: Envelope, inst: CanvasInstance) -> None:
    if hook is None:
        return
    try:
        hook(env)
    except Exception:
        logger.exception("caller hook failed", extra=inst.log_extra())


def build_pane_manager(
    settings: CanvasSettings,
    *,
    env: Optional[Mapping[str, str]] = None,
    inherit_stdio: bool = False,
) -> PaneManager:
    return PaneManager(
        default_backend(env, inherit_stdio=inherit_stdio, log_dir=settings.runtime_path),
        FilePaneStore(settings.pane_store_path),
        scope=compute_scope(env),
        split_percent=settings.split_percent,
        interrupt_grace_s=settings.interrupt_grace_s,
    )


def new_instance_id(kind: str) -> str:
    return f"{kind}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class Orchestrator:
    def __init__(
        self,
        registry: CanvasRegistry,
        launcher: Launcher,
        *,
        settings: Optional[CanvasSettings] = None,
    ):
        self.registry = registry
        self.launcher = launcher
        self.settings = settings or CanvasSettings()
        self._active: Dict[str, CanvasInstance] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[CanvasSettings] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
        inherit_stdio: bool = False,
    ) -> "Orchestrator":
        s = settings or load_settings(env)
        panes = build_pane_manager(s, env=env, inherit_stdio=inherit_stdio)
        return cls(load_registry(s.canvases_path), PaneLauncher(panes), settings=s)

    @property
    def active(self) -> Dict[str, CanvasInstance]:
        return dict(self._active)

    def send(self, instance_id: str, envelope: Union[BaseModel, Mapping[str, Any]]) -> int:
        """Forward a controller envelope to a running instance's peer."""
        inst = self._active.get(instance_id)
        if inst is None or inst.listener is None or inst.done:
            return 0
        return inst.listener.send(envelope)

    def update(self, instance_id: str, config: Any) -> int:
        return self.send(instance_id, UpdateMessage(config=config))

    def ping(self, instance_id: str) -> int:
        return self.send(instance_id, PingMessage())

    async def run_canvas(
        self,
        kind: str,
        scenario: str = "default",
        config: Any = None,
        *,
        timeout_s: Optional[float] = None,
        wait_for_result: Optional[bool] = None,
        implementation: Optional[str] = None,
        instance_id: Optional[str] = None,
        on_ready: Optional[Callable[[ReadyMessage], None]] = None,
        on_message: Optional[Callable[[Envelope], None]] = None,
    ) -> CanvasResult:
        """Run `kind`/`scenario` with `config`; never raises for runtime failures."""
        try:
            resolved = self.registry.resolve(kind, implementation=implementation)
            scenario = resolved.validate_scenario(scenario)
        except UnknownCanvasError as e:
            return CanvasResult(success=False, error=f"Canvas not found: {e.args[0] if e.args else kind}")
        except UnknownScenarioError as e:
            return CanvasResult(success=False, error=str(e))

        wait = self.registry.should_wait_by_default(kind, scenario) if wait_for_result is None else bool(wait_for_result)
        timeout = float(timeout_s) if timeout_s is not None else self.settings.timeout_s
        iid = instance_id or new_instance_id(kind)
        runtime_dir = self.settings.runtime_path
        inst = CanvasInstance(iid, kind=kind, scenario=scenario, endpoint=socket_path(iid, runtime_dir=runtime_dir))

        if not wait:
            return await self._run_display(inst, resolved.command, resolved.env, config, name=resolved.name)

        self._active[iid] = inst
        try:
            try:
                inst.listener = await create_listener(
                    inst.endpoint,
                    inst.handlers(),
                    second_peer_policy="reject" if self.settings.second_peer_policy == "reject" else "accept",
                )
            except OSError as e:
                inst.resolve(InstanceState.SPAWN_FAILED, CanvasResult(success=False, error=f"Failed to listen on {inst.endpoint}: {e}"))
                return inst.result  # type: ignore[return-value]
            inst.transition(InstanceState.LISTENING)

            try:
                if config is not None:
                    inst.config_file = write_config_file(config_file_path(iid, runtime_dir=runtime_dir), config)
                command = build_launch_command(
                    resolved.command,
                    instance_id=iid,
                    scenario=scenario,
                    endpoint=inst.endpoint,
                    config_file=inst.config_file,
                )
            except LAUNCH_PREP_ERRORS as e:
                return self._prep_failed(inst, e)
            launched = await self._launch(inst, command, resolved.env)
            if not launched.success:
                inst.resolve(
                    InstanceState.SPAWN_FAILED,
                    CanvasResult(success=False, error=f"Failed to spawn canvas: {launched.error}"),
                )
                return inst.result  # type: ignore[return-value]

            await self._await_resolution(inst, timeout, on_ready=on_ready, on_message=on_message)
            return inst.result  # type: ignore[return-value]
        except asyncio.CancelledError:
            if inst.resolve(InstanceState.RESOLVED, CanvasResult(success=False, error=CANCELLED_ERROR)):
                self._notify_close(inst)
            raise
        finally:
            self._active.pop(iid, None)
            await self._teardown(inst, kill_pane=self.settings.kill_pane_on_result)

    def _prep_failed(self, inst: CanvasInstance, e: Exception) -> CanvasResult:
        # unserializable config, unwritable runtime dir or an empty command
        logger.warning("canvas launch preparation failed: %s", e, extra=inst.log_extra())
        inst.resolve(InstanceState.SPAWN_FAILED, CanvasResult(success=False, error=f"Failed to spawn canvas: {e}"))
        return inst.result  # type: ignore[return-value]

    async def _launch(self, inst: CanvasInstance, command: List[str], env: Dict[str, str]) -> LaunchResult:
        try:
            res = await asyncio.to_thread(self.launcher.launch, inst.instance_id, command, env=dict(env))
        except (SpawnError, OSError) as e:
            logger.warning("canvas launch raised: %s", e, extra=inst.log_extra())
            return LaunchResult(success=False, instance_id=inst.instance_id, error=str(e))
        if res.success:
            inst.pane_id = res.pane_id
            logger.info("canvas launched (reused=%s)", res.reused, extra=inst.log_extra())
        return res

    async def _run_display(
        self,
        inst: CanvasInstance,
        base: List[str],
        env: Dict[str, str],
        config: Any,
        *,
        name: str,
    ) -> CanvasResult:
        """One-shot display: no listener, no wait, the pane stays for reuse."""
        try:
            command = build_launch_command(
                base,
                instance_id=inst.instance_id,
                scenario=inst.scenario,
                inline_config=dump_config(config) if config is not None else None,
            )
        except LAUNCH_PREP_ERRORS as e:
            return self._prep_failed(inst, e)
        launched = await self._launch(inst, command, env)
        if not launched.success:
            inst.resolve(InstanceState.SPAWN_FAILED, CanvasResult(success=False, error=f"Failed to spawn canvas: {launched.error}"))
        else:
            inst.resolve(InstanceState.RESOLVED, CanvasResult(success=True, message=f"{name} canvas opened"))
        return inst.result  # type: ignore[return-value]

    async def _await_resolution(
        self,
        inst: CanvasInstance,
        timeout: float,
        *,
        on_ready: Optional[Callable[[ReadyMessage], None]],
        on_message: Optional[Callable[[Envelope], None]],
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not inst.done:
            remaining = deadline - loop.time()
            if remaining <= 0:
                self._expire(inst, on_ready=on_ready, on_message=on_message)
                break
            try:
                ev = await asyncio.wait_for(inst.events.get(), timeout=remaining)
            except asyncio.TimeoutError:
                self._expire(inst, on_ready=on_ready, on_message=on_message)
                break
            self._apply(inst, ev, on_ready=on_ready, on_message=on_message)
        if inst.listener is not None:
            await inst.listener.drain()

    def _expire(
        self,
        inst: CanvasInstance,
        *,
        on_ready: Optional[Callable[[ReadyMessage], None]],
        on_message: Optional[Callable[[Envelope], None]],
    ) -> None:
        """Apply events that arrived before the deadline, then time out."""
        while not inst.done:
            try:
                ev = inst.events.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._apply(inst, ev, on_ready=on_ready, on_message=on_message)
        self._on_timeout(inst)

    def _on_timeout(self, inst: CanvasInstance) -> None:
        if inst.resolve(InstanceState.TIMED_OUT, CanvasResult(success=False, error=TIMEOUT_ERROR)):
            self._notify_close(inst)

    def _notify_close(self, inst: CanvasInstance) -> None:
        if inst.listener is not None:
            inst.listener.send(CloseMessage())

    def _apply(
        self,
        inst: CanvasInstance,
        ev: InstanceEvent,
        *,
        on_ready: Optional[Callable[[ReadyMessage], None]],
        on_message: Optional[Callable[[Envelope], None]],
    ) -> None:
        if inst.done:
            return
        if ev.kind == "connect":
            inst.transition(InstanceState.PEER_CONNECTED)
            return
        if ev.kind == "disconnect":
            inst.resolve(InstanceState.PEER_DISCONNECTED, CanvasResult(success=False, error=DISCONNECT_ERROR))
            return
        if ev.kind == "error":
            logger.warning("protocol error: %s", ev.error, extra=inst.log_extra())
            return

        env = ev.envelope
        if isinstance(env, ReadyMessage):
            inst.transition(InstanceState.AWAITING_SELECTION)
            _call_hook(on_ready, env, inst)
        elif isinstance(env, SelectedMessage):
            inst.resolve(InstanceState.RESOLVED, CanvasResult(success=True, data=env.data))
        elif isinstance(env, CancelledMessage):
            inst.resolve(InstanceState.RESOLVED, CanvasResult(success=True, cancelled=True, message=env.reason))
        elif isinstance(env, ErrorMessage):
            inst.resolve(InstanceState.RESOLVED, CanvasResult(success=False, error=env.message or "canvas error"))
        elif env is not None:
            _call_hook(on_message, env, inst)

    async def _teardown(self, inst: CanvasInstance, *, kill_pane: bool) -> None:
        if inst.listener is not None:
            await inst.listener.close()
        if inst.config_file is not None:
            unlink_quiet(inst.config_file)
        if inst.pane_id and kill_pane:
            try:
                await asyncio.to_thread(self.launcher.release, inst.pane_id, kill=True)
            except OSError as e:
                logger.warning("pane release failed: %s", e, extra=inst.log_extra())


async def run_canvas(
    kind: str,
    scenario: str = "default",
    config: Any = None,
    *,
    timeout_s: Optional[float] = None,
    wait_for_result: Optional[bool] = None,
    orchestrator: Optional[Orchestrator] = None,
    **kwargs: Any,
) -> CanvasResult:
    orch = orchestrator or Orchestrator.from_settings()
    return await orch.run_canvas(
        kind,
        scenario,
        config,
        timeout_s=timeout_s,
        wait_for_result=wait_for_result,
        **kwargs,
    )
