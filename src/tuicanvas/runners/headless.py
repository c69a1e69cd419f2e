"""Headless pane backend.

Panes are bookkeeping records rather than terminal regions. With
`spawn_processes=True` each pane runs its command as a plain subprocess
(direct mode, used outside tmux); with `spawn_processes=False` nothing is
executed and tests drive liveness through `mark_dead` / `remove`.

Direct-mode processes get stdin from /dev/null and write stdout/stderr to
`canvas-<pane>.log` under `log_dir` (or /dev/null), so a controller speaking
a protocol over its own stdio is never written to. `inherit_stdio=True`
hands the caller's terminal to the canvas instead.
"""
from __future__ import annotations

import itertools
import os
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .base import PaneListing

LaunchHook = Callable[[str, List[str]], None]


@dataclass
class HeadlessPane:
    id: str
    command: List[str]
    options: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    process: Optional["subprocess.Popen[bytes]"] = None
    dead: bool = False
    launches: int = 1

    @property
    def pid(self) -> int:
        return int(self.process.pid) if self.process is not None else 0


class HeadlessPaneBackend:
    name = "headless"

    def __init__(
        self,
        *,
        spawn_processes: bool = True,
        on_launch: Optional[LaunchHook] = None,
        cwd: Optional[Path] = None,
        inherit_stdio: bool = False,
        log_dir: Optional[Path] = None,
    ):
        self.spawn_processes = spawn_processes
        self.on_launch = on_launch
        self.cwd = cwd
        self.inherit_stdio = inherit_stdio
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.panes: Dict[str, HeadlessPane] = {}
        self.sent_keys: List[tuple] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def available(self) -> bool:
        return True

    def _start(self, pane: HeadlessPane, cwd: Optional[Path] = None) -> bool:
        if self.on_launch is not None:
            self.on_launch(pane.id, list(pane.command))
        pane.dead = False
        if not self.spawn_processes:
            return True
        env = os.environ.copy()
        env.update(pane.env)
        stdio: Dict[str, Any] = {}
        log = None
        try:
            if not self.inherit_stdio:
                stdio["stdin"] = subprocess.DEVNULL
                out: Any = subprocess.DEVNULL
                if self.log_dir is not None:
                    self.log_dir.mkdir(parents=True, exist_ok=True)
                    log = open(self.log_path(pane.id), "ab")
                    out = log
                stdio["stdout"] = out
                stdio["stderr"] = subprocess.STDOUT if log is not None else subprocess.DEVNULL
            pane.process = subprocess.Popen(
                pane.command,
                cwd=str(cwd or self.cwd or Path.cwd()),
                env=env,
                start_new_session=True,
                **stdio,
            )
        except OSError:
            pane.process = None
            pane.dead = True
            return False
        finally:
            if log is not None:
                log.close()
        return True

    def log_path(self, pane_id: str) -> Optional[Path]:
        if self.log_dir is None:
            return None
        return self.log_dir / f"canvas-{pane_id.lstrip('%')}.log"

    def _get(self, pane_id: str) -> Optional[HeadlessPane]:
        with self._lock:
            return self.panes.get(pane_id)

    def pane_exists(self, pane_id: str) -> bool:
        return self._get(pane_id) is not None

    def pane_dead(self, pane_id: str) -> bool:
        pane = self._get(pane_id)
        if pane is None:
            return False
        if pane.process is not None and pane.process.poll() is not None:
            pane.dead = True
        return pane.dead

    def get_option(self, pane_id: str, key: str) -> Optional[str]:
        pane = self._get(pane_id)
        if pane is None:
            return None
        return pane.options.get(key) or None

    def set_option(self, pane_id: str, key: str, value: str) -> bool:
        pane = self._get(pane_id)
        if pane is None:
            return False
        pane.options[key] = value
        return True

    def list_panes(self) -> List[PaneListing]:
        with self._lock:
            panes = list(self.panes.values())
        return [
            PaneListing(
                id=p.id,
                pid=p.pid,
                current_command=os.path.basename(p.command[0]) if p.command else "",
                dead=self.pane_dead(p.id),
            )
            for p in panes
        ]

    def split_window(
        self,
        command: List[str],
        *,
        percent: int,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        target: Optional[str] = None,
    ) -> Optional[str]:
        pane = HeadlessPane(id=f"%h{next(self._ids)}", command=list(command), env=dict(env or {}))
        if not self._start(pane, cwd):
            return None
        with self._lock:
            self.panes[pane.id] = pane
        return pane.id

    def respawn_pane(self, pane_id: str, command: List[str], *, env: Optional[Dict[str, str]] = None) -> bool:
        pane = self._get(pane_id)
        if pane is None:
            return False
        self._terminate(pane)
        pane.command = list(command)
        pane.env = dict(env or {})
        pane.launches += 1
        return self._start(pane)

    def send_keys(self, pane_id: str, *keys: str) -> bool:
        pane = self._get(pane_id)
        if pane is None:
            return False
        self.sent_keys.append((pane_id, *keys))
        if "C-c" in keys and pane.process is not None and pane.process.poll() is None:
            try:
                os.killpg(pane.process.pid, signal.SIGINT)
            except OSError:
                pass
        return True

    def kill_pane(self, pane_id: str) -> bool:
        with self._lock:
            pane = self.panes.pop(pane_id, None)
        if pane is None:
            return False
        self._terminate(pane)
        return True

    def pane_command(self, pane_id: str) -> str:
        pane = self._get(pane_id)
        return " ".join(pane.command) if pane is not None else ""

    @staticmethod
    def _terminate(pane: HeadlessPane) -> None:
        proc = pane.process
        pane.process = None
        pane.dead = True
        if proc is None or proc.poll() is not None:
            return
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except OSError:
            proc.terminate()
        try:
            proc.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            proc.kill()

    # Test helpers: simulate what happens to a pane outside our control.

    def mark_dead(self, pane_id: str) -> None:
        pane = self._get(pane_id)
        if pane is not None:
            pane.dead = True

    def remove(self, pane_id: str) -> None:
        with self._lock:
            self.panes.pop(pane_id, None)

    def add_untagged(self, command: List[str]) -> str:
        """Register a pane nobody tagged (e.g. left behind by an older version)."""
        pane = HeadlessPane(id=f"%h{next(self._ids)}", command=list(command))
        with self._lock:
            self.panes[pane.id] = pane
        return pane.id
