from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..contracts.v1.canvas import LaunchResult
from ..kernel.panes import PaneManager
from ..util.fs import atomic_write_text

logger = logging.getLogger("tuicanvas.launch")


class SpawnError(RuntimeError):
    """The canvas process could not be started."""


def build_launch_command(
    base: List[str],
    *,
    instance_id: str,
    scenario: str,
    endpoint: Optional[Path] = None,
    config_file: Optional[Path] = None,
    inline_config: Optional[str] = None,
) -> List[str]:
    """argv for one canvas process. The config payload is passed through untouched."""
    if not base:
        raise SpawnError("empty canvas command")
    cmd = list(base) + ["--id", instance_id, "--scenario", scenario]
    if endpoint is not None:
        cmd += ["--socket", str(endpoint)]
    if config_file is not None:
        cmd += ["--config-file", str(config_file)]
    elif inline_config is not None:
        cmd += ["--config", inline_config]
    return cmd


def dump_config(config: Any) -> str:
    return json.dumps(config, ensure_ascii=False)


def write_config_file(path: Path, config: Any) -> Path:
    atomic_write_text(path, dump_config(config))
    return path


class Launcher(Protocol):
    def launch(self, instance_id: str, command: List[str], *, env: Dict[str, str]) -> LaunchResult: ...

    def release(self, pane_id: str, *, kill: bool) -> None: ...


class PaneLauncher:
    """Launches canvases into the scope's pane via a PaneManager."""

    def __init__(self, panes: PaneManager, *, cwd: Optional[Path] = None):
        self.panes = panes
        self.cwd = cwd

    def launch(self, instance_id: str, command: List[str], *, env: Dict[str, str]) -> LaunchResult:
        pane_id, reused = self.panes.acquire_pane(command, cwd=self.cwd, env=env)
        if not pane_id:
            logger.warning("no pane for canvas", extra={"instance_id": instance_id})
            return LaunchResult(
                success=False,
                instance_id=instance_id,
                error=f"{self.panes.backend.name} pane creation failed",
            )
        return LaunchResult(success=True, instance_id=instance_id, pane_id=pane_id, reused=reused)

    def release(self, pane_id: str, *, kill: bool) -> None:
        self.panes.release_pane(pane_id, kill=kill)
