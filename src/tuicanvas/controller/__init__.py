from __future__ import annotations

from .launch import Launcher, PaneLauncher, SpawnError, build_launch_command
from .orchestrator import (
    CanvasInstance,
    InstanceState,
    Orchestrator,
    TIMEOUT_ERROR,
    build_pane_manager,
    run_canvas,
)

__all__ = [
    "CanvasInstance",
    "InstanceState",
    "Launcher",
    "Orchestrator",
    "PaneLauncher",
    "SpawnError",
    "TIMEOUT_ERROR",
    "build_launch_command",
    "build_pane_manager",
    "run_canvas",
]
