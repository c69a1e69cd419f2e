from __future__ import annotations

import os
from pathlib import Path


def tuicanvas_home() -> Path:
    env = os.environ.get("TUICANVAS_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".tuicanvas").resolve()


def ensure_home() -> Path:
    home = tuicanvas_home()
    home.mkdir(parents=True, exist_ok=True)
    return home


def socket_path(instance_id: str, *, runtime_dir: Path) -> Path:
    """Rendezvous endpoint for one canvas instance."""
    return runtime_dir / f"canvas-{instance_id}.sock"


def config_file_path(instance_id: str, *, runtime_dir: Path) -> Path:
    return runtime_dir / f"canvas-config-{instance_id}.json"


def pane_record_path(scope_key: str, *, store_dir: Path) -> Path:
    return store_dir / f"tui-canvas-{scope_key}.pane"
