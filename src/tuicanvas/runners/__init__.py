from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from .base import PaneBackend, PaneListing
from .headless import HeadlessPaneBackend
from .tmux import TmuxPaneBackend

__all__ = ["HeadlessPaneBackend", "PaneBackend", "PaneListing", "TmuxPaneBackend", "default_backend"]


def default_backend(
    env: Optional[Mapping[str, str]] = None,
    *,
    inherit_stdio: bool = False,
    log_dir: Optional[Path] = None,
) -> PaneBackend:
    """tmux when the caller runs inside it, otherwise plain subprocesses."""
    e = os.environ if env is None else env
    if str(e.get("TMUX") or "").strip():
        return TmuxPaneBackend()
    return HeadlessPaneBackend(inherit_stdio=inherit_stdio, log_dir=log_dir)
