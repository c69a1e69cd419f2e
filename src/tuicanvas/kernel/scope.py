from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class ScopeIdentity:
    scope_key: str
    tmux: str
    tmux_pane: str
    cwd: str

    @property
    def in_tmux(self) -> bool:
        return self.tmux != "no-tmux"


def _hash_key(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def compute_scope(env: Optional[Mapping[str, str]] = None, cwd: Optional[Path] = None) -> ScopeIdentity:
    """Scope for "this logical terminal session".

    Hashes the multiplexer session token ($TMUX: socket, server pid, session
    index), the caller's own pane ($TMUX_PANE) and the working directory.
    """
    e = os.environ if env is None else env
    tmux = str(e.get("TMUX") or "").strip() or "no-tmux"
    tmux_pane = str(e.get("TMUX_PANE") or "").strip() or "no-pane"
    wd = str(cwd if cwd is not None else Path.cwd())
    return ScopeIdentity(
        scope_key=_hash_key(f"{tmux}:{tmux_pane}:{wd}"),
        tmux=tmux,
        tmux_pane=tmux_pane,
        cwd=wd,
    )
