from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol


@dataclass(frozen=True)
class PaneListing:
    id: str
    pid: int = 0
    current_command: str = ""
    dead: bool = False


class PaneBackend(Protocol):
    """What the pane manager needs from a terminal multiplexer."""

    name: str

    def available(self) -> bool: ...

    def pane_exists(self, pane_id: str) -> bool: ...

    def pane_dead(self, pane_id: str) -> bool: ...

    def get_option(self, pane_id: str, key: str) -> Optional[str]: ...

    def set_option(self, pane_id: str, key: str, value: str) -> bool: ...

    def list_panes(self) -> List[PaneListing]: ...

    def split_window(
        self,
        command: List[str],
        *,
        percent: int,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        target: Optional[str] = None,
    ) -> Optional[str]: ...

    def respawn_pane(self, pane_id: str, command: List[str], *, env: Optional[Dict[str, str]] = None) -> bool: ...

    def send_keys(self, pane_id: str, *keys: str) -> bool: ...

    def kill_pane(self, pane_id: str) -> bool: ...

    def pane_command(self, pane_id: str) -> str: ...
