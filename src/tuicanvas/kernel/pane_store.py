"""Per-scope tracking record: which pane a scope believes it owns."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Dict, Iterator, Optional, Protocol

from ..paths import pane_record_path
from ..util.file_lock import locked
from ..util.fs import atomic_write_text, read_text


class PaneStore(Protocol):
    def read(self, scope_key: str) -> Optional[str]: ...

    def write(self, scope_key: str, pane_id: str) -> None: ...

    def clear(self, scope_key: str) -> None: ...

    def describe(self, scope_key: str) -> str: ...

    def lock(self, scope_key: str) -> ContextManager[None]: ...


class FilePaneStore:
    """Records persisted as `tui-canvas-<scope>.pane` so other processes see them."""

    def __init__(self, store_dir: Path):
        self.store_dir = Path(store_dir)
        self._local: Dict[str, threading.Lock] = {}
        self._local_guard = threading.Lock()

    def _path(self, scope_key: str) -> Path:
        return pane_record_path(scope_key, store_dir=self.store_dir)

    def read(self, scope_key: str) -> Optional[str]:
        return read_text(self._path(scope_key)).strip() or None

    def write(self, scope_key: str, pane_id: str) -> None:
        atomic_write_text(self._path(scope_key), str(pane_id).strip())

    def clear(self, scope_key: str) -> None:
        p = self._path(scope_key)
        if p.exists():
            atomic_write_text(p, "")

    def describe(self, scope_key: str) -> str:
        return str(self._path(scope_key))

    @contextmanager
    def lock(self, scope_key: str) -> Iterator[None]:
        # flock serializes processes, the Lock serializes threads of this one
        with self._local_guard:
            local = self._local.setdefault(scope_key, threading.Lock())
        with local:
            with locked(self.store_dir / f"tui-canvas-{scope_key}.lock"):
                yield


class MemoryPaneStore:
    def __init__(self, records: Optional[Dict[str, str]] = None):
        self.records: Dict[str, str] = dict(records or {})
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def read(self, scope_key: str) -> Optional[str]:
        return self.records.get(scope_key) or None

    def write(self, scope_key: str, pane_id: str) -> None:
        self.records[scope_key] = str(pane_id)

    def clear(self, scope_key: str) -> None:
        self.records.pop(scope_key, None)

    def describe(self, scope_key: str) -> str:
        return f"memory:{scope_key}"

    @contextmanager
    def lock(self, scope_key: str) -> Iterator[None]:
        with self._guard:
            lk = self._locks.setdefault(scope_key, threading.Lock())
        with lk:
            yield
