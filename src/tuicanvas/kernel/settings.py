"""Settings for tuicanvas.

Stored in ~/.tuicanvas/settings.yaml (or $TUICANVAS_HOME/settings.yaml).
Every key can be overridden by an environment variable named
TUICANVAS_<KEY>, e.g. TUICANVAS_TIMEOUT_S=60.
"""
from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml  # type: ignore

from ..paths import ensure_home, tuicanvas_home
from ..util.conv import coerce_bool, coerce_float, coerce_int
from ..util.fs import atomic_write_text

logger = logging.getLogger("tuicanvas.settings")

ENV_PREFIX = "TUICANVAS_"


@dataclass
class CanvasSettings:
    timeout_s: float = 300.0
    connect_attempts: int = 10
    connect_delay_s: float = 0.1
    split_percent: int = 67
    interrupt_grace_s: float = 0.2
    runtime_dir: str = "/tmp"
    pane_store_dir: str = "/tmp"
    canvases_dir: str = ""
    second_peer_policy: str = "accept"
    kill_pane_on_result: bool = True
    log_level: str = "INFO"

    @property
    def runtime_path(self) -> Path:
        return Path(self.runtime_dir).expanduser()

    @property
    def pane_store_path(self) -> Path:
        return Path(self.pane_store_dir).expanduser()

    @property
    def canvases_path(self) -> Path:
        if self.canvases_dir:
            return Path(self.canvases_dir).expanduser()
        return tuicanvas_home() / "canvases"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "CanvasSettings":
        base = cls()
        s = cls(
            timeout_s=coerce_float(d.get("timeout_s"), default=base.timeout_s),
            connect_attempts=max(1, coerce_int(d.get("connect_attempts"), default=base.connect_attempts)),
            connect_delay_s=max(0.0, coerce_float(d.get("connect_delay_s"), default=base.connect_delay_s)),
            split_percent=min(90, max(10, coerce_int(d.get("split_percent"), default=base.split_percent))),
            interrupt_grace_s=max(0.0, coerce_float(d.get("interrupt_grace_s"), default=base.interrupt_grace_s)),
            runtime_dir=str(d.get("runtime_dir") or base.runtime_dir),
            pane_store_dir=str(d.get("pane_store_dir") or base.pane_store_dir),
            canvases_dir=str(d.get("canvases_dir") or base.canvases_dir),
            second_peer_policy=str(d.get("second_peer_policy") or base.second_peer_policy).strip().lower(),
            kill_pane_on_result=coerce_bool(d.get("kill_pane_on_result"), default=base.kill_pane_on_result),
            log_level=str(d.get("log_level") or base.log_level).strip().upper(),
        )
        if s.second_peer_policy not in ("accept", "reject"):
            logger.warning("unknown second_peer_policy %r; using accept", s.second_peer_policy)
            s.second_peer_policy = "accept"
        if s.timeout_s <= 0:
            s.timeout_s = base.timeout_s
        return s


def _settings_path() -> Path:
    return tuicanvas_home() / "settings.yaml"


def load_settings_doc() -> Dict[str, Any]:
    """Raw settings document; {} when missing or unparsable."""
    p = _settings_path()
    if not p.exists():
        return {}
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable settings file %s: %s", p, e)
        return {}
    return doc if isinstance(doc, dict) else {}


def save_settings_doc(doc: Dict[str, Any]) -> None:
    ensure_home()
    atomic_write_text(_settings_path(), yaml.safe_dump(doc, allow_unicode=True, sort_keys=False))


def settings_keys() -> List[str]:
    return [f.name for f in fields(CanvasSettings)]


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(CanvasSettings):
        v = env.get(ENV_PREFIX + f.name.upper())
        if v is not None and str(v).strip():
            out[f.name] = v
    return out


def load_settings(env: Optional[Mapping[str, str]] = None) -> CanvasSettings:
    doc = load_settings_doc()
    doc.update(_env_overrides(os.environ if env is None else env))
    return CanvasSettings.from_dict(doc)
