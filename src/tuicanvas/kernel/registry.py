from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml  # type: ignore
from pydantic import ValidationError

from ..contracts.v1.manifest import CanvasImplementation, CanvasManifest

logger = logging.getLogger("tuicanvas.registry")

MANIFEST_NAMES = ("manifest.yaml", "manifest.yml", "manifest.json")


class UnknownCanvasError(KeyError):
    pass


class UnknownScenarioError(ValueError):
    pass


@dataclass
class RegistryEntry:
    manifest: CanvasManifest
    path: Path
    builtin: bool = False


@dataclass
class ResolvedCanvas:
    """What the orchestrator needs to launch one canvas kind."""

    kind: str
    name: str
    implementation: str
    framework: str
    command: List[str]
    env: Dict[str, str]
    scenarios: List[str]

    def validate_scenario(self, scenario: str) -> str:
        s = (scenario or "").strip()
        if not s or s == "default":
            if not self.scenarios:
                raise UnknownScenarioError(f"canvas {self.kind} declares no scenarios")
            return self.scenarios[0]
        if self.scenarios and s not in self.scenarios:
            raise UnknownScenarioError(
                f"scenario not found: {s} (available: {', '.join(self.scenarios)})"
            )
        return s


def _load_manifest(path: Path) -> Optional[CanvasManifest]:
    try:
        text = path.read_text(encoding="utf-8")
        doc = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
        return CanvasManifest.model_validate(doc or {})
    except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
        logger.warning("skipping invalid manifest %s: %s", path, e)
        return None


def _resolve_token(token: str, base: Path) -> str:
    if token.startswith("./") or token.startswith("../"):
        return str((base / token).resolve())
    return token


class CanvasRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}

    def list(self) -> List[RegistryEntry]:
        return list(self._entries.values())

    def get(self, kind: str) -> Optional[RegistryEntry]:
        return self._entries.get(kind)

    def register(self, entry: RegistryEntry) -> None:
        self._entries[entry.manifest.id] = entry

    def discover(self, canvases_dir: Path) -> List[RegistryEntry]:
        """Load `<canvases_dir>/<kind>/manifest.{yaml,yml,json}`."""
        found: List[RegistryEntry] = []
        base = Path(canvases_dir)
        if not base.is_dir():
            logger.debug("canvases dir does not exist: %s", base)
            return found
        for d in sorted(p for p in base.iterdir() if p.is_dir()):
            for name in MANIFEST_NAMES:
                mp = d / name
                if not mp.exists():
                    continue
                manifest = _load_manifest(mp)
                if manifest is not None:
                    entry = RegistryEntry(manifest=manifest, path=d, builtin=True)
                    self.register(entry)
                    found.append(entry)
                break
        return found

    def resolve(self, kind: str, *, implementation: Optional[str] = None) -> ResolvedCanvas:
        entry = self.get(kind)
        if entry is None:
            raise UnknownCanvasError(kind)
        m = entry.manifest
        impl_name = implementation or m.default_implementation or next(iter(m.implementations), "")
        impl: Optional[CanvasImplementation] = m.implementations.get(impl_name)
        if impl is None or not impl.command:
            raise UnknownCanvasError(f"{kind}: no runnable implementation {impl_name!r}")
        command = [_resolve_token(t, entry.path) for t in impl.command] + list(impl.args)
        return ResolvedCanvas(
            kind=m.id,
            name=m.name or m.id,
            implementation=impl_name,
            framework=impl.framework,
            command=command,
            env=dict(impl.env),
            scenarios=list(m.scenarios.keys()),
        )

    def should_wait_by_default(self, kind: str, scenario: str) -> bool:
        entry = self.get(kind)
        if entry is not None:
            sd = entry.manifest.scenarios.get(scenario)
            if sd is not None and sd.wait_for_result is not None:
                return bool(sd.wait_for_result)
        return default_wait_policy(kind, scenario)


def default_wait_policy(kind: str, scenario: str) -> bool:
    """Interactive scenarios wait for a selection; display scenarios do not."""
    if kind == "calendar" and scenario == "meeting-picker":
        return True
    if kind == "document" and scenario == "edit":
        return True
    return kind == "flight"


def load_registry(canvases_dir: Path) -> CanvasRegistry:
    reg = CanvasRegistry()
    reg.discover(canvases_dir)
    return reg
