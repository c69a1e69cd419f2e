from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import yaml  # type: ignore

from . import __version__
from .controller.orchestrator import Orchestrator, build_pane_manager
from .kernel.registry import UnknownCanvasError, load_registry
from .kernel.scope import compute_scope
from .kernel.settings import CanvasSettings, load_settings, load_settings_doc, save_settings_doc, settings_keys
from .runners import default_backend
from .util.obslog import setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _settings(args: argparse.Namespace) -> CanvasSettings:
    s = load_settings()
    if getattr(args, "canvases_dir", ""):
        s.canvases_dir = str(args.canvases_dir)
    return s


def cmd_list(args: argparse.Namespace) -> int:
    reg = load_registry(_settings(args).canvases_path)
    items = []
    for entry in reg.list():
        m = entry.manifest
        items.append(
            {
                "id": m.id,
                "name": m.name or m.id,
                "description": m.description,
                "version": m.version,
                "scenarios": list(m.scenarios.keys()),
                "implementations": list(m.implementations.keys()),
            }
        )
    _print_json({"ok": True, "result": {"canvases": items}})
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    reg = load_registry(_settings(args).canvases_path)
    entry = reg.get(str(args.kind))
    if entry is None:
        _print_json({"ok": False, "error": {"code": "canvas_not_found", "message": f"canvas not found: {args.kind}"}})
        return 2
    doc = entry.manifest.model_dump(by_alias=True)
    doc["path"] = str(entry.path)
    _print_json({"ok": True, "result": doc})
    return 0


def cmd_env(_: argparse.Namespace) -> int:
    scope = compute_scope()
    backend = default_backend()
    _print_json(
        {
            "ok": True,
            "result": {
                "in_tmux": scope.in_tmux,
                "tmux": scope.tmux if scope.in_tmux else None,
                "tmux_pane": scope.tmux_pane if scope.in_tmux else None,
                "cwd": scope.cwd,
                "scope_key": scope.scope_key,
                "backend": backend.name,
                "backend_available": backend.available(),
            },
        }
    )
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    panes = build_pane_manager(_settings(args))
    _print_json({"ok": True, "result": panes.pane_status().model_dump()})
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    panes = build_pane_manager(_settings(args))
    res = panes.cleanup_orphans(dry_run=bool(args.dry_run))
    _print_json({"ok": True, "result": res.model_dump()})
    return 0


def cmd_spawn(args: argparse.Namespace) -> int:
    config: Any = None
    if args.config:
        try:
            config = json.loads(args.config)
        except ValueError as e:
            _print_json({"ok": False, "error": {"code": "invalid_config", "message": f"--config is not JSON: {e}"}})
            return 2
    s = _settings(args)
    orch = Orchestrator.from_settings(s, inherit_stdio=True)
    try:
        orch.registry.resolve(str(args.kind))
    except UnknownCanvasError:
        _print_json({"ok": False, "error": {"code": "canvas_not_found", "message": f"canvas not found: {args.kind}"}})
        return 2
    result = asyncio.run(
        orch.run_canvas(
            str(args.kind),
            str(args.scenario or "default"),
            config,
            timeout_s=args.timeout,
            wait_for_result=args.wait,
            implementation=args.implementation or None,
        )
    )
    _print_json(result.to_public())
    return 0 if result.success else 1


def cmd_settings(args: argparse.Namespace) -> int:
    if args.key:
        if args.key not in settings_keys():
            _print_json({"ok": False, "error": {"code": "unknown_setting", "message": f"unknown setting: {args.key}"}})
            return 2
        if args.value is None:
            _print_json({"ok": False, "error": {"code": "missing_value", "message": "usage: settings KEY VALUE"}})
            return 2
        doc = load_settings_doc()
        try:
            doc[args.key] = yaml.safe_load(args.value)
        except yaml.YAMLError:
            doc[args.key] = args.value
        save_settings_doc(doc)
    _print_json({"ok": True, "result": load_settings().to_dict()})
    return 0


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tuicanvas", description="Spawn interactive terminal canvases and collect results")
    p.add_argument("--canvases-dir", dest="canvases_dir", default="", help="Override the canvas manifest directory")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_list = sub.add_parser("list", help="List available canvas kinds")
    p_list.set_defaults(func=cmd_list)

    p_info = sub.add_parser("info", help="Show a canvas manifest")
    p_info.add_argument("kind", help="Canvas kind (e.g. calendar)")
    p_info.set_defaults(func=cmd_info)

    p_spawn = sub.add_parser("spawn", help="Spawn a canvas in the scope's pane")
    p_spawn.add_argument("kind", help="Canvas kind")
    p_spawn.add_argument("--scenario", default="default", help="Scenario (default: first declared)")
    p_spawn.add_argument("--config", default="", help="JSON config passed to the canvas")
    p_spawn.add_argument("--timeout", type=float, default=None, help="Seconds to wait for a result")
    p_spawn.add_argument("--implementation", default="", help="Implementation name from the manifest")
    wait = p_spawn.add_mutually_exclusive_group()
    wait.add_argument("--wait", dest="wait", action="store_true", default=None, help="Wait for a result")
    wait.add_argument("--no-wait", dest="wait", action="store_false", help="Open the canvas and return")
    p_spawn.set_defaults(func=cmd_spawn)

    p_env = sub.add_parser("env", help="Show terminal environment and scope")
    p_env.set_defaults(func=cmd_env)

    p_status = sub.add_parser("status", help="Show this scope's pane record and all canvas panes")
    p_status.set_defaults(func=cmd_status)

    p_cleanup = sub.add_parser("cleanup", help="Close canvas panes no scope owns any more")
    p_cleanup.add_argument("--dry-run", action="store_true", help="Report without closing")
    p_cleanup.set_defaults(func=cmd_cleanup)

    p_settings = sub.add_parser("settings", help="Show effective settings, or store one in settings.yaml")
    p_settings.add_argument("key", nargs="?", default="", help="Setting name (e.g. timeout_s)")
    p_settings.add_argument("value", nargs="?", default=None, help="New value (YAML scalar)")
    p_settings.set_defaults(func=cmd_settings)

    p_ver = sub.add_parser("version", help="Show version")
    p_ver.set_defaults(func=cmd_version)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_root_json_logging(
        component="cli",
        level=load_settings().log_level,
        stream=sys.stderr,
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
