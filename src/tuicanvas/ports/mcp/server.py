"""
tuicanvas MCP Server: canvas tools for agent runtimes

Tools:
- canvas_calendar: show a calendar, or let the user pick a meeting slot
- canvas_document: show a document, or let the user edit / select text
- canvas_flight: let the user pick a flight and seat
- canvas_status: this scope's pane record and every tagged canvas pane
- canvas_cleanup: close canvas panes no scope owns any more

Spawning tools block until the canvas resolves when they wait for a result.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

from ...controller.orchestrator import Orchestrator, build_pane_manager
from ...kernel.registry import UnknownCanvasError
from ...kernel.settings import load_settings
from ...util.conv import coerce_bool


class MCPError(Exception):
    """MCP tool call error"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


def _orchestrator() -> Orchestrator:
    return Orchestrator.from_settings(load_settings())


def _first(arguments: Dict[str, Any], *names: str) -> Any:
    for n in names:
        v = arguments.get(n)
        if v is not None and v != "":
            return v
    return None


def _timeout_s(arguments: Dict[str, Any]) -> Optional[float]:
    # milliseconds; `timeout_ms` is accepted as an alias
    raw = _first(arguments, "timeout", "timeout_ms")
    if raw is None:
        return None
    try:
        ms = float(raw)
    except (TypeError, ValueError):
        raise MCPError(code="invalid_argument", message=f"timeout must be a number of milliseconds, got {raw!r}")
    if ms <= 0:
        raise MCPError(code="invalid_argument", message="timeout must be positive")
    return ms / 1000.0


def _wait(arguments: Dict[str, Any]) -> Optional[bool]:
    raw = _first(arguments, "waitForResult", "wait")
    return None if raw is None else coerce_bool(raw)


def _implementation(arguments: Dict[str, Any]) -> Optional[str]:
    raw = arguments.get("implementation")
    return str(raw) if raw else None


def _config(arguments: Dict[str, Any]) -> Dict[str, Any]:
    raw = arguments.get("config")
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MCPError(code="invalid_argument", message=f"config is not valid JSON: {e}")
    if not isinstance(raw, dict):
        raise MCPError(code="invalid_argument", message="config must be an object")
    return dict(raw)


# =============================================================================
# Canvas Tools
# =============================================================================


def spawn_canvas(
    *,
    kind: str,
    scenario: str,
    config: Any,
    timeout_s: Optional[float] = None,
    wait: Optional[bool] = None,
    implementation: Optional[str] = None,
) -> Dict[str, Any]:
    """Run one canvas to completion and return its public result dict."""
    orch = _orchestrator()
    result = asyncio.run(
        orch.run_canvas(
            kind,
            scenario,
            config,
            timeout_s=timeout_s,
            wait_for_result=wait,
            implementation=implementation,
        )
    )
    out = result.to_public()
    try:
        resolved = orch.registry.resolve(kind, implementation=implementation)
    except UnknownCanvasError:
        return out
    out["implementation"] = resolved.implementation
    out["framework"] = resolved.framework
    return out


def canvas_status() -> Dict[str, Any]:
    panes = build_pane_manager(load_settings())
    return panes.pane_status().model_dump()


def canvas_cleanup(*, dry_run: bool = False) -> Dict[str, Any]:
    panes = build_pane_manager(load_settings())
    res = panes.cleanup_orphans(dry_run=dry_run)
    return {
        "found": [p.model_dump(exclude_none=True) for p in res.found],
        "closed": res.closed,
        "dry_run": res.dry_run,
    }


_SPAWN_PROPERTIES: Dict[str, Any] = {
    "config": {
        "type": ["object", "string"],
        "description": "Scenario configuration passed to the canvas (an object or a JSON string)",
    },
    "waitForResult": {
        "type": "boolean",
        "description": "Wait for a result. Defaults to true for interactive scenarios, false for display ones.",
    },
    "timeout": {
        "type": "number",
        "description": "Milliseconds to wait for the user. Default: 300000 (5 minutes).",
    },
    "implementation": {"type": "string", "description": "Implementation name from the canvas manifest"},
}


MCP_TOOLS = [
    {
        "name": "canvas_calendar",
        "description": (
            "Show a calendar in a terminal pane next to the agent. "
            "Scenario 'display' just shows events; 'meeting-picker' waits for the user to pick a slot "
            "and returns {startTime, endTime, duration}."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "scenario": {"type": "string", "enum": ["display", "meeting-picker"], "default": "display"},
                **_SPAWN_PROPERTIES,
            },
            "required": [],
        },
    },
    {
        "name": "canvas_document",
        "description": (
            "Show a markdown document in a terminal pane. "
            "Scenario 'display' is read-only; 'edit' waits for the user's text selection or edit."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "scenario": {"type": "string", "enum": ["display", "edit"], "default": "display"},
                "content": {"type": "string", "description": "Markdown content to show"},
                "title": {"type": "string", "description": "Document title"},
                **_SPAWN_PROPERTIES,
            },
            "required": [],
        },
    },
    {
        "name": "canvas_flight",
        "description": "Let the user compare flights and pick a seat. Waits for the selection by default.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "scenario": {"type": "string", "default": "booking"},
                **_SPAWN_PROPERTIES,
            },
            "required": [],
        },
    },
    {
        "name": "canvas_status",
        "description": "Show which pane this session owns and every canvas pane tmux knows about.",
        "inputSchema": {"type": "object", "properties": {}, "required": []},
    },
    {
        "name": "canvas_cleanup",
        "description": "Close canvas panes left behind by sessions that no longer own them.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "dry_run": {"type": "boolean", "description": "Only report what would be closed", "default": False},
            },
            "required": [],
        },
    },
]


def handle_tool_call(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Handle MCP tool call"""

    if name == "canvas_calendar":
        return spawn_canvas(
            kind="calendar",
            scenario=str(arguments.get("scenario") or "display"),
            config=_config(arguments),
            timeout_s=_timeout_s(arguments),
            wait=_wait(arguments),
            implementation=_implementation(arguments),
        )

    if name == "canvas_document":
        config = _config(arguments)
        if arguments.get("content") is not None:
            config["content"] = str(arguments.get("content"))
        if arguments.get("title") is not None:
            config["title"] = str(arguments.get("title"))
        return spawn_canvas(
            kind="document",
            scenario=str(arguments.get("scenario") or "display"),
            config=config,
            timeout_s=_timeout_s(arguments),
            wait=_wait(arguments),
            implementation=_implementation(arguments),
        )

    if name == "canvas_flight":
        return spawn_canvas(
            kind="flight",
            scenario=str(arguments.get("scenario") or "booking"),
            config=_config(arguments),
            timeout_s=_timeout_s(arguments),
            wait=_wait(arguments),
            implementation=_implementation(arguments),
        )

    if name == "canvas_status":
        return canvas_status()

    if name == "canvas_cleanup":
        return canvas_cleanup(dry_run=coerce_bool(arguments.get("dry_run")))

    raise MCPError(code="unknown_tool", message=f"unknown tool: {name}")
