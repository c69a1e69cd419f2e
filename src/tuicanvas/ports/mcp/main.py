"""
tuicanvas MCP Server: stdio entry point

Usage:
    python -m tuicanvas.ports.mcp.main

or via the console script:
    tuicanvas-mcp
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

from ... import __version__
from ...kernel.settings import load_settings
from ...util.obslog import setup_root_json_logging
from .server import MCP_TOOLS, MCPError, handle_tool_call

logger = logging.getLogger("tuicanvas.mcp")

_PARSE_ERROR: Dict[str, Any] = {"__parse_error__": True}


def _read_message() -> Optional[Dict[str, Any]]:
    """Read one JSON-RPC message from stdin; None at EOF."""
    line = sys.stdin.readline()
    if not line:
        return None
    if not line.strip():
        return {}
    try:
        msg = json.loads(line)
    except ValueError as e:
        logger.warning("unparsable request line: %s", e)
        return _PARSE_ERROR
    return msg if isinstance(msg, dict) else _PARSE_ERROR


def _write_message(msg: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(msg, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _make_response(id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def _make_error(id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def _tool_text(payload: Dict[str, Any], *, is_error: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "content": [
            {
                "type": "text",
                "text": json.dumps(payload, ensure_ascii=False, indent=2),
            }
        ],
    }
    if is_error:
        out["isError"] = True
    return out


def handle_request(req: Dict[str, Any]) -> Dict[str, Any]:
    """Handle one MCP JSON-RPC request; {} for notifications."""
    req_id = req.get("id")
    method = str(req.get("method") or "")
    params = req.get("params") or {}

    if method == "initialize":
        return _make_response(req_id, {
            "protocolVersion": "2024-11-05",
            "capabilities": {
                "tools": {},
                "resources": {},
                "prompts": {},
            },
            "serverInfo": {
                "name": "tuicanvas-mcp",
                "version": __version__,
            },
        })

    if method.startswith("notifications/"):
        return {}

    if method == "tools/list":
        return _make_response(req_id, {"tools": MCP_TOOLS})

    # Some clients probe these even when unused
    if method == "resources/list":
        return _make_response(req_id, {"resources": []})

    if method == "prompts/list":
        return _make_response(req_id, {"prompts": []})

    if method == "ping":
        return _make_response(req_id, {})

    if method == "logging/setLevel":
        return _make_response(req_id, {})

    if method == "tools/call":
        tool_name = str(params.get("name") or "")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            arguments = {}

        try:
            result = handle_tool_call(tool_name, arguments)
            return _make_response(req_id, _tool_text(result, is_error=result.get("success") is False))
        except MCPError as e:
            return _make_response(req_id, _tool_text(
                {"error": {"code": e.code, "message": e.message, "details": e.details}},
                is_error=True,
            ))
        except Exception as e:
            logger.exception("tool %s failed", tool_name, extra={"op": tool_name})
            return _make_response(req_id, _tool_text(
                {"error": {"code": "internal_error", "message": str(e)}},
                is_error=True,
            ))

    return _make_error(req_id, -32601, f"Method not found: {method}")


def main() -> int:
    """stdio main loop"""
    setup_root_json_logging(component="mcp", level=load_settings().log_level, stream=sys.stderr)
    while True:
        msg = _read_message()
        if msg is None:
            break
        if msg is _PARSE_ERROR:
            _write_message(_make_error(None, -32700, "Parse error"))
            continue
        if not msg:
            continue

        resp = handle_request(msg)
        if resp:
            _write_message(resp)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
