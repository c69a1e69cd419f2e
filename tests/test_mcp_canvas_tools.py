import json
import unittest
from pathlib import Path
from unittest.mock import patch


def _registry():
    from tuicanvas.contracts.v1 import CanvasImplementation, CanvasManifest, ScenarioDefinition
    from tuicanvas.kernel.registry import CanvasRegistry, RegistryEntry

    reg = CanvasRegistry()
    reg.register(
        RegistryEntry(
            manifest=CanvasManifest(
                id="document",
                scenarios={"display": ScenarioDefinition(), "edit": ScenarioDefinition()},
                implementations={
                    "ink": CanvasImplementation(framework="ink", command=["doc-ink"]),
                    "textual": CanvasImplementation(framework="textual", command=["doc-textual"]),
                },
                defaultImplementation="ink",
            ),
            path=Path("/opt/canvases/document"),
        )
    )
    return reg


class _FakeOrchestrator:
    def __init__(self, result=None):
        from tuicanvas.contracts.v1 import CanvasResult

        self.calls = []
        self.registry = _registry()
        self.result = result or CanvasResult(success=True, data={"ok": 1}, pane_id="%4", instance_id="document-1")

    async def run_canvas(self, kind, scenario="default", config=None, **kwargs):
        self.calls.append((kind, scenario, config, kwargs))
        return self.result


class TestMcpCanvasTools(unittest.TestCase):
    def test_document_tool_merges_content_and_title(self) -> None:
        from tuicanvas.ports.mcp import server as mcp_server

        fake = _FakeOrchestrator()
        with patch.object(mcp_server, "_orchestrator", return_value=fake):
            out = mcp_server.handle_tool_call(
                "canvas_document",
                {
                    "scenario": "edit",
                    "content": "# Notes",
                    "title": "Plan",
                    "config": {"readOnly": False},
                    "timeout_ms": 1500,
                    "wait": "true",
                },
            )

        self.assertEqual(
            out,
            {
                "success": True,
                "data": {"ok": 1},
                "paneId": "%4",
                "instanceId": "document-1",
                "implementation": "ink",
                "framework": "ink",
            },
        )
        kind, scenario, config, kwargs = fake.calls[0]
        self.assertEqual(kind, "document")
        self.assertEqual(scenario, "edit")
        self.assertEqual(config, {"readOnly": False, "content": "# Notes", "title": "Plan"})
        self.assertEqual(kwargs["timeout_s"], 1.5)
        self.assertTrue(kwargs["wait_for_result"] is True)

    def test_calendar_defaults(self) -> None:
        from tuicanvas.ports.mcp import server as mcp_server

        fake = _FakeOrchestrator()
        with patch.object(mcp_server, "_orchestrator", return_value=fake):
            mcp_server.handle_tool_call("canvas_calendar", {})
        kind, scenario, config, kwargs = fake.calls[0]
        self.assertEqual((kind, scenario, config), ("calendar", "display", {}))
        self.assertIsNone(kwargs["timeout_s"])
        self.assertIsNone(kwargs["wait_for_result"])
        self.assertIsNone(kwargs["implementation"])

    def test_wait_for_result_and_millisecond_timeout(self) -> None:
        from tuicanvas.ports.mcp import server as mcp_server

        fake = _FakeOrchestrator()
        with patch.object(mcp_server, "_orchestrator", return_value=fake):
            out = mcp_server.handle_tool_call(
                "canvas_document",
                {
                    "scenario": "edit",
                    "config": "{\"readOnly\": true}",
                    "waitForResult": False,
                    "timeout": 60000,
                    "implementation": "textual",
                },
            )
        kind, scenario, config, kwargs = fake.calls[0]
        self.assertEqual(config, {"readOnly": True})
        self.assertIs(kwargs["wait_for_result"], False)
        self.assertEqual(kwargs["timeout_s"], 60.0)
        self.assertEqual(kwargs["implementation"], "textual")
        self.assertEqual((out["implementation"], out["framework"]), ("textual", "textual"))

        schema = {t["name"]: t["inputSchema"]["properties"] for t in mcp_server.MCP_TOOLS}
        for tool in ("canvas_calendar", "canvas_document", "canvas_flight"):
            self.assertIn("waitForResult", schema[tool])
            self.assertIn("timeout", schema[tool])

    def test_bad_arguments_raise_mcp_error(self) -> None:
        from tuicanvas.ports.mcp import server as mcp_server

        with self.assertRaises(mcp_server.MCPError) as cm:
            mcp_server.handle_tool_call("canvas_flight", {"timeout_ms": "soon"})
        self.assertEqual(cm.exception.code, "invalid_argument")
        with self.assertRaises(mcp_server.MCPError):
            mcp_server.handle_tool_call("canvas_flight", {"config": [1, 2]})
        with self.assertRaises(mcp_server.MCPError) as cm:
            mcp_server.handle_tool_call("canvas_weather", {})
        self.assertEqual(cm.exception.code, "unknown_tool")


class TestMcpRequests(unittest.TestCase):
    def test_initialize_and_tools_list(self) -> None:
        from tuicanvas.ports.mcp.main import handle_request

        resp = handle_request({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
        self.assertEqual(resp["result"]["serverInfo"]["name"], "tuicanvas-mcp")

        resp = handle_request({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        names = {t["name"] for t in resp["result"]["tools"]}
        self.assertEqual(names, {"canvas_calendar", "canvas_document", "canvas_flight", "canvas_status", "canvas_cleanup"})

        self.assertEqual(handle_request({"jsonrpc": "2.0", "method": "notifications/initialized"}), {})
        resp = handle_request({"jsonrpc": "2.0", "id": 3, "method": "bogus"})
        self.assertEqual(resp["error"]["code"], -32601)

    def test_failed_canvas_result_is_flagged_as_error(self) -> None:
        from tuicanvas.contracts.v1 import CanvasResult
        from tuicanvas.ports.mcp import main as mcp_main
        from tuicanvas.ports.mcp import server as mcp_server

        fake = _FakeOrchestrator(CanvasResult(success=False, error="Timeout waiting for user selection"))
        with patch.object(mcp_server, "_orchestrator", return_value=fake):
            resp = mcp_main.handle_request(
                {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": "canvas_flight", "arguments": {}}}
            )
        self.assertTrue(resp["result"]["isError"])
        payload = json.loads(resp["result"]["content"][0]["text"])
        self.assertEqual(payload["error"], "Timeout waiting for user selection")

    def test_tool_error_is_wrapped(self) -> None:
        from tuicanvas.ports.mcp.main import handle_request

        resp = handle_request(
            {"jsonrpc": "2.0", "id": 8, "method": "tools/call", "params": {"name": "nope", "arguments": {}}}
        )
        self.assertTrue(resp["result"]["isError"])
        payload = json.loads(resp["result"]["content"][0]["text"])
        self.assertEqual(payload["error"]["code"], "unknown_tool")


if __name__ == "__main__":
    unittest.main()
