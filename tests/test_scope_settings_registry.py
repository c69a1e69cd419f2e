import hashlib
import json
import os
import tempfile
import unittest
from pathlib import Path


class TestScope(unittest.TestCase):
    def test_scope_key_hashes_session_pane_and_cwd(self) -> None:
        from tuicanvas.kernel.scope import compute_scope

        env = {"TMUX": "/tmp/tmux-1000/default,1234,0", "TMUX_PANE": "%3"}
        s = compute_scope(env, Path("/work/proj"))
        expected = hashlib.sha256(b"/tmp/tmux-1000/default,1234,0:%3:/work/proj").hexdigest()[:12]
        self.assertEqual(s.scope_key, expected)
        self.assertEqual(len(s.scope_key), 12)
        self.assertTrue(s.in_tmux)

    def test_scope_differs_per_pane_and_directory(self) -> None:
        from tuicanvas.kernel.scope import compute_scope

        env = {"TMUX": "sock,1,0", "TMUX_PANE": "%1"}
        a = compute_scope(env, Path("/a")).scope_key
        self.assertEqual(a, compute_scope(dict(env), Path("/a")).scope_key)
        self.assertNotEqual(a, compute_scope({"TMUX": "sock,1,0", "TMUX_PANE": "%2"}, Path("/a")).scope_key)
        self.assertNotEqual(a, compute_scope(env, Path("/b")).scope_key)

    def test_outside_tmux_uses_placeholders(self) -> None:
        from tuicanvas.kernel.scope import compute_scope

        s = compute_scope({}, Path("/x"))
        self.assertFalse(s.in_tmux)
        self.assertEqual(s.tmux_pane, "no-pane")
        self.assertEqual(s.scope_key, hashlib.sha256(b"no-tmux:no-pane:/x").hexdigest()[:12])


class TestSettings(unittest.TestCase):
    def setUp(self) -> None:
        self._old_home = os.environ.get("TUICANVAS_HOME")
        self._td = tempfile.TemporaryDirectory()
        os.environ["TUICANVAS_HOME"] = self._td.name

    def tearDown(self) -> None:
        self._td.cleanup()
        if self._old_home is None:
            os.environ.pop("TUICANVAS_HOME", None)
        else:
            os.environ["TUICANVAS_HOME"] = self._old_home

    def test_defaults_without_file(self) -> None:
        from tuicanvas.kernel.settings import load_settings

        s = load_settings({})
        self.assertEqual(s.timeout_s, 300.0)
        self.assertEqual(s.connect_attempts, 10)
        self.assertEqual(s.connect_delay_s, 0.1)
        self.assertEqual(s.split_percent, 67)
        self.assertTrue(s.kill_pane_on_result)
        self.assertEqual(s.canvases_path, Path(self._td.name).resolve() / "canvases")

    def test_file_values_and_env_overrides(self) -> None:
        from tuicanvas.kernel.settings import load_settings, save_settings_doc

        save_settings_doc({"timeout_s": 60, "split_percent": 50, "second_peer_policy": "reject"})
        s = load_settings({"TUICANVAS_TIMEOUT_S": "12.5", "TUICANVAS_KILL_PANE_ON_RESULT": "false"})
        self.assertEqual(s.timeout_s, 12.5)
        self.assertEqual(s.split_percent, 50)
        self.assertEqual(s.second_peer_policy, "reject")
        self.assertFalse(s.kill_pane_on_result)

    def test_bad_values_fall_back(self) -> None:
        from tuicanvas.kernel.settings import CanvasSettings

        s = CanvasSettings.from_dict({"timeout_s": -1, "split_percent": 500, "second_peer_policy": "maybe"})
        self.assertEqual(s.timeout_s, 300.0)
        self.assertEqual(s.split_percent, 90)
        self.assertEqual(s.second_peer_policy, "accept")

    def test_unparsable_file_is_ignored(self) -> None:
        from tuicanvas.kernel.settings import load_settings

        (Path(self._td.name) / "settings.yaml").write_text("timeout_s: [unclosed\n", encoding="utf-8")
        self.assertEqual(load_settings({}).timeout_s, 300.0)


MANIFEST_YAML = """\
id: calendar
name: Calendar
version: 1.0.0
scenarios:
  display:
    description: Show events
  meeting-picker:
    description: Pick a slot
implementations:
  ink:
    framework: ink
    command: ["node", "./dist/cli.js"]
    args: ["--color"]
    env:
      FORCE_COLOR: "1"
defaultImplementation: ink
"""


class TestRegistry(unittest.TestCase):
    def test_discover_and_resolve(self) -> None:
        from tuicanvas.kernel.registry import load_registry

        with tempfile.TemporaryDirectory() as td:
            d = Path(td) / "calendar"
            d.mkdir()
            (d / "manifest.yaml").write_text(MANIFEST_YAML, encoding="utf-8")
            reg = load_registry(Path(td))

            r = reg.resolve("calendar")
            self.assertEqual(r.implementation, "ink")
            self.assertEqual(r.framework, "ink")
            self.assertEqual(r.command, ["node", str((d / "dist" / "cli.js").resolve()), "--color"])
            self.assertEqual(r.env, {"FORCE_COLOR": "1"})
            self.assertEqual(r.validate_scenario("default"), "display")
            self.assertEqual(r.validate_scenario("meeting-picker"), "meeting-picker")

    def test_json_manifest_and_invalid_manifest(self) -> None:
        from tuicanvas.kernel.registry import load_registry

        with tempfile.TemporaryDirectory() as td:
            good = Path(td) / "flight"
            good.mkdir()
            (good / "manifest.json").write_text(
                json.dumps({"id": "flight", "scenarios": {"booking": {}}, "implementations": {"py": {"command": ["python3", "-m", "flight"]}}}),
                encoding="utf-8",
            )
            bad = Path(td) / "broken"
            bad.mkdir()
            (bad / "manifest.yaml").write_text("name: no id here\n", encoding="utf-8")
            reg = load_registry(Path(td))
            self.assertEqual([e.manifest.id for e in reg.list()], ["flight"])
            self.assertEqual(reg.resolve("flight").command, ["python3", "-m", "flight"])

    def test_unknown_kind_and_scenario(self) -> None:
        from tuicanvas.contracts.v1 import CanvasImplementation, CanvasManifest, ScenarioDefinition
        from tuicanvas.kernel.registry import CanvasRegistry, RegistryEntry, UnknownCanvasError, UnknownScenarioError

        reg = CanvasRegistry()
        with self.assertRaises(UnknownCanvasError):
            reg.resolve("weather")
        reg.register(
            RegistryEntry(
                manifest=CanvasManifest(
                    id="document",
                    scenarios={"display": ScenarioDefinition(), "edit": ScenarioDefinition()},
                    implementations={"tui": CanvasImplementation(command=["doc"])},
                ),
                path=Path("/opt/canvases/document"),
            )
        )
        with self.assertRaises(UnknownScenarioError):
            reg.resolve("document").validate_scenario("slideshow")

    def test_wait_policy(self) -> None:
        from tuicanvas.contracts.v1 import CanvasManifest, ScenarioDefinition
        from tuicanvas.kernel.registry import CanvasRegistry, RegistryEntry, default_wait_policy

        self.assertTrue(default_wait_policy("calendar", "meeting-picker"))
        self.assertFalse(default_wait_policy("calendar", "display"))
        self.assertTrue(default_wait_policy("document", "edit"))
        self.assertFalse(default_wait_policy("document", "display"))
        self.assertTrue(default_wait_policy("flight", "booking"))

        reg = CanvasRegistry()
        reg.register(
            RegistryEntry(
                manifest=CanvasManifest(id="calendar", scenarios={"display": ScenarioDefinition(waitForResult=True)}),
                path=Path("/opt/canvases/calendar"),
            )
        )
        self.assertTrue(reg.should_wait_by_default("calendar", "display"))


if __name__ == "__main__":
    unittest.main()
