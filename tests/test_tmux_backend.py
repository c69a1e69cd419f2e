import subprocess
import unittest
from unittest.mock import patch


def _completed(args, stdout: str = "", returncode: int = 0):
    return subprocess.CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr="")


class TestTmuxBackend(unittest.TestCase):
    def test_split_window_returns_new_pane_id(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        calls = []

        def _fake_run(args, **kwargs):
            calls.append(args)
            return _completed(args, stdout="%42\n")

        with patch.object(tmux_mod.subprocess, "run", side_effect=_fake_run):
            pane_id = tmux_mod.TmuxPaneBackend().split_window(
                ["bun", "run", "canvas.ts", "--id", "calendar-1"],
                percent=67,
                env={"CANVAS_THEME": "dark mode"},
                target="%3",
            )

        self.assertEqual(pane_id, "%42")
        args = calls[0]
        self.assertEqual(args[:8], ["tmux", "split-window", "-h", "-p", "67", "-P", "-F", "#{pane_id}"])
        self.assertIn("-t", args)
        self.assertEqual(args[args.index("-t") + 1], "%3")
        self.assertEqual(args[-1], "env CANVAS_THEME='dark mode' bun run canvas.ts --id calendar-1")

    def test_split_window_failure_is_none(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        with patch.object(tmux_mod.subprocess, "run", side_effect=lambda args, **kw: _completed(args, returncode=1)):
            self.assertIsNone(tmux_mod.TmuxPaneBackend().split_window(["x"], percent=67))

    def test_missing_tmux_binary_is_not_an_exception(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        with patch.object(tmux_mod.subprocess, "run", side_effect=FileNotFoundError("tmux")):
            backend = tmux_mod.TmuxPaneBackend()
            self.assertFalse(backend.available())
            self.assertFalse(backend.pane_exists("%1"))
            self.assertIsNone(backend.get_option("%1", "@canvas-owner"))
            self.assertEqual(backend.list_panes(), [])

    def test_timeout_is_reported_as_failure(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        def _timeout(args, **kwargs):
            raise subprocess.TimeoutExpired(cmd=args, timeout=3.0)

        with patch.object(tmux_mod.subprocess, "run", side_effect=_timeout):
            self.assertFalse(tmux_mod.TmuxPaneBackend().kill_pane("%1"))

    def test_pane_exists_compares_reported_id(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        with patch.object(tmux_mod.subprocess, "run", side_effect=lambda args, **kw: _completed(args, stdout="%5\n")):
            backend = tmux_mod.TmuxPaneBackend()
            self.assertTrue(backend.pane_exists("%5"))
            self.assertFalse(backend.pane_exists("%6"))

    def test_list_panes_parses_format(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        out = "%1\t100\t0\tzsh\n%2\t200\t1\tbun\n\n"
        with patch.object(tmux_mod.subprocess, "run", side_effect=lambda args, **kw: _completed(args, stdout=out)):
            panes = tmux_mod.TmuxPaneBackend().list_panes()
        self.assertEqual([(p.id, p.pid, p.dead, p.current_command) for p in panes], [
            ("%1", 100, False, "zsh"),
            ("%2", 200, True, "bun"),
        ])

    def test_option_roundtrip_uses_pane_scope(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        calls = []

        def _fake_run(args, **kwargs):
            calls.append(args)
            return _completed(args, stdout="abc123def456\n")

        with patch.object(tmux_mod.subprocess, "run", side_effect=_fake_run):
            backend = tmux_mod.TmuxPaneBackend()
            self.assertTrue(backend.set_option("%9", "@canvas-owner", "abc123def456"))
            self.assertEqual(backend.get_option("%9", "@canvas-owner"), "abc123def456")

        self.assertEqual(calls[0], ["tmux", "set-option", "-p", "-t", "%9", "@canvas-owner", "abc123def456"])
        self.assertEqual(calls[1], ["tmux", "show-options", "-p", "-q", "-t", "%9", "-v", "@canvas-owner"])

    def test_respawn_kills_and_reruns(self) -> None:
        from tuicanvas.runners import tmux as tmux_mod

        calls = []

        def _fake_run(args, **kwargs):
            calls.append(args)
            return _completed(args)

        with patch.object(tmux_mod.subprocess, "run", side_effect=_fake_run):
            self.assertTrue(tmux_mod.TmuxPaneBackend().respawn_pane("%9", ["canvas", "--id", "a b"]))
        self.assertEqual(calls[0], ["tmux", "respawn-pane", "-t", "%9", "-k", "canvas --id 'a b'"])


class TestDefaultBackend(unittest.TestCase):
    def test_selects_by_tmux_env(self) -> None:
        from tuicanvas.runners import HeadlessPaneBackend, TmuxPaneBackend, default_backend

        self.assertIsInstance(default_backend({"TMUX": "/tmp/tmux-1000/default,1,0"}), TmuxPaneBackend)
        self.assertIsInstance(default_backend({}), HeadlessPaneBackend)


class TestHeadlessDirectMode(unittest.TestCase):
    def test_canvas_output_goes_to_log_not_controller_stdio(self) -> None:
        import sys
        import tempfile
        from pathlib import Path

        from tuicanvas.runners import HeadlessPaneBackend

        script = "import sys; data = sys.stdin.read(); print('drawn', repr(data)); print('oops', file=sys.stderr)"
        with tempfile.TemporaryDirectory() as td:
            backend = HeadlessPaneBackend(log_dir=Path(td))
            pane_id = backend.split_window([sys.executable, "-c", script], percent=67)
            self.assertIsNotNone(pane_id)
            self.assertEqual(backend.panes[pane_id].process.wait(timeout=10), 0)
            log = backend.log_path(pane_id)
            self.assertEqual(log, Path(td) / f"canvas-{pane_id.lstrip('%')}.log")
            text = log.read_text(encoding="utf-8")
        self.assertIn("drawn ''", text)
        self.assertIn("oops", text)

    def test_stdio_detached_by_default_and_inherited_on_request(self) -> None:
        from tuicanvas.runners import headless as headless_mod

        with patch.object(headless_mod.subprocess, "Popen") as popen:
            headless_mod.HeadlessPaneBackend().split_window(["canvas"], percent=67)
            kwargs = popen.call_args.kwargs
            self.assertEqual(kwargs["stdin"], subprocess.DEVNULL)
            self.assertEqual(kwargs["stdout"], subprocess.DEVNULL)
            self.assertEqual(kwargs["stderr"], subprocess.DEVNULL)

            popen.reset_mock()
            headless_mod.HeadlessPaneBackend(inherit_stdio=True).split_window(["canvas"], percent=67)
            kwargs = popen.call_args.kwargs
            for key in ("stdin", "stdout", "stderr"):
                self.assertNotIn(key, kwargs)


if __name__ == "__main__":
    unittest.main()
