from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .base import PaneListing


def _run_tmux(args: List[str], *, timeout_s: float = 3.0) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(
            ["tmux", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
            check=False,
        )
        return int(p.returncode), (p.stdout or ""), (p.stderr or "")
    except subprocess.TimeoutExpired:
        return 124, "", "tmux timeout"
    except OSError as e:
        return 127, "", str(e)


def _truthy(out: str) -> bool:
    return (out or "").strip() in ("1", "yes", "on", "true")


def shell_line(command: List[str], env: Optional[Dict[str, str]] = None) -> str:
    """Render argv (plus an `env K=V` prefix) as one shell command for tmux."""
    env_prefix = ""
    if env:
        parts = []
        for k, v in env.items():
            if not isinstance(k, str) or not k.strip():
                continue
            if not isinstance(v, str):
                continue
            parts.append(f"{k.strip()}={shlex.quote(v)}")
        if parts:
            env_prefix = "env " + " ".join(parts) + " "
    cmd = [c for c in (command or []) if isinstance(c, str) and c]
    return env_prefix + " ".join(shlex.quote(x) for x in cmd)


class TmuxPaneBackend:
    name = "tmux"

    def available(self) -> bool:
        code, _, _ = _run_tmux(["display-message", "-p", "#{pid}"])
        return code == 0

    def pane_exists(self, pane_id: str) -> bool:
        if not pane_id:
            return False
        code, out, _ = _run_tmux(["display-message", "-t", pane_id, "-p", "#{pane_id}"])
        return code == 0 and out.strip() == pane_id

    def pane_dead(self, pane_id: str) -> bool:
        code, out, _ = _run_tmux(["display-message", "-t", pane_id, "-p", "#{pane_dead}"])
        if code != 0:
            return False
        return _truthy(out)

    def get_option(self, pane_id: str, key: str) -> Optional[str]:
        code, out, _ = _run_tmux(["show-options", "-p", "-q", "-t", pane_id, "-v", key])
        if code != 0:
            return None
        return out.strip() or None

    def set_option(self, pane_id: str, key: str, value: str) -> bool:
        code, _, _ = _run_tmux(["set-option", "-p", "-t", pane_id, key, value])
        return code == 0

    def list_panes(self) -> List[PaneListing]:
        code, out, _ = _run_tmux(
            ["list-panes", "-a", "-F", "#{pane_id}\t#{pane_pid}\t#{pane_dead}\t#{pane_current_command}"]
        )
        if code != 0:
            return []
        panes: List[PaneListing] = []
        for ln in out.splitlines():
            parts = ln.split("\t", 3)
            if not parts or not parts[0].strip():
                continue
            pid_s = parts[1].strip() if len(parts) > 1 else ""
            panes.append(
                PaneListing(
                    id=parts[0].strip(),
                    pid=int(pid_s) if pid_s.isdigit() else 0,
                    dead=_truthy(parts[2]) if len(parts) > 2 else False,
                    current_command=parts[3].strip() if len(parts) > 3 else "",
                )
            )
        return panes

    def split_window(
        self,
        command: List[str],
        *,
        percent: int,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        target: Optional[str] = None,
    ) -> Optional[str]:
        # -h: side by side; -P -F prints the new pane id
        args = ["split-window", "-h", "-p", str(int(percent)), "-P", "-F", "#{pane_id}"]
        if target:
            args += ["-t", target]
        if cwd is not None:
            args += ["-c", str(cwd)]
        args.append(shell_line(command, env))
        code, out, _ = _run_tmux(args, timeout_s=10.0)
        pane_id = out.strip()
        if code != 0 or not pane_id:
            return None
        return pane_id

    def respawn_pane(self, pane_id: str, command: List[str], *, env: Optional[Dict[str, str]] = None) -> bool:
        code, _, _ = _run_tmux(["respawn-pane", "-t", pane_id, "-k", shell_line(command, env)], timeout_s=10.0)
        return code == 0

    def send_keys(self, pane_id: str, *keys: str) -> bool:
        code, _, _ = _run_tmux(["send-keys", "-t", pane_id, *keys])
        return code == 0

    def kill_pane(self, pane_id: str) -> bool:
        code, _, _ = _run_tmux(["kill-pane", "-t", pane_id])
        return code == 0

    def pane_command(self, pane_id: str) -> str:
        """Full argv of the process running in the pane (via ps)."""
        code, out, _ = _run_tmux(["display-message", "-t", pane_id, "-p", "#{pane_pid}"])
        pid = out.strip()
        if code != 0 or not pid.isdigit():
            return ""
        try:
            p = subprocess.run(
                ["ps", "-p", pid, "-o", "args="],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                timeout=3.0,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return ""
        return (p.stdout or "").strip()
