"""
Tmux command runner.

Every tmux invocation made by dispatch goes through TmuxManager.run so the
backing store can be swapped out. FakeTmuxManager implements the subset of
tmux that dispatch uses on top of plain dictionaries, for tests.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.errors import TmuxError

logger = logging.getLogger(__name__)


class TmuxManager:
    """Thin wrapper around the tmux binary."""

    def __init__(self):
        self.base_cmd = ["tmux"]

    @staticmethod
    def available() -> bool:
        return shutil.which("tmux") is not None

    def run(self, args: List[str]) -> subprocess.CompletedProcess:
        """
        Run a tmux command and capture its output.

        Args:
            args: Command arguments (without 'tmux' prefix)

        Returns:
            CompletedProcess result; a non-zero return code is not raised

        Raises:
            TmuxError: If the tmux binary cannot be executed
        """
        full_cmd = self.base_cmd + list(args)
        logger.debug(f"Tmux command: {' '.join(full_cmd)}")
        try:
            result = subprocess.run(full_cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise TmuxError(f"tmux could not be executed: {e}") from e

        if result.returncode != 0:
            logger.debug(f"Tmux command failed (rc={result.returncode}): {result.stderr.strip()}")
        return result

    def attach(self, target: str) -> int:
        """Attach the current terminal to target, returning tmux's exit code."""
        env = dict(os.environ)
        env["TERM_PROGRAM"] = "dumb"
        try:
            return subprocess.run(self.base_cmd + ["attach", "-t", target], env=env).returncode
        except OSError as e:
            raise TmuxError(f"tmux could not be executed: {e}") from e


@dataclass
class FakeWindow:
    name: str
    cwd: str
    command: str = "zsh"
    dead: bool = False
    pid: int = 4242
    keys: List[str] = field(default_factory=list)
    pasted: List[str] = field(default_factory=list)
    screen: List[str] = field(default_factory=list)


@dataclass
class FakeSession:
    name: str
    options: Dict[str, str] = field(default_factory=dict)
    windows: List[FakeWindow] = field(default_factory=list)

    def window(self, name: str) -> Optional[FakeWindow]:
        for window in self.windows:
            if window.name == name:
                return window
        return None


class FakeTmuxManager(TmuxManager):
    """Test double that keeps tmux sessions and windows in memory."""

    def __init__(self, fail_commands: Optional[List[str]] = None):
        super().__init__()
        self.sessions: Dict[str, FakeSession] = {}
        self.buffers: Dict[str, str] = {}
        self.calls: List[List[str]] = []
        self.attached: List[str] = []
        self.fail_commands = set(fail_commands or [])
        self._next_pid = 1000

    def run(self, args: List[str]) -> subprocess.CompletedProcess:  # type: ignore[override]
        args = list(args)
        self.calls.append(args)
        command = args[0]
        if command in self.fail_commands:
            return self._result(args, 1, stderr=f"{command}: simulated failure")

        handler = getattr(self, "_cmd_" + command.replace("-", "_"), None)
        if handler is None:
            return self._result(args, 0)
        return handler(args)

    def available(self) -> bool:  # type: ignore[override]
        return True

    def attach(self, target: str) -> int:  # type: ignore[override]
        self.attached.append(target)
        return 0

    # Helpers for tests

    def window(self, target: str) -> Optional[FakeWindow]:
        session_name, _, window_name = target.partition(":")
        session = self.sessions.get(session_name)
        if session is None:
            return None
        return session.window(window_name)

    def commands(self, name: str) -> List[List[str]]:
        return [call for call in self.calls if call[0] == name]

    # tmux commands

    @staticmethod
    def _result(args: List[str], returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(["tmux"] + args, returncode, stdout, stderr)

    @staticmethod
    def _opt(args: List[str], flag: str) -> Optional[str]:
        if flag in args:
            index = args.index(flag)
            if index + 1 < len(args):
                return args[index + 1]
        return None

    def _target(self, args: List[str]):
        target = self._opt(args, "-t") or ""
        session_name, _, window_name = target.partition(":")
        return self.sessions.get(session_name), window_name

    def _cmd_has_session(self, args):
        session, _ = self._target(args)
        return self._result(args, 0 if session else 1)

    def _cmd_new_session(self, args):
        name = self._opt(args, "-s")
        if name in self.sessions:
            return self._result(args, 1, stderr=f"duplicate session: {name}")
        window_name = self._opt(args, "-n") or "0"
        session = FakeSession(name=name)
        session.windows.append(FakeWindow(name=window_name, cwd=self._opt(args, "-c") or "/"))
        self.sessions[name] = session
        return self._result(args, 0)

    def _cmd_set(self, args):
        session, _ = self._target(args)
        if session is None:
            return self._result(args, 1, stderr="no such session")
        session.options[args[-2]] = args[-1]
        return self._result(args, 0)

    def _cmd_setw(self, args):
        session, window_name = self._target(args)
        if session is None or session.window(window_name) is None:
            return self._result(args, 1, stderr="no such window")
        return self._result(args, 0)

    def _cmd_new_window(self, args):
        session, _ = self._target(args)
        if session is None:
            return self._result(args, 1, stderr="no such session")
        self._next_pid += 1
        session.windows.append(FakeWindow(
            name=self._opt(args, "-n"),
            cwd=self._opt(args, "-c") or "/",
            pid=self._next_pid,
        ))
        return self._result(args, 0)

    def _cmd_kill_window(self, args):
        session, window_name = self._target(args)
        window = session.window(window_name) if session else None
        if window is None:
            return self._result(args, 1, stderr="no such window")
        session.windows.remove(window)
        return self._result(args, 0)

    def _cmd_list_windows(self, args):
        session, _ = self._target(args)
        if session is None:
            return self._result(args, 1, stderr="no such session")
        fmt = self._opt(args, "-F") or "#{window_name}"
        lines = []
        for window in session.windows:
            line = (fmt
                    .replace("#{window_name}", window.name)
                    .replace("#{pane_current_command}", window.command)
                    .replace("#{pane_current_path}", window.cwd)
                    .replace("#{pane_dead}", "1" if window.dead else "0"))
            lines.append(line)
        return self._result(args, 0, stdout="\n".join(lines) + "\n")

    def _cmd_send_keys(self, args):
        session, window_name = self._target(args)
        window = session.window(window_name) if session else None
        if window is None:
            return self._result(args, 1, stderr="no such window")
        window.keys.append(" ".join(args[args.index("-t") + 2:]))
        return self._result(args, 0)

    def _cmd_capture_pane(self, args):
        session, window_name = self._target(args)
        window = session.window(window_name) if session else None
        if window is None:
            return self._result(args, 1, stderr="no such window")
        return self._result(args, 0, stdout="\n".join(window.screen) + "\n")

    def _cmd_display_message(self, args):
        session, window_name = self._target(args)
        window = session.window(window_name) if session else None
        if window is None:
            return self._result(args, 1, stderr="no such window")
        return self._result(args, 0, stdout=f"{window.pid}\n")

    def _cmd_load_buffer(self, args):
        path = args[-1]
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                self.buffers[self._opt(args, "-b")] = f.read()
        except OSError as e:
            return self._result(args, 1, stderr=str(e))
        return self._result(args, 0)

    def _cmd_paste_buffer(self, args):
        name = self._opt(args, "-b")
        session, window_name = self._target(args)
        window = session.window(window_name) if session else None
        if window is None or name not in self.buffers:
            return self._result(args, 1, stderr="no buffer or window")
        window.pasted.append(self.buffers[name])
        return self._result(args, 0)

    def _cmd_delete_buffer(self, args):
        name = self._opt(args, "-b")
        if self.buffers.pop(name, None) is None:
            return self._result(args, 1, stderr=f"no buffer {name}")
        return self._result(args, 0)
