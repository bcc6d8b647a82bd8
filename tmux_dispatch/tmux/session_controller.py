"""
Tmux Session Controller Module

All agents live as windows of one shared tmux session. DispatchSession is
the handle for that parent session; SessionRegistry addresses the agent
windows inside it. Nothing is cached: every query reads tmux again.
"""

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from ..core.errors import ProvisioningError, TmuxError
from .manager import TmuxManager

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "dispatch"
CONTROL_WINDOW = "dispatch"
HISTORY_LIMIT = 50000

# Tab colors, assigned round-robin by window count
TAB_COLORS = [
    "2E86AB", "A23B72", "F18F01", "C73E1D",
    "3B1F2B", "44BBA4", "E94F37", "393E41",
]

LIST_FORMAT = "#{window_name}|#{pane_current_command}|#{pane_current_path}|#{pane_dead}"


@dataclass
class SessionEntry:
    """One agent window as reported by tmux."""
    name: str
    command: str
    cwd: str
    is_dead: bool


def hex_to_rgb(hex_color: str):
    return int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)


def palette_color(position: int) -> str:
    """Palette entry for the window at 1-based position."""
    return TAB_COLORS[(max(position, 1) - 1) % len(TAB_COLORS)]


class DispatchSession:
    """
    Handle for the shared parent session.

    The session is created on first use and configured exactly once, when
    it is created.
    """

    def __init__(self, tmux: TmuxManager, name: str = DEFAULT_SESSION_NAME):
        self.tmux = tmux
        self.name = name

    def exists(self) -> bool:
        try:
            return self.tmux.run(["has-session", "-t", self.name]).returncode == 0
        except TmuxError:
            return False

    def ensure(self) -> bool:
        """
        Create and configure the parent session if it is missing.

        Returns:
            bool: True if the session was created by this call

        Raises:
            ProvisioningError: If tmux refuses to create the session
        """
        if self.exists():
            return False

        result = self.tmux.run(["new-session", "-d", "-s", self.name, "-n", CONTROL_WINDOW])
        if result.returncode != 0:
            raise ProvisioningError(f"Failed to create tmux session '{self.name}': {result.stderr.strip()}")

        for option, value in (("mouse", "on"), ("history-limit", str(HISTORY_LIMIT))):
            result = self.tmux.run(["set", "-t", self.name, option, value])
            if result.returncode != 0:
                raise ProvisioningError(f"Failed to configure tmux session: {result.stderr.strip()}")

        # Window names become terminal tab titles; older tmux may reject these
        self.tmux.run(["set", "-t", self.name, "set-titles", "on"])
        self.tmux.run(["set", "-t", self.name, "set-titles-string", "#W"])

        self.tmux.run([
            "send-keys", "-t", f"{self.name}:{CONTROL_WINDOW}", "# Dispatch control window", "Enter"
        ])
        logger.info(f"Created tmux session {self.name}")
        return True


class SessionRegistry:
    """
    Addresses agent windows inside the shared session.

    Reads treat any tmux failure as "does not exist". Only window creation
    raises.
    """

    def __init__(self, session: DispatchSession):
        self.session = session
        self.tmux = session.tmux

    def target_of(self, agent_id: str) -> str:
        return f"{self.session.name}:{agent_id}"

    def _window_names(self) -> List[str]:
        try:
            result = self.tmux.run(["list-windows", "-t", self.session.name, "-F", "#{window_name}"])
        except TmuxError:
            return []
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.split("\n") if line]

    def exists(self, agent_id: str) -> bool:
        return agent_id in self._window_names()

    def has_any_entries(self) -> bool:
        return self.session.exists()

    def create(self, agent_id: str, cwd: Path) -> bool:
        """
        Create the window for an agent.

        Args:
            agent_id: Window name
            cwd: Working directory of the window

        Returns:
            bool: False (with a warning) if the window already exists

        Raises:
            ProvisioningError: If tmux cannot create the session or window
        """
        if self.exists(agent_id):
            console.print(f"[yellow]⚠[/yellow] Window '{agent_id}' already exists in tmux session")
            return False

        self.session.ensure()
        result = self.tmux.run([
            "new-window", "-a", "-t", self.session.name, "-n", agent_id, "-c", str(cwd)
        ])
        if result.returncode != 0:
            raise ProvisioningError(f"Failed to create tmux window: {result.stderr.strip()}")

        target = self.target_of(agent_id)
        # Let iTerm2 escape sequences through (tmux 3.3+) and keep our name
        self.tmux.run(["setw", "-t", target, "allow-passthrough", "on"])
        self.tmux.run(["setw", "-t", target, "automatic-rename", "off"])

        color = palette_color(len(self._window_names()))
        self.send_line(agent_id, self._identity_escape(agent_id, color) + " && clear")
        logger.debug(f"Window {target} created in {cwd} with color {color}")
        return True

    @staticmethod
    def _identity_escape(agent_id: str, color: str) -> str:
        """printf command setting the tab title, iTerm2 tab color and badge."""
        red, green, blue = hex_to_rgb(color)
        title = agent_id.replace("'", "")
        badge = base64.b64encode(agent_id.encode("utf-8")).decode("ascii")
        return (
            f"printf '\\033]0;{title}\\007"
            f"\\033]6;1;bg;red;brightness;{red}\\007"
            f"\\033]6;1;bg;green;brightness;{green}\\007"
            f"\\033]6;1;bg;blue;brightness;{blue}\\007"
            f"\\033]1337;SetBadgeFormat={badge}\\007'"
        )

    def destroy(self, agent_id: str) -> None:
        try:
            self.tmux.run(["kill-window", "-t", self.target_of(agent_id)])
        except TmuxError as e:
            logger.debug(f"kill-window failed: {e}")

    def list_all(self) -> List[SessionEntry]:
        try:
            result = self.tmux.run(["list-windows", "-t", self.session.name, "-F", LIST_FORMAT])
        except TmuxError:
            return []
        if result.returncode != 0:
            return []

        entries = []
        for line in result.stdout.split("\n"):
            if not line:
                continue
            # The path is the only field that may itself contain '|'
            fields = line.split("|", 2)
            if len(fields) < 3 or "|" not in fields[2]:
                logger.debug(f"Skipping malformed window line: {line!r}")
                continue
            name, command, rest = fields
            cwd, dead = rest.rsplit("|", 1)
            entries.append(SessionEntry(name=name, command=command, cwd=cwd, is_dead=dead == "1"))
        return entries

    def color_of(self, agent_id: str) -> str:
        """Palette color for the window's current position."""
        names = self._window_names()
        position = names.index(agent_id) + 1 if agent_id in names else 1
        return palette_color(position)

    def send_keys(self, agent_id: str, *keys: str) -> bool:
        try:
            result = self.tmux.run(["send-keys", "-t", self.target_of(agent_id), *keys])
        except TmuxError:
            return False
        return result.returncode == 0

    def send_line(self, agent_id: str, text: str) -> bool:
        """Type text into the window and press Enter."""
        return self.send_keys(agent_id, text, "Enter")

    def capture(self, agent_id: str, lines: int) -> str:
        try:
            result = self.tmux.run(["capture-pane", "-t", self.target_of(agent_id), "-p", "-S", f"-{lines}"])
        except TmuxError:
            return ""
        return result.stdout if result.returncode == 0 else ""

    def pane_pid(self, agent_id: str) -> Optional[int]:
        try:
            result = self.tmux.run(["display-message", "-p", "-t", self.target_of(agent_id), "#{pane_pid}"])
        except TmuxError:
            return None
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip())
        except ValueError:
            return None
