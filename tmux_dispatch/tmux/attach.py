"""
Attach Router

Brings the user to an agent window. With a controlling terminal this is a
plain `tmux attach`. Without one (for example when dispatch is driven from
inside another agent) a new tab is opened in the first supported terminal
application that is running, or the manual command is printed.
"""

import logging
import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape

from ..utils.system_utils import SystemUtils
from .session_controller import SessionRegistry, hex_to_rgb

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class TerminalFlavor:
    """
    A terminal application that can open a tab running a command.

    probe() reports whether the application is running. open_tab(target,
    agent_name, color) opens the tab and returns True on success.
    """
    name: str
    probe: Callable[[], bool]
    open_tab: Callable[[str, str, str], bool]


def _osascript(script: str) -> subprocess.CompletedProcess:
    command = ["osascript", "-e", script]
    returncode, stdout, stderr = SystemUtils.run_command(command)
    return subprocess.CompletedProcess(command, returncode, stdout, stderr)


def _process_probe(process_name: str) -> Callable[[], bool]:
    def probe() -> bool:
        result = _osascript(
            f'tell application "System Events" to return (name of processes) contains "{process_name}"'
        )
        return result.returncode == 0 and result.stdout.strip() == "true"
    return probe


def _run_script(render: Callable[[str, str, str], str]) -> Callable[[str, str, str], bool]:
    def open_tab(target: str, agent_name: str, color: str) -> bool:
        result = _osascript(render(target, agent_name, color))
        if result.returncode != 0:
            logger.info(f"osascript failed: {result.stderr.strip()}")
        return result.returncode == 0
    return open_tab


def _iterm_script(target: str, agent_name: str, color: str) -> str:
    red, green, blue = hex_to_rgb(color)
    return f'''tell application "iTerm2"
  activate
  tell current window
    create tab with default profile
    tell current session
      set name to "{agent_name}"
      write text "printf '\\\\e]6;1;bg;red;brightness;{red}\\\\a\\\\e]6;1;bg;green;brightness;{green}\\\\a\\\\e]6;1;bg;blue;brightness;{blue}\\\\a'; TERM_PROGRAM=dumb tmux attach -t {target}"
    end tell
  end tell
end tell'''


def _warp_script(target: str, agent_name: str, color: str) -> str:
    return f'''tell application "Warp"
  activate
  tell application "System Events" to tell process "Warp"
    keystroke "t" using command down
    delay 0.3
    keystroke "tmux attach -t {target}"
    key code 36
  end tell
end tell'''


def _terminal_script(target: str, agent_name: str, color: str) -> str:
    return f'''tell application "Terminal"
  activate
  do script "tmux attach -t {target}"
end tell'''


def default_flavors() -> List[TerminalFlavor]:
    """macOS terminals in order of preference."""
    return [
        TerminalFlavor("iTerm2", _process_probe("iTerm2"), _run_script(_iterm_script)),
        TerminalFlavor("Warp", _process_probe("Warp"), _run_script(_warp_script)),
        TerminalFlavor("Terminal", _process_probe("Terminal"), _run_script(_terminal_script)),
    ]


class AttachRouter:
    """
    Chooses how to show an agent window to the user.
    """

    def __init__(self,
                 registry: SessionRegistry,
                 flavors: Optional[List[TerminalFlavor]] = None,
                 has_tty: Optional[Callable[[], bool]] = None,
                 platform: str = sys.platform):
        self.registry = registry
        self.flavors = flavors
        self.has_tty = has_tty or SystemUtils.has_tty
        self.platform = platform

    def _flavors(self) -> List[TerminalFlavor]:
        if self.flavors is not None:
            return self.flavors
        return default_flavors() if self.platform == "darwin" else []

    def attach(self, agent_id: Optional[str] = None) -> bool:
        """
        Attach to an agent window, or to the whole session when agent_id is
        None.

        Returns:
            bool: True if the user was attached or a tab was opened
        """
        session_name = self.registry.session.name
        target = self.registry.target_of(agent_id) if agent_id else session_name

        if self.has_tty():
            return self.registry.tmux.attach(target) == 0

        flavors = self._flavors()
        if not flavors:
            console.print(f"[yellow]⚠[/yellow] No TTY available. Run manually: tmux attach -t {escape(target)}")
            return False

        agent_name = agent_id or session_name
        for flavor in flavors:
            if not flavor.probe():
                continue
            logger.info(f"Opening {flavor.name} tab for {target}")
            if flavor.open_tab(target, agent_name, self.registry.color_of(agent_name)):
                return True
            break

        console.print(
            f"[yellow]⚠[/yellow] No supported terminal detected. Run manually: tmux attach -t {escape(target)}"
        )
        return False
