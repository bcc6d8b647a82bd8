"""
Agent status, derived on demand from tmux state.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from rich.markup import escape

from ..tmux.session_controller import CONTROL_WINDOW, SessionRegistry

RUNNING_COMMANDS = {"claude", "node"}


class AgentStatus(Enum):
    RUNNING = "running"
    IDLE = "idle"
    EXITED = "exited"


STATUS_COLORS = {
    AgentStatus.RUNNING: "green",
    AgentStatus.IDLE: "yellow",
    AgentStatus.EXITED: "red",
}


@dataclass
class AgentInfo:
    id: str
    status: AgentStatus
    cwd: str


def classify(command: str, is_dead: bool) -> AgentStatus:
    """Map a window's foreground command and liveness to a status."""
    if is_dead:
        return AgentStatus.EXITED
    if command in RUNNING_COMMANDS:
        return AgentStatus.RUNNING
    return AgentStatus.IDLE


class StatusReader:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def list_agents(self) -> List[AgentInfo]:
        """Every agent window in the session, control window excluded."""
        return [
            AgentInfo(id=entry.name, status=classify(entry.command, entry.is_dead), cwd=entry.cwd)
            for entry in self.registry.list_all()
            if entry.name != CONTROL_WINDOW
        ]


def short_path(path: str, repo_root: Optional[Path]) -> str:
    if repo_root:
        prefix = str(repo_root).rstrip(os.sep) + os.sep
        if path.startswith(prefix):
            return path[len(prefix):]
    return path


def format_agent(agent: AgentInfo, repo_root: Optional[Path] = None) -> List[str]:
    """
    Render an agent as two lines of rich markup.

    Args:
        agent: Agent to render
        repo_root: Paths under this root are shown relative to it

    Returns:
        List[str]: Status line and path line
    """
    color = STATUS_COLORS[agent.status]
    return [
        f"[{color}]●[/{color}] [bold]{escape(agent.id)}[/bold]  [dim]({agent.status.value})[/dim]",
        f"    [dim]path: {escape(short_path(agent.cwd, repo_root))}[/dim]",
    ]
