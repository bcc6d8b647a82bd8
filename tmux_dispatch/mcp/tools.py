"""
MCP tool handlers.

Every tool drives the Orchestrator in-process. Stdout belongs to the MCP
transport, so the console output produced while a tool runs is captured
and returned as part of the tool result instead.
"""

import contextlib
import io
import logging
import os
import re
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional

from ..core.errors import UsageError
from ..core.identity import PROMPT_FILE_PLACEHOLDER
from ..core.launcher import LaunchMode, LaunchOptions, LaunchResult
from ..core.orchestrator import Orchestrator
from ..core.status import short_path
from ..git.worktree_manager import find_git_root
from ..utils.config_loader import load_config

logger = logging.getLogger(__name__)

ANSI_RE = re.compile(r"\x1b\[[0-9;]*m|\x1b\][^\x07]*\x07")
DEFAULT_LOG_LINES = 50
NO_AGENTS = "No agents running."


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def describe_result(result: LaunchResult) -> str:
    if result.ok:
        handle = result.handle
        return (
            f"Launched {handle.id} ({handle.mode}) on branch {handle.branch}\n"
            f"Worktree: {handle.worktree_path}"
        )
    return f"Failed to launch {result.input}: {result.error}"


class DispatchTools:
    """
    Handlers behind the dispatch_* tools.

    Calls are serialized: agents are launched one at a time, and the console
    capture replaces sys.stdout for the duration of a call.
    """

    def __init__(self,
                 orchestrator_factory: Optional[Callable[..., Orchestrator]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            orchestrator_factory: Builds the Orchestrator for each call
            environ: Environment mapping (defaults to os.environ); DISPATCH_CWD
                selects the repository agents are launched in
        """
        self.orchestrator_factory = orchestrator_factory or Orchestrator
        self.environ = os.environ if environ is None else environ
        self._lock = threading.Lock()

    def _orchestrator(self, **overrides) -> Orchestrator:
        kwargs = {"config": load_config(overrides, environ=self.environ)}
        cwd = self.environ.get("DISPATCH_CWD")
        if cwd:
            kwargs["repo_root"] = find_git_root(Path(cwd))
        return self.orchestrator_factory(**kwargs)

    @contextlib.contextmanager
    def _captured(self) -> Iterator[io.StringIO]:
        buffer = io.StringIO()
        with self._lock, contextlib.redirect_stdout(buffer):
            yield buffer
        logger.debug(strip_ansi(buffer.getvalue()))

    @staticmethod
    def _reply(lines: List[str], output: io.StringIO) -> str:
        console_text = strip_ansi(output.getvalue()).strip()
        if console_text:
            lines = lines + ["", console_text]
        return "\n".join(lines)

    def run(self,
            prompt: str,
            ticket: Optional[str] = None,
            name: Optional[str] = None,
            headless: bool = False,
            model: Optional[str] = None,
            base_branch: Optional[str] = None,
            max_turns: Optional[int] = None) -> str:
        """
        Launch one agent with an inline prompt.

        Interactive agents are attached to, which opens a terminal tab when
        there is no controlling terminal.
        """
        if not prompt or not prompt.strip():
            raise UsageError("prompt must not be empty")

        options = LaunchOptions(
            mode=LaunchMode.HEADLESS if headless else LaunchMode.INTERACTIVE,
            prompt_text=prompt,
            name_override=name or None,
        )
        with self._captured() as output:
            orchestrator = self._orchestrator(model=model, base_branch=base_branch, max_turns=max_turns)
            result = orchestrator.launch([ticket or PROMPT_FILE_PLACEHOLDER], options)[0]
            if not result.ok:
                raise result.error
            if not headless:
                orchestrator.attach(result.handle.id)
        return self._reply([describe_result(result)], output)

    def list_agents(self) -> str:
        """List agents with their status and worktree."""
        with self._captured():
            orchestrator = self._orchestrator()
            agents = orchestrator.list_agents()
            try:
                root = orchestrator.repo_root
            except UsageError:
                root = None

        if not agents:
            return NO_AGENTS
        return "\n".join(
            f"{agent.id}  ({agent.status.value})  {short_path(agent.cwd, root)}" for agent in agents
        )

    def stop(self, agent_id: str) -> str:
        with self._captured() as output:
            stopped = self._orchestrator().stop(agent_id)
        if not stopped:
            return f"Agent '{agent_id}' is not running"
        return self._reply([f"Agent {agent_id} stopped. Worktree and branch are preserved."], output)

    def resume(self, agent_id: str, headless: bool = False) -> str:
        with self._captured() as output:
            started = self._orchestrator().resume(agent_id, headless=headless, attach=False)
        summary = f"Resumed {agent_id}" if started else f"Agent {agent_id} is already running"
        return self._reply([summary], output)

    def cleanup(self,
                agent_id: Optional[str] = None,
                all: bool = False,
                delete_branch: bool = False) -> str:
        with self._captured() as output:
            ok = self._orchestrator().cleanup(
                None if all else agent_id, all_worktrees=all, delete_branch=delete_branch
            )
        summary = "Cleanup complete" if ok else "Cleanup finished with errors"
        return self._reply([summary], output)

    def logs(self, agent_id: str, lines: int = DEFAULT_LOG_LINES) -> str:
        """Return recent output from the agent log or its pane."""
        if lines < 1:
            raise UsageError("lines must be at least 1")
        with self._captured():
            text = self._orchestrator().recent_output(agent_id, lines)
        return strip_ansi(text).strip()


def register_tools(server,
                   *,
                   orchestrator_factory: Optional[Callable[..., Orchestrator]] = None,
                   environ: Optional[Mapping[str, str]] = None) -> DispatchTools:
    """Register the dispatch tools on the server."""
    tools = DispatchTools(orchestrator_factory, environ)

    server.tool(
        name="dispatch_run",
        description=(
            "Launch a Claude Code agent in an isolated git worktree. Pass the full task "
            "prompt inline; a Linear ticket ID names the agent. Returns agent ID and branch name."
        ),
    )(tools.run)
    server.tool(
        name="dispatch_list",
        description="List all dispatch agents with their status (running/idle/exited).",
    )(tools.list_agents)
    server.tool(
        name="dispatch_stop",
        description="Stop a running dispatch agent. Worktree and branch are preserved.",
    )(tools.stop)
    server.tool(
        name="dispatch_resume",
        description="Resume a previously stopped agent in its worktree, continuing its last conversation.",
    )(tools.resume)
    server.tool(
        name="dispatch_cleanup",
        description="Remove an agent's worktree (or all worktrees with all=true) and optionally its branch.",
    )(tools.cleanup)
    server.tool(
        name="dispatch_logs",
        description="Get recent output from a dispatch agent (log file or tmux capture).",
    )(tools.logs)

    return tools
