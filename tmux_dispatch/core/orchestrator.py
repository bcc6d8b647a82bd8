"""
Core Orchestrator Module

The Orchestrator wires the subsystems together and implements the agent
lifecycle commands: launch, list, stop, resume, cleanup, logs, attach and
the completion notification fired by headless agents.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape

from ..claude.command import HEADLESS, build_claude_command, headless_launch_line, interactive_command
from ..claude.readiness import ReadinessProbe
from ..git.worktree_manager import WorktreeManager, find_git_root
from ..tickets.linear import fetch_ticket
from ..tmux.attach import AttachRouter
from ..tmux.manager import TmuxManager
from ..tmux.messaging import TmuxMessenger
from ..tmux.session_controller import DispatchSession, SessionRegistry
from ..utils.config_loader import DispatchConfig, load_config
from ..utils.file_utils import FileUtils, LOG_FILENAME
from ..utils.notifications import notify
from ..utils.system_utils import SystemUtils
from .errors import UsageError
from .identity import TicketLookup
from .launcher import LaunchOptions, LaunchResult, LaunchSequencer
from .status import AgentInfo, StatusReader, format_agent

console = Console()
logger = logging.getLogger(__name__)

RESUME_PROMPT = "Continue working on the task."
LOG_CAPTURE_LINES = 100
DEFAULT_STOP_GRACE = 1.0


class Orchestrator:
    """
    Main entry point for managing dispatch agents.

    Every collaborator can be injected; anything not given is built from
    the configuration on first use. The repository root is only looked up
    by commands that need it, so `list` and `attach` work outside a git
    checkout.
    """

    def __init__(self,
                 config: Optional[DispatchConfig] = None,
                 tmux: Optional[TmuxManager] = None,
                 repo_root: Optional[Path] = None,
                 worktrees: Optional[WorktreeManager] = None,
                 ticket_lookup: Optional[TicketLookup] = None,
                 readiness_factory: Callable[..., ReadinessProbe] = ReadinessProbe,
                 attach_router: Optional[AttachRouter] = None,
                 stop_grace: float = DEFAULT_STOP_GRACE,
                 wait_for_exit: Callable[[Optional[int], float], bool] = SystemUtils.wait_for_children_exit,
                 notifier: Callable[[str, str], None] = notify,
                 tail: Callable[[Path], int] = SystemUtils.tail_file):
        """
        Initialize orchestrator with dependency injection.

        Args:
            config: Resolved configuration (defaults to load_config())
            tmux: tmux command runner
            repo_root: Top level of the git checkout
            worktrees: Worktree provisioner
            ticket_lookup: Ticket reference -> Ticket (defaults to Linear)
            readiness_factory: Builds readiness probes for interactive launches
            attach_router: Attach strategy
            stop_grace: Seconds to wait for an interrupted agent to exit
            wait_for_exit: Waits for a pane's child processes to exit
            notifier: Desktop notification sink
            tail: Follows a log file until interrupted
        """
        self.config = config or load_config()
        self.tmux = tmux or TmuxManager()
        self.session = DispatchSession(self.tmux)
        self.registry = SessionRegistry(self.session)
        self.messenger = TmuxMessenger(self.registry)
        self.status_reader = StatusReader(self.registry)
        self.attach_router = attach_router or AttachRouter(self.registry)
        self.ticket_lookup = ticket_lookup or fetch_ticket
        self.readiness_factory = readiness_factory
        self.stop_grace = stop_grace
        self.wait_for_exit = wait_for_exit
        self.notifier = notifier
        self.tail = tail

        self._repo_root = Path(repo_root) if repo_root else None
        self._worktrees = worktrees

    @property
    def repo_root(self) -> Path:
        if self._repo_root is None:
            self._repo_root = find_git_root()
        return self._repo_root

    @property
    def worktrees(self) -> WorktreeManager:
        if self._worktrees is None:
            self._worktrees = WorktreeManager(self.repo_root, self.config.worktree_dir)
        return self._worktrees

    def _require_tmux(self) -> None:
        if not self.tmux.available():
            raise UsageError("tmux is not installed. Install it first (e.g. brew install tmux)")

    def _sequencer(self) -> LaunchSequencer:
        return LaunchSequencer(
            self.config,
            self.worktrees,
            self.registry,
            self.messenger,
            ticket_lookup=self.ticket_lookup,
            readiness_factory=self.readiness_factory,
        )

    # Launch and status

    def launch(self, inputs: List[str], options: Optional[LaunchOptions] = None) -> List[LaunchResult]:
        """
        Launch one agent per input, sequentially.

        Returns:
            List[LaunchResult]: Per-input outcome; conflicts and provisioning
            failures are reported there rather than raised
        """
        if not inputs:
            raise UsageError("Usage: dispatch run <ticket|prompt> [ticket2 ...] [options]")
        self._require_tmux()
        return self._sequencer().launch_batch(inputs, options)

    def list_agents(self) -> List[AgentInfo]:
        return self.status_reader.list_agents()

    def print_status(self) -> None:
        self._require_tmux()
        if not self.registry.has_any_entries():
            console.print("[blue]▸[/blue] No dispatch session running")
            return

        try:
            root = self.repo_root
        except UsageError:
            root = None

        console.print()
        console.print("[bold]Running Agents[/bold]")
        console.print("[dim]" + "─" * 46 + "[/dim]")
        for agent in self.list_agents():
            for line in format_agent(agent, root):
                console.print("  " + line)
        console.print()

    # Lifecycle

    def stop(self, agent_id: str) -> bool:
        """
        Interrupt an agent and close its window. The worktree and branch
        are kept.

        Returns:
            bool: False if the agent was not running
        """
        if not self.registry.exists(agent_id):
            console.print(f"[yellow]⚠[/yellow] Agent '{escape(agent_id)}' is not running")
            return False

        console.print(f"[blue]▸[/blue] Stopping agent: {escape(agent_id)}")
        pid = self.registry.pane_pid(agent_id)
        self.registry.send_keys(agent_id, "C-c")
        if not self.wait_for_exit(pid, self.stop_grace):
            logger.info(f"{agent_id} still busy after {self.stop_grace}s, closing window anyway")
        self.registry.destroy(agent_id)
        console.print(f"[green]✓[/green] Agent stopped: {escape(agent_id)}")
        return True

    def resume(self, agent_id: str, headless: bool = False, attach: bool = True) -> bool:
        """
        Restart claude in an existing worktree, continuing its last
        conversation.

        Args:
            agent_id: Agent whose worktree should be resumed
            headless: Run non-interactively, logging to the agent log
            attach: Attach after an interactive resume

        Returns:
            bool: True if a new window was started

        Raises:
            UsageError: If the agent has no worktree
        """
        self._require_tmux()
        workspace = self.worktrees.worktree_path(agent_id)
        if not workspace.exists():
            raise UsageError(f"Worktree not found for '{agent_id}'. Nothing to resume.")

        if self.registry.exists(agent_id):
            console.print(f"[yellow]⚠[/yellow] Agent '{escape(agent_id)}' is already running. Attaching...")
            if attach:
                self.attach_router.attach(agent_id)
            return False

        self.registry.create(agent_id, workspace)
        if headless:
            command = build_claude_command(RESUME_PROMPT, HEADLESS, workspace, self.config, ["--continue"])
            self.messenger.send_command(agent_id, headless_launch_line(agent_id, command, workspace))
            console.print(f"[green]✓[/green] Resumed agent: {escape(agent_id)} (headless)")
            return True

        self.messenger.send_command(agent_id, interactive_command(self.config, continue_session=True))
        console.print(f"[green]✓[/green] Resumed agent: {escape(agent_id)} (interactive)")
        if attach:
            self.attach_router.attach(agent_id)
        return True

    def cleanup(self, agent_id: Optional[str] = None,
                all_worktrees: bool = False,
                delete_branch: bool = False) -> bool:
        """
        Stop agents and remove their worktrees.

        Args:
            agent_id: Single agent to clean up
            all_worktrees: Clean up every worktree in the worktree directory
            delete_branch: Also delete the agent branches

        Returns:
            bool: True if every worktree was removed

        Raises:
            UsageError: If neither agent_id nor all_worktrees is given
        """
        if all_worktrees:
            console.print("[blue]▸[/blue] Cleaning up all worktrees...")
            ids = self.worktrees.list_worktree_ids()
            if not ids:
                console.print("[blue]▸[/blue] No worktrees to clean up")
                return True
        elif agent_id:
            ids = [agent_id]
        else:
            raise UsageError("Usage: dispatch cleanup <agent-id> | --all [--delete-branch]")

        ok = True
        for name in ids:
            if self.registry.exists(name):
                self.stop(name)
            if not self.worktrees.teardown(name):
                ok = False
            if delete_branch:
                self.worktrees.delete_branch(name)
        return ok

    def recent_output(self, agent_id: str, lines: int = LOG_CAPTURE_LINES) -> str:
        """
        Return the last lines of an agent's output: the headless log if
        there is one, else the pane history.

        Raises:
            UsageError: If the agent has neither a log nor a window
        """
        log_file = self.worktrees.worktree_path(agent_id) / LOG_FILENAME
        if log_file.exists():
            return FileUtils.tail_lines(log_file, lines)
        if self.registry.exists(agent_id):
            return self.registry.capture(agent_id, lines)
        raise UsageError(f"Agent '{agent_id}' not found")

    def logs(self, agent_id: str, follow: bool = True) -> int:
        """
        Show an agent's output, following the headless log when asked to.

        Returns:
            int: Exit code

        Raises:
            UsageError: If the agent has neither a log nor a window
        """
        log_file = self.worktrees.worktree_path(agent_id) / LOG_FILENAME
        if log_file.exists() and follow:
            console.print(f"[blue]▸[/blue] Tailing log: {escape(str(log_file))}")
            return self.tail(log_file)

        output = self.recent_output(agent_id)
        if not log_file.exists():
            console.print("[blue]▸[/blue] Capturing output from tmux pane...")
        console.print(output, markup=False, highlight=False)
        return 0

    def attach(self, agent_id: Optional[str] = None) -> bool:
        self._require_tmux()
        if not self.registry.has_any_entries():
            raise UsageError("No dispatch session running")
        return self.attach_router.attach(agent_id)

    def notify_done(self, agent_id: str) -> None:
        """Called by headless agents when claude exits."""
        self.notifier("Dispatch", f"Agent {agent_id} finished")
        console.print(f"[green]✓[/green] Agent {escape(agent_id)} completed")
