"""
Launch Sequencer

Takes one task input to a running agent:

    RESOLVE_IDENTITY -> CHECK_EXISTING -> PROVISION_WORKSPACE ->
    CREATE_SESSION_ENTRY -> START_PROCESS -> [AWAIT_READY -> DELIVER_PROMPT]
    -> DONE

The bracketed states only apply to interactive launches. A failure in any
state leaves whatever earlier states produced in place; `dispatch resume`
and `dispatch cleanup` repair partial launches.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape

from ..claude.command import (
    HEADLESS, INTERACTIVE, build_claude_command, headless_launch_line, interactive_command,
)
from ..claude.readiness import ReadinessProbe
from ..git.worktree_manager import WorktreeManager
from ..tmux.messaging import TmuxMessenger
from ..tmux.session_controller import SessionRegistry
from ..utils.config_loader import DispatchConfig
from .errors import ConflictError, DispatchError, ProvisioningError
from .identity import AgentIdentity, TicketLookup, resolve_identity

console = Console()
logger = logging.getLogger(__name__)


class LaunchMode:
    INTERACTIVE = INTERACTIVE
    HEADLESS = HEADLESS


@dataclass
class LaunchOptions:
    mode: str = LaunchMode.INTERACTIVE
    extra_args: List[str] = field(default_factory=list)
    skip_worktree: bool = False
    prompt_text: Optional[str] = None
    name_override: Optional[str] = None


@dataclass
class AgentHandle:
    """A launched agent. ready is None for headless launches."""
    id: str
    branch: str
    worktree_path: Path
    mode: str
    ready: Optional[bool] = None


@dataclass
class LaunchResult:
    input: str
    handle: Optional[AgentHandle] = None
    error: Optional[DispatchError] = None

    @property
    def ok(self) -> bool:
        return self.handle is not None


class LaunchSequencer:
    """
    Runs the launch state machine for one agent at a time.
    """

    def __init__(self,
                 config: DispatchConfig,
                 worktrees: WorktreeManager,
                 registry: SessionRegistry,
                 messenger: TmuxMessenger,
                 ticket_lookup: Optional[TicketLookup] = None,
                 readiness_factory: Callable[..., ReadinessProbe] = ReadinessProbe,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            config: Resolved configuration
            worktrees: Worktree provisioner for the current repository
            registry: Agent windows
            messenger: Command and prompt delivery
            ticket_lookup: Ticket reference -> Ticket
            readiness_factory: Builds the probe, called with capture and
                timeout keyword arguments
            clock: Time source for fallback agent IDs
        """
        self.config = config
        self.worktrees = worktrees
        self.registry = registry
        self.messenger = messenger
        self.ticket_lookup = ticket_lookup
        self.readiness_factory = readiness_factory
        self.clock = clock

    def _enter(self, state: str, agent: str) -> None:
        logger.debug(f"[{agent}] {state}")

    def launch(self, user_input: str, options: Optional[LaunchOptions] = None) -> AgentHandle:
        """
        Launch one agent.

        Args:
            user_input: Ticket reference or free-text task
            options: Launch options

        Returns:
            AgentHandle: The launched agent

        Raises:
            ConflictError: If an agent with the same ID is already running
            ProvisioningError: If the worktree or window cannot be created
        """
        options = options or LaunchOptions()

        self._enter("RESOLVE_IDENTITY", user_input)
        identity = resolve_identity(
            user_input,
            name_override=options.name_override,
            prompt_text=options.prompt_text,
            ticket_lookup=self.ticket_lookup,
            clock=self.clock,
        )

        self._enter("CHECK_EXISTING", identity.id)
        if self.registry.exists(identity.id):
            raise ConflictError(identity.id)

        self._enter("PROVISION_WORKSPACE", identity.id)
        if options.skip_worktree:
            workspace = self.worktrees.repo_root
        else:
            workspace = self.worktrees.provision(identity.id, identity.branch, self.config.base_branch)

        self._enter("CREATE_SESSION_ENTRY", identity.id)
        if not self.registry.create(identity.id, workspace):
            # Another launcher created the window after our check
            raise ConflictError(identity.id)

        handle = AgentHandle(
            id=identity.id,
            branch=identity.branch,
            worktree_path=workspace,
            mode=options.mode,
        )

        self._enter("START_PROCESS", identity.id)
        if options.mode == LaunchMode.HEADLESS:
            self._start_headless(identity, workspace, options)
        else:
            handle.ready = self._start_interactive(identity, workspace, options)

        self._enter("DONE", identity.id)
        self._report(handle)
        return handle

    def _start_interactive(self, identity: AgentIdentity, workspace: Path, options: LaunchOptions) -> bool:
        self.messenger.send_command(
            identity.id, interactive_command(self.config, extra_args=options.extra_args)
        )

        self._enter("AWAIT_READY", identity.id)
        probe = self.readiness_factory(
            capture=lambda lines: self.registry.capture(identity.id, lines),
            timeout=self.config.claude_timeout,
        )
        ready = probe.wait()

        self._enter("DELIVER_PROMPT", identity.id)
        self.messenger.deliver_prompt(identity.id, identity.prompt, workspace)
        return ready

    def _start_headless(self, identity: AgentIdentity, workspace: Path, options: LaunchOptions) -> None:
        command = build_claude_command(
            identity.prompt, HEADLESS, workspace, self.config, options.extra_args
        )
        self.messenger.send_command(identity.id, headless_launch_line(identity.id, command, workspace))

    def _report(self, handle: AgentHandle) -> None:
        console.print()
        console.print(f"[green]✓[/green] Agent [bold]{escape(handle.id)}[/bold] launched ({handle.mode})")
        console.print(f"[dim]  Worktree: {escape(str(handle.worktree_path))}[/dim]")
        console.print(f"[dim]  Branch:   {escape(handle.branch)}[/dim]")
        if handle.mode == LaunchMode.HEADLESS:
            console.print(f"[dim]  Logs:     dispatch logs {escape(handle.id)}[/dim]")
            console.print(f"[dim]  Stop:     dispatch stop {escape(handle.id)}[/dim]")

    def launch_batch(self, inputs: List[str], options: Optional[LaunchOptions] = None) -> List[LaunchResult]:
        """
        Launch agents one after another.

        A conflict or provisioning failure is reported and the batch moves
        on to the next input.

        Returns:
            List[LaunchResult]: One result per input, in order
        """
        if len(inputs) > 1:
            console.print(f"[blue]▸[/blue] Batch launching {len(inputs)} agents...")

        results = []
        for user_input in inputs:
            try:
                handle = self.launch(user_input, options)
            except (ConflictError, ProvisioningError) as e:
                console.print(f"[red]✗[/red] {escape(str(e))}")
                results.append(LaunchResult(input=user_input, error=e))
                continue
            results.append(LaunchResult(input=user_input, handle=handle))
        return results
