"""
Dispatch error taxonomy.

Only UsageError and an unrecovered ProvisioningError end a command with a
non-zero exit code. ConflictError aborts a single agent of a batch.
Degraded ticket fetches and readiness timeouts are logged warnings, not
exceptions.
"""


class DispatchError(Exception):
    """Base class for all user-facing dispatch failures."""
    pass


class UsageError(DispatchError):
    """Bad or missing command-line input, or an agent that does not exist."""
    pass


class ConflictError(DispatchError):
    """An agent with the resolved ID is already running."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(
            f"Agent '{agent_id}' is already running. Use 'dispatch stop {agent_id}' first."
        )


class ProvisioningError(DispatchError):
    """Worktree or tmux window could not be created."""
    pass


class TmuxError(DispatchError):
    """The tmux binary could not be executed at all."""
    pass
