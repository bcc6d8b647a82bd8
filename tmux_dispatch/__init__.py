"""
Dispatch - parallel Claude Code agents in git worktrees and tmux windows

Each agent gets its own branch, its own worktree under .worktrees/ and its
own window in the shared "dispatch" tmux session. Agent status is read from
tmux on demand; nothing else is persisted.
"""

__version__ = "0.3.0"
__description__ = "Launch and manage Claude Code agents in git worktrees and tmux windows"

from .core.errors import ConflictError, DispatchError, ProvisioningError, UsageError
from .core.identity import AgentIdentity, resolve_identity, slugify
from .core.launcher import AgentHandle, LaunchMode, LaunchOptions, LaunchSequencer
from .core.orchestrator import Orchestrator
from .core.status import AgentInfo, AgentStatus
from .utils.config_loader import DispatchConfig, load_config

__all__ = [
    # Core
    'Orchestrator',
    'LaunchSequencer', 'LaunchOptions', 'LaunchMode', 'AgentHandle',
    'AgentIdentity', 'resolve_identity', 'slugify',
    'AgentInfo', 'AgentStatus',

    # Errors
    'DispatchError', 'UsageError', 'ConflictError', 'ProvisioningError',

    # Configuration
    'DispatchConfig', 'load_config',

    '__version__',
    '__description__',
]


def create_orchestrator(**kwargs):
    """
    Create a new Orchestrator instance with optional dependency injection.

    Args:
        **kwargs: Optional dependencies to inject (for testing or customization)

    Returns:
        Orchestrator: Configured orchestrator instance
    """
    return Orchestrator(**kwargs)
