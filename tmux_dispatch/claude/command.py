"""
Claude command lines.

Builds the shell lines typed into agent windows. Headless runs read their
prompt from a file through stdin redirection because command substitution
does not survive send-keys.
"""

import logging
import shlex
from pathlib import Path
from typing import List, Optional

from ..utils.config_loader import DispatchConfig
from ..utils.file_utils import FileUtils, LOG_FILENAME

logger = logging.getLogger(__name__)

INTERACTIVE = "interactive"
HEADLESS = "headless"

# Claude Code refuses to start nested inside another session
UNSET_NESTED = "unset CLAUDECODE"


def build_claude_command(prompt: str,
                         mode: str,
                         worktree: Path,
                         config: DispatchConfig,
                         extra_args: Optional[List[str]] = None) -> str:
    """
    Build the claude invocation for an agent.

    In headless mode the prompt is written to the worktree's prompt file as
    a side effect and redirected into claude's stdin.

    Args:
        prompt: Initial prompt
        mode: INTERACTIVE or HEADLESS
        worktree: Agent working directory
        config: Resolved configuration
        extra_args: Additional claude flags, passed through verbatim

    Returns:
        str: Shell command line
    """
    headless = mode == HEADLESS
    parts = ["claude"]
    if headless:
        parts.append("-p")
    if config.model:
        parts.append(f"--model {config.model}")
    if headless:
        parts.append(f'--allowedTools "{config.allowed_tools}"')
        if config.max_turns:
            parts.append(f"--max-turns {config.max_turns}")
        if config.max_budget:
            parts.append(f"--max-budget-usd {config.max_budget}")
        parts.append("--output-format json")
    parts.extend(extra_args or [])

    if headless:
        prompt_file = FileUtils.write_prompt_file(worktree, prompt)
        parts.append(f"< {shlex.quote(str(prompt_file))}")

    return " ".join(parts)


def interactive_command(config: DispatchConfig,
                        continue_session: bool = False,
                        extra_args: Optional[List[str]] = None) -> str:
    """Shell line starting an interactive claude session."""
    parts = [f"{UNSET_NESTED} && claude"]
    if continue_session:
        parts.append("--continue")
    if config.model:
        parts.append(f"--model {config.model}")
    parts.extend(extra_args or [])
    return " ".join(parts)


def headless_launch_line(agent_id: str, claude_command: str, worktree: Path) -> str:
    """
    Wrap a headless claude command so its output is appended to the agent
    log and a completion notification fires when it ends.
    """
    log_file = Path(worktree) / LOG_FILENAME
    return (
        f"{UNSET_NESTED} && {claude_command} 2>&1 | tee -a {shlex.quote(str(log_file))}; "
        f"dispatch _notify-done {agent_id}"
    )
