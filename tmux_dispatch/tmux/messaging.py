"""
Tmux Messaging Module

Delivers prompts to agent windows. Prompts go through a named tmux paste
buffer loaded from a file, so multi-line text and shell metacharacters
arrive byte for byte; typing them with send-keys would not.
"""

import logging
import re
from pathlib import Path

from ..core.errors import ProvisioningError
from ..utils.file_utils import FileUtils
from .session_controller import SessionRegistry

logger = logging.getLogger(__name__)


def buffer_name(agent_id: str) -> str:
    return "dispatch-" + re.sub(r"[^a-zA-Z0-9]", "-", agent_id)


class TmuxMessenger:
    """
    Sends commands and prompts to agent windows.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self.tmux = registry.tmux

    def send_command(self, agent_id: str, command: str) -> None:
        """
        Type a shell command into an agent window.

        Raises:
            ProvisioningError: If the window does not accept the keys
        """
        if not self.registry.send_line(agent_id, command):
            raise ProvisioningError(f"Failed to send command to {self.registry.target_of(agent_id)}")
        logger.debug(f"Command sent to {agent_id}: {command}")

    def deliver_prompt(self, agent_id: str, prompt: str, workspace: Path) -> Path:
        """
        Paste a prompt into the agent window and submit it.

        The prompt is written to the workspace, loaded into a buffer named
        after the agent, pasted, the buffer deleted, then Enter is sent.

        Args:
            agent_id: Target agent
            prompt: Prompt text
            workspace: Directory receiving the prompt file

        Returns:
            Path: The prompt file

        Raises:
            ProvisioningError: If loading or pasting the buffer fails
        """
        prompt_file = FileUtils.write_prompt_file(workspace, prompt)
        name = buffer_name(agent_id)
        target = self.registry.target_of(agent_id)

        result = self.tmux.run(["load-buffer", "-b", name, str(prompt_file)])
        if result.returncode != 0:
            raise ProvisioningError(f"Failed to load prompt into tmux buffer: {result.stderr.strip()}")

        result = self.tmux.run(["paste-buffer", "-b", name, "-t", target])
        if result.returncode != 0:
            raise ProvisioningError(f"Failed to paste prompt into {target}: {result.stderr.strip()}")

        cleanup = self.tmux.run(["delete-buffer", "-b", name])
        if cleanup.returncode != 0:
            logger.debug(f"delete-buffer {name} failed: {cleanup.stderr.strip()}")

        if not self.registry.send_keys(agent_id, "Enter"):
            raise ProvisioningError(f"Failed to submit prompt to {target}")
        logger.info(f"Prompt delivered to {target} ({len(prompt)} chars)")
        return prompt_file
