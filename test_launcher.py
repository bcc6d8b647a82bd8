#!/usr/bin/env python3
"""
Launch sequencer scenarios against the in-memory tmux backing store and a
recording worktree provisioner.
"""

import shlex
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

sys.path.append(str(Path(__file__).parent))

from tmux_dispatch.claude.command import headless_launch_line
from tmux_dispatch.core.errors import ConflictError, ProvisioningError
from tmux_dispatch.core.launcher import LaunchMode, LaunchOptions, LaunchSequencer
from tmux_dispatch.tickets.linear import Ticket
from tmux_dispatch.tmux.manager import FakeTmuxManager
from tmux_dispatch.tmux.messaging import TmuxMessenger
from tmux_dispatch.tmux.session_controller import DispatchSession, SessionRegistry
from tmux_dispatch.utils.config_loader import DispatchConfig
from tmux_dispatch.utils.file_utils import PROMPT_FILENAME


class RecordingWorktrees:
    """Creates plain directories in place of git worktrees."""

    def __init__(self, repo_root, fail_for=()):
        self.repo_root = Path(repo_root)
        self.fail_for = set(fail_for)
        self.calls = []

    def worktree_path(self, agent_id):
        return self.repo_root / ".worktrees" / agent_id

    def provision(self, agent_id, branch, base_ref):
        self.calls.append((agent_id, branch, base_ref))
        if agent_id in self.fail_for:
            raise ProvisioningError(f"Failed to create worktree for '{agent_id}'")
        path = self.worktree_path(agent_id)
        path.mkdir(parents=True, exist_ok=True)
        return path


def readiness(result):
    def factory(capture, timeout):
        probe = Mock()
        probe.wait.return_value = result
        factory.timeouts.append(timeout)
        return probe
    factory.timeouts = []
    return factory


class TestLaunchSequencer(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.repo = Path(self.temp_dir.name)
        self.tmux = FakeTmuxManager()
        self.registry = SessionRegistry(DispatchSession(self.tmux))
        self.worktrees = RecordingWorktrees(self.repo)
        self.config = DispatchConfig(claude_timeout=7)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _sequencer(self, ready=True, ticket_lookup=None):
        return LaunchSequencer(
            self.config,
            self.worktrees,
            self.registry,
            TmuxMessenger(self.registry),
            ticket_lookup=ticket_lookup,
            readiness_factory=readiness(ready),
        )

    def test_ticket_without_ticket_service(self):
        sequencer = self._sequencer()
        handle = sequencer.launch("HEY-123")

        self.assertEqual(handle.id, "hey-123")
        self.assertEqual(handle.branch, "hey-123")
        self.assertEqual(handle.mode, LaunchMode.INTERACTIVE)
        self.assertTrue(handle.ready)
        self.assertEqual(self.worktrees.calls, [("hey-123", "hey-123", "dev")])

        window = self.tmux.window("dispatch:hey-123")
        self.assertEqual(window.cwd, str(self.repo / ".worktrees" / "hey-123"))
        self.assertIn("unset CLAUDECODE && claude Enter", window.keys)
        self.assertEqual(len(window.pasted), 1)
        self.assertIn("HEY-123", window.pasted[0])
        self.assertEqual(window.keys[-1], "Enter")
        self.assertEqual(sequencer.readiness_factory.timeouts, [7])

    def test_ticket_lookup_is_used(self):
        lookup = Mock(return_value=Ticket("Fix login", "Details"))
        handle = self._sequencer(ticket_lookup=lookup).launch("HEY-5")
        self.assertEqual(handle.id, "hey-5-fix-login")
        lookup.assert_called_once_with("HEY-5")

    def test_duplicate_launch_conflicts_before_provisioning(self):
        sequencer = self._sequencer()
        sequencer.launch("Fix the auth bug")

        with self.assertRaises(ConflictError) as ctx:
            sequencer.launch("Fix the auth bug")

        self.assertEqual(ctx.exception.agent_id, "fix-the-auth-bug")
        self.assertIn("dispatch stop fix-the-auth-bug", str(ctx.exception))
        self.assertEqual(len(self.worktrees.calls), 1)
        self.assertEqual(len(self.tmux.commands("new-window")), 1)

    def test_readiness_timeout_still_delivers_prompt(self):
        handle = self._sequencer(ready=False).launch("Write docs")
        self.assertFalse(handle.ready)
        self.assertEqual(self.tmux.window("dispatch:write-docs").pasted, ["Write docs"])

    def test_headless_launch(self):
        self.config.model = "sonnet"
        options = LaunchOptions(mode=LaunchMode.HEADLESS, extra_args=["--verbose"])

        handle = self._sequencer().launch("Fix the auth bug", options)

        self.assertIsNone(handle.ready)
        workspace = handle.worktree_path
        prompt_file = workspace / PROMPT_FILENAME
        self.assertEqual(prompt_file.read_text(encoding="utf-8"), "Fix the auth bug")

        window = self.tmux.window("dispatch:fix-the-auth-bug")
        expected_command = (
            f'claude -p --model sonnet --allowedTools "{self.config.allowed_tools}" '
            f"--output-format json --verbose < {shlex.quote(str(prompt_file))}"
        )
        self.assertEqual(
            window.keys[-1],
            headless_launch_line("fix-the-auth-bug", expected_command, workspace) + " Enter"
        )
        self.assertEqual(window.pasted, [])

    def test_skip_worktree_uses_repo_root(self):
        handle = self._sequencer().launch("Quick fix", LaunchOptions(skip_worktree=True))
        self.assertEqual(handle.worktree_path, self.repo)
        self.assertEqual(self.worktrees.calls, [])
        self.assertEqual(self.tmux.window("dispatch:quick-fix").cwd, str(self.repo))

    def test_prompt_file_and_name_override(self):
        options = LaunchOptions(prompt_text="# Billing refactor\nDetails", name_override="HEY-879")
        handle = self._sequencer().launch("prompt-file", options)
        self.assertEqual(handle.id, "hey-879")
        self.assertEqual(self.tmux.window("dispatch:hey-879").pasted, ["# Billing refactor\nDetails"])

    def test_window_creation_failure(self):
        self.tmux.fail_commands.add("new-window")
        with self.assertRaises(ProvisioningError):
            self._sequencer().launch("Fix the auth bug")

    def test_batch_continues_after_failures(self):
        self.worktrees.fail_for.add("broken-task")
        sequencer = self._sequencer()

        results = sequencer.launch_batch(
            ["Fix the auth bug", "Fix the auth bug", "Broken task", "Add tests"]
        )

        self.assertEqual([r.ok for r in results], [True, False, False, True])
        self.assertIsInstance(results[1].error, ConflictError)
        self.assertIsInstance(results[2].error, ProvisioningError)
        self.assertEqual(results[3].handle.id, "add-tests")
        self.assertEqual([c[0] for c in self.worktrees.calls], ["fix-the-auth-bug", "broken-task", "add-tests"])


if __name__ == '__main__':
    unittest.main()
