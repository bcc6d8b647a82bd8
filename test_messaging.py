#!/usr/bin/env python3
"""
Tests for prompt delivery through tmux paste buffers.
"""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).parent))

from tmux_dispatch.core.errors import ProvisioningError
from tmux_dispatch.tmux.manager import FakeTmuxManager
from tmux_dispatch.tmux.messaging import TmuxMessenger, buffer_name
from tmux_dispatch.tmux.session_controller import DispatchSession, SessionRegistry
from tmux_dispatch.utils.file_utils import PROMPT_FILENAME


class TestTmuxMessenger(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _messenger(self, fail_commands=None):
        tmux = FakeTmuxManager(fail_commands=fail_commands)
        registry = SessionRegistry(DispatchSession(tmux))
        registry.create("hey-123", self.workspace)
        return tmux, TmuxMessenger(registry)

    def test_buffer_name(self):
        self.assertEqual(buffer_name("hey-123"), "dispatch-hey-123")
        self.assertEqual(buffer_name("a.b c"), "dispatch-a-b-c")

    def test_deliver_prompt_pastes_exact_text(self):
        tmux, messenger = self._messenger()
        prompt = "Line one\n\nIt's got 'quotes', \"more\" and $(subshells)\n\ttab"

        prompt_file = messenger.deliver_prompt("hey-123", prompt, self.workspace)

        window = tmux.window("dispatch:hey-123")
        self.assertEqual(window.pasted, [prompt])
        self.assertEqual(window.keys[-1], "Enter")
        self.assertEqual(prompt_file, self.workspace / PROMPT_FILENAME)
        self.assertEqual(prompt_file.read_text(encoding="utf-8"), prompt)
        self.assertEqual(tmux.buffers, {})

        order = [call[0] for call in tmux.calls if call[0].endswith("-buffer")]
        self.assertEqual(order, ["load-buffer", "paste-buffer", "delete-buffer"])

    def test_load_failure(self):
        tmux, messenger = self._messenger(fail_commands=["load-buffer"])
        with self.assertRaises(ProvisioningError):
            messenger.deliver_prompt("hey-123", "prompt", self.workspace)
        self.assertEqual(tmux.window("dispatch:hey-123").pasted, [])

    def test_delete_failure_is_tolerated(self):
        tmux, messenger = self._messenger(fail_commands=["delete-buffer"])
        messenger.deliver_prompt("hey-123", "prompt", self.workspace)
        self.assertEqual(tmux.window("dispatch:hey-123").pasted, ["prompt"])

    def test_send_command(self):
        tmux, messenger = self._messenger()
        messenger.send_command("hey-123", "unset CLAUDECODE && claude")
        self.assertEqual(tmux.window("dispatch:hey-123").keys[-1], "unset CLAUDECODE && claude Enter")

    def test_send_command_to_missing_window(self):
        tmux, messenger = self._messenger()
        with self.assertRaises(ProvisioningError):
            messenger.send_command("nobody", "ls")


if __name__ == '__main__':
    unittest.main()
