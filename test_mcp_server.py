#!/usr/bin/env python3
"""
Tests for the MCP tools: registration, launch plumbing, and the lifecycle
tools running against an in-memory tmux.
"""

import inspect
import io
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

sys.path.append(str(Path(__file__).parent))

from test_launcher import RecordingWorktrees, readiness
from tmux_dispatch import __version__
from tmux_dispatch.core.errors import ProvisioningError, UsageError
from tmux_dispatch.core.launcher import AgentHandle, LaunchMode, LaunchResult
from tmux_dispatch.core.orchestrator import Orchestrator
from tmux_dispatch.mcp.server import SERVER_NAME, create_server
from tmux_dispatch.mcp.tools import NO_AGENTS, DispatchTools, register_tools, strip_ansi
from tmux_dispatch.tmux.manager import FakeTmuxManager
from tmux_dispatch.utils.config_loader import DispatchConfig
from tmux_dispatch.utils.file_utils import LOG_FILENAME, PROMPT_FILENAME

TOOL_NAMES = [
    "dispatch_cleanup", "dispatch_list", "dispatch_logs",
    "dispatch_resume", "dispatch_run", "dispatch_stop",
]


class StubServer:
    def __init__(self):
        self.tools = {}

    def tool(self, name=None, description=None):
        def decorator(fn):
            self.tools[name] = fn
            return fn
        return decorator


class TestRegistration(unittest.TestCase):

    def test_tool_names(self):
        server = StubServer()
        register_tools(server, orchestrator_factory=Mock())
        self.assertEqual(sorted(server.tools), TOOL_NAMES)

    def test_run_requires_prompt(self):
        server = StubServer()
        register_tools(server, orchestrator_factory=Mock())

        parameters = inspect.signature(server.tools["dispatch_run"]).parameters
        required = [p for p in parameters.values() if p.default is inspect.Parameter.empty]
        self.assertEqual([p.name for p in required], ["prompt"])
        for option in ("ticket", "name", "headless", "model", "base_branch", "max_turns"):
            self.assertIn(option, parameters)

    @patch('tmux_dispatch.mcp.server.FastMCP')
    def test_create_server(self, mock_fastmcp):
        server = create_server(orchestrator_factory=Mock())

        self.assertIs(server, mock_fastmcp.return_value)
        kwargs = mock_fastmcp.call_args[1]
        self.assertEqual(kwargs["name"], SERVER_NAME)
        self.assertEqual(kwargs["version"], __version__)
        names = sorted(call[1]["name"] for call in server.tool.call_args_list)
        self.assertEqual(names, TOOL_NAMES)
        self.assertIsInstance(server.dispatch_tools, DispatchTools)

    def test_strip_ansi(self):
        self.assertEqual(strip_ansi("\x1b[32m✓\x1b[0m done\x1b]6;1;bg;red;brightness;1\x07"), "✓ done")


class TestToolPlumbing(unittest.TestCase):

    def setUp(self):
        patcher = patch('tmux_dispatch.mcp.tools.load_config', return_value=DispatchConfig())
        self.load_config = patcher.start()
        self.addCleanup(patcher.stop)

        self.orchestrator = Mock()
        self.factory = Mock(return_value=self.orchestrator)
        self.tools = DispatchTools(self.factory, environ={})

    def test_run_options(self):
        handle = AgentHandle(id="hey-1", branch="hey-1", worktree_path=Path("/w/hey-1"), mode=LaunchMode.HEADLESS)
        self.orchestrator.launch.return_value = [LaunchResult(input="HEY-1", handle=handle)]

        reply = self.tools.run("Do it", ticket="HEY-1", name="custom", headless=True, model="opus", max_turns=5)

        self.assertTrue(reply.startswith("Launched hey-1 (headless) on branch hey-1"))
        self.load_config.assert_called_once_with(
            {"model": "opus", "base_branch": None, "max_turns": 5}, environ={}
        )
        inputs, options = self.orchestrator.launch.call_args[0]
        self.assertEqual(inputs, ["HEY-1"])
        self.assertEqual(options.mode, LaunchMode.HEADLESS)
        self.assertEqual(options.prompt_text, "Do it")
        self.assertEqual(options.name_override, "custom")
        self.orchestrator.attach.assert_not_called()

    def test_run_without_ticket_uses_prompt(self):
        handle = AgentHandle(id="do-it", branch="do-it", worktree_path=Path("/w/do-it"), mode=LaunchMode.INTERACTIVE)
        self.orchestrator.launch.return_value = [LaunchResult(input="prompt-file", handle=handle)]

        self.tools.run("Do it")

        self.assertEqual(self.orchestrator.launch.call_args[0][0], ["prompt-file"])
        self.orchestrator.attach.assert_called_once_with("do-it")

    def test_run_failure_raises(self):
        self.orchestrator.launch.return_value = [
            LaunchResult(input="prompt-file", error=ProvisioningError("no worktree"))
        ]
        with self.assertRaises(ProvisioningError):
            self.tools.run("Do it")

    def test_empty_prompt(self):
        with self.assertRaises(UsageError):
            self.tools.run("   ")
        self.factory.assert_not_called()

    def test_cleanup_all(self):
        self.orchestrator.cleanup.return_value = True
        reply = self.tools.cleanup(agent_id="ignored", all=True, delete_branch=True)
        self.orchestrator.cleanup.assert_called_once_with(None, all_worktrees=True, delete_branch=True)
        self.assertTrue(reply.startswith("Cleanup complete"))

    def test_cleanup_failure(self):
        self.orchestrator.cleanup.return_value = False
        self.assertTrue(self.tools.cleanup(agent_id="agent").startswith("Cleanup finished with errors"))

    def test_logs_line_count(self):
        with self.assertRaises(UsageError):
            self.tools.logs("agent", lines=0)

    @patch('tmux_dispatch.mcp.tools.find_git_root', return_value=Path("/repo"))
    def test_dispatch_cwd(self, mock_root):
        tools = DispatchTools(self.factory, environ={"DISPATCH_CWD": "/repo/sub"})
        self.orchestrator.list_agents.return_value = []

        tools.list_agents()

        mock_root.assert_called_once_with(Path("/repo/sub"))
        self.assertEqual(self.factory.call_args[1]["repo_root"], Path("/repo"))


class TestToolsWithTmux(unittest.TestCase):

    def setUp(self):
        patcher = patch('tmux_dispatch.mcp.tools.load_config', return_value=DispatchConfig())
        patcher.start()
        self.addCleanup(patcher.stop)

        self.temp_dir = tempfile.TemporaryDirectory()
        self.repo = Path(self.temp_dir.name)
        self.tmux = FakeTmuxManager()
        self.attach_router = Mock()
        self.orchestrator = Orchestrator(
            config=DispatchConfig(),
            tmux=self.tmux,
            repo_root=self.repo,
            worktrees=RecordingWorktrees(self.repo),
            readiness_factory=readiness(True),
            attach_router=self.attach_router,
            wait_for_exit=Mock(return_value=True),
            notifier=Mock(),
        )
        self.registry = self.orchestrator.registry
        self.tools = DispatchTools(Mock(return_value=self.orchestrator), environ={})

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_headless_run(self):
        prompt = "# Refactor billing\n\nMove invoices into their own module."

        reply = self.tools.run(prompt, headless=True)

        self.assertTrue(reply.startswith("Launched refactor-billing (headless) on branch refactor-billing"))
        workspace = self.repo / ".worktrees" / "refactor-billing"
        self.assertEqual((workspace / PROMPT_FILENAME).read_text(encoding="utf-8"), prompt)
        window = self.tmux.window("dispatch:refactor-billing")
        self.assertIn("claude -p", window.keys[-1])
        self.attach_router.attach.assert_not_called()

    def test_interactive_run_pastes_prompt_and_attaches(self):
        self.tools.run("Fix the auth bug", name="auth")

        window = self.tmux.window("dispatch:auth")
        self.assertEqual(window.pasted, ["Fix the auth bug"])
        self.attach_router.attach.assert_called_once_with("auth")

    def test_list(self):
        self.assertEqual(self.tools.list_agents(), NO_AGENTS)

        self.registry.create("agent", self.repo / ".worktrees" / "agent")
        self.tmux.window("dispatch:agent").command = "claude"

        self.assertEqual(self.tools.list_agents(), "agent  (running)  .worktrees/agent")

    def test_stop(self):
        self.assertEqual(self.tools.stop("ghost"), "Agent 'ghost' is not running")

        self.registry.create("agent", self.repo)
        reply = self.tools.stop("agent")

        self.assertTrue(reply.startswith("Agent agent stopped."))
        self.assertFalse(self.registry.exists("agent"))

    def test_console_output_is_captured(self):
        self.registry.create("agent", self.repo)

        with patch('sys.stdout', new_callable=io.StringIO) as stdout:
            reply = self.tools.stop("agent")

        self.assertEqual(stdout.getvalue(), "")
        self.assertIn("Agent stopped: agent", reply)

    def test_resume_never_attaches(self):
        (self.repo / ".worktrees" / "agent").mkdir(parents=True)

        reply = self.tools.resume("agent", headless=True)

        self.assertTrue(reply.startswith("Resumed agent"))
        self.assertIn("--continue", self.tmux.window("dispatch:agent").keys[-1])
        self.attach_router.attach.assert_not_called()

    def test_logs_from_log_file(self):
        workspace = self.repo / ".worktrees" / "agent"
        workspace.mkdir(parents=True)
        (workspace / LOG_FILENAME).write_text("one\ntwo\nthree")

        self.assertEqual(self.tools.logs("agent", lines=2), "two\nthree")

    def test_logs_unknown_agent(self):
        with self.assertRaises(UsageError) as ctx:
            self.tools.logs("nonexistent-agent")
        self.assertIn("not found", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
