"""
Dispatch CLI Module

Command-line interface for launching and managing agents. Every command
returns an exit code: 0 on success, 1 on a usage error, a missing agent or
a provisioning failure.
"""

import argparse
import logging
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape

from .. import __version__
from ..claude.setup import install_claude_md_snippet
from ..core.errors import DispatchError, ProvisioningError, UsageError
from ..core.identity import PROMPT_FILE_PLACEHOLDER
from ..core.launcher import LaunchMode, LaunchOptions
from ..core.orchestrator import Orchestrator
from ..utils.config_loader import load_config
from ..utils.file_utils import FileUtils

console = Console()
logger = logging.getLogger(__name__)

RUN_EXAMPLES = """examples:
  dispatch run HEY-837                         # from Linear ticket
  dispatch run HEY-837 HEY-838 HEY-839         # batch launch
  dispatch run HEY-837 --headless              # run in background
  dispatch run "Fix the auth bug"              # free text prompt
  dispatch run HEY-837 --model sonnet          # specific model
  dispatch run HEY-837 --max-turns 10          # limit turns
  dispatch run HEY-837 --base main             # branch off main

Unrecognized --flags are passed through to claude."""


class DispatchArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting with 2."""

    def error(self, message):
        raise UsageError(f"{message}\n{self.format_usage().strip()}")


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


class DispatchCLI:
    """
    Command-line interface for dispatch.
    """

    def __init__(self, orchestrator_factory: Optional[Callable[..., Orchestrator]] = None):
        """
        Args:
            orchestrator_factory: Builds the Orchestrator, called with a
                config keyword argument (tests inject fakes here)
        """
        self.orchestrator_factory = orchestrator_factory or Orchestrator
        self.parser = self._create_argument_parser()

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with provided arguments.

        Args:
            args: Command-line arguments (defaults to sys.argv)

        Returns:
            Exit code (0 for success)
        """
        verbosity = 0
        try:
            parsed_args, extras = self.parser.parse_known_args(args)
            verbosity = parsed_args.verbose + getattr(parsed_args, "command_verbose", 0)
            configure_logging(verbosity)

            if not hasattr(parsed_args, 'func'):
                self.parser.print_help()
                return 0 if parsed_args.command is None and not extras else 1

            if extras and not getattr(parsed_args, 'accepts_extras', False):
                raise UsageError(f"unrecognized arguments: {' '.join(extras)}")
            parsed_args.extras = extras
            return parsed_args.func(parsed_args)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            return 1
        except DispatchError as e:
            if verbosity >= 2:
                logger.exception("Command failed")
            console.print(f"[red]✗[/red] {escape(str(e))}")
            return 1

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        """Create argument parser with all commands."""
        parser = DispatchArgumentParser(
            prog="dispatch",
            description="Launch Claude Code agents in isolated git worktrees and tmux windows",
            epilog="Use 'dispatch <command> --help' for command-specific help"
        )
        parser.add_argument(
            "--verbose", "-v",
            action="count",
            default=0,
            help="Increase verbosity (use -v or -vv)"
        )

        subparsers = parser.add_subparsers(title="commands", dest="command", metavar="<command>")

        # -v is also accepted after the subcommand
        self.common = DispatchArgumentParser(add_help=False)
        self.common.add_argument("--verbose", "-v", dest="command_verbose", action="count", default=0,
                                 help="Increase verbosity")

        self._add_run_command(subparsers)
        self._add_status_commands(subparsers)
        self._add_lifecycle_commands(subparsers)
        self._add_system_commands(subparsers)
        return parser

    def _add_run_command(self, subparsers) -> None:
        run_parser = subparsers.add_parser(
            "run",
            parents=[self.common],
            help="Launch agents from tickets or prompts",
            epilog=RUN_EXAMPLES,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        run_parser.add_argument("inputs", nargs="*", metavar="ticket|prompt",
                                help="Linear ticket reference (HEY-123) or free-text task")
        run_parser.add_argument("--headless", "-H", action="store_true",
                                help="Run claude non-interactively, logging to .dispatch.log")
        run_parser.add_argument("--model", "-m", help="Claude model")
        run_parser.add_argument("--max-turns", dest="max_turns", help="Turn limit (headless)")
        run_parser.add_argument("--max-budget", dest="max_budget", help="Budget in USD (headless)")
        run_parser.add_argument("--base", "-b", dest="base_branch", help="Base branch on origin")
        run_parser.add_argument("--prompt-file", "-f", dest="prompt_file", type=Path,
                                help="Read the prompt from a file")
        run_parser.add_argument("--name", "-n", help="Agent name (also the branch name)")
        run_parser.add_argument("--no-worktree", action="store_true",
                                help="Run in the repository root instead of a worktree")
        run_parser.add_argument("--no-attach", action="store_true",
                                help="Do not attach after an interactive launch")
        run_parser.set_defaults(func=self._cmd_run, accepts_extras=True)

    def _add_status_commands(self, subparsers) -> None:
        list_parser = subparsers.add_parser("list", aliases=["ls"], parents=[self.common],
                                            help="Show agents and their status")
        list_parser.set_defaults(func=self._cmd_list)

        logs_parser = subparsers.add_parser("logs", parents=[self.common],
                                            help="Tail an agent's output")
        logs_parser.add_argument("agent_id")
        logs_parser.add_argument("--no-follow", dest="follow", action="store_false",
                                 help="Print the last lines instead of following the log")
        logs_parser.set_defaults(func=self._cmd_logs)

        attach_parser = subparsers.add_parser("attach", parents=[self.common],
                                              help="Attach to the session or an agent window")
        attach_parser.add_argument("agent_id", nargs="?")
        attach_parser.set_defaults(func=self._cmd_attach)

    def _add_lifecycle_commands(self, subparsers) -> None:
        stop_parser = subparsers.add_parser("stop", parents=[self.common],
                                            help="Interrupt an agent (worktree preserved)")
        stop_parser.add_argument("agent_id")
        stop_parser.set_defaults(func=self._cmd_stop)

        resume_parser = subparsers.add_parser("resume", parents=[self.common],
                                              help="Continue an agent in its existing worktree")
        resume_parser.add_argument("agent_id")
        resume_parser.add_argument("--headless", "-H", action="store_true")
        resume_parser.add_argument("--no-attach", action="store_true")
        resume_parser.set_defaults(func=self._cmd_resume)

        cleanup_parser = subparsers.add_parser("cleanup", parents=[self.common],
                                               help="Remove agent worktrees")
        cleanup_parser.add_argument("agent_id", nargs="?")
        cleanup_parser.add_argument("--all", dest="all_worktrees", action="store_true",
                                    help="Clean up every worktree")
        cleanup_parser.add_argument("--delete-branch", action="store_true",
                                    help="Also delete the agent branches")
        cleanup_parser.set_defaults(func=self._cmd_cleanup)

    def _add_system_commands(self, subparsers) -> None:
        setup_parser = subparsers.add_parser("setup", parents=[self.common],
                                             help="Add dispatch usage to ~/.claude/CLAUDE.md")
        setup_parser.set_defaults(func=self._cmd_setup)

        version_parser = subparsers.add_parser("version", parents=[self.common],
                                               help="Show version")
        version_parser.set_defaults(func=self._cmd_version)

        # Invoked by headless agents when claude exits
        notify_parser = subparsers.add_parser("_notify-done", parents=[self.common])
        notify_parser.add_argument("agent_id", nargs="?", default="unknown")
        notify_parser.set_defaults(func=self._cmd_notify_done)

    def _orchestrator(self, **overrides) -> Orchestrator:
        return self.orchestrator_factory(config=load_config(overrides))

    # Commands

    def _cmd_run(self, args) -> int:
        inputs = list(args.inputs)
        extra_args = []
        for extra in args.extras:
            if extra.startswith("--"):
                extra_args.append(extra)
            elif extra.startswith("-"):
                raise UsageError(f"unrecognized arguments: {extra}")
            else:
                inputs.append(extra)

        prompt_text = None
        if args.prompt_file is not None:
            if not args.prompt_file.is_file():
                raise UsageError(f"Prompt file not found: {args.prompt_file}")
            prompt_text = FileUtils.read_prompt_file(args.prompt_file)
            if not inputs:
                inputs.append(PROMPT_FILE_PLACEHOLDER)

        if not inputs:
            raise UsageError(
                "Usage: dispatch run <ticket|prompt> [ticket2 ...] [options]\n"
                "See 'dispatch run --help' for examples"
            )

        orchestrator = self._orchestrator(
            model=args.model,
            max_turns=args.max_turns,
            max_budget=args.max_budget,
            base_branch=args.base_branch,
        )
        options = LaunchOptions(
            mode=LaunchMode.HEADLESS if args.headless else LaunchMode.INTERACTIVE,
            extra_args=extra_args,
            skip_worktree=args.no_worktree,
            prompt_text=prompt_text,
            name_override=args.name,
        )
        results = orchestrator.launch(inputs, options)
        console.print()

        launched = [result for result in results if result.ok]
        if len(inputs) == 1 and launched and not args.headless and not args.no_attach:
            console.print("[blue]▸[/blue] Attaching to tmux session...")
            console.print("[dim]  Detach with: Ctrl-B then D[/dim]")
            console.print()
            orchestrator.attach(launched[0].handle.id)
        elif len(inputs) > 1 and launched:
            console.print("[green]✓[/green] All agents launched. Use [bold]dispatch attach[/bold] to view tabs.")

        failed = any(isinstance(result.error, ProvisioningError) for result in results)
        return 1 if failed else 0

    def _cmd_list(self, args) -> int:
        self._orchestrator().print_status()
        return 0

    def _cmd_logs(self, args) -> int:
        return self._orchestrator().logs(args.agent_id, follow=args.follow)

    def _cmd_attach(self, args) -> int:
        self._orchestrator().attach(args.agent_id)
        return 0

    def _cmd_stop(self, args) -> int:
        self._orchestrator().stop(args.agent_id)
        return 0

    def _cmd_resume(self, args) -> int:
        self._orchestrator().resume(args.agent_id, headless=args.headless, attach=not args.no_attach)
        return 0

    def _cmd_cleanup(self, args) -> int:
        if not args.agent_id and not args.all_worktrees:
            raise UsageError("Usage: dispatch cleanup <agent-id> | --all [--delete-branch]")
        ok = self._orchestrator().cleanup(
            args.agent_id, all_worktrees=args.all_worktrees, delete_branch=args.delete_branch
        )
        return 0 if ok else 1

    def _cmd_setup(self, args) -> int:
        install_claude_md_snippet()
        return 0

    def _cmd_version(self, args) -> int:
        console.print(f"dispatch {__version__}")
        return 0

    def _cmd_notify_done(self, args) -> int:
        self._orchestrator().notify_done(args.agent_id)
        return 0
