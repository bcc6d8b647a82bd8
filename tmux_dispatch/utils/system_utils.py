"""
System Utilities Module

Process and terminal helpers for dispatch.
"""

import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import psutil
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)


class SystemUtils:
    """
    System-level utilities and process management.
    """

    @staticmethod
    def run_command(command: List[str],
                    cwd: Optional[Path] = None,
                    timeout: Optional[int] = None) -> Tuple[int, str, str]:
        """
        Run system command with proper error handling.

        Args:
            command: Command and arguments as list
            cwd: Working directory for command
            timeout: Command timeout in seconds

        Returns:
            Tuple of (return_code, stdout, stderr); a command that cannot
            be started reports return code 127
        """
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                timeout=timeout,
                capture_output=True,
                text=True
            )
            return result.returncode, result.stdout, result.stderr
        except subprocess.TimeoutExpired:
            return -1, "", f"Command timed out after {timeout} seconds"
        except OSError as e:
            return 127, "", str(e)

    @staticmethod
    def has_tty() -> bool:
        """True when stdin is an interactive controlling terminal."""
        try:
            return sys.stdin is not None and sys.stdin.isatty()
        except ValueError:
            return False

    @staticmethod
    def wait_for_children_exit(pid: Optional[int],
                               grace_seconds: float,
                               interval: float = 0.1,
                               clock: Callable[[], float] = time.monotonic,
                               sleep: Callable[[float], None] = time.sleep) -> bool:
        """
        Wait until the process pid has no child processes left.

        Used after interrupting a pane: the shell survives the interrupt,
        the program it was running should not.

        Args:
            pid: Pane shell PID (None waits out the whole grace period)
            grace_seconds: Maximum time to wait
            interval: Poll interval in seconds

        Returns:
            bool: True if the children exited within the grace period
        """
        deadline = clock() + grace_seconds
        while True:
            if pid is not None:
                try:
                    if not psutil.Process(pid).children(recursive=True):
                        return True
                except psutil.NoSuchProcess:
                    return True
                except psutil.AccessDenied:
                    pid = None
            if clock() >= deadline:
                return False
            sleep(interval)

    @staticmethod
    def tail_file(file_path: Path) -> int:
        """
        Follow a log file until the user interrupts.

        Returns:
            Exit code: 0 when interrupted or when tail ends normally
        """
        try:
            process = subprocess.Popen(["tail", "-f", str(file_path)])
        except OSError as e:
            console.print(f"[red]✗ Cannot run tail: {e}[/red]")
            return 1

        try:
            process.wait()
        except KeyboardInterrupt:
            process.terminate()
            process.wait()
            return 0
        return 0 if process.returncode in (0, -15) else 1

    @staticmethod
    def home_dir() -> Path:
        return Path(os.path.expanduser("~"))
