"""
Claude readiness handshake.

There is no readiness protocol: the probe polls the window's visible output
until it shows an input prompt or the claude banner, or the deadline passes.
Timing out is not an error; the caller pastes the prompt anyway.
"""

import logging
import re
import time
from typing import Callable

from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)

PROMPT_LINE_RE = re.compile(r"^\s*[>?]\s*$", re.MULTILINE)
BANNER_RE = re.compile(r"╭|Welcome|claude", re.IGNORECASE)
CAPTURE_LINES = 5


def is_ready(screen: str) -> bool:
    """True when captured pane text looks like claude is waiting for input."""
    return bool(PROMPT_LINE_RE.search(screen) or BANNER_RE.search(screen))


class ReadinessProbe:
    """
    Polls a capture function until is_ready() holds or timeout elapses.
    """

    def __init__(self,
                 capture: Callable[[int], str],
                 timeout: float,
                 interval: float = 1.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 predicate: Callable[[str], bool] = is_ready):
        """
        Args:
            capture: Returns the last N lines of the window
            timeout: Seconds to wait before giving up
            interval: Seconds between polls
            clock: Monotonic time source
            sleep: Sleep function
            predicate: Readiness test applied to each capture
        """
        self.capture = capture
        self.timeout = timeout
        self.interval = interval
        self.clock = clock
        self.sleep = sleep
        self.predicate = predicate
        self.polls = 0

    def wait(self) -> bool:
        """
        Block until ready or timed out.

        Returns:
            bool: True if readiness was observed, False on timeout
        """
        deadline = self.clock() + self.timeout
        while True:
            self.polls += 1
            if self.predicate(self.capture(CAPTURE_LINES)):
                logger.debug(f"Claude ready after {self.polls} poll(s)")
                return True
            if self.clock() >= deadline:
                break
            self.sleep(self.interval)

        console.print(
            f"[yellow]⚠[/yellow] Claude Code may not be fully initialized (waited {self.timeout:g}s)"
        )
        return False
