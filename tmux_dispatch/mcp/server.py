"""FastMCP stdio server exposing dispatch to other agents."""

import logging
import os
from typing import Callable, Optional

from fastmcp import FastMCP

from .. import __version__
from ..core.orchestrator import Orchestrator
from .tools import register_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "dispatch"
INSTRUCTIONS = (
    "Dispatch runs Claude Code agents in parallel, each in its own git worktree and "
    "tmux window. Use dispatch_run with a full inline prompt to start one, then "
    "dispatch_list, dispatch_logs, dispatch_stop, dispatch_resume and dispatch_cleanup "
    "to manage it."
)


def configure_logging(level: str) -> None:
    """Log to stderr; stdout carries the protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(orchestrator_factory: Optional[Callable[..., Orchestrator]] = None) -> FastMCP:
    """Instantiate the FastMCP server with the dispatch tools registered."""
    server = FastMCP(name=SERVER_NAME, version=__version__, instructions=INSTRUCTIONS)
    tools = register_tools(server, orchestrator_factory=orchestrator_factory)
    setattr(server, "dispatch_tools", tools)
    return server


def main() -> None:
    """Entry point for running the dispatch MCP server over stdio."""
    configure_logging(os.environ.get("DISPATCH_LOG_LEVEL", "WARNING"))
    server = create_server()
    logger.info(f"Launching dispatch MCP server {__version__}")
    server.run()


if __name__ == "__main__":
    main()
