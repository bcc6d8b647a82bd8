"""
Configuration Loader Module

Resolves the dispatch configuration. Precedence, highest first: explicit
overrides (command-line flags), DISPATCH_* environment variables, the YAML
config file (DISPATCH_CONFIG or ~/.dispatch.yml), built-in defaults.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from rich.console import Console

from .file_utils import FileUtils

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TOOLS = "Bash,Read,Write,Edit,Glob,Grep,Task,WebSearch,WebFetch"
DEFAULT_CONFIG_FILENAME = ".dispatch.yml"


@dataclass
class DispatchConfig:
    """Resolved, read-only view of the dispatch settings."""
    base_branch: str = "dev"
    model: str = ""
    max_turns: str = ""
    max_budget: str = ""
    allowed_tools: str = DEFAULT_ALLOWED_TOOLS
    worktree_dir: str = ".worktrees"
    claude_timeout: int = 30


# YAML keys match the dataclass fields one to one
FILE_KEYS = tuple(f.name for f in dataclasses.fields(DispatchConfig))

ENV_KEYS = {
    "DISPATCH_BASE_BRANCH": "base_branch",
    "DISPATCH_MODEL": "model",
    "DISPATCH_MAX_TURNS": "max_turns",
    "DISPATCH_MAX_BUDGET": "max_budget",
    "DISPATCH_ALLOWED_TOOLS": "allowed_tools",
    "DISPATCH_CLAUDE_TIMEOUT": "claude_timeout",
}


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    explicit = environ.get("DISPATCH_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    return Path(os.path.expanduser("~")) / DEFAULT_CONFIG_FILENAME


def _coerce(key: str, value: Any, source: str) -> Optional[Any]:
    """Convert a raw value to the field's type, or None if it is unusable."""
    if key == "claude_timeout":
        try:
            timeout = int(value)
        except (TypeError, ValueError):
            console.print(f"[yellow]⚠ Ignoring claude_timeout={value!r} from {source}: not an integer[/yellow]")
            return None
        if timeout < 0:
            console.print(f"[yellow]⚠ Ignoring negative claude_timeout from {source}[/yellow]")
            return None
        return timeout
    if value is None:
        return ""
    return str(value)


def load_config(overrides: Optional[Dict[str, Any]] = None,
                environ: Optional[Mapping[str, str]] = None,
                config_path: Optional[Path] = None) -> DispatchConfig:
    """
    Build a DispatchConfig from every configuration source.

    Args:
        overrides: Field name -> value from the command line; None or ""
            values do not override
        environ: Environment mapping (defaults to os.environ)
        config_path: YAML file location (defaults to DISPATCH_CONFIG or
            ~/.dispatch.yml)

    Returns:
        DispatchConfig: The resolved configuration
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    path = config_path or default_config_path(environ)
    file_data = FileUtils.read_yaml(path)
    if file_data:
        logger.debug(f"Loaded config file {path}")
        for key, raw in file_data.items():
            if key not in FILE_KEYS:
                logger.debug(f"Unknown config key {key!r} in {path}")
                continue
            value = _coerce(key, raw, str(path))
            if value is not None:
                values[key] = value

    for env_var, key in ENV_KEYS.items():
        raw = environ.get(env_var)
        if raw:
            value = _coerce(key, raw, env_var)
            if value is not None:
                values[key] = value

    for key, raw in (overrides or {}).items():
        if key not in FILE_KEYS:
            raise KeyError(f"Unknown configuration field: {key}")
        if raw is None or raw == "":
            continue
        value = _coerce(key, raw, "command line")
        if value is not None:
            values[key] = value

    return dataclasses.replace(DispatchConfig(), **values)
