"""
File Utilities Module

File helpers shared by the worktree manager, the launch sequencer and the
configuration loader.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)

PROMPT_FILENAME = ".dispatch-prompt.txt"
LOG_FILENAME = ".dispatch.log"


class FileUtils:
    """
    File operation utilities with error handling.
    """

    @staticmethod
    def read_yaml(file_path: Path) -> Optional[Dict[str, Any]]:
        """
        Safely read a YAML mapping.

        Args:
            file_path: Path to YAML file

        Returns:
            Dict containing YAML data, {} for an empty file, or None if the
            file is missing or invalid
        """
        if not file_path.exists():
            logger.debug(f"YAML file not found: {file_path}")
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            console.print(f"[yellow]⚠ Invalid YAML in {file_path}: {e}[/yellow]")
            return None
        except OSError as e:
            console.print(f"[yellow]⚠ Error reading YAML {file_path}: {e}[/yellow]")
            return None

        if data is None:
            return {}
        if not isinstance(data, dict):
            console.print(f"[yellow]⚠ Expected a mapping in {file_path}, ignoring it[/yellow]")
            return None
        return data

    @staticmethod
    def write_prompt_file(directory: Path, prompt: str) -> Path:
        """
        Write a prompt into directory so it can be fed to claude verbatim.

        Newlines are written untranslated so the file holds exactly the
        characters of the prompt.

        Args:
            directory: Worktree (or repository root) receiving the file
            prompt: Prompt text

        Returns:
            Path of the written prompt file
        """
        path = Path(directory) / PROMPT_FILENAME
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(prompt)
        return path

    @staticmethod
    def read_prompt_file(path: Path) -> str:
        """Read a prompt file back without newline translation."""
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return f.read()

    @staticmethod
    def ensure_line_in_file(file_path: Path, line: str) -> bool:
        """
        Append line to file_path unless an identical line is already there.

        Args:
            file_path: File to update (created if missing)
            line: Line content without trailing newline

        Returns:
            bool: True if the file was changed
        """
        if file_path.exists():
            content = file_path.read_text(encoding='utf-8')
            if line in content.split('\n'):
                return False
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(f"\n{line}\n")
        else:
            file_path.write_text(f"{line}\n", encoding='utf-8')
        return True

    @staticmethod
    def tail_lines(file_path: Path, lines: int) -> str:
        """Return the last `lines` lines of a text file."""
        content = file_path.read_text(encoding='utf-8', errors='replace')
        return "\n".join(content.split("\n")[-lines:])
