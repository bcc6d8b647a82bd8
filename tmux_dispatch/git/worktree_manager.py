"""
Git Worktree Manager Module

Creates and removes the per-agent git worktrees. Each agent gets
<repo>/<worktree_dir>/<agent-id>, checked out on a branch named after the
agent. Both operations are idempotent: an existing worktree is reused and a
missing one counts as already removed.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from ..core.errors import ProvisioningError, UsageError
from ..utils.file_utils import FileUtils
from ..utils.system_utils import SystemUtils

console = Console()
logger = logging.getLogger(__name__)


def _git(args: List[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    command = ['git'] + args
    returncode, stdout, stderr = SystemUtils.run_command(command, cwd=cwd)
    return subprocess.CompletedProcess(command, returncode, stdout, stderr)


def find_git_root(cwd: Optional[Path] = None) -> Path:
    """
    Return the top level of the git repository containing cwd.

    Raises:
        UsageError: If cwd is not inside a git repository
    """
    result = _git(['rev-parse', '--show-toplevel'], cwd=cwd)
    if result.returncode != 0 or not result.stdout.strip():
        raise UsageError("Not inside a git repository")
    return Path(result.stdout.strip())


class WorktreeManager:
    """
    Manages the git worktrees that isolate agents from each other.
    """

    def __init__(self, repo_root: Path, worktree_dir: str = ".worktrees"):
        """
        Initialize worktree manager for a repository.

        Args:
            repo_root: Top level of the main git checkout
            worktree_dir: Directory (relative to repo_root) holding worktrees
        """
        self.repo_root = Path(repo_root)
        self.worktree_dir = worktree_dir

    @property
    def base_path(self) -> Path:
        return self.repo_root / self.worktree_dir

    def worktree_path(self, agent_id: str) -> Path:
        return self.base_path / agent_id

    def ensure_worktree_dir(self) -> Path:
        """
        Create the worktree directory and keep it out of git.

        Returns:
            Path: The worktree base directory
        """
        self.base_path.mkdir(parents=True, exist_ok=True)
        entry = f"{self.worktree_dir}/"
        if FileUtils.ensure_line_in_file(self.repo_root / '.gitignore', entry):
            logger.info(f"Added {entry} to .gitignore")
        return self.base_path

    def provision(self, agent_id: str, branch: str, base_ref: str) -> Path:
        """
        Create the worktree for an agent, or reuse the existing one.

        The new branch is cut from origin/<base_ref>. If that fails (usually
        because the branch survived an earlier run) the worktree is attached
        to the existing local branch instead.

        Args:
            agent_id: Agent ID (worktree directory name)
            branch: Branch to create or check out
            base_ref: Base branch on origin

        Returns:
            Path: The worktree path

        Raises:
            ProvisioningError: If neither strategy produced a worktree
        """
        path = self.worktree_path(agent_id)
        if path.exists():
            console.print(f"[yellow]⚠[/yellow] Worktree already exists: {path}")
            return path

        self.ensure_worktree_dir()
        console.print(
            f"[blue]▸[/blue] Creating worktree: [bold]{agent_id}[/bold] (branch: {branch} off {base_ref})"
        )

        fetch = _git(['fetch', 'origin', base_ref], cwd=self.repo_root)
        if fetch.returncode != 0:
            logger.info(f"git fetch origin {base_ref} failed: {fetch.stderr.strip()}")

        ok, errors = self._add_with_fallback(path, branch, base_ref)
        if not ok:
            raise ProvisioningError(f"Failed to create worktree for '{agent_id}': {errors}")

        console.print(f"[green]✓[/green] Worktree created at {path}")
        return path

    def _add_with_fallback(self, path: Path, branch: str, base_ref: str) -> Tuple[bool, str]:
        strategies = [
            ("new_branch", ['worktree', 'add', '-b', branch, str(path), f"origin/{base_ref}"]),
            ("existing_branch", ['worktree', 'add', str(path), branch]),
        ]
        errors = []
        for name, args in strategies:
            result = _git(args, cwd=self.repo_root)
            if result.returncode == 0:
                logger.debug(f"worktree strategy {name} succeeded for {path}")
                return True, ""
            errors.append(result.stderr.strip())
            logger.debug(f"worktree strategy {name} failed: {result.stderr.strip()}")
        return False, "; ".join(e for e in errors if e)

    def teardown(self, agent_id: str) -> bool:
        """
        Force-remove an agent's worktree. Uncommitted changes are discarded.

        Returns:
            bool: True if the worktree is gone (or never existed)
        """
        path = self.worktree_path(agent_id)
        if not path.exists():
            console.print(f"[yellow]⚠[/yellow] Worktree not found: {agent_id}")
            return True

        console.print(f"[blue]▸[/blue] Removing worktree: {agent_id}")
        result = _git(['worktree', 'remove', '--force', str(path)], cwd=self.repo_root)
        if result.returncode != 0:
            console.print(
                f"[red]✗[/red] Failed to remove worktree. Try: git worktree remove --force {path}"
            )
            return False

        prune = _git(['worktree', 'prune'], cwd=self.repo_root)
        if prune.returncode != 0:
            logger.info(f"git worktree prune failed: {prune.stderr.strip()}")

        console.print(f"[green]✓[/green] Worktree removed: {agent_id}")
        return True

    def delete_branch(self, branch: str) -> bool:
        result = _git(['branch', '-D', branch], cwd=self.repo_root)
        if result.returncode == 0:
            console.print(f"[green]✓[/green] Deleted branch: {branch}")
            return True
        console.print(f"[yellow]⚠[/yellow] Branch not found: {branch}")
        return False

    def list_worktree_ids(self) -> List[str]:
        """Names of the agent worktree directories, sorted."""
        if not self.base_path.is_dir():
            return []
        return sorted(item.name for item in self.base_path.iterdir() if item.is_dir())
