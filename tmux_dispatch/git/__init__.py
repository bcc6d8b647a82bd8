"""Git worktree management."""

__all__ = ["worktree_manager"]
