"""Claude command lines, readiness detection and CLAUDE.md setup."""

__all__ = ["command", "readiness", "setup"]
