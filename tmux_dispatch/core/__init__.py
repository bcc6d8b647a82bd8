"""Agent identity, launch sequencing, status and lifecycle orchestration."""

__all__ = ["errors", "identity", "launcher", "orchestrator", "status"]
