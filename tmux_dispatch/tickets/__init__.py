"""Issue tracker lookups."""

__all__ = ["linear"]
