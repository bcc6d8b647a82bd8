"""Command-line interface."""

__all__ = ["enhanced_cli"]
