"""Shared utilities: configuration, files, processes, notifications."""

__all__ = ["config_loader", "file_utils", "notifications", "system_utils"]
