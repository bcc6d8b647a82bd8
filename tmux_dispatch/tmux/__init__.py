"""tmux session, window, messaging and attach handling."""

__all__ = ["attach", "manager", "messaging", "session_controller"]
