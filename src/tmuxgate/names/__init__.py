"""Friendly session names for tmuxgate."""

from tmuxgate.names.store import PersistenceError, SessionNameStore

__all__ = ["PersistenceError", "SessionNameStore"]
