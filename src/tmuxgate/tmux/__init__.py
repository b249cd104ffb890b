"""tmux access layer for tmuxgate.

Public API:
    CommandRunner -- Runs shell command lines in asyncio subprocesses
    PaneSampler -- Captures the text buffer of one pane
    TmuxClient -- Session/window/pane queries and lifecycle actions
"""

from tmuxgate.tmux.client import SessionNotFoundError, TmuxClient
from tmuxgate.tmux.runner import CommandError, CommandResult, CommandRunner
from tmuxgate.tmux.sampler import PaneSampler

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "PaneSampler",
    "SessionNotFoundError",
    "TmuxClient",
]
