"""Live pane streaming for tmuxgate.

Public API:
    diff -- Classify the change between two pane snapshots
    apply_update -- Rebuild a buffer from an update event
    StreamSession -- Per-subscriber sampling loop feeding a push channel
"""

from tmuxgate.stream.diff import apply_update, common_prefix_length, diff
from tmuxgate.stream.session import StreamClosedError, StreamSession

__all__ = [
    "StreamClosedError",
    "StreamSession",
    "apply_update",
    "common_prefix_length",
    "diff",
]
