"""tmuxgate -- tmux sessions over HTTP behind an IP allowlist.

This package exposes the session/window/pane state of a local tmux
server through a small HTTP API. Every request passes an address-based
access gate first, and pane contents can be followed live through a
server-sent event stream that pushes incremental diffs.
"""

__version__ = "0.1.0"
