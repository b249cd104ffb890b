"""Domain models for tmuxgate.

This package contains the core data structures, enumerations, and value
objects used throughout the system. All models use Pydantic v2 for
validation and serialization.
"""

from tmuxgate.domain.models import (
    AccessPolicy,
    ActiveWindow,
    AllowRule,
    CIDRRange,
    Decision,
    ExactAddress,
    LoopbackAlias,
    PaneTarget,
    StreamError,
    StreamMessage,
    StreamState,
    TmuxPane,
    TmuxSession,
    TmuxWindow,
    UpdateEvent,
    UpdateKind,
)

__all__ = [
    "AccessPolicy",
    "ActiveWindow",
    "AllowRule",
    "CIDRRange",
    "Decision",
    "ExactAddress",
    "LoopbackAlias",
    "PaneTarget",
    "StreamError",
    "StreamMessage",
    "StreamState",
    "TmuxPane",
    "TmuxSession",
    "TmuxWindow",
    "UpdateEvent",
    "UpdateKind",
]
