"""Core domain models for the tmuxgate system.

These models represent the data flowing through the service: the access
policy and its allow rules, pane addressing, the update events pushed to
stream subscribers, and the tmux session/window/pane descriptions
returned by the HTTP API.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Decision(str, enum.Enum):
    """Outcome of classifying a client address."""

    ALLOWED = "allowed"
    DENIED = "denied"


class UpdateKind(str, enum.Enum):
    """How a subscriber should apply an update to its copy of a pane."""

    FULL = "full"  # Replace everything with the payload
    APPEND = "append"  # Payload continues the previous buffer
    TRUNCATE = "truncate"  # Buffer shrank; payload is the whole new buffer
    PARTIAL = "partial"  # Payload replaces everything after anchor_offset


class StreamState(str, enum.Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Access Control Models (discriminated union)
# ---------------------------------------------------------------------------


class ExactAddress(BaseModel):
    """A single address that must match the client address verbatim."""

    model_config = ConfigDict(frozen=True)

    rule_type: Literal["exact"] = "exact"
    address: str


class CIDRRange(BaseModel):
    """An address block in base/prefix notation."""

    model_config = ConfigDict(frozen=True)

    rule_type: Literal["cidr"] = "cidr"
    base_address: str
    prefix_length: int = Field(ge=0, le=128)

    def __str__(self) -> str:
        return f"{self.base_address}/{self.prefix_length}"


class LoopbackAlias(BaseModel):
    """One of the spellings of the local host (127.0.0.1, ::1, localhost)."""

    model_config = ConfigDict(frozen=True)

    rule_type: Literal["loopback"] = "loopback"
    alias: str


AllowRule = Annotated[
    Union[ExactAddress, CIDRRange, LoopbackAlias],
    Field(discriminator="rule_type"),
]


class AccessPolicy(BaseModel):
    """Process-wide allowlist, built once at startup and read-only after."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    rules: tuple[AllowRule, ...] = ()
    allowed_ips: frozenset[str] = frozenset()
    cidr_mode: Literal["octet", "bitwise"] = "octet"


# ---------------------------------------------------------------------------
# Pane Streaming Models
# ---------------------------------------------------------------------------


class PaneTarget(BaseModel):
    """Coordinates of one pane in the session/window/pane hierarchy."""

    model_config = ConfigDict(frozen=True)

    session: str
    window: str
    pane: str

    @property
    def tmux_target(self) -> str:
        """The target string understood by ``tmux -t``."""
        return f"{self.session}:{self.window}.{self.pane}"

    def __str__(self) -> str:
        return self.tmux_target


class UpdateEvent(BaseModel):
    """A change to a pane buffer, as pushed to a stream subscriber.

    ``full_content`` always carries the complete new buffer so a client
    can resynchronize by ignoring ``payload`` and ``anchor_offset``.
    """

    model_config = ConfigDict(frozen=True)

    kind: UpdateKind
    payload: str = Field(description="Text the subscriber must apply")
    anchor_offset: int = Field(ge=0, description="Where payload starts in the new buffer")
    full_content: str = Field(description="Complete new buffer")
    sequence: int = Field(ge=1, description="Per-stream event counter")
    timestamp: datetime = Field(default_factory=datetime.now)


class StreamError(BaseModel):
    """An in-band error report on a pane stream."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    error: str
    details: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


StreamMessage = Union[UpdateEvent, StreamError]


# ---------------------------------------------------------------------------
# tmux Description Models
# ---------------------------------------------------------------------------


class TmuxPane(BaseModel):
    index: int
    active: bool = False
    command: str = "No command running"
    path: str = "Unknown path"
    pid: int = 0
    name: str = ""
    left: int = 0
    top: int = 0
    width: int = 0
    height: int = 0


class TmuxWindow(BaseModel):
    index: int
    name: str
    active: bool = False
    command: str = "No command running"
    panes: list[TmuxPane] = Field(default_factory=list)


class ActiveWindow(BaseModel):
    """Summary of the first window of a session, shown in session listings."""

    index: int = 0
    name: str = "Window 0"
    command: str = "Unknown"


class TmuxSession(BaseModel):
    """A tmux session as reported by ``tmux list-sessions``."""

    name: str
    friendly_name: str | None = None
    windows: int = 0
    created: datetime
    attached: bool = False
    active_window: ActiveWindow | None = None
    windows_info: list[TmuxWindow] | None = None
