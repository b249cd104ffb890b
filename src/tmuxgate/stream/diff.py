"""Incremental diffing of pane snapshots.

Given the previously sent buffer and a freshly captured one, works out
the smallest payload a subscriber needs, classified in priority order:

1. ``append``   -- the new buffer extends the old one.
2. ``truncate`` -- the new buffer is shorter; resend it whole.
3. ``partial``  -- the buffers share a prefix longer than half of the
   old buffer; send what follows the prefix.
4. ``full``     -- anything else; resend the whole buffer.

Every event also carries the full new buffer so a subscriber can always
resynchronize without tracking payloads.
"""

from __future__ import annotations

from datetime import datetime

from tmuxgate.domain.models import UpdateEvent, UpdateKind

PARTIAL_PREFIX_RATIO = 0.5


def common_prefix_length(a: str, b: str) -> int:
    """Length of the longest shared prefix of ``a`` and ``b``."""
    limit = min(len(a), len(b))
    for i in range(limit):
        if a[i] != b[i]:
            return i
    return limit


def diff(
    previous: str,
    current: str,
    *,
    sequence: int,
    timestamp: datetime | None = None,
) -> UpdateEvent | None:
    """Compute the update that turns ``previous`` into ``current``.

    Args:
        previous: Buffer the subscriber already has.
        current: Newly captured buffer.
        sequence: Sequence number to stamp on the event.
        timestamp: Event time; defaults to now.

    Returns:
        The update event, or None when nothing changed.
    """
    if previous == current:
        return None

    if current.startswith(previous):
        kind = UpdateKind.APPEND
        anchor = len(previous)
    elif len(current) < len(previous):
        kind = UpdateKind.TRUNCATE
        anchor = 0
    else:
        prefix = common_prefix_length(previous, current)
        if prefix > len(previous) * PARTIAL_PREFIX_RATIO:
            kind = UpdateKind.PARTIAL
            anchor = prefix
        else:
            kind = UpdateKind.FULL
            anchor = 0

    return UpdateEvent(
        kind=kind,
        payload=current[anchor:],
        anchor_offset=anchor,
        full_content=current,
        sequence=sequence,
        timestamp=timestamp or datetime.now(),
    )


def apply_update(previous: str, event: UpdateEvent) -> str:
    """Rebuild the new buffer from ``previous`` and an update's payload."""
    if event.kind in (UpdateKind.APPEND, UpdateKind.PARTIAL):
        return previous[:event.anchor_offset] + event.payload
    return event.payload
