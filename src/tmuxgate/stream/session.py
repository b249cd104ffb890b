"""Per-subscriber pane streaming.

A :class:`StreamSession` follows one pane for one subscriber. It owns a
single asyncio task that samples the pane, diffs the sample against the
last buffer it sent, and queues the resulting messages. The HTTP layer
drains the queue through :meth:`StreamSession.events`.

States::

    initializing --first cycle--> active --close()/failure--> closed

Cycles run one after another inside the task, so there is never more
than one capture in flight per session and the stored snapshot is only
touched by that task. Cancelling the task is the only way a session
stops; its ``finally`` block performs all teardown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from tmuxgate.domain.models import PaneTarget, StreamError, StreamMessage, StreamState
from tmuxgate.stream.diff import diff
from tmuxgate.tmux.runner import CommandError
from tmuxgate.tmux.sampler import PaneSampler

logger = logging.getLogger(__name__)


class StreamSession:
    """Streams incremental updates of one pane to one subscriber."""

    def __init__(
        self,
        target: PaneTarget,
        sampler: PaneSampler,
        interval: float = 1.0,
        max_consecutive_errors: int = 5,
        max_pending: int = 100,
    ) -> None:
        self._target = target
        self._sampler = sampler
        self._interval = interval
        self._max_consecutive_errors = max_consecutive_errors
        self._max_pending = max_pending
        self._queue: asyncio.Queue[StreamMessage | None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._state = StreamState.INITIALIZING
        self._previous = ""
        self._sequence = 0
        self._consecutive_errors = 0

    @property
    def target(self) -> PaneTarget:
        return self._target

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def sequence(self) -> int:
        """Sequence number of the last update emitted (0 before any)."""
        return self._sequence

    def start(self) -> None:
        """Spawn the sampling task. Must be called from a running loop."""
        if self._task is not None:
            raise RuntimeError("Stream session already started")
        self._task = asyncio.create_task(
            self._run(), name=f"pane-stream:{self._target.tmux_target}"
        )
        logger.info("Stream started for %s (interval=%.2fs)", self._target, self._interval)

    def close(self) -> None:
        """Stop the session. Safe to call any number of times."""
        if self._task is None:
            self._finish()
        elif not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the sampling task has finished its teardown."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def events(self) -> AsyncIterator[StreamMessage]:
        """Yield queued messages until the session is closed and drained."""
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    async def _run(self) -> None:
        try:
            await self._cycle()
            self._state = StreamState.ACTIVE
            while True:
                await asyncio.sleep(self._interval)
                await self._cycle()
        except StreamClosedError as e:
            logger.warning("Stream for %s stopping: %s", self._target, e)
        except Exception:
            logger.exception("Stream for %s failed", self._target)
        finally:
            self._finish()

    async def _cycle(self) -> None:
        """Capture once, diff against the last sent buffer, and queue the result."""
        try:
            current = await self._sampler.capture_strict(self._target)
        except CommandError as e:
            self._consecutive_errors += 1
            logger.warning(
                "Failed to capture pane %s (%d/%d): %s %s",
                self._target, self._consecutive_errors, self._max_consecutive_errors,
                e.message, e.stderr.strip(),
            )
            self._push(StreamError(
                error="Failed to capture pane content",
                details=e.stderr.strip() or e.message,
            ))
            if self._consecutive_errors >= self._max_consecutive_errors:
                raise StreamClosedError("too many consecutive capture failures") from e
            return

        self._consecutive_errors = 0
        event = diff(self._previous, current, sequence=self._sequence + 1)
        if event is None:
            return
        self._push(event)
        self._sequence = event.sequence
        self._previous = current
        logger.debug("Update %d for %s: %s (+%d chars)",
                      event.sequence, self._target, event.kind.value, len(event.payload))

    def _push(self, message: StreamMessage) -> None:
        if self._queue.qsize() >= self._max_pending:
            raise StreamClosedError(
                f"subscriber has {self._queue.qsize()} undelivered messages"
            )
        self._queue.put_nowait(message)

    def _finish(self) -> None:
        if self._state is StreamState.CLOSED:
            return
        self._state = StreamState.CLOSED
        # End-of-stream marker; the queue is unbounded so this never blocks
        self._queue.put_nowait(None)
        logger.info("Stream closed for %s after %d updates", self._target, self._sequence)


class StreamClosedError(Exception):
    """Raised inside a stream session when it can no longer continue."""
