"""Pane buffer capture."""

from __future__ import annotations

import logging
import shlex

from tmuxgate.domain.models import PaneTarget
from tmuxgate.tmux.runner import CommandError, CommandRunner

logger = logging.getLogger(__name__)


class PaneSampler:
    """Fetches the current text of a tmux pane via ``capture-pane``."""

    def __init__(self, runner: CommandRunner, tmux_binary: str = "tmux") -> None:
        self._runner = runner
        self._tmux = tmux_binary

    async def capture(self, target: PaneTarget) -> str:
        """Capture the pane buffer, returning an empty snapshot on failure.

        An idle or momentarily unreachable pane is not an error for
        one-shot reads.
        """
        try:
            return await self.capture_strict(target)
        except CommandError as e:
            logger.debug("Capture of %s failed, using empty snapshot: %s %s",
                         target, e.message, e.stderr.strip())
            return ""

    async def capture_strict(self, target: PaneTarget) -> str:
        """Capture the pane buffer.

        Raises:
            CommandError: If tmux could not capture the pane.
        """
        # "=" stops tmux from resolving a missing session to one sharing its prefix
        command = f"{self._tmux} capture-pane -p -t {shlex.quote('=' + target.tmux_target)}"
        result = await self._runner.run(command)
        return result.stdout
