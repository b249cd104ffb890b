"""Persistent friendly names for tmux sessions.

The map lives in a single JSON file of the form::

    {"session_names": {"<session>": "<label>"}}

Reads for enrichment are best effort: a missing or unreadable file
yields an empty map. Mutations re-read the file, apply the change, and
write it back atomically while holding one lock, so concurrent updates
cannot interleave. A failed mutation raises and leaves the file as it
was. File access runs in worker threads, never on the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

ROOT_KEY = "session_names"


class SessionNameStore:
    """Owns the session-name file and serializes changes to it."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> dict[str, str]:
        """Return the current map, or an empty one if it cannot be read."""
        try:
            return await asyncio.to_thread(self._read)
        except PersistenceError as e:
            logger.warning("Using empty session names: %s", e)
            return {}

    async def set_name(self, session: str, friendly_name: str) -> dict[str, str]:
        """Assign ``friendly_name`` to ``session`` and return the new map.

        Raises:
            PersistenceError: If the file could not be read or written.
        """
        async with self._lock:
            names = await asyncio.to_thread(self._read)
            names[session] = friendly_name
            await asyncio.to_thread(self._write, names)
        logger.info("Friendly name %r set for session %s", friendly_name, session)
        return names

    async def remove_name(self, session: str) -> dict[str, str]:
        """Drop the friendly name of ``session`` and return the new map.

        Removing a name that is not set still rewrites the file.

        Raises:
            PersistenceError: If the file could not be read or written.
        """
        async with self._lock:
            names = await asyncio.to_thread(self._read)
            names.pop(session, None)
            await asyncio.to_thread(self._write, names)
        logger.info("Friendly name removed for session %s", session)
        return names

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {self._path}: {e}") from e

        names = data.get(ROOT_KEY, {}) if isinstance(data, dict) else {}
        if not isinstance(names, dict):
            raise PersistenceError(f"{self._path}: '{ROOT_KEY}' is not an object")
        return {str(k): str(v) for k, v in names.items()}

    def _write(self, names: dict[str, str]) -> None:
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({ROOT_KEY: names}, f, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Cannot write {self._path}: {e}") from e


class PersistenceError(Exception):
    """Raised when the session-name file cannot be read or written."""
