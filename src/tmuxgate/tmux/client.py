"""Session, window, and pane queries and lifecycle actions for tmux.

Thin wrappers around ``tmux`` subcommands executed by a
:class:`CommandRunner`. Output is requested with tab-separated format
strings and parsed into domain models.

Pane commands are enriched by looking up the foreground process of each
pane through ``ps``. That lookup is informational only: processes can
come and go between the tmux query and the ``ps`` call, so the reported
command may already be stale. Any failure falls back to the command
tmux reported.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping
from datetime import datetime, timezone

from tmuxgate.domain.models import ActiveWindow, TmuxPane, TmuxSession, TmuxWindow
from tmuxgate.tmux.runner import CommandError, CommandResult, CommandRunner

logger = logging.getLogger(__name__)

NO_COMMAND = "No command running"

_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no sessions")


def _fmt(*fields: str) -> str:
    return "\t".join(f"#{{{name}}}" for name in fields)


SESSION_FORMAT = _fmt("session_name", "session_windows", "session_created", "session_attached")
WINDOW_SUMMARY_FORMAT = _fmt("window_index", "window_name", "pane_current_command")
WINDOW_FORMAT = _fmt("window_index", "window_name", "window_active", "pane_current_command")
ACTIVE_PANE_FORMAT = _fmt("pane_pid", "pane_active")
PANE_FORMAT = _fmt(
    "pane_index", "pane_active", "pane_current_command", "pane_current_path",
    "pane_pid", "pane_title", "pane_left", "pane_top", "pane_width", "pane_height",
)


class TmuxClient:
    """Queries and manipulates the local tmux server."""

    def __init__(self, runner: CommandRunner, tmux_binary: str = "tmux") -> None:
        self._runner = runner
        self._binary = tmux_binary

    async def list_sessions(
        self, friendly_names: Mapping[str, str] | None = None
    ) -> list[TmuxSession]:
        """List all sessions with a summary of their first window.

        A tmux server that is not running has no sessions.
        """
        try:
            result = await self._tmux("list-sessions", "-F", SESSION_FORMAT)
        except CommandError as e:
            if _is_no_server(e):
                logger.debug("No tmux server running, reporting no sessions")
                return []
            raise

        sessions = [
            _parse_session(line, friendly_names or {})
            for line in result.stdout.splitlines()
            if line.strip()
        ]
        for session in sessions:
            session.active_window = await self._active_window(session.name)
        return sessions

    async def get_session(
        self, name: str, friendly_names: Mapping[str, str] | None = None
    ) -> TmuxSession:
        """Describe one session including its windows and panes.

        Raises:
            SessionNotFoundError: If no session is called ``name``.
            CommandError: If tmux could not be queried.
        """
        try:
            result = await self._tmux("list-sessions", "-F", SESSION_FORMAT)
        except CommandError as e:
            if _is_no_server(e):
                raise SessionNotFoundError(name) from e
            raise

        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            session = _parse_session(line, friendly_names or {})
            if session.name == name:
                break
        else:
            raise SessionNotFoundError(name)

        session.windows_info = await self._windows(name)
        return session

    async def has_session(self, name: str) -> bool:
        try:
            await self._tmux("has-session", "-t", _exact(name))
        except CommandError:
            return False
        return True

    async def create_session(self, name: str) -> None:
        """Start a new detached session called ``name``."""
        await self._tmux("new-session", "-d", "-s", name)
        logger.info("Created tmux session %s", name)

    async def kill_session(self, name: str) -> None:
        """Kill the session called ``name``.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        if not await self.has_session(name):
            raise SessionNotFoundError(name)
        await self._tmux("kill-session", "-t", _exact(name))
        logger.info("Killed tmux session %s", name)

    async def run_command(self, session: str, command: str) -> str:
        """Run ``tmux <command>`` after checking that ``session`` exists.

        ``command`` is passed to the shell verbatim; this is an escape
        hatch for trusted clients, not a sandbox.
        """
        if not await self.has_session(session):
            raise SessionNotFoundError(session)
        result = await self._runner.run(f"{self._binary} {command}")
        logger.info("Ran tmux command for session %s: %s", session, command)
        return result.stdout

    async def resolve_command(self, pid: int, fallback: str | None = None) -> str:
        """Best-effort full command line of the process running in a pane.

        Prefers the first child of ``pid`` (the program started from the
        pane's shell), then ``pid`` itself, then ``fallback``.
        """
        fallback = fallback or NO_COMMAND
        if pid <= 0:
            return fallback
        try:
            child = await self._runner.run(f"ps --ppid {pid} -o args= | head -1")
            if child.stdout.strip():
                return child.stdout.strip()
            own = await self._runner.run(f"ps -p {pid} -o args=")
            if own.stdout.strip():
                return own.stdout.strip()
        except CommandError as e:
            logger.debug("Could not resolve command for pid %d: %s", pid, e.message)
        return fallback

    async def _active_window(self, session: str) -> ActiveWindow:
        try:
            result = await self._tmux("list-windows", "-t", _exact(session), "-F", WINDOW_SUMMARY_FORMAT)
        except CommandError as e:
            logger.debug("Could not list windows for session %s: %s", session, e.message)
            return ActiveWindow()

        lines = result.stdout.splitlines()
        if not lines:
            return ActiveWindow()
        index, name, command = _split(lines[0], 3)
        idx = _to_int(index)
        return ActiveWindow(
            index=idx,
            name=name or f"Window {idx}",
            command=await self._active_pane_command(session, idx, command),
        )

    async def _active_pane_command(self, session: str, window: int, fallback: str) -> str:
        try:
            result = await self._tmux(
                "list-panes", "-t", f"{_exact(session)}:{window}", "-F", ACTIVE_PANE_FORMAT
            )
        except CommandError as e:
            logger.debug("Could not list panes for %s:%d: %s", session, window, e.message)
            return fallback or NO_COMMAND

        for line in result.stdout.splitlines():
            pid, active = _split(line, 2)
            if active == "1":
                return await self.resolve_command(_to_int(pid), fallback)
        return fallback or NO_COMMAND

    async def _windows(self, session: str) -> list[TmuxWindow]:
        try:
            result = await self._tmux("list-windows", "-t", _exact(session), "-F", WINDOW_FORMAT)
        except CommandError as e:
            logger.info("Could not get window info for session %s: %s", session, e.stderr.strip())
            return []

        windows = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            index, name, active, command = _split(line, 4)
            idx = _to_int(index)
            windows.append(TmuxWindow(
                index=idx,
                name=name or f"Window {idx}",
                active=active == "1",
                command=await self._active_pane_command(session, idx, command),
                panes=await self._panes(session, idx, command),
            ))
        return windows

    async def _panes(self, session: str, window: int, window_command: str) -> list[TmuxPane]:
        try:
            result = await self._tmux(
                "list-panes", "-t", f"{_exact(session)}:{window}", "-F", PANE_FORMAT
            )
        except CommandError as e:
            logger.info("Could not get pane info for window %s:%d: %s",
                        session, window, e.stderr.strip())
            return [TmuxPane(index=0, active=True, command=window_command or NO_COMMAND)]

        panes = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            (index, active, command, path, pid,
             title, left, top, width, height) = _split(line, 10)
            idx = _to_int(index)
            pane_pid = _to_int(pid)
            panes.append(TmuxPane(
                index=idx,
                active=active == "1",
                command=await self.resolve_command(pane_pid, command),
                path=path or "Unknown path",
                pid=pane_pid,
                name=title or f"Pane {idx}",
                left=_to_int(left),
                top=_to_int(top),
                width=_to_int(width),
                height=_to_int(height),
            ))
        return panes

    async def _tmux(self, *args: str) -> CommandResult:
        command = " ".join([self._binary, *(shlex.quote(a) for a in args)])
        return await self._runner.run(command)


def _parse_session(line: str, friendly_names: Mapping[str, str]) -> TmuxSession:
    name, windows, created, attached = _split(line, 4)
    try:
        created_at = datetime.fromtimestamp(int(created), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        created_at = datetime.fromtimestamp(0, tz=timezone.utc)
    return TmuxSession(
        name=name,
        friendly_name=friendly_names.get(name),
        windows=_to_int(windows),
        created=created_at,
        attached=_to_int(attached) > 0,
    )


def _split(line: str, count: int) -> list[str]:
    parts = line.split("\t", count - 1)
    return parts + [""] * (count - len(parts))


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def _exact(session: str) -> str:
    # "=" makes tmux match the session name exactly instead of by prefix
    return f"={session}"


def _is_no_server(error: CommandError) -> bool:
    stderr = error.stderr.lower()
    return any(marker in stderr for marker in _NO_SERVER_MARKERS)


class SessionNotFoundError(Exception):
    """Raised when a referenced tmux session does not exist."""

    def __init__(self, session: str) -> None:
        super().__init__(f"Session '{session}' not found")
        self.session = session
