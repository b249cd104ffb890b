"""Shared test fixtures for the tmuxgate test suite.

Provides common fixtures used across the unit tests: settings, access
policies, and a fake command runner that emulates enough of tmux and ps
to exercise the client, sampler, and HTTP layers without a tmux server.
"""

from __future__ import annotations

import shlex
from pathlib import Path

import pytest

from tmuxgate.access.classifier import build_policy
from tmuxgate.config.settings import AccessConfig, Settings
from tmuxgate.domain.models import AccessPolicy
from tmuxgate.tmux.client import (
    ACTIVE_PANE_FORMAT,
    PANE_FORMAT,
    WINDOW_FORMAT,
    WINDOW_SUMMARY_FORMAT,
)
from tmuxgate.tmux.runner import CommandError, CommandResult, CommandRunner


# ---------------------------------------------------------------------------
# Fake tmux
# ---------------------------------------------------------------------------


class FakeTmuxRunner(CommandRunner):
    """A CommandRunner that answers tmux/ps command lines from memory.

    Every session has one window (index 0, "bash") with one pane whose
    shell has pid 4242 and runs ``vim notes.txt`` as a child.
    """

    PANE_PID = 4242

    def __init__(self) -> None:
        super().__init__()
        self.sessions: dict[str, int] = {}
        self.pane_content: dict[str, str] = {}
        self.commands: list[str] = []

    async def run(self, command: str) -> CommandResult:
        self.commands.append(command)
        argv = shlex.split(command)
        if argv[0] == "ps":
            if "--ppid" in argv:
                return CommandResult(stdout="vim notes.txt")
            return CommandResult(stdout="-bash")
        if argv[0] != "tmux":
            raise CommandError(f"Command failed: {command}", stderr="not found", command=command)

        sub = argv[1]
        if sub == "list-sessions":
            if not self.sessions:
                self._fail(command, "no server running on /tmp/tmux-1000/default")
            lines = [f"{name}\t1\t{created}\t0" for name, created in self.sessions.items()]
            return CommandResult(stdout="\n".join(lines))
        if sub == "has-session":
            self._session(command, argv)
            return CommandResult(stdout="")
        if sub == "new-session":
            name = argv[argv.index("-s") + 1]
            if name in self.sessions:
                self._fail(command, f"duplicate session: {name}")
            self.sessions[name] = 1700000000
            return CommandResult(stdout="")
        if sub == "kill-session":
            del self.sessions[self._session(command, argv)]
            return CommandResult(stdout="")
        if sub == "list-windows":
            self._session(command, argv)
            fmt = argv[argv.index("-F") + 1]
            if fmt == WINDOW_SUMMARY_FORMAT:
                return CommandResult(stdout="0\tbash\tbash")
            assert fmt == WINDOW_FORMAT
            return CommandResult(stdout="0\tbash\t1\tbash")
        if sub == "list-panes":
            self._session(command, argv)
            fmt = argv[argv.index("-F") + 1]
            if fmt == ACTIVE_PANE_FORMAT:
                return CommandResult(stdout=f"{self.PANE_PID}\t1")
            assert fmt == PANE_FORMAT
            return CommandResult(
                stdout=f"0\t1\tbash\t/home/dev\t{self.PANE_PID}\tdev-box\t0\t0\t80\t24"
            )
        if sub == "capture-pane":
            target = argv[argv.index("-t") + 1]
            if target.startswith("="):
                matches = [target[1:]] if target[1:] in self.pane_content else []
            else:
                # Like tmux, an unprefixed session name also matches by prefix
                session, _, rest = target.partition(":")
                matches = [
                    key for key in self.pane_content
                    if key.partition(":")[0].startswith(session) and key.partition(":")[2] == rest
                ]
            if not matches:
                self._fail(command, f"can't find pane: {target}")
            return CommandResult(stdout=self.pane_content[matches[0]])
        return CommandResult(stdout="")

    def _session(self, command: str, argv: list[str]) -> str:
        target = argv[argv.index("-t") + 1].lstrip("=")
        name = target.split(":")[0]
        if name not in self.sessions:
            self._fail(command, f"can't find session: {name}")
        return name

    @staticmethod
    def _fail(command: str, stderr: str) -> None:
        raise CommandError(
            f"Command failed: {command}", stderr=stderr + "\n", command=command, returncode=1
        )


@pytest.fixture
def fake_tmux() -> FakeTmuxRunner:
    """A fake runner with no tmux sessions."""
    return FakeTmuxRunner()


# ---------------------------------------------------------------------------
# Settings / Policy Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def names_file(tmp_path: Path) -> Path:
    return tmp_path / "session-names.json"


@pytest.fixture
def open_settings(names_file: Path) -> Settings:
    """Settings with the access gate disabled and a temporary names file."""
    return Settings(
        access={"enabled": False},
        storage={"session_names_file": str(names_file)},
        stream={"interval": 0.01, "max_consecutive_errors": 2},
    )


@pytest.fixture
def vpn_policy() -> AccessPolicy:
    """The default range set: private networks plus localhost."""
    return build_policy(AccessConfig())


@pytest.fixture
def ten_net_policy() -> AccessPolicy:
    return build_policy(AccessConfig(allowed_ranges=["10.0.0.0/8"]))
