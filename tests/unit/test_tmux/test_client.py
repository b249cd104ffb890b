"""Tests for the tmux client."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from tmuxgate.tmux.client import SessionNotFoundError, TmuxClient
from tmuxgate.tmux.runner import CommandError, CommandResult, CommandRunner


@pytest.fixture
def client(fake_tmux) -> TmuxClient:
    return TmuxClient(fake_tmux)


class TestListSessions:
    @pytest.mark.asyncio
    async def test_no_server_means_no_sessions(self, client: TmuxClient) -> None:
        assert await client.list_sessions() == []

    @pytest.mark.asyncio
    async def test_sessions_with_active_window(self, fake_tmux, client: TmuxClient) -> None:
        fake_tmux.sessions["work"] = 1700000000
        sessions = await client.list_sessions({"work": "Main box"})

        assert len(sessions) == 1
        session = sessions[0]
        assert session.name == "work"
        assert session.friendly_name == "Main box"
        assert session.windows == 1
        assert session.attached is False
        assert session.created == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert session.active_window is not None
        assert session.active_window.index == 0
        assert session.active_window.name == "bash"
        assert session.active_window.command == "vim notes.txt"
        assert session.windows_info is None

    @pytest.mark.asyncio
    async def test_other_failures_propagate(self) -> None:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.side_effect = CommandError("Command failed", stderr="permission denied")
        with pytest.raises(CommandError):
            await TmuxClient(runner).list_sessions()

    @pytest.mark.asyncio
    async def test_malformed_lines_get_defaults(self) -> None:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.side_effect = [
            CommandResult(stdout="odd\tx\tnot-a-time"),
            CommandResult(stdout=""),
        ]
        sessions = await TmuxClient(runner).list_sessions()
        assert sessions[0].name == "odd"
        assert sessions[0].windows == 0
        assert sessions[0].created == datetime.fromtimestamp(0, tz=timezone.utc)
        assert sessions[0].active_window is not None
        assert sessions[0].active_window.command == "Unknown"


class TestGetSession:
    @pytest.mark.asyncio
    async def test_windows_and_panes(self, fake_tmux, client: TmuxClient) -> None:
        fake_tmux.sessions["work"] = 1700000000
        session = await client.get_session("work")

        assert session.windows_info is not None
        (window,) = session.windows_info
        assert window.index == 0
        assert window.active is True
        assert window.command == "vim notes.txt"
        (pane,) = window.panes
        assert pane.active is True
        assert pane.path == "/home/dev"
        assert pane.pid == 4242
        assert pane.name == "dev-box"
        assert (pane.width, pane.height) == (80, 24)
        assert pane.command == "vim notes.txt"

    @pytest.mark.asyncio
    async def test_unknown_session(self, fake_tmux, client: TmuxClient) -> None:
        fake_tmux.sessions["work"] = 1700000000
        with pytest.raises(SessionNotFoundError, match="Session 'play' not found"):
            await client.get_session("play")

    @pytest.mark.asyncio
    async def test_no_server(self, client: TmuxClient) -> None:
        with pytest.raises(SessionNotFoundError):
            await client.get_session("work")

    @pytest.mark.asyncio
    async def test_prefix_is_not_a_match(self, fake_tmux, client: TmuxClient) -> None:
        fake_tmux.sessions["workshop"] = 1700000000
        with pytest.raises(SessionNotFoundError):
            await client.get_session("work")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_kill_then_missing(self, fake_tmux, client: TmuxClient) -> None:
        await client.create_session("work")
        assert await client.has_session("work")
        await client.kill_session("work")
        assert not await client.has_session("work")
        with pytest.raises(SessionNotFoundError):
            await client.get_session("work")

    @pytest.mark.asyncio
    async def test_create_duplicate_fails(self, fake_tmux, client: TmuxClient) -> None:
        await client.create_session("work")
        with pytest.raises(CommandError) as exc_info:
            await client.create_session("work")
        assert "duplicate session" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_kill_missing_session(self, fake_tmux, client: TmuxClient) -> None:
        with pytest.raises(SessionNotFoundError):
            await client.kill_session("ghost")
        assert not any("kill-session" in c for c in fake_tmux.commands)

    @pytest.mark.asyncio
    async def test_session_names_are_quoted(self, fake_tmux, client: TmuxClient) -> None:
        await client.create_session("a b; touch x")
        assert "tmux new-session -d -s 'a b; touch x'" in fake_tmux.commands
        assert "a b; touch x" in fake_tmux.sessions


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_runs_after_existence_check(self, fake_tmux, client: TmuxClient) -> None:
        fake_tmux.sessions["work"] = 1700000000
        await client.run_command("work", "send-keys -t work ls Enter")
        assert fake_tmux.commands[-1] == "tmux send-keys -t work ls Enter"

    @pytest.mark.asyncio
    async def test_missing_session(self, fake_tmux, client: TmuxClient) -> None:
        with pytest.raises(SessionNotFoundError):
            await client.run_command("ghost", "list-windows")
        assert fake_tmux.commands == ["tmux has-session -t =ghost"]


class TestResolveCommand:
    @pytest.mark.asyncio
    async def test_prefers_child_process(self, client: TmuxClient) -> None:
        assert await client.resolve_command(4242, "bash") == "vim notes.txt"

    @pytest.mark.asyncio
    async def test_falls_back_to_own_process(self) -> None:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.side_effect = [CommandResult(stdout=""), CommandResult(stdout="-bash")]
        assert await TmuxClient(runner).resolve_command(10, "bash") == "-bash"

    @pytest.mark.asyncio
    async def test_falls_back_to_tmux_command(self) -> None:
        runner = AsyncMock(spec=CommandRunner)
        runner.run.side_effect = CommandError("Command failed")
        assert await TmuxClient(runner).resolve_command(10, "bash") == "bash"

    @pytest.mark.asyncio
    async def test_invalid_pid(self, client: TmuxClient) -> None:
        assert await client.resolve_command(0) == "No command running"
