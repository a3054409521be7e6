"""Tests for the agent command trigger."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agentlink_bridge.errors import AgentTriggerError
from agentlink_bridge.trigger import AgentTrigger


def make_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    proc.wait = AsyncMock(return_value=returncode)
    return proc


@pytest.fixture
def trigger() -> AgentTrigger:
    t = AgentTrigger(command="openclaw", timeout=120.0)
    t.log = MagicMock()
    return t


class TestBuildArgs:
    def test_message_only(self, trigger: AgentTrigger):
        assert trigger.build_args("hi") == ["openclaw", "agent", "--message", "hi", "--json"]

    def test_session_and_agent(self, trigger: AgentTrigger):
        assert trigger.build_args("hi", session_id="agentlink:bob", agent="ops") == [
            "openclaw",
            "agent",
            "--message",
            "hi",
            "--json",
            "--session-id",
            "agentlink:bob",
            "--agent",
            "ops",
        ]


class TestRun:
    @pytest.mark.asyncio
    async def test_returns_json_output(self, trigger: AgentTrigger):
        proc = make_process(stdout=b'{"reply": "done"}\n')

        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=proc,
        ) as mock_exec:
            result = await trigger.run("From bob: hi", session_id="agentlink:bob")

        assert result == {"reply": "done"}
        mock_exec.assert_awaited_once_with(
            "openclaw",
            "agent",
            "--message",
            "From bob: hi",
            "--json",
            "--session-id",
            "agentlink:bob",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        assert trigger.log.info.call_args.kwargs["outcome"] == "success"

    @pytest.mark.asyncio
    async def test_non_json_output_is_wrapped(self, trigger: AgentTrigger):
        proc = make_process(stdout=b"plain text reply")

        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=proc,
        ):
            result = await trigger.run("hi")

        assert result == {"output": "plain text reply"}

    @pytest.mark.asyncio
    async def test_empty_output_is_empty_object(self, trigger: AgentTrigger):
        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=make_process(),
        ):
            assert await trigger.run("hi") == {}

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_with_stderr(self, trigger: AgentTrigger):
        proc = make_process(stderr=b"gateway unreachable\n", returncode=1)

        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=proc,
        ):
            with pytest.raises(AgentTriggerError) as exc_info:
                await trigger.run("hi")

        assert exc_info.value.exit_code == 1
        assert exc_info.value.stderr == "gateway unreachable"
        assert str(exc_info.value) == "gateway unreachable"
        assert trigger.log.info.call_args.kwargs["outcome"] == "error"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, trigger: AgentTrigger):
        proc = make_process()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        proc.kill = MagicMock()

        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            return_value=proc,
        ):
            with pytest.raises(AgentTriggerError, match="timed out"):
                await trigger.run("hi")

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()
        assert trigger.log.info.call_args.kwargs["outcome"] == "timeout"

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self, trigger: AgentTrigger):
        with patch(
            "agentlink_bridge.trigger.asyncio.create_subprocess_exec",
            new_callable=AsyncMock,
            side_effect=FileNotFoundError("openclaw"),
        ):
            with pytest.raises(AgentTriggerError, match="Failed to start"):
                await trigger.run("hi")

    @pytest.mark.asyncio
    async def test_nul_byte_in_message_raises_trigger_error(self):
        trigger = AgentTrigger(command="true", log=MagicMock())

        with pytest.raises(AgentTriggerError, match="Failed to start"):
            await trigger.run("From bob: a\x00b")

        assert trigger.log.info.call_args.kwargs["outcome"] == "spawn_error"
