"""
Agent trigger - runs the external agent command for one message.

    openclaw agent --message "<text>" --json [--session-id <id>] [--agent <name>]

The call is bounded by a timeout. A timeout, a non-zero exit, or a missing
executable raises ``AgentTriggerError``; nothing is retried here.
"""

import asyncio
import json
import time
from typing import Any

from .config import DEFAULT_AGENT_COMMAND, DEFAULT_AGENT_TIMEOUT
from .errors import AgentTriggerError
from .log_config import EventLogger, get_logger

STDERR_TAIL_CHARS = 2000


class AgentTrigger:
    """Invoke the agent CLI and return its JSON output."""

    def __init__(
        self,
        command: str = DEFAULT_AGENT_COMMAND,
        timeout: float = DEFAULT_AGENT_TIMEOUT,
        log: EventLogger | None = None,
    ):
        self.command = command
        self.timeout = timeout
        self.log = log or get_logger("trigger", command=command)

    def build_args(
        self,
        message: str,
        session_id: str | None = None,
        agent: str | None = None,
    ) -> list[str]:
        args = [self.command, "agent", "--message", message, "--json"]
        if session_id:
            args.extend(["--session-id", session_id])
        if agent:
            args.extend(["--agent", agent])
        return args

    async def run(
        self,
        message: str,
        session_id: str | None = None,
        agent: str | None = None,
    ) -> dict[str, Any]:
        """
        Run the agent once and wait for it to finish.

        Returns:
            The agent's JSON output when stdout is a JSON object, otherwise
            ``{"output": <stdout>}``; ``{}`` when stdout is empty.

        Raises:
            AgentTriggerError: On timeout, non-zero exit, or spawn failure.
        """
        args = self.build_args(message, session_id, agent)
        start_time = time.time()
        outcome = "success"

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except (OSError, ValueError) as e:
                # ValueError: arguments the OS cannot pass, such as a NUL byte
                outcome = "spawn_error"
                raise AgentTriggerError(f"Failed to start {self.command}: {e}") from e

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=self.timeout
                )
            except TimeoutError:
                outcome = "timeout"
                process.kill()
                await process.wait()
                raise AgentTriggerError(
                    f"{self.command} agent timed out after {self.timeout:.0f}s"
                ) from None

            if process.returncode != 0:
                outcome = "error"
                stderr_text = (stderr or b"").decode(errors="replace").strip()
                raise AgentTriggerError(
                    stderr_text[-STDERR_TAIL_CHARS:]
                    or f"{self.command} agent exited with code {process.returncode}",
                    exit_code=process.returncode,
                    stderr=stderr_text,
                )

            return _parse_output((stdout or b"").decode(errors="replace"))
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            self.log.info(
                "agent.run",
                command=self.command,
                session_id=session_id,
                agent=agent,
                outcome=outcome,
                duration_ms=duration_ms,
            )


def _parse_output(stdout: str) -> dict[str, Any]:
    text = stdout.strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {"output": text}
    if isinstance(parsed, dict):
        return parsed
    return {"output": parsed}
