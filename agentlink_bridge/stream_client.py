"""
Pull stream client - long-lived SSE connection to the remote message service.

This module handles:
- Connecting to ``<baseUrl>/messages/stream`` with the saved cursor
- Reconnecting with exponential backoff after failures or clean disconnects
- Dispatching decoded frames (message, ping, error) in arrival order
- Persisting the cursor after every frame that carries one

A single control loop owns the connection, the cursor, and the backoff
schedule, so none of them need locking.
"""

import asyncio
import json
from typing import Any, Protocol

import httpx

from .backoff import Backoff
from .config import BridgeConfig
from .cursor import CursorStore
from .errors import AgentTriggerError, StreamConnectionError
from .log_config import EventLogger, get_logger
from .sse import SSEDecoder
from .types import EventFrame, MessagePayload, PingPayload, StreamState

STREAM_PATH = "/messages/stream"


class Trigger(Protocol):
    async def run(
        self,
        message: str,
        session_id: str | None = None,
        agent: str | None = None,
    ) -> dict[str, Any]: ...


class StreamClient:
    """
    Reconnecting consumer of the remote message stream.

    States: disconnected -> connecting -> streaming -> disconnected (on error
    or end of stream), and stopped once ``stop()`` has been called.
    """

    HTTP_CONNECT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        agent_token: str,
        cursor_store: CursorStore,
        trigger: Trigger,
        poll_interval: float | None = None,
        log: EventLogger | None = None,
    ):
        self.base_url = base_url
        self.agent_token = agent_token
        self.poll_interval = poll_interval
        self.cursor_store = cursor_store
        self.trigger = trigger
        self.log = log or get_logger("stream", service="pull")

        self.cursor: str | None = None
        self.backoff = Backoff()
        self.state = StreamState.DISCONNECTED

        # HTTP client for the stream; created in run() unless injected
        self.http_client: httpx.AsyncClient | None = None

        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._trigger_tasks: set[asyncio.Task[None]] = set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def stream_url(self) -> str:
        return self.base_url.rstrip("/") + STREAM_PATH

    def build_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.cursor:
            params["cursor"] = self.cursor
        if self.poll_interval:
            params["poll_interval"] = _format_seconds(self.poll_interval)
        return params

    def start(self) -> asyncio.Task[None]:
        """Run the control loop as a background task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the loop and abort any pending read. Safe to call repeatedly."""
        self._stop_event.set()
        task = self._task
        if task is None or task.done():
            self.state = StreamState.STOPPED
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.state = StreamState.STOPPED

    async def run(self) -> None:
        """Main loop: connect, stream, back off, repeat until stopped."""
        self.cursor = self.cursor_store.load()
        self.log.info("stream.run_start", resume_from=self.cursor)

        owns_client = self.http_client is None
        if owns_client:
            self.http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=self.HTTP_CONNECT_TIMEOUT, read=None)
            )

        try:
            while not self.stopped:
                try:
                    await self._connect_and_stream()
                except StreamConnectionError as e:
                    self.log.warn(
                        "stream.connect",
                        outcome="rejected",
                        status_code=e.status_code,
                        detail=e.reason,
                    )
                except httpx.HTTPError as e:
                    if not self.stopped:
                        self.log.warn("stream.disconnect", reason="transport_error", exc=e)
                except Exception as e:
                    if not self.stopped:
                        self.log.warn("stream.disconnect", reason="unexpected_error", exc=e)

                self.state = StreamState.DISCONNECTED
                if self.stopped:
                    break

                delay = self.backoff.next_delay()
                self.log.info("stream.reconnect", delay_s=delay, next_delay_s=self.backoff.current)
                await self._wait(delay)
        finally:
            self.state = StreamState.STOPPED
            if owns_client and self.http_client is not None:
                await self.http_client.aclose()
                self.http_client = None
            self.log.info("stream.run_end", cursor=self.cursor)

    async def _wait(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, returning early if stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass

    async def _connect_and_stream(self) -> None:
        """
        Make one connection attempt and consume the stream until it ends.

        Raises:
            StreamConnectionError: If the endpoint answers with a non-2xx status.
        """
        if self.http_client is None:
            raise RuntimeError("HTTP client not initialized")

        self.state = StreamState.CONNECTING
        self.log.info("stream.connect", url=self.stream_url, cursor=self.cursor)

        async with self.http_client.stream(
            "GET",
            self.stream_url,
            params=self.build_params(),
            headers={"X-Agent-Token": self.agent_token, "Accept": "text/event-stream"},
        ) as response:
            if not response.is_success:
                raise StreamConnectionError(response.status_code, response.reason_phrase)

            self.backoff.reset()
            self.state = StreamState.STREAMING
            self.log.info("stream.connect", outcome="success")

            decoder = SSEDecoder()
            async for chunk in response.aiter_text():
                if self.stopped:
                    break
                for frame in decoder.feed(chunk):
                    await self.handle_frame(frame)

        self.log.info("stream.end", pending_chars=len(decoder.pending))

    async def handle_frame(self, frame: EventFrame) -> None:
        """Apply one frame's side effects. Bad payloads are logged and skipped."""
        if frame.event == "message":
            payload = self._decode_payload(frame)
            if payload is None:
                return
            message = MessagePayload.from_json(payload)
            if message.cursor:
                self._advance_cursor(message.cursor)
            if message.content:
                await self._invoke_agent(message)
        elif frame.event == "ping":
            payload = self._decode_payload(frame)
            if payload is None:
                return
            ping = PingPayload.from_json(payload)
            if ping.cursor:
                self._advance_cursor(ping.cursor)
        elif frame.event == "error":
            self.log.warn("stream.remote_error", detail=frame.data)
        else:
            self.log.debug("stream.unknown_event", event_name=frame.event)

    def _decode_payload(self, frame: EventFrame) -> dict[str, Any] | None:
        try:
            payload = json.loads(frame.data)
        except json.JSONDecodeError as e:
            self.log.warn("stream.invalid_frame", event_name=frame.event, exc=e)
            return None
        if not isinstance(payload, dict):
            self.log.warn(
                "stream.invalid_frame",
                event_name=frame.event,
                detail=f"expected JSON object, got {type(payload).__name__}",
            )
            return None
        return payload

    def _advance_cursor(self, cursor: str) -> None:
        self.cursor = cursor
        self.cursor_store.save(cursor)

    async def _invoke_agent(self, message: MessagePayload) -> None:
        # Shielded so that stop() aborts the stream without killing a running agent
        task = asyncio.create_task(self._run_trigger(message))
        self._trigger_tasks.add(task)
        task.add_done_callback(self._trigger_tasks.discard)
        await asyncio.shield(task)

    async def _run_trigger(self, message: MessagePayload) -> None:
        try:
            await self.trigger.run(message.formatted(), session_id=message.session_id)
            self.log.info("agent.delivered", sender=message.sender, session_id=message.session_id)
        except AgentTriggerError as e:
            self.log.error(
                "agent.trigger_failed",
                exc=e,
                sender=message.sender,
                session_id=message.session_id,
            )
        except Exception as e:
            # A broken trigger must not take the stream down with it
            self.log.error(
                "agent.trigger_failed",
                exc=e,
                reason="unexpected_error",
                sender=message.sender,
                session_id=message.session_id,
            )


def _format_seconds(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class PullStreamHandle:
    """Handle returned by ``start_pull_stream``."""

    def __init__(self, client: StreamClient | None = None):
        self.client = client

    async def stop(self) -> None:
        if self.client is not None:
            await self.client.stop()


def start_pull_stream(
    config: BridgeConfig,
    trigger: Trigger,
    log: EventLogger | None = None,
) -> PullStreamHandle:
    """Start the pull loop for ``config``; a config without credentials yields a no-op handle."""
    log = log or get_logger("stream", service="pull")

    reason = config.pull_disabled_reason()
    if reason:
        log.warn("bridge.pull_disabled", reason=reason)
        return PullStreamHandle()

    client = StreamClient(
        base_url=config.base_url or "",
        agent_token=config.agent_token or "",
        cursor_store=CursorStore(config.cursor_file, log=log),
        trigger=trigger,
        poll_interval=config.poll_interval,
        log=log,
    )
    client.start()
    return PullStreamHandle(client)
