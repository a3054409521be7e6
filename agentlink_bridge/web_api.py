"""
Push listener - authenticated webhook that triggers an agent run per request.

    POST <path>
    Authorization: Bearer <token>      (or X-AgentLink-Token: <token>)

    {"message": "...", "sessionId": "...", "agent": "..."}

Only POST on the configured path is served; every other method or path is
answered with 404. The agent's JSON output is passed through on success.
"""

import asyncio
import contextlib
import json
import secrets
import time
from typing import Any

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import BridgeConfig
from .errors import AgentTriggerError
from .log_config import EventLogger, get_logger
from .stream_client import Trigger

LISTEN_HOST = "0.0.0.0"


def parse_token(authorization: str | None, agentlink_token: str | None) -> str | None:
    """Extract the presented token from a bearer header or the dedicated header."""
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return agentlink_token


def token_matches(presented: str | None, expected: str | None) -> bool:
    if not presented or not expected:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def create_push_app(
    config: BridgeConfig,
    trigger: Trigger,
    log: EventLogger | None = None,
) -> FastAPI:
    """Build the single-route webhook app for ``config.path``."""
    log = log or get_logger("push", service="push")
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None, redirect_slashes=False)

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException) -> Response:
        # Wrong method on the route is reported like an unknown path
        if exc.status_code in (404, 405):
            return Response(status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.post(config.path)
    async def receive_message(
        request: Request,
        authorization: str | None = Header(None),
        x_agentlink_token: str | None = Header(None),
    ) -> Response:
        start_time = time.time()
        http_status = 200
        outcome = "success"
        session_id: str | None = None

        try:
            token = parse_token(authorization, x_agentlink_token)
            if not token_matches(token, config.token):
                http_status = 401
                outcome = "unauthorized"
                return PlainTextResponse("unauthorized", status_code=401)

            try:
                raw = await request.body()
                payload = json.loads(raw) if raw else {}
            except Exception as e:
                http_status = 500
                outcome = "error"
                log.error("push.request_error", exc=e)
                return PlainTextResponse("server error", status_code=500)

            if not isinstance(payload, dict):
                payload = {}
            message = _optional_str(payload, "message")
            if not message:
                http_status = 400
                outcome = "invalid"
                return PlainTextResponse("message required", status_code=400)

            session_id = _optional_str(payload, "sessionId")
            agent = _optional_str(payload, "agent")

            try:
                result = await trigger.run(message, session_id=session_id, agent=agent)
            except AgentTriggerError as e:
                http_status = 500
                outcome = "agent_error"
                log.error("push.agent_failed", exc=e, session_id=session_id, agent=agent)
                return PlainTextResponse("agent failed", status_code=500)
            except Exception as e:
                http_status = 500
                outcome = "error"
                log.error("push.request_error", exc=e, session_id=session_id)
                return PlainTextResponse("server error", status_code=500)

            return JSONResponse(result, status_code=200)
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            log.info(
                "push.request",
                http_method="POST",
                http_path=config.path,
                http_status=http_status,
                duration_ms=duration_ms,
                outcome=outcome,
                session_id=session_id,
            )

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host process."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class PushServer:
    """Runs the push app on ``0.0.0.0:<port>`` inside the current event loop."""

    SHUTDOWN_TIMEOUT = 5.0

    def __init__(
        self,
        config: BridgeConfig,
        trigger: Trigger,
        log: EventLogger | None = None,
    ):
        self.config = config
        self.log = log or get_logger("push", service="push")
        self.app = create_push_app(config, trigger, self.log)
        self.server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def started(self) -> bool:
        return self.server is not None and self.server.started

    async def start(self) -> None:
        if self._task is not None:
            return
        uv_config = uvicorn.Config(
            self.app,
            host=LISTEN_HOST,
            port=self.config.port,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self.server = _EmbeddedServer(uv_config)
        self._task = asyncio.create_task(self._serve(self.server))

    async def _serve(self, server: uvicorn.Server) -> None:
        self.log.info("push.listen", port=self.config.port, path=self.config.path)
        try:
            await server.serve()
        except SystemExit:
            # uvicorn exits the process when it cannot bind
            self.log.error("push.listen_failed", port=self.config.port)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or self.server is None:
            return

        self.server.should_exit = True
        try:
            await asyncio.wait_for(task, timeout=self.SHUTDOWN_TIMEOUT)
        except TimeoutError:
            self.server.force_exit = True
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.log.info("push.stopped")
