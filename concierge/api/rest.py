"""REST API for the Concierge assistant.

Endpoints:
  POST /chat/stream  - Run the tool loop, streaming progress as SSE frames
  POST /chat         - Run the tool loop, return the final result as JSON
  GET  /tools        - Tool catalog shown to the model
  GET  /health       - Health check
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from concierge.api.events import EventChannel, StreamEvent
from concierge.api.models import ChatRequest
from concierge.api.runner import AgentRunner, LoopOutcome, LoopState
from concierge.api.tools import Credentials, ToolContext
from concierge.config import Settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "google_access_token"
REFRESH_TOKEN_COOKIE = "google_refresh_token"


def extract_credentials(request: Request) -> Credentials | None:
    """Google credentials from cookies, or from an ``Authorization: Bearer`` header."""
    access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not access_token:
        auth = request.headers.get("authorization", "")
        scheme, _, token = auth.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            access_token = token.strip()
    if not access_token:
        return None
    return Credentials(
        access_token=access_token,
        refresh_token=request.cookies.get(REFRESH_TOKEN_COOKIE) or None,
    )


def session_key(session_id: str | None, access_token: str) -> str:
    """Session key for tool history.

    Always scoped to the login, so a client-chosen ``session_id`` can only
    split one login's history, never share it with another login.
    """
    key = "session_" + hashlib.sha256(access_token.encode()).hexdigest()[:32]
    if session_id:
        return f"{key}:{session_id}"
    return key


class EventStreamResponse(StreamingResponse):
    """SSE response that owns one run.

    The run starts only once the response body is being iterated, so a
    client that is gone before the headers go out never starts one. However
    the response ends, an unfinished run has its channel cancelled.
    """

    def __init__(
        self,
        channel: EventChannel,
        start_run: Callable[[EventChannel], asyncio.Task[LoopOutcome]],
    ) -> None:
        self._channel = channel
        self._start_run = start_run
        self._task: asyncio.Task[LoopOutcome] | None = None
        super().__init__(
            self._frames(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    async def _frames(self) -> AsyncIterator[str]:
        self._task = self._start_run(self._channel)
        async for event in self._channel:
            yield event.to_sse()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if self._task is not None and not self._task.done():
                logger.info("Stream consumer went away, cancelling run")
                self._channel.cancel()


def create_app(
    runner: AgentRunner,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    # Producer tasks are referenced here until they finish
    running: set[asyncio.Task[LoopOutcome]] = set()

    async def _prepare(request: Request) -> tuple[ChatRequest, ToolContext] | Response:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Message is required"}, status_code=400)

        credentials = extract_credentials(request)
        if credentials is None:
            return JSONResponse({"error": "Authentication required"}, status_code=401)

        chat_request = ChatRequest.from_body(body)
        context = ToolContext(
            session_id=session_key(chat_request.session_id, credentials.access_token),
            credentials=credentials,
        )
        logger.info(
            "Chat request for session %s (%d prior messages)",
            context.session_id,
            len(chat_request.conversation),
        )
        return chat_request, context

    def _start_run(
        chat_request: ChatRequest,
        context: ToolContext,
        channel: EventChannel,
    ) -> asyncio.Task[LoopOutcome]:
        task = asyncio.create_task(runner.run(chat_request, context, channel))
        running.add(task)
        task.add_done_callback(running.discard)
        return task

    def _new_channel() -> EventChannel:
        return EventChannel(maxsize=settings.stream_queue_size)

    async def chat_stream(request: Request) -> Response:
        """POST /chat/stream - SSE streaming chat."""
        prepared = await _prepare(request)
        if isinstance(prepared, Response):
            return prepared
        chat_request, context = prepared
        return EventStreamResponse(
            _new_channel(),
            functools.partial(_start_run, chat_request, context),
        )

    async def chat(request: Request) -> Response:
        """POST /chat - Run to completion and return the final answer."""
        prepared = await _prepare(request)
        if isinstance(prepared, Response):
            return prepared
        chat_request, context = prepared
        channel = _new_channel()
        task = _start_run(chat_request, context, channel)

        try:
            events: list[StreamEvent] = [event async for event in channel]
            outcome = await task
        finally:
            if not task.done():
                channel.cancel()

        if outcome.state == LoopState.FAILED:
            return JSONResponse({"error": outcome.error or "Run failed"}, status_code=500)

        conversation = [m.to_api() for m in chat_request.conversation]
        conversation.append({"role": "user", "content": chat_request.message})
        conversation.append({"role": "assistant", "content": outcome.text})
        return JSONResponse(
            {
                "response": outcome.text,
                "conversation": conversation,
                "iterations": outcome.iterations,
                "tool_calls": outcome.tool_calls,
                "status": outcome.status,
                "events": [e.to_dict() for e in events],
            }
        )

    async def list_tools(request: Request) -> JSONResponse:
        """GET /tools - Tool catalog."""
        return JSONResponse({"tools": runner.tools})

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/chat", chat, methods=["POST"]),
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/tools", list_tools),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
