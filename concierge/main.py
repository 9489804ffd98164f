"""Concierge entry point.

Initializes all components and starts the server:
  Settings -> SessionStore -> SafetyGate -> ToolDispatcher -> Runner -> App -> Uvicorn

Uses a Starlette lifespan so the httpx clients live on the same event
loop as uvicorn.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from starlette.applications import Starlette

from concierge.api.catalog import tool_names
from concierge.api.events import EventChannel
from concierge.api.llm import AnthropicClient
from concierge.api.models import ChatRequest
from concierge.api.rest import create_app
from concierge.api.runner import AgentRunner, LoopOutcome
from concierge.api.tools import ToolContext, ToolDispatcher
from concierge.config import Settings
from concierge.google.calendar import register_calendar_tools
from concierge.google.gmail import register_gmail_tools
from concierge.prompts import build_system_prompt
from concierge.safety import SafetyGate, SessionStore

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components for lifespan storage.
    """
    history = SessionStore(capacity=settings.history_capacity)
    gate = SafetyGate(history, window_seconds=settings.safety_window_seconds)
    dispatcher = ToolDispatcher(history, gate)

    model = AnthropicClient(settings)
    await model.start()

    # Google httpx client (separate from the model client -- no API key headers)
    google_http = httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10, read=settings.google_timeout, write=10, pool=10),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
    )
    register_calendar_tools(dispatcher, settings, google_http)
    register_gmail_tools(dispatcher, settings, google_http, model)

    missing = dispatcher.missing(tool_names())
    if missing:
        raise RuntimeError(f"Tools without a registered handler: {', '.join(missing)}")

    runner = AgentRunner(
        model,
        dispatcher,
        settings,
        prompt_builder=functools.partial(
            build_system_prompt, window_seconds=settings.safety_window_seconds
        ),
    )

    return {
        "history": history,
        "gate": gate,
        "dispatcher": dispatcher,
        "model": model,
        "google_http": google_http,
        "runner": runner,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down Concierge...")

    google_http = components.get("google_http")
    if google_http:
        await google_http.aclose()

    model = components.get("model")
    if model:
        await model.close()

    logger.info("Concierge shutdown complete.")


class _DeferredRunner:
    """Runner handle for create_app() before the lifespan has built the runner.

    Delegates the two members the routes use to the runner stored under
    ``components["runner"]``.
    """

    def __init__(self, components: dict) -> None:
        self._components = components

    def _runner(self) -> AgentRunner:
        runner = self._components.get("runner")
        if runner is None:
            raise RuntimeError("Runner not initialized, lifespan hasn't started")
        return runner

    @property
    def tools(self) -> list[dict[str, Any]]:
        return self._runner().tools

    async def run(
        self,
        request: ChatRequest,
        context: ToolContext,
        channel: EventChannel,
    ) -> LoopOutcome:
        return await self._runner().run(request, context, channel)


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components are created in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components

        logger.info(
            "Concierge started (model=%s, max_iterations=%d, max_tool_calls=%d, safety_window=%.0fs)",
            settings.model,
            settings.max_iterations,
            settings.max_tool_calls,
            settings.safety_window_seconds,
        )
        yield
        await shutdown_components(components)

    return create_app(
        runner=_DeferredRunner(components),
        settings=settings,
        lifespan=lifespan,
    )


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting Concierge on %s:%d", settings.host, settings.port)
    logger.info("Model: %s", settings.model)

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set -- /chat endpoints will fail")
    if not (settings.google_client_id and settings.google_client_secret):
        logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set -- expired tokens cannot be refreshed")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
