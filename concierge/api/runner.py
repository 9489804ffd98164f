"""Agent runner -- the bounded model/tool orchestration loop.

One run alternates between asking the model for the next step and
dispatching the tool calls it requests, feeding every result back into
the transcript, until the model stops calling tools, refuses, or a bound
is hit. Progress is pushed to an EventChannel as it happens.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from concierge.api.catalog import TOOL_CATALOG
from concierge.api.events import EventChannel, StreamEvent, summarize_result
from concierge.api.llm import ModelClient
from concierge.api.models import ChatRequest, Message, ToolResultBlock, ToolUseBlock
from concierge.api.tools import ToolContext, ToolDispatcher
from concierge.config import Settings
from concierge.errors import ChannelClosed, ModelError, ToolNotFound
from concierge.prompts import build_system_prompt

logger = logging.getLogger(__name__)

REFUSAL_STOP_REASON = "refusal"


class LoopState(str, Enum):
    REQUESTING = "requesting"
    DISPATCHING = "dispatching"
    DONE = "done"
    ABORTED = "aborted"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Status reported in the done event / JSON response
_STATUS = {
    LoopState.DONE: "completed",
    LoopState.ABORTED: "limit_reached",
    LoopState.CANCELLED: "cancelled",
    LoopState.FAILED: "error",
}


@dataclass
class LoopRunState:
    """Per-run state, owned by a single run and discarded at its end."""

    transcript: list[Message]
    iteration_count: int = 0  # model round-trips
    total_tool_calls: int = 0
    state: LoopState = LoopState.REQUESTING
    texts: list[str] = field(default_factory=list)


@dataclass
class LoopOutcome:
    state: LoopState
    iterations: int
    tool_calls: int
    transcript: list[Message]
    text: str = ""
    error: str | None = None

    @property
    def status(self) -> str:
        return _STATUS.get(self.state, self.state.value)


class AgentRunner:
    """Runs the orchestration loop for one request at a time per call.

    Stateless between runs: the transcript lives in LoopRunState, tool
    history lives in the dispatcher's SessionStore.
    """

    def __init__(
        self,
        model: ModelClient,
        dispatcher: ToolDispatcher,
        settings: Settings,
        tools: list[dict[str, Any]] | None = None,
        prompt_builder: Callable[[], str] = build_system_prompt,
    ) -> None:
        self._model = model
        self._dispatcher = dispatcher
        self._settings = settings
        self._tools = list(TOOL_CATALOG if tools is None else tools)
        self._prompt_builder = prompt_builder

    @property
    def tools(self) -> list[dict[str, Any]]:
        return self._tools

    async def run(
        self,
        request: ChatRequest,
        context: ToolContext,
        channel: EventChannel,
    ) -> LoopOutcome:
        """Execute one run. The channel is closed exactly once before returning."""
        run_state = LoopRunState(
            transcript=[*request.conversation, Message(role="user", content=request.message)],
        )
        logger.info(
            "Run started for session %s (%d prior messages)",
            context.session_id,
            len(request.conversation),
        )
        error: str | None = None
        try:
            await self._loop(run_state, context, channel)
        except ChannelClosed:
            run_state.state = LoopState.CANCELLED
            logger.info(
                "Client disconnected from session %s after %d iterations",
                context.session_id,
                run_state.iteration_count,
            )
        except ModelError as e:
            run_state.state = LoopState.FAILED
            error = str(e)
            logger.error("Model error in session %s: %s", context.session_id, e)
            with contextlib.suppress(ChannelClosed):
                await channel.send(StreamEvent.error(error))
        except Exception as e:
            run_state.state = LoopState.FAILED
            error = str(e) or type(e).__name__
            logger.exception("Run failed for session %s", context.session_id)
            with contextlib.suppress(ChannelClosed):
                await channel.send(StreamEvent.error(error))
        finally:
            await channel.close()

        logger.info(
            "Run finished for session %s: %s (iterations=%d, tool_calls=%d)",
            context.session_id,
            run_state.state.value,
            run_state.iteration_count,
            run_state.total_tool_calls,
        )
        return LoopOutcome(
            state=run_state.state,
            iterations=run_state.iteration_count,
            tool_calls=run_state.total_tool_calls,
            transcript=run_state.transcript,
            text="\n\n".join(run_state.texts),
            error=error,
        )

    async def _loop(
        self,
        run_state: LoopRunState,
        context: ToolContext,
        channel: EventChannel,
    ) -> None:
        settings = self._settings
        system_prompt = self._prompt_builder()
        transcript = run_state.transcript

        while True:
            _ensure_open(channel)
            run_state.state = LoopState.REQUESTING
            completion = await self._model.complete(
                system_prompt,
                self._tools,
                [m.to_api() for m in transcript],
            )
            run_state.iteration_count += 1
            _ensure_open(channel)

            if completion.stop_reason == REFUSAL_STOP_REASON:
                message = settings.refusal_message
                logger.info("Model refused in session %s", context.session_id)
                transcript.append(Message(role="assistant", content=message))
                run_state.texts.append(message)
                await channel.send(StreamEvent.assistant_text(message))
                break

            for block in completion.text_blocks:
                if block.text:
                    run_state.texts.append(block.text)
                    await channel.send(StreamEvent.assistant_text(block.text))

            tool_uses = completion.tool_uses
            if not tool_uses:
                transcript.append(Message(role="assistant", content=completion.content))
                break

            run_state.state = LoopState.DISPATCHING
            results: list[ToolResultBlock] = []
            for use in tool_uses:
                _ensure_open(channel)
                await channel.send(StreamEvent.tool_call(use.name, use.input, use.id))
                block, event = await self._dispatch(use, context)
                # results of calls that finish after a disconnect are dropped
                _ensure_open(channel)
                results.append(block)
                await channel.send(event)

            run_state.total_tool_calls += len(tool_uses)
            transcript.append(Message(role="assistant", content=completion.content))
            transcript.append(Message(role="user", content=results))

            if (
                run_state.iteration_count >= settings.max_iterations
                or run_state.total_tool_calls >= settings.max_tool_calls
            ):
                logger.warning(
                    "Run limit reached for session %s (iterations=%d/%d, tool_calls=%d/%d)",
                    context.session_id,
                    run_state.iteration_count,
                    settings.max_iterations,
                    run_state.total_tool_calls,
                    settings.max_tool_calls,
                )
                run_state.state = LoopState.ABORTED
                await channel.send(
                    StreamEvent.done(
                        _STATUS[LoopState.ABORTED],
                        run_state.iteration_count,
                        run_state.total_tool_calls,
                    )
                )
                return

        run_state.state = LoopState.DONE
        await channel.send(
            StreamEvent.done(
                _STATUS[LoopState.DONE],
                run_state.iteration_count,
                run_state.total_tool_calls,
            )
        )

    async def _dispatch(
        self,
        use: ToolUseBlock,
        context: ToolContext,
    ) -> tuple[ToolResultBlock, StreamEvent]:
        """Execute one tool call; every outcome becomes a tool result."""
        try:
            result = await self._dispatcher.execute(use.name, use.input, context)
        except ToolNotFound as e:
            logger.warning("Model requested unknown tool %s", use.name)
            result = {"success": False, "error": str(e)}
            block = ToolResultBlock(tool_use_id=use.id, content=json.dumps(result), is_error=True)
            return block, StreamEvent.tool_result(use.name, use.id, False, f"Error: {e}")

        success, summary = summarize_result(result)
        block = ToolResultBlock(tool_use_id=use.id, content=json.dumps(result, default=str))
        return block, StreamEvent.tool_result(use.name, use.id, success, summary)


def _ensure_open(channel: EventChannel) -> None:
    if channel.cancelled:
        raise ChannelClosed("client disconnected")
