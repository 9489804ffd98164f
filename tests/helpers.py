"""Test helpers shared across modules: scripted model, fake clock, recording handlers."""

import copy
import uuid
from collections.abc import Callable
from typing import Any

from concierge.api.events import EventChannel, StreamEvent
from concierge.api.models import ChatRequest, Completion, parse_block
from concierge.api.runner import AgentRunner, LoopOutcome
from concierge.api.tools import Credentials, ToolContext
from concierge.errors import ModelError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_completion(
    text: str = "",
    tool_uses: list[dict] | None = None,
    stop_reason: str | None = None,
) -> Completion:
    """Build a Completion with text and/or tool_use blocks."""
    content = []
    if text:
        content.append({"type": "text", "text": text})
    for tu in tool_uses or []:
        content.append({
            "type": "tool_use",
            "id": tu.get("id", f"toolu_{uuid.uuid4().hex[:12]}"),
            "name": tu["name"],
            "input": tu.get("input", {}),
        })
    if stop_reason is None:
        stop_reason = "tool_use" if tool_uses else "end_turn"
    return Completion(content=[parse_block(c) for c in content], stop_reason=stop_reason)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedModel:
    """ModelClient that replays scripted completions and records every request.

    Script entries may be a Completion, an Exception to raise, or a
    callable taking the request messages and returning a Completion.
    """

    def __init__(
        self,
        script: list[Completion | Exception | Callable[[list[dict]], Completion]] | None = None,
        text_replies: list[str | Exception] | None = None,
    ) -> None:
        self.script = list(script or [])
        self.text_replies = list(text_replies or [])
        self.requests: list[dict[str, Any]] = []
        self.text_requests: list[dict[str, Any]] = []
        self.repeat_last = False

    async def complete(self, system_prompt, tools, messages) -> Completion:
        self.requests.append({
            "system": system_prompt,
            "tools": tools,
            "messages": copy.deepcopy(messages),
        })
        if not self.script:
            raise AssertionError("ScriptedModel ran out of completions")
        item = self.script[0] if self.repeat_last and len(self.script) == 1 else self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, Completion):
            return item(messages)
        return item

    async def complete_text(self, prompt, system=None, model=None, max_tokens=1000) -> str:
        self.text_requests.append({"prompt": prompt, "system": system, "model": model})
        if not self.text_replies:
            raise ModelError("no scripted reply")
        reply = self.text_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class RecordingHandler:
    """Async tool handler that records its validated inputs."""

    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.result = {"success": True} if result is None else result
        self.error = error
        self.calls: list[Any] = []

    async def __call__(self, args, context):
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.result)


def make_context(session_id: str = "session-1", token: str = "access-token") -> ToolContext:
    return ToolContext(session_id=session_id, credentials=Credentials(access_token=token))


async def run_collect(
    runner: AgentRunner,
    message: str = "hello",
    context: ToolContext | None = None,
    conversation: list | None = None,
) -> tuple[LoopOutcome, list[StreamEvent]]:
    """Run to completion with a roomy channel, then drain it."""
    channel = EventChannel(maxsize=1000)
    request = ChatRequest(message=message, conversation=conversation or [])
    outcome = await runner.run(request, context or make_context(), channel)
    events = [event async for event in channel]
    return outcome, events


