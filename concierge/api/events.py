"""Typed progress events and the bounded channel that carries them.

The runner is the only producer and the HTTP response is the only
consumer of an EventChannel. The producer blocks when the queue is full;
the consumer cancels the channel when the client goes away, which the
producer observes through ``closed`` and ChannelClosed.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from concierge.errors import ChannelClosed

logger = logging.getLogger(__name__)

ASSISTANT_TEXT = "assistant_text"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"
ERROR = "error"
DONE = "done"

REFUSAL_SUMMARY = "Need to check calendar first"


@dataclass
class StreamEvent:
    """One frame of the caller-facing stream.

    Payload keys are the ones the web client reads: ``tool_call`` carries
    ``name``, ``input``, ``id`` and a human-readable ``display`` string;
    ``tool_result`` carries ``tool`` (the tool name), ``id``, ``success``
    and ``summary``. Clients expecting ``toolName`` / ``displaySummary``
    should map from these.
    """

    type: str  # assistant_text, tool_call, tool_result, error, done
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"

    @classmethod
    def assistant_text(cls, text: str) -> StreamEvent:
        return cls(ASSISTANT_TEXT, {"text": text})

    @classmethod
    def tool_call(cls, name: str, tool_input: Any, tool_id: str) -> StreamEvent:
        return cls(
            TOOL_CALL,
            {"name": name, "input": tool_input, "id": tool_id, "display": display_for(name, tool_input)},
        )

    @classmethod
    def tool_result(cls, name: str, tool_id: str, success: bool, summary: str) -> StreamEvent:
        return cls(TOOL_RESULT, {"tool": name, "id": tool_id, "success": success, "summary": summary})

    @classmethod
    def error(cls, message: str) -> StreamEvent:
        return cls(ERROR, {"message": message})

    @classmethod
    def done(cls, status: str, iterations: int, tool_calls: int) -> StreamEvent:
        return cls(DONE, {"status": status, "iterations": iterations, "tool_calls": tool_calls})


def _get(mapping: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(mapping, dict):
            return None
        mapping = mapping.get(key)
    return mapping


def display_for(name: str, tool_input: Any) -> str:
    """Short human-readable rendering of a tool call."""
    if name == "list_events":
        time_min = _get(tool_input, "options", "timeMin")
        time_max = _get(tool_input, "options", "timeMax")
        time_min = time_min[:10] if isinstance(time_min, str) and time_min else "today"
        time_max = time_max[:10] if isinstance(time_max, str) and time_max else "week"
        return f'list_events(timeMin: "{time_min}", timeMax: "{time_max}")'
    if name == "create_event":
        summary = _get(tool_input, "eventData", "summary") or "New Event"
        return f'create_event(summary: "{summary}")'
    if name == "create_time_block":
        start = _get(tool_input, "startTime")
        start = start[11:16] if isinstance(start, str) and len(start) >= 16 else "TBD"
        return f'create_time_block(title: "{_get(tool_input, "title")}", time: "{start}")'
    return f"{name}(...)"


def summarize_result(result: dict[str, Any]) -> tuple[bool, str]:
    """(display success, summary) for a tool result envelope.

    A safety refusal is guidance for the model, so it is displayed as a
    success.
    """
    if result.get("success"):
        if result.get("events"):
            return True, f"Found {len(result['events'])} events"
        if result.get("threads"):
            return True, f"Found {len(result['threads'])} threads"
        if result.get("event"):
            return True, "Event created successfully"
        return True, "Completed successfully"
    if result.get("requires_prerequisite"):
        return True, REFUSAL_SUMMARY
    return False, "Failed"


_SENTINEL = object()


class EventChannel:
    """Bounded single-producer, single-consumer event queue."""

    def __init__(self, maxsize: int = 32) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._finished = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._finished or self._cancelled

    @property
    def cancelled(self) -> bool:
        """True when the consumer went away before the producer finished."""
        return self._cancelled

    async def send(self, event: StreamEvent) -> None:
        """Enqueue an event, waiting while the queue is full."""
        if self.closed:
            raise ChannelClosed(f"channel closed, dropping {event.type} event")
        await self._queue.put(event)

    async def close(self) -> None:
        """Producer side: signal end of stream. Idempotent and never blocks.

        When the queue is full there is no room for the end marker; the
        consumer then stops once it has drained the queue.
        """
        if self.closed:
            return
        self._finished = True
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(_SENTINEL)

    def cancel(self) -> None:
        """Consumer side: stop accepting events and release a blocked producer."""
        if self._cancelled:
            return
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while not self._cancelled:
            if self._finished and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _SENTINEL:
                return
            yield item
