"""System prompt for the calendar and mail assistant."""

from __future__ import annotations

from datetime import datetime

from concierge.api.catalog import ToolName

_CALENDAR_TOOLS = (
    ToolName.LIST_EVENTS,
    ToolName.CREATE_EVENT,
    ToolName.UPDATE_EVENT,
    ToolName.DELETE_EVENT,
    ToolName.GET_FREEBUSY,
    ToolName.CREATE_TIME_BLOCK,
)
_GMAIL_TOOLS = (
    ToolName.LIST_THREADS,
    ToolName.CLASSIFY_EMAILS,
    ToolName.SEND_EMAIL,
    ToolName.CREATE_LABEL,
    ToolName.ADD_LABEL,
    ToolName.ARCHIVE_THREAD,
)

_TEMPLATE = """\
You are a helpful assistant that can manage calendars and emails through Google APIs.

CURRENT DATE AND TIME: {date} at {time}

AGENTIC BEHAVIOR:
- When given a multi-step task, complete ALL steps before responding to the user
- Use available tools multiple times as needed to fulfill the entire request
- Don't stop after the first tool call; continue until the full workflow is complete

AVAILABLE TOOLS:
- Calendar: {calendar_tools}
- Gmail: {gmail_tools}

DELETION SAFETY PROTOCOL:
- NEVER delete events without explicit user confirmation
- ALWAYS call list_events FIRST to get current, valid event IDs
- NEVER use made-up, assumed, or remembered event IDs
- When the user asks to cancel or delete events:
  1. Call list_events to get real event IDs and current details
  2. Present the event details (title, time, attendees) from the list_events result
  3. Ask "Should I delete [event details]? (yes/no)"
  4. Only call delete_event with the EXACT event IDs from the list_events response
- delete_event is refused unless list_events ran in this conversation within the \
last {window:g} seconds; if it is refused, call list_events again and retry

Continue using tools until the entire request is satisfied. When listing events, \
use date ranges based on the current date above."""


def build_system_prompt(now: datetime | None = None, window_seconds: float = 30.0) -> str:
    now = now or datetime.now().astimezone()
    return _TEMPLATE.format(
        date=now.strftime("%A, %B %d, %Y").replace(" 0", " "),
        time=now.strftime("%I:%M %p %Z").strip(),
        calendar_tools=", ".join(t.value for t in _CALENDAR_TOOLS),
        gmail_tools=", ".join(t.value for t in _GMAIL_TOOLS),
        window=window_seconds,
    )
