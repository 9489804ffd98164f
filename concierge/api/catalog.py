"""Static tool catalog shown to the model.

Every name here must have a handler registered with the ToolDispatcher;
the runner passes this list unchanged to every completion request of a run.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ToolName(StrEnum):
    LIST_EVENTS = "list_events"
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    GET_FREEBUSY = "get_freebusy"
    CREATE_TIME_BLOCK = "create_time_block"
    LIST_THREADS = "list_threads"
    CLASSIFY_EMAILS = "classify_emails"
    SEND_EMAIL = "send_email"
    CREATE_LABEL = "create_label"
    ADD_LABEL = "add_label"
    ARCHIVE_THREAD = "archive_thread"


def _datetime(label: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "dateTime": {"type": "string", "description": f"{label} time (ISO format)"},
            "timeZone": {"type": "string", "description": "Timezone"},
        },
    }


_ATTENDEES: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {"email": {"type": "string", "description": "Attendee email"}},
    },
}

_CALENDAR_ID: dict[str, Any] = {"type": "string", "description": "Calendar ID (default: primary)"}

_EVENT_FIELDS: dict[str, Any] = {
    "summary": {"type": "string", "description": "Event title"},
    "description": {"type": "string", "description": "Event description"},
    "location": {"type": "string", "description": "Event location"},
    "start": _datetime("Start"),
    "end": _datetime("End"),
    "attendees": _ATTENDEES,
}

_RECIPIENTS: dict[str, Any] = {
    "anyOf": [
        {"type": "string"},
        {"type": "array", "items": {"type": "string"}},
    ],
}


TOOL_CATALOG: list[dict[str, Any]] = [
    {
        "name": ToolName.LIST_EVENTS.value,
        "description": "List calendar events with optional filtering by date range",
        "input_schema": {
            "type": "object",
            "properties": {
                "options": {
                    "type": "object",
                    "properties": {
                        "timeMin": {"type": "string", "description": "Start time (ISO format)"},
                        "timeMax": {"type": "string", "description": "End time (ISO format)"},
                        "maxResults": {"type": "number", "description": "Maximum events to return"},
                        "calendarId": _CALENDAR_ID,
                    },
                },
            },
        },
    },
    {
        "name": ToolName.CREATE_EVENT.value,
        "description": "Create a new calendar event",
        "input_schema": {
            "type": "object",
            "properties": {
                "eventData": {
                    "type": "object",
                    "properties": _EVENT_FIELDS,
                    "required": ["summary", "start", "end"],
                },
                "calendarId": _CALENDAR_ID,
            },
            "required": ["eventData"],
        },
    },
    {
        "name": ToolName.UPDATE_EVENT.value,
        "description": "Update an existing calendar event",
        "input_schema": {
            "type": "object",
            "properties": {
                "eventId": {"type": "string", "description": "Event ID to update"},
                "eventData": {"type": "object", "properties": _EVENT_FIELDS},
                "calendarId": _CALENDAR_ID,
            },
            "required": ["eventId", "eventData"],
        },
    },
    {
        "name": ToolName.DELETE_EVENT.value,
        "description": "Delete a calendar event - ONLY use after explicit user confirmation",
        "input_schema": {
            "type": "object",
            "properties": {
                "eventId": {"type": "string", "description": "Event ID to delete"},
                "calendarId": _CALENDAR_ID,
            },
            "required": ["eventId"],
        },
    },
    {
        "name": ToolName.GET_FREEBUSY.value,
        "description": "Check availability across calendars for scheduling",
        "input_schema": {
            "type": "object",
            "properties": {
                "timeMin": {"type": "string", "description": "Start time (ISO format)"},
                "timeMax": {"type": "string", "description": "End time (ISO format)"},
                "calendarIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of calendar IDs to check",
                },
            },
            "required": ["timeMin", "timeMax", "calendarIds"],
        },
    },
    {
        "name": ToolName.CREATE_TIME_BLOCK.value,
        "description": "Create a time block for focus work, workouts, or personal time",
        "input_schema": {
            "type": "object",
            "properties": {
                "startTime": {"type": "string", "description": "Start time (ISO format)"},
                "endTime": {"type": "string", "description": "End time (ISO format)"},
                "title": {"type": "string", "description": 'Time block title (e.g., "Workout", "Focus Time")'},
                "description": {"type": "string", "description": "Optional description"},
                "calendarId": _CALENDAR_ID,
            },
            "required": ["startTime", "endTime", "title"],
        },
    },
    {
        "name": ToolName.LIST_THREADS.value,
        "description": "List email threads with optional filtering",
        "input_schema": {
            "type": "object",
            "properties": {
                "options": {
                    "type": "object",
                    "properties": {
                        "maxResults": {"type": "number", "description": "Maximum threads to return"},
                        "labelIds": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Label IDs to filter by",
                        },
                        "q": {"type": "string", "description": "Search query"},
                    },
                },
            },
        },
    },
    {
        "name": ToolName.CLASSIFY_EMAILS.value,
        "description": "Classify email threads into categories",
        "input_schema": {
            "type": "object",
            "properties": {
                "threadIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of thread IDs to classify",
                },
                "categories": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Categories to classify into",
                },
            },
            "required": ["threadIds"],
        },
    },
    {
        "name": ToolName.SEND_EMAIL.value,
        "description": "Send an email from the user's mailbox",
        "input_schema": {
            "type": "object",
            "properties": {
                "to": {**_RECIPIENTS, "description": "Recipient address(es)"},
                "subject": {"type": "string", "description": "Subject line"},
                "body": {"type": "string", "description": "Plain-text body"},
                "html": {"type": "string", "description": "Optional HTML body (replaces plain text)"},
                "cc": {**_RECIPIENTS, "description": "Cc address(es)"},
                "bcc": {**_RECIPIENTS, "description": "Bcc address(es)"},
            },
            "required": ["to", "subject", "body"],
        },
    },
    {
        "name": ToolName.CREATE_LABEL.value,
        "description": "Create a new Gmail label",
        "input_schema": {
            "type": "object",
            "properties": {"name": {"type": "string", "description": "Label name"}},
            "required": ["name"],
        },
    },
    {
        "name": ToolName.ADD_LABEL.value,
        "description": "Apply one or more labels to an email thread",
        "input_schema": {
            "type": "object",
            "properties": {
                "threadId": {"type": "string", "description": "Thread ID"},
                "labelIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Label IDs to add",
                },
            },
            "required": ["threadId", "labelIds"],
        },
    },
    {
        "name": ToolName.ARCHIVE_THREAD.value,
        "description": "Archive an email thread (remove it from the inbox)",
        "input_schema": {
            "type": "object",
            "properties": {"threadId": {"type": "string", "description": "Thread ID"}},
            "required": ["threadId"],
        },
    },
]


def tool_names() -> list[str]:
    return [tool["name"] for tool in TOOL_CATALOG]
