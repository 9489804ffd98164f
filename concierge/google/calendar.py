"""Google Calendar tools.

Each tool returns ``{"success": True, ...}`` or ``{"success": False, "error": ...}``.
register_calendar_tools() wires them into a ToolDispatcher with closures
that build a GoogleClient from the caller's credentials.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from concierge.api.catalog import ToolName
from concierge.api.schemas import (
    CreateEventInput,
    CreateTimeBlockInput,
    DeleteEventInput,
    GetFreeBusyInput,
    ListEventsInput,
    PRIMARY_CALENDAR,
    UpdateEventInput,
)
from concierge.api.tools import ToolContext, ToolDispatcher
from concierge.config import Settings
from concierge.google.client import GoogleClient, tool_errors

logger = logging.getLogger(__name__)


def _events_url(google: GoogleClient, calendar_id: str, event_id: str | None = None) -> str:
    url = f"{google.calendar_url}/calendars/{quote(calendar_id, safe='')}/events"
    if event_id is not None:
        url += f"/{quote(event_id, safe='')}"
    return url


@tool_errors("list events")
async def list_events(google: GoogleClient, args: ListEventsInput) -> dict[str, Any]:
    opts = args.options
    data = await google.request(
        "GET",
        _events_url(google, opts.calendar_id),
        params={
            "timeMin": opts.time_min,
            "timeMax": opts.time_max,
            "maxResults": opts.max_results,
            "orderBy": opts.order_by,
            "singleEvents": "true" if opts.single_events else "false",
        },
    )
    return {
        "success": True,
        "events": data.get("items") or [],
        "nextPageToken": data.get("nextPageToken"),
    }


@tool_errors("create event")
async def create_event(google: GoogleClient, args: CreateEventInput) -> dict[str, Any]:
    return await _insert_event(google, args.calendar_id, args.event_data.to_api())


@tool_errors("update event")
async def update_event(google: GoogleClient, args: UpdateEventInput) -> dict[str, Any]:
    # PATCH so fields the model left out are kept
    data = await google.request(
        "PATCH",
        _events_url(google, args.calendar_id, args.event_id),
        json=args.event_data.to_api(),
    )
    return {"success": True, "event": data}


@tool_errors("delete event")
async def delete_event(google: GoogleClient, args: DeleteEventInput) -> dict[str, Any]:
    await google.request("DELETE", _events_url(google, args.calendar_id, args.event_id))
    logger.info("Deleted event %s from calendar %s", args.event_id, args.calendar_id)
    return {"success": True}


@tool_errors("get free/busy information")
async def get_freebusy(google: GoogleClient, args: GetFreeBusyInput) -> dict[str, Any]:
    calendar_ids = args.calendar_ids or [PRIMARY_CALENDAR]
    data = await google.request(
        "POST",
        f"{google.calendar_url}/freeBusy",
        json={
            "timeMin": args.time_min,
            "timeMax": args.time_max,
            "items": [{"id": cid} for cid in calendar_ids],
        },
    )
    return {"success": True, "calendars": data.get("calendars") or {}}


@tool_errors("create time block")
async def create_time_block(google: GoogleClient, args: CreateTimeBlockInput) -> dict[str, Any]:
    body: dict[str, Any] = {
        "summary": args.title,
        "start": {"dateTime": args.start_time},
        "end": {"dateTime": args.end_time},
        "reminders": {"useDefault": False},
    }
    if args.description is not None:
        body["description"] = args.description
    return await _insert_event(google, args.calendar_id, body)


async def _insert_event(google: GoogleClient, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
    data = await google.request("POST", _events_url(google, calendar_id), json=body)
    return {"success": True, "event": data}


def register_calendar_tools(
    dispatcher: ToolDispatcher,
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> None:
    """Register the calendar tools with the dispatcher.

    Uses a SEPARATE httpx client from the model client (no API key headers).
    """

    def _google(context: ToolContext) -> GoogleClient:
        return GoogleClient(http_client, settings, context.credentials)

    async def _list(args: ListEventsInput, context: ToolContext) -> dict[str, Any]:
        return await list_events(_google(context), args)

    async def _create(args: CreateEventInput, context: ToolContext) -> dict[str, Any]:
        return await create_event(_google(context), args)

    async def _update(args: UpdateEventInput, context: ToolContext) -> dict[str, Any]:
        return await update_event(_google(context), args)

    async def _delete(args: DeleteEventInput, context: ToolContext) -> dict[str, Any]:
        return await delete_event(_google(context), args)

    async def _freebusy(args: GetFreeBusyInput, context: ToolContext) -> dict[str, Any]:
        return await get_freebusy(_google(context), args)

    async def _time_block(args: CreateTimeBlockInput, context: ToolContext) -> dict[str, Any]:
        return await create_time_block(_google(context), args)

    dispatcher.register(ToolName.LIST_EVENTS, _list)
    dispatcher.register(ToolName.CREATE_EVENT, _create)
    dispatcher.register(ToolName.UPDATE_EVENT, _update)
    dispatcher.register(ToolName.DELETE_EVENT, _delete)
    dispatcher.register(ToolName.GET_FREEBUSY, _freebusy)
    dispatcher.register(ToolName.CREATE_TIME_BLOCK, _time_block)
