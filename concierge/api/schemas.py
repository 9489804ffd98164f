"""Pydantic input contracts for each tool.

The model sends camelCase keys (matching the catalog and the Google
APIs); fields are snake_case with camelCase aliases. Explicit nulls are
dropped before validation so documented defaults (e.g. the primary
calendar) apply.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from concierge.api.catalog import ToolName

PRIMARY_CALENDAR = "primary"
DEFAULT_CATEGORIES = ["Important", "Can wait", "Auto-archive", "Newsletter"]


class ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_api(self) -> dict[str, Any]:
        """camelCase payload for the Google APIs."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class EventDateTime(ToolInput):
    date_time: str | None = None
    date: str | None = None
    time_zone: str | None = None


class Attendee(ToolInput):
    email: str


class EventData(ToolInput):
    """Partial event body, as accepted by update_event."""

    summary: str | None = None
    description: str | None = None
    location: str | None = None
    start: EventDateTime | None = None
    end: EventDateTime | None = None
    attendees: list[Attendee] | None = None


class NewEventData(EventData):
    """Full event body: create_event needs a title and both endpoints."""

    summary: str
    start: EventDateTime
    end: EventDateTime

    @model_validator(mode="after")
    def _require_times(self) -> NewEventData:
        for label, value in (("start", self.start), ("end", self.end)):
            if not (value.date_time or value.date):
                raise ValueError(f"{label}.dateTime is required")
        return self


class ListEventsOptions(ToolInput):
    calendar_id: str = PRIMARY_CALENDAR
    time_min: str | None = None
    time_max: str | None = None
    max_results: int = Field(50, ge=1, le=2500)
    order_by: str = "startTime"
    single_events: bool = True


class ListEventsInput(ToolInput):
    options: ListEventsOptions = Field(default_factory=ListEventsOptions)


class CreateEventInput(ToolInput):
    event_data: NewEventData
    calendar_id: str = PRIMARY_CALENDAR


class UpdateEventInput(ToolInput):
    event_id: str
    event_data: EventData
    calendar_id: str = PRIMARY_CALENDAR


class DeleteEventInput(ToolInput):
    event_id: str
    calendar_id: str = PRIMARY_CALENDAR


class GetFreeBusyInput(ToolInput):
    time_min: str
    time_max: str
    calendar_ids: list[str] = Field(default_factory=list)


class CreateTimeBlockInput(ToolInput):
    start_time: str
    end_time: str
    title: str
    description: str | None = None
    calendar_id: str = PRIMARY_CALENDAR


# ---------------------------------------------------------------------------
# Gmail
# ---------------------------------------------------------------------------


class ListThreadsOptions(ToolInput):
    max_results: int = Field(50, ge=1, le=500)
    label_ids: list[str] | None = None
    q: str | None = None
    page_token: str | None = None


class ListThreadsInput(ToolInput):
    options: ListThreadsOptions = Field(default_factory=ListThreadsOptions)


class ClassifyEmailsInput(ToolInput):
    thread_ids: list[str]
    categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))


class SendEmailInput(ToolInput):
    to: str | list[str]
    subject: str
    body: str
    html: str | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None


class CreateLabelInput(ToolInput):
    name: str


class AddLabelInput(ToolInput):
    thread_id: str
    label_ids: list[str]


class ArchiveThreadInput(ToolInput):
    thread_id: str


TOOL_INPUTS: dict[ToolName, type[ToolInput]] = {
    ToolName.LIST_EVENTS: ListEventsInput,
    ToolName.CREATE_EVENT: CreateEventInput,
    ToolName.UPDATE_EVENT: UpdateEventInput,
    ToolName.DELETE_EVENT: DeleteEventInput,
    ToolName.GET_FREEBUSY: GetFreeBusyInput,
    ToolName.CREATE_TIME_BLOCK: CreateTimeBlockInput,
    ToolName.LIST_THREADS: ListThreadsInput,
    ToolName.CLASSIFY_EMAILS: ClassifyEmailsInput,
    ToolName.SEND_EMAIL: SendEmailInput,
    ToolName.CREATE_LABEL: CreateLabelInput,
    ToolName.ADD_LABEL: AddLabelInput,
    ToolName.ARCHIVE_THREAD: ArchiveThreadInput,
}
