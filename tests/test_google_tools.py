"""Tests for the Google Calendar and Gmail tools.

Google is faked with httpx.MockTransport; every request is captured so
the tests can check URLs, query params, bodies and auth headers.
"""

import base64
import json
from email import message_from_bytes

import httpx
import pytest
import pytest_asyncio

from concierge.api.catalog import tool_names
from concierge.api.schemas import (
    ArchiveThreadInput,
    ClassifyEmailsInput,
    CreateTimeBlockInput,
    GetFreeBusyInput,
    ListEventsInput,
    ListThreadsInput,
    SendEmailInput,
    UpdateEventInput,
)
from concierge.api.tools import Credentials, ToolContext, ToolDispatcher
from concierge.errors import GoogleApiError, ModelError
from concierge.google import GoogleClient, register_calendar_tools, register_gmail_tools
from concierge.google import calendar, gmail
from concierge.safety import SafetyGate, SessionStore

from helpers import ScriptedModel

CAL = "https://www.googleapis.com/calendar/v3"
GMAIL = "https://gmail.googleapis.com/gmail/v1"
TOKEN_URL = "https://oauth2.googleapis.com/token"


class FakeGoogle:
    """Routes requests to canned responses and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[httpx.Response]] = {}

    def add(self, method: str, url: str, *responses: httpx.Response) -> None:
        self.routes.setdefault((method, url), []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = request.url
        key = (request.method, f"{url.scheme}://{url.host}{url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
        return queue.pop(0) if len(queue) > 1 else queue[0]


@pytest.fixture
def fake():
    return FakeGoogle()


@pytest_asyncio.fixture
async def http(fake):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)) as client:
        yield client


@pytest.fixture
def credentials():
    return Credentials(access_token="old-token", refresh_token="refresh-token")


@pytest.fixture
def google(http, settings, credentials):
    return GoogleClient(http, settings, credentials)


class TestGoogleClient:
    async def test_bearer_header(self, google, fake):
        fake.add("GET", f"{CAL}/calendars/primary/events", httpx.Response(200, json={"items": []}))
        await google.request("GET", f"{CAL}/calendars/primary/events")
        assert fake.requests[0].headers["authorization"] == "Bearer old-token"

    async def test_refreshes_once_on_401(self, google, fake, credentials):
        url = f"{CAL}/calendars/primary/events"
        fake.add("GET", url, httpx.Response(401, json={"error": {"message": "expired"}}),
                 httpx.Response(200, json={"items": [{"id": "e1"}]}))
        fake.add("POST", TOKEN_URL, httpx.Response(200, json={"access_token": "new-token"}))

        data = await google.request("GET", url)

        assert data == {"items": [{"id": "e1"}]}
        assert credentials.access_token == "new-token"
        token_request = fake.requests[1]
        assert b"grant_type=refresh_token" in token_request.content
        assert b"refresh_token=refresh-token" in token_request.content
        assert fake.requests[2].headers["authorization"] == "Bearer new-token"

    async def test_no_refresh_without_refresh_token(self, http, settings, fake):
        client = GoogleClient(http, settings, Credentials(access_token="t"))
        fake.add("GET", f"{CAL}/x", httpx.Response(401, json={"error": {"message": "Invalid Credentials"}}))
        with pytest.raises(GoogleApiError) as exc_info:
            await client.request("GET", f"{CAL}/x")
        assert "401" in str(exc_info.value)
        assert len(fake.requests) == 1

    async def test_failed_refresh_raises(self, google, fake):
        fake.add("GET", f"{CAL}/x", httpx.Response(401, json={}))
        fake.add("POST", TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(GoogleApiError) as exc_info:
            await google.request("GET", f"{CAL}/x")
        assert "invalid_grant" in str(exc_info.value)

    async def test_empty_body_is_empty_dict(self, google, fake):
        fake.add("DELETE", f"{CAL}/calendars/primary/events/e1", httpx.Response(204))
        assert await google.request("DELETE", f"{CAL}/calendars/primary/events/e1") == {}


class TestCalendarTools:
    async def test_list_events_defaults(self, google, fake):
        fake.add("GET", f"{CAL}/calendars/primary/events",
                 httpx.Response(200, json={"items": [{"id": "e1"}], "nextPageToken": "p2"}))

        result = await calendar.list_events(google, ListEventsInput())

        assert result == {"success": True, "events": [{"id": "e1"}], "nextPageToken": "p2"}
        params = fake.requests[0].url.params
        assert params["maxResults"] == "50"
        assert params["orderBy"] == "startTime"
        assert params["singleEvents"] == "true"
        assert "timeMin" not in params

    async def test_calendar_id_is_escaped(self, google, fake):
        await calendar.list_events(
            google, ListEventsInput.model_validate({"options": {"calendarId": "team/ops@example.com"}})
        )
        assert b"/calendars/team%2Fops" in fake.requests[0].url.raw_path

    async def test_api_error_becomes_envelope(self, google, fake):
        result = await calendar.list_events(google, ListEventsInput())
        assert result == {"success": False, "error": "Google API error (404): Not Found"}

    async def test_update_uses_patch(self, google, fake):
        fake.add("PATCH", f"{CAL}/calendars/primary/events/e1", httpx.Response(200, json={"id": "e1"}))
        args = UpdateEventInput.model_validate({"eventId": "e1", "eventData": {"summary": "Renamed"}})
        result = await calendar.update_event(google, args)
        assert result == {"success": True, "event": {"id": "e1"}}
        assert json.loads(fake.requests[0].content) == {"summary": "Renamed"}

    async def test_freebusy_defaults_to_primary(self, google, fake):
        fake.add("POST", f"{CAL}/freeBusy", httpx.Response(200, json={"calendars": {"primary": {"busy": []}}}))
        args = GetFreeBusyInput.model_validate({"timeMin": "a", "timeMax": "b", "calendarIds": []})
        result = await calendar.get_freebusy(google, args)
        assert result["calendars"] == {"primary": {"busy": []}}
        assert json.loads(fake.requests[0].content)["items"] == [{"id": "primary"}]

    async def test_time_block_disables_default_reminders(self, google, fake):
        fake.add("POST", f"{CAL}/calendars/primary/events", httpx.Response(200, json={"id": "tb"}))
        args = CreateTimeBlockInput.model_validate(
            {"startTime": "2026-10-16T07:00:00Z", "endTime": "2026-10-16T08:00:00Z", "title": "Workout"}
        )
        result = await calendar.create_time_block(google, args)
        assert result == {"success": True, "event": {"id": "tb"}}
        body = json.loads(fake.requests[0].content)
        assert body == {
            "summary": "Workout",
            "start": {"dateTime": "2026-10-16T07:00:00Z"},
            "end": {"dateTime": "2026-10-16T08:00:00Z"},
            "reminders": {"useDefault": False},
        }


class TestGmailTools:
    def test_raw_message_plain(self):
        raw = gmail.build_raw_message(
            SendEmailInput(to=["a@example.com", "b@example.com"], subject="Hello", body="Hi there", cc="c@example.com")
        )
        msg = message_from_bytes(base64.urlsafe_b64decode(raw))
        assert msg["To"] == "a@example.com, b@example.com"
        assert msg["Cc"] == "c@example.com"
        assert msg["Subject"] == "Hello"
        assert msg.get_content_type() == "text/plain"
        assert "Hi there" in msg.get_payload(decode=True).decode()

    def test_raw_message_html_replaces_body(self):
        raw = gmail.build_raw_message(SendEmailInput(to="a@example.com", subject="S", body="plain", html="<b>x</b>"))
        msg = message_from_bytes(base64.urlsafe_b64decode(raw))
        assert msg.get_content_type() == "text/html"
        assert "<b>x</b>" in msg.get_payload(decode=True).decode()

    async def test_send_email(self, google, fake):
        fake.add("POST", f"{GMAIL}/users/me/messages/send", httpx.Response(200, json={"id": "m1"}))
        result = await gmail.send_email(google, SendEmailInput(to="a@example.com", subject="S", body="B"))
        assert result == {"success": True, "message": {"id": "m1"}}
        assert "raw" in json.loads(fake.requests[0].content)

    async def test_archive_removes_inbox(self, google, fake):
        fake.add("POST", f"{GMAIL}/users/me/threads/t1/modify", httpx.Response(200, json={"id": "t1"}))
        result = await gmail.archive_thread(google, ArchiveThreadInput(thread_id="t1"))
        assert result["success"] is True
        assert json.loads(fake.requests[0].content) == {"removeLabelIds": ["INBOX"]}

    async def test_list_threads_params(self, google, fake):
        fake.add("GET", f"{GMAIL}/users/me/threads", httpx.Response(200, json={"threads": [{"id": "t1"}]}))
        args = ListThreadsInput.model_validate({"options": {"labelIds": ["INBOX", "UNREAD"], "q": "from:boss"}})
        result = await gmail.list_threads(google, args)
        assert result["threads"] == [{"id": "t1"}]
        params = fake.requests[0].url.params
        assert params.get_list("labelIds") == ["INBOX", "UNREAD"]
        assert params["q"] == "from:boss"
        assert params["maxResults"] == "50"


def _thread(thread_id: str, subject: str) -> httpx.Response:
    return httpx.Response(200, json={
        "id": thread_id,
        "snippet": f"snippet {thread_id}",
        "messages": [{"payload": {"headers": [
            {"name": "Subject", "value": subject},
            {"name": "From", "value": "sender@example.com"},
        ]}}],
    })


class TestClassifyEmails:
    async def test_classifies_in_batches_of_five(self, google, fake, settings):
        ids = [f"t{i}" for i in range(7)]
        for tid in ids:
            fake.add("GET", f"{GMAIL}/users/me/threads/{tid}", _thread(tid, f"Subject {tid}"))
        replies = [
            json.dumps([{"threadId": t, "category": "Important", "confidence": 0.9} for t in ids[:5]]),
            json.dumps([{"threadId": t, "category": "Newsletter", "confidence": 0.8} for t in ids[5:]]),
        ]
        model = ScriptedModel(text_replies=replies)

        result = await gmail.classify_emails(
            google, model, ClassifyEmailsInput(thread_ids=ids), settings.classification_model
        )

        assert result["success"] is True
        assert len(result["classifications"]) == 7
        assert len(model.text_requests) == 2
        assert "Thread ID: t0" in model.text_requests[0]["prompt"]
        assert "Subject: Subject t0" in model.text_requests[0]["prompt"]
        assert model.text_requests[0]["model"] == settings.classification_model

    async def test_model_failure_falls_back(self, google, fake):
        fake.add("GET", f"{GMAIL}/users/me/threads/t1", _thread("t1", "Hi"))
        model = ScriptedModel(text_replies=[ModelError("down")])
        result = await gmail.classify_emails(google, model, ClassifyEmailsInput(thread_ids=["t1"]))
        assert result["classifications"] == [{
            "threadId": "t1",
            "category": "Can wait",
            "confidence": 0.5,
            "reasoning": "AI service unavailable, using default",
        }]

    async def test_unparseable_reply_falls_back(self, google, fake):
        fake.add("GET", f"{GMAIL}/users/me/threads/t1", _thread("t1", "Hi"))
        model = ScriptedModel(text_replies=["Sure! Here you go: not json"])
        result = await gmail.classify_emails(google, model, ClassifyEmailsInput(thread_ids=["t1"]))
        assert result["classifications"][0]["category"] == "Can wait"
        assert result["classifications"][0]["reasoning"] == "AI classification failed, using default"

    async def test_unreadable_threads_are_skipped(self, google, fake):
        fake.add("GET", f"{GMAIL}/users/me/threads/ok", _thread("ok", "Hi"))
        model = ScriptedModel(text_replies=['[{"threadId": "ok", "category": "Important", "confidence": 1}]'])
        result = await gmail.classify_emails(google, model, ClassifyEmailsInput(thread_ids=["missing", "ok"]))
        assert [c["threadId"] for c in result["classifications"]] == ["ok"]
        assert "missing" not in model.text_requests[0]["prompt"]

    def test_parse_fenced_json(self):
        assert gmail.parse_classifications('```json\n[{"threadId": "a"}]\n```') == [{"threadId": "a"}]
        with pytest.raises(ValueError):
            gmail.parse_classifications('{"threadId": "a"}')


class TestRegistration:
    async def test_every_catalog_tool_is_registered(self, http, settings):
        store = SessionStore()
        dispatcher = ToolDispatcher(store, SafetyGate(store))
        register_calendar_tools(dispatcher, settings, http)
        register_gmail_tools(dispatcher, settings, http, ScriptedModel())
        assert dispatcher.missing(tool_names()) == []

    async def test_dispatch_through_google(self, http, settings, fake):
        fake.add("GET", f"{CAL}/calendars/primary/events", httpx.Response(200, json={"items": [{"id": "e1"}]}))
        fake.add("DELETE", f"{CAL}/calendars/primary/events/e1", httpx.Response(204))
        store = SessionStore()
        dispatcher = ToolDispatcher(store, SafetyGate(store))
        register_calendar_tools(dispatcher, settings, http)
        context = ToolContext(session_id="s", credentials=Credentials(access_token="tok"))

        listed = await dispatcher.execute("list_events", {}, context)
        deleted = await dispatcher.execute("delete_event", {"eventId": "e1"}, context)

        assert listed["events"] == [{"id": "e1"}]
        assert deleted == {"success": True}
        assert [r.method for r in fake.requests] == ["GET", "DELETE"]
