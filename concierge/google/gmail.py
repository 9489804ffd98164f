"""Gmail tools.

Same envelope convention as the calendar tools. classify_emails also
needs the model client: threads are summarised (subject, sender, snippet)
in batches and the model assigns each one a category.
"""

from __future__ import annotations

import base64
import json
import logging
from email.message import EmailMessage
from typing import Any
from urllib.parse import quote

import httpx

from concierge.api.catalog import ToolName
from concierge.api.llm import ModelClient
from concierge.api.schemas import (
    AddLabelInput,
    ArchiveThreadInput,
    ClassifyEmailsInput,
    CreateLabelInput,
    ListThreadsInput,
    SendEmailInput,
)
from concierge.api.tools import ToolContext, ToolDispatcher
from concierge.config import Settings
from concierge.errors import ConciergeError, ModelError
from concierge.google.client import GoogleClient, tool_errors

logger = logging.getLogger(__name__)

CLASSIFY_BATCH_SIZE = 5
FALLBACK_CATEGORY = "Can wait"
FALLBACK_CONFIDENCE = 0.5

_CLASSIFIER_SYSTEM = "You are an expert email classifier. Respond only with valid JSON as requested."

_CATEGORY_GUIDE = """\
Categories explained:
- Important: Requires immediate attention, action items, urgent matters
- Can wait: Non-urgent but relevant emails that can be handled later
- Auto-archive: Automated notifications, receipts, confirmations that don't need attention
- Newsletter: Marketing emails, newsletters, promotional content"""


def _user_url(google: GoogleClient, path: str) -> str:
    return f"{google.gmail_url}/users/me/{path}"


def _addresses(value: str | list[str] | None) -> str | None:
    if value is None:
        return None
    return ", ".join(value) if isinstance(value, list) else value


def build_raw_message(args: SendEmailInput) -> str:
    """RFC 2822 message, base64url encoded for the ``raw`` field."""
    message = EmailMessage()
    message["To"] = _addresses(args.to)
    message["Subject"] = args.subject
    if args.cc:
        message["Cc"] = _addresses(args.cc)
    if args.bcc:
        message["Bcc"] = _addresses(args.bcc)
    if args.html:
        message.set_content(args.html, subtype="html", charset="utf-8")
    else:
        message.set_content(args.body, charset="utf-8")
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


@tool_errors("list threads")
async def list_threads(google: GoogleClient, args: ListThreadsInput) -> dict[str, Any]:
    opts = args.options
    data = await google.request(
        "GET",
        _user_url(google, "threads"),
        params={
            "maxResults": opts.max_results,
            "labelIds": opts.label_ids or None,  # list -> repeated query param
            "q": opts.q,
            "pageToken": opts.page_token,
        },
    )
    return {
        "success": True,
        "threads": data.get("threads") or [],
        "nextPageToken": data.get("nextPageToken"),
        "resultSizeEstimate": data.get("resultSizeEstimate"),
    }


async def get_thread(google: GoogleClient, thread_id: str) -> dict[str, Any]:
    """Fetch thread metadata (Subject/From headers plus snippet)."""
    return await google.request(
        "GET",
        _user_url(google, f"threads/{quote(thread_id, safe='')}"),
        params={"format": "metadata", "metadataHeaders": ["Subject", "From"]},
    )


@tool_errors("send email")
async def send_email(google: GoogleClient, args: SendEmailInput) -> dict[str, Any]:
    data = await google.request(
        "POST",
        _user_url(google, "messages/send"),
        json={"raw": build_raw_message(args)},
    )
    logger.info("Sent email (subject: %s)", args.subject)
    return {"success": True, "message": data}


@tool_errors("create label")
async def create_label(google: GoogleClient, args: CreateLabelInput) -> dict[str, Any]:
    data = await google.request(
        "POST",
        _user_url(google, "labels"),
        json={
            "name": args.name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        },
    )
    return {"success": True, "label": data}


@tool_errors("add label")
async def add_label(google: GoogleClient, args: AddLabelInput) -> dict[str, Any]:
    return await _modify_thread(google, args.thread_id, {"addLabelIds": args.label_ids})


@tool_errors("archive thread")
async def archive_thread(google: GoogleClient, args: ArchiveThreadInput) -> dict[str, Any]:
    return await _modify_thread(google, args.thread_id, {"removeLabelIds": ["INBOX"]})


async def _modify_thread(google: GoogleClient, thread_id: str, body: dict[str, Any]) -> dict[str, Any]:
    data = await google.request(
        "POST",
        _user_url(google, f"threads/{quote(thread_id, safe='')}/modify"),
        json=body,
    )
    return {"success": True, "thread": data}


def _header(message: dict[str, Any], name: str) -> str:
    for header in (message.get("payload") or {}).get("headers") or []:
        if header.get("name") == name:
            return header.get("value") or ""
    return ""


def _classification_prompt(emails: list[dict[str, str]], categories: list[str]) -> str:
    lines = [
        f"Classify these emails into the following categories: {', '.join(categories)}",
        "",
        "For each email, analyze the subject, sender, and content snippet to determine:",
        "1. Which category best fits",
        "2. Confidence level (0.0 to 1.0)",
        "3. Brief reasoning",
        "",
        _CATEGORY_GUIDE,
        "",
        "Emails to classify:",
    ]
    for idx, email in enumerate(emails, 1):
        lines += [
            f"{idx}. Thread ID: {email['threadId']}",
            f"   Subject: {email['subject']}",
            f"   From: {email['from']}",
            f"   Snippet: {email['snippet']}",
        ]
    lines += [
        "",
        "Respond with ONLY a JSON array containing objects with threadId, category, "
        "confidence, and reasoning fields. No other text.",
    ]
    return "\n".join(lines)


def _fallback(emails: list[dict[str, str]], reasoning: str) -> list[dict[str, Any]]:
    return [
        {
            "threadId": email["threadId"],
            "category": FALLBACK_CATEGORY,
            "confidence": FALLBACK_CONFIDENCE,
            "reasoning": reasoning,
        }
        for email in emails
    ]


def parse_classifications(text: str) -> list[dict[str, Any]]:
    """Decode the model's JSON array. Raises ValueError if it is not one."""
    text = text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text[text.find("\n") + 1 :] if "\n" in text else text
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("expected a JSON array")
    return [item for item in data if isinstance(item, dict)]


async def classify_emails(
    google: GoogleClient,
    model: ModelClient,
    args: ClassifyEmailsInput,
    classification_model: str | None = None,
) -> dict[str, Any]:
    """Classify threads in batches of CLASSIFY_BATCH_SIZE.

    Threads that cannot be fetched are skipped. A batch whose model call
    fails or whose reply is not a JSON array falls back to
    FALLBACK_CATEGORY with FALLBACK_CONFIDENCE.
    """
    classifications: list[dict[str, Any]] = []

    for start in range(0, len(args.thread_ids), CLASSIFY_BATCH_SIZE):
        batch = args.thread_ids[start : start + CLASSIFY_BATCH_SIZE]
        emails: list[dict[str, str]] = []
        for thread_id in batch:
            try:
                thread = await get_thread(google, thread_id)
            except (ConciergeError, httpx.HTTPError) as e:
                logger.warning("Failed to fetch thread %s: %s", thread_id, e)
                continue
            messages = thread.get("messages") or []
            if not messages:
                continue
            emails.append(
                {
                    "threadId": thread_id,
                    "subject": _header(messages[0], "Subject"),
                    "from": _header(messages[0], "From"),
                    "snippet": thread.get("snippet") or "",
                }
            )

        if not emails:
            continue

        try:
            reply = await model.complete_text(
                _classification_prompt(emails, args.categories),
                system=_CLASSIFIER_SYSTEM,
                model=classification_model,
                max_tokens=2000,
            )
        except ModelError as e:
            logger.warning("Classification model call failed for batch: %s", e)
            classifications += _fallback(emails, "AI service unavailable, using default")
            continue

        try:
            classifications += parse_classifications(reply)
        except ValueError as e:
            logger.warning("Failed to parse classification response: %s", e)
            classifications += _fallback(emails, "AI classification failed, using default")

    return {"success": True, "classifications": classifications}


def register_gmail_tools(
    dispatcher: ToolDispatcher,
    settings: Settings,
    http_client: httpx.AsyncClient,
    model: ModelClient,
) -> None:
    """Register the Gmail tools with the dispatcher."""

    def _google(context: ToolContext) -> GoogleClient:
        return GoogleClient(http_client, settings, context.credentials)

    async def _list(args: ListThreadsInput, context: ToolContext) -> dict[str, Any]:
        return await list_threads(_google(context), args)

    async def _classify(args: ClassifyEmailsInput, context: ToolContext) -> dict[str, Any]:
        return await classify_emails(_google(context), model, args, settings.classification_model)

    async def _send(args: SendEmailInput, context: ToolContext) -> dict[str, Any]:
        return await send_email(_google(context), args)

    async def _create_label(args: CreateLabelInput, context: ToolContext) -> dict[str, Any]:
        return await create_label(_google(context), args)

    async def _add_label(args: AddLabelInput, context: ToolContext) -> dict[str, Any]:
        return await add_label(_google(context), args)

    async def _archive(args: ArchiveThreadInput, context: ToolContext) -> dict[str, Any]:
        return await archive_thread(_google(context), args)

    dispatcher.register(ToolName.LIST_THREADS, _list)
    dispatcher.register(ToolName.CLASSIFY_EMAILS, _classify)
    dispatcher.register(ToolName.SEND_EMAIL, _send)
    dispatcher.register(ToolName.CREATE_LABEL, _create_label)
    dispatcher.register(ToolName.ADD_LABEL, _add_label)
    dispatcher.register(ToolName.ARCHIVE_THREAD, _archive)
