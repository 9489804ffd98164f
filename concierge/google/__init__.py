"""Google Calendar and Gmail tools over httpx.

Public API:
    GoogleClient            - authenticated REST calls with one-shot token refresh
    register_calendar_tools - list/create/update/delete events, free/busy, time blocks
    register_gmail_tools    - threads, classification, sending, labels, archiving
"""

from concierge.google.calendar import register_calendar_tools
from concierge.google.client import GoogleClient
from concierge.google.gmail import register_gmail_tools

__all__ = ["GoogleClient", "register_calendar_tools", "register_gmail_tools"]
