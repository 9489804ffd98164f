"""Exception hierarchy for Concierge.

Only ModelError (and unexpected loop failures) end a run. Everything
raised below the dispatcher is folded back into the conversation as a
tool result.
"""

from __future__ import annotations


class ConciergeError(Exception):
    """Base class for all Concierge errors."""


class ToolNotFound(ConciergeError):
    """Raised by the dispatcher for a tool name with no registered handler."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool {tool_name} not found in registry")
        self.tool_name = tool_name


class ModelError(ConciergeError):
    """The language model API could not produce a completion."""


class GoogleApiError(ConciergeError):
    """A Google REST call returned a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Google API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class ChannelClosed(ConciergeError):
    """The event channel was closed by its consumer."""
