"""Pre-dispatch safety gate for destructive tools.

A protected tool may only run when its prerequisite (the listing tool
that yields current identifiers) ran in the same session within the
safety window. A refusal is a structured signal for the model, not an
error: it is fed back as a tool result so the model can list first and
retry.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from concierge.safety.history import SessionStore

logger = logging.getLogger(__name__)

# protected tool -> prerequisite tool
DEFAULT_PREREQUISITES: dict[str, str] = {
    "delete_event": "list_events",
}

DEFAULT_WINDOW_SECONDS = 30.0


@dataclass(frozen=True)
class SafetyRefusal:
    """Returned by SafetyGate.check() when a protected call must not run."""

    tool_name: str
    prerequisite: str
    window_seconds: float

    @property
    def message(self) -> str:
        return (
            f"{self.tool_name} requires a recent {self.prerequisite} call in this "
            f"conversation (within {self.window_seconds:g}s). Call {self.prerequisite} "
            f"first and use only identifiers from its result."
        )

    def to_result(self) -> dict[str, Any]:
        """Tool-result envelope handed back to the model."""
        return {
            "success": False,
            "requires_prerequisite": True,
            "prerequisite": self.prerequisite,
            "error": self.message,
        }


class SafetyGate:
    """Checks protected tools against the session history.

    Pure function of history state and the store's clock; never records.
    """

    def __init__(
        self,
        history: SessionStore,
        prerequisites: Mapping[str, str] | None = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._history = history
        self._prerequisites = dict(DEFAULT_PREREQUISITES if prerequisites is None else prerequisites)
        self._window = window_seconds

    @property
    def window_seconds(self) -> float:
        return self._window

    def is_protected(self, tool_name: str) -> bool:
        return tool_name in self._prerequisites

    def check(self, session_id: str, tool_name: str) -> SafetyRefusal | None:
        """Return a refusal if ``tool_name`` is protected and its prerequisite is stale."""
        prerequisite = self._prerequisites.get(tool_name)
        if prerequisite is None:
            return None
        if self._history.has_recent(session_id, prerequisite, self._window):
            return None
        logger.info(
            "Safety gate refused %s for session %s: no %s within %.0fs",
            tool_name,
            session_id,
            prerequisite,
            self._window,
        )
        return SafetyRefusal(tool_name=tool_name, prerequisite=prerequisite, window_seconds=self._window)
