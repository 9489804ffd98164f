"""Per-session tool-call history used for safety gating.

Each session keeps a bounded FIFO of the most recent tool dispatches.
Capacity is the only eviction trigger; the validity window is applied
at query time by has_recent().

Locking is per session: a short-lived registry lock guards creation of
a session's log, and every log carries its own lock, so concurrent runs
for different sessions never serialize on each other.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10

Clock = Callable[[], float]


@dataclass(frozen=True)
class ToolCallRecord:
    """A single dispatched tool call. Never mutated after creation."""

    tool_name: str
    timestamp: float  # seconds on the store's clock
    session_id: str


class _SessionLog:
    """Bounded record buffer for one session."""

    __slots__ = ("lock", "records")

    def __init__(self, capacity: int) -> None:
        self.lock = threading.Lock()
        self.records: deque[ToolCallRecord] = deque(maxlen=capacity)


class SessionStore:
    """Process-wide tool-call history keyed by session id.

    Construct once per process and pass it to the dispatcher and safety
    gate. ``clock`` defaults to ``time.monotonic`` and can be replaced in
    tests to control ageing precisely.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Clock | None = None) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._clock: Clock = clock or time.monotonic
        self._logs: dict[str, _SessionLog] = {}
        self._registry_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def now(self) -> float:
        return self._clock()

    def _get_log(self, session_id: str, create: bool) -> _SessionLog | None:
        log = self._logs.get(session_id)
        if log is not None or not create:
            return log
        with self._registry_lock:
            log = self._logs.get(session_id)
            if log is None:
                log = _SessionLog(self._capacity)
                self._logs[session_id] = log
            return log

    def record(self, session_id: str, tool_name: str, timestamp: float | None = None) -> ToolCallRecord:
        """Append a record, evicting the session's oldest one when at capacity."""
        entry = ToolCallRecord(
            tool_name=tool_name,
            timestamp=self.now() if timestamp is None else timestamp,
            session_id=session_id,
        )
        log = self._get_log(session_id, create=True)
        with log.lock:
            log.records.append(entry)
        logger.debug("Recorded %s for session %s", tool_name, session_id)
        return entry

    def has_recent(
        self,
        session_id: str,
        tool_name: str,
        within: float,
        now: float | None = None,
    ) -> bool:
        """True iff ``tool_name`` was recorded for the session no more than ``within`` seconds ago."""
        log = self._get_log(session_id, create=False)
        if log is None:
            return False
        current = self.now() if now is None else now
        with log.lock:
            return any(
                r.tool_name == tool_name and current - r.timestamp <= within
                for r in log.records
            )

    def records(self, session_id: str) -> list[ToolCallRecord]:
        """Snapshot of a session's records, oldest first."""
        log = self._get_log(session_id, create=False)
        if log is None:
            return []
        with log.lock:
            return list(log.records)

    def __len__(self) -> int:
        return len(self._logs)
