"""Safety module: session tool-call history and the pre-dispatch gate.

Public API: SessionStore, ToolCallRecord, SafetyGate, SafetyRefusal.
"""

from concierge.safety.gate import DEFAULT_PREREQUISITES, SafetyGate, SafetyRefusal
from concierge.safety.history import SessionStore, ToolCallRecord

__all__ = [
    "DEFAULT_PREREQUISITES",
    "SafetyGate",
    "SafetyRefusal",
    "SessionStore",
    "ToolCallRecord",
]
