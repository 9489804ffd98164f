"""Tool registry and dispatcher.

Provides:
- ToolDispatcher: closed registry from ToolName to handler, safety-gated
  execution, input decoding and result normalisation
- ToolContext / Credentials: per-run data handed to every handler

Handlers are async callables ``handler(args, context) -> dict`` where
``args`` is the validated pydantic input model for the tool. Results are
envelopes with a ``success`` key; failures never escape execute() except
ToolNotFound for unregistered names.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from concierge.api.catalog import ToolName
from concierge.api.schemas import TOOL_INPUTS, ToolInput
from concierge.errors import ToolNotFound
from concierge.safety.gate import SafetyGate
from concierge.safety.history import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Google OAuth credentials for one caller. access_token is updated on refresh."""

    access_token: str
    refresh_token: str | None = None


@dataclass
class ToolContext:
    """What a handler needs besides its input: who is calling, in which session."""

    session_id: str
    credentials: Credentials


ToolHandler = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class _Registration:
    handler: ToolHandler
    input_model: type[ToolInput]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolDispatcher:
    """Registers tool handlers and executes tool calls requested by the model.

    Every dispatched call (validated input, handler invoked) is recorded in
    the session history whether the handler succeeds or fails. Calls
    refused by the safety gate, unknown tools and undecodable input are
    not recorded because nothing was dispatched.
    """

    def __init__(self, history: SessionStore, gate: SafetyGate | None = None) -> None:
        self._history = history
        self._gate = gate
        self._registry: dict[ToolName, _Registration] = {}

    def register(
        self,
        name: ToolName | str,
        handler: ToolHandler,
        input_model: type[ToolInput] | None = None,
    ) -> None:
        """Register a handler for a catalog tool. Unknown names raise ValueError."""
        tool = ToolName(name)
        self._registry[tool] = _Registration(
            handler=handler,
            input_model=input_model or TOOL_INPUTS[tool],
        )

    def registered(self) -> list[str]:
        return [tool.value for tool in self._registry]

    def missing(self, names: Iterable[str]) -> list[str]:
        """Names from ``names`` that have no registered handler."""
        return [n for n in names if n not in self._registry]

    async def execute(
        self,
        tool_name: str,
        raw_input: Any,
        context: ToolContext,
    ) -> dict[str, Any]:
        """Execute one tool call and return its result envelope.

        Raises ToolNotFound for unregistered names; everything else is
        returned as ``{"success": False, "error": ...}`` (or a structured
        safety refusal).
        """
        registration = self._registry.get(tool_name)  # type: ignore[call-overload]
        if registration is None:
            raise ToolNotFound(tool_name)

        if self._gate is not None:
            refusal = self._gate.check(context.session_id, tool_name)
            if refusal is not None:
                return refusal.to_result()

        try:
            args = registration.input_model.model_validate(raw_input if raw_input is not None else {})
        except ValidationError as e:
            logger.info("Invalid input for %s: %s", tool_name, e)
            return {
                "success": False,
                "error": f"Invalid input for {tool_name}: {_format_validation_error(e)}",
            }

        self._history.record(context.session_id, tool_name)
        logger.debug("Dispatching %s for session %s", tool_name, context.session_id)

        try:
            result = await registration.handler(args, context)
        except Exception as e:
            logger.exception("Tool dispatch error for %s", tool_name)
            return {"success": False, "error": str(e) or type(e).__name__}

        if not isinstance(result, dict):
            return {"success": True, "result": result}
        result.setdefault("success", True)
        return result
