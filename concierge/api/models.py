"""Transcript and request models for the API layer.

Content blocks mirror the Anthropic Messages API shapes so that
``model_dump()`` output can be sent to the API unchanged.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str  # JSON-encoded tool result envelope
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]

_BLOCK_ADAPTER: TypeAdapter[ContentBlock] = TypeAdapter(ContentBlock)

KNOWN_BLOCK_TYPES = frozenset({"text", "tool_use", "tool_result"})


def parse_block(raw: dict[str, Any]) -> ContentBlock | None:
    """Parse a raw API content block, or None for block types we don't model."""
    if raw.get("type") not in KNOWN_BLOCK_TYPES:
        return None
    return _BLOCK_ADAPTER.validate_python(raw)


class Message(BaseModel):
    """One turn of the transcript."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    def to_api(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [b.model_dump() for b in self.content]}


class ChatRequest(BaseModel):
    """Validated body of POST /chat and POST /chat/stream."""

    message: str
    conversation: list[Message] = Field(default_factory=list)
    session_id: str | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> ChatRequest:
        """Build a request, silently dropping malformed conversation entries.

        Prior turns must be ``{"role": "user"|"assistant", "content": str}``;
        anything else is ignored rather than rejected.
        """
        conversation: list[Message] = []
        raw_conversation = body.get("conversation")
        if isinstance(raw_conversation, list):
            for entry in raw_conversation:
                if (
                    isinstance(entry, dict)
                    and entry.get("role") in ("user", "assistant")
                    and isinstance(entry.get("content"), str)
                ):
                    conversation.append(Message(role=entry["role"], content=entry["content"]))
        session_id = body.get("session_id")
        return cls(
            message=body["message"],
            conversation=conversation,
            session_id=session_id if isinstance(session_id, str) and session_id else None,
        )


class Completion(BaseModel):
    """Parsed response from the model: content blocks plus stop reason."""

    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None
    usage: dict[str, Any] | None = None

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [b for b in self.content if isinstance(b, TextBlock)]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.text_blocks)
