"""Response, tool-result, and stream-event shapes driven by the tool loop.

The core only reads attributes (``type``, ``text``, ``id``, ``name``,
``input``, ``stop_reason``, ``usage``), so Anthropic SDK objects and these
dataclasses are interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class TextBlock:
    """A text content block."""

    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"


@dataclass(frozen=True)
class Usage:
    """Token counts reported for one response."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class MessageResponse:
    """A model response: ordered content blocks plus stop reason and usage."""

    id: str
    content: list[Any]
    model: str
    stop_reason: str | None = None
    usage: Usage = field(default_factory=Usage)
    stop_sequence: str | None = None
    role: Literal["assistant"] = "assistant"
    type: Literal["message"] = "message"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation, aligned with its tool_use block."""

    tool_use_id: str
    content: str
    is_error: bool = False

    def to_block(self) -> dict[str, Any]:
        """Return the wire ``tool_result`` block."""
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass(frozen=True)
class StreamChunk:
    """One text delta emitted while streaming."""

    text: str
    index: int
    type: str = "text_delta"


@dataclass(frozen=True)
class StreamComplete:
    """Aggregate of a finished stream."""

    message: Any
    full_text: str
    stop_reason: str | None = None

    def usage(self) -> dict[str, int]:
        """Token usage from the message shell, zeros when unknown."""
        usage = getattr(self.message, "usage", None)
        return {
            "input_tokens": int(getattr(usage, "input_tokens", 0) or 0),
            "output_tokens": int(getattr(usage, "output_tokens", 0) or 0),
        }


def block_type(block: Any) -> str | None:
    """Return a content block's type for objects and wire dicts alike."""
    if isinstance(block, dict):
        value = block.get("type")
    else:
        value = getattr(block, "type", None)
    return value if isinstance(value, str) else None


def block_attr(block: Any, name: str, default: Any = None) -> Any:
    """Read *name* from a content block object or wire dict."""
    if isinstance(block, dict):
        return block.get(name, default)
    return getattr(block, name, default)
