"""Exception hierarchy for Colloquy."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class ColloquyError(Exception):
    """Base exception for all Colloquy errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ColloquyError):
    """Credentials or setup are missing or invalid. Never retried."""


class ValidationError(ColloquyError):
    """A builder, tool, or MCP input violates a declared constraint.

    The offending field name and value are kept so callers can report them
    without parsing the message.
    """

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        *,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.field = field
        self.value = value


class ToolExecutionError(ColloquyError):
    """A tool handler failed or timed out.

    Inside the tool loop this is folded into an ``is_error`` tool result and
    never escapes ``send()``.
    """

    def __init__(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        message: str,
        *,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.tool_name = tool_name
        self.tool_input = tool_input


class APIError(ColloquyError):
    """Message API call failed.

    The transport attaches retry metadata so retry policies can decide
    without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        error_type: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.error_type = error_type
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class StreamingError(ColloquyError):
    """Establishing or reading a message stream failed.

    Always raised ``from`` the original exception.
    """


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc*, then the exceptions it was raised from or during, once each."""
    queue = deque([exc])
    visited: set[int] = set()
    while queue:
        current = queue.popleft()
        if id(current) in visited:
            continue
        visited.add(id(current))
        yield current
        queue.extend(
            linked
            for linked in (current.__cause__, current.__context__)
            if linked is not None
        )
