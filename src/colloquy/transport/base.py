"""Transport protocol: the two Messages API capabilities the core depends on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Iterable


@runtime_checkable
class MessagesClient(Protocol):
    """Minimal Messages API surface: create a message, or stream one.

    Implementations are injected into ``ConversationBuilder``; the fake in
    ``colloquy.testing`` satisfies the same protocol.
    """

    async def create_message(self, payload: dict[str, Any]) -> Any:
        """Send *payload* and return the response message."""
        ...

    async def create_message_stream(
        self, payload: dict[str, Any]
    ) -> AsyncIterable[Any] | Iterable[Any]:
        """Send *payload* with streaming enabled and return the event sequence."""
        ...
