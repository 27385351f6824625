"""Reduce a Messages API event stream into chunks and a final aggregate."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any

from colloquy.errors import StreamingError
from colloquy.models import StreamChunk, StreamComplete

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from colloquy.transport.base import MessagesClient

logger = logging.getLogger(__name__)


def _event_type(event: Any) -> str | None:
    if isinstance(event, dict):
        return event.get("type")
    return getattr(event, "type", None)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


async def _iterate(stream: Any) -> AsyncIterator[Any]:
    if hasattr(stream, "__aiter__"):
        async for event in stream:
            yield event
    else:
        for event in stream:
            yield event


class StreamHandler:
    """Consume stream events, emitting one ``StreamChunk`` per text delta.

    Each event is fully processed (callback included) before the next one is
    pulled from the stream.
    """

    async def stream(
        self,
        client: MessagesClient,
        payload: dict[str, Any],
        callback: Callable[[StreamChunk], Any],
    ) -> StreamComplete:
        try:
            stream = await client.create_message_stream(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise StreamingError(f"Failed to create stream: {e}") from e

        parts: list[str] = []
        index = 0
        message: Any = None
        stop_reason: str | None = None

        try:
            async for event in _iterate(stream):
                kind = _event_type(event)
                if kind == "message_start":
                    message = _field(event, "message")
                elif kind == "content_block_delta":
                    delta = _field(event, "delta")
                    text = _field(delta, "text")
                    if isinstance(text, str):
                        parts.append(text)
                        chunk = StreamChunk(
                            text=text,
                            index=index,
                            type=_field(delta, "type") or "text_delta",
                        )
                        index += 1
                        outcome = callback(chunk)
                        if inspect.isawaitable(outcome):
                            await outcome
                elif kind == "message_delta":
                    reason = _field(_field(event, "delta"), "stop_reason")
                    if reason is not None:
                        stop_reason = reason
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise StreamingError(f"Stream interrupted: {e}") from e

        logger.debug("Stream finished: %d chunk(s), stop_reason=%s", index, stop_reason)
        return StreamComplete(
            message=message,
            full_text="".join(parts),
            stop_reason=stop_reason,
        )

    @staticmethod
    def assistant_message(full_text: str) -> dict[str, Any] | None:
        """Return the assistant turn for streamed text, or None when empty."""
        if full_text == "":
            return None
        return {"role": "assistant", "content": full_text}
