"""Deterministic stand-ins for the Messages API.

Pass the fake explicitly: there is no global switch.

Example:
    claude = Claude.fake([FakeResponse.make("hi")])
    response = await claude.conversation().user("Hello").send()
    claude.assert_sent(lambda payload: payload["messages"][0]["content"] == "Hello")
"""

from __future__ import annotations

import secrets
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

from colloquy.client import Claude
from colloquy.config import DEFAULT_MODEL, Config
from colloquy.models import MessageResponse, TextBlock, ToolUseBlock, Usage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable

DEFAULT_FAKE_TEXT = "Fake response"
DEFAULT_CHUNK_SIZE = 20


class FakeResponse:
    """A canned response, turned into a fresh message on every use."""

    def __init__(self, text: str = "") -> None:
        self.text = text
        self._tool_name: str | None = None
        self._tool_input: dict[str, Any] = {}
        self._stop_reason = "end_turn"
        self._model = DEFAULT_MODEL
        self._input_tokens = 10
        self._output_tokens = 50

    @classmethod
    def make(cls, text: str) -> FakeResponse:
        return cls(text)

    @classmethod
    def with_tool_use(
        cls, name: str, tool_input: dict[str, Any] | None = None
    ) -> FakeResponse:
        """A response that asks for *name* to be called with *tool_input*."""
        response = cls("")
        response._tool_name = name
        response._tool_input = dict(tool_input or {})
        response._stop_reason = "tool_use"
        return response

    def stop_reason(self, reason: str) -> FakeResponse:
        self._stop_reason = reason
        return self

    def model(self, model: str) -> FakeResponse:
        self._model = model
        return self

    def usage(self, input_tokens: int, output_tokens: int) -> FakeResponse:
        self._input_tokens = input_tokens
        self._output_tokens = output_tokens
        return self

    def to_message(self) -> MessageResponse:
        content: list[Any] = []
        if self.text:
            content.append(TextBlock(text=self.text))
        if self._tool_name is not None:
            content.append(
                ToolUseBlock(
                    id=f"toolu_fake_{secrets.token_hex(8)}",
                    name=self._tool_name,
                    input=dict(self._tool_input),
                )
            )
        return MessageResponse(
            id=f"msg_fake_{secrets.token_hex(8)}",
            content=content,
            model=self._model,
            stop_reason=self._stop_reason,
            usage=Usage(self._input_tokens, self._output_tokens),
        )

    def to_events(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[Any]:
        """Server-sent events for this response, text split every *chunk_size* chars."""
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        shell = MessageResponse(
            id=f"msg_fake_{secrets.token_hex(8)}",
            content=[],
            model=self._model,
            usage=Usage(self._input_tokens, 0),
        )
        events: list[Any] = [SimpleNamespace(type="message_start", message=shell)]
        for start in range(0, len(self.text), chunk_size):
            events.append(
                SimpleNamespace(
                    type="content_block_delta",
                    index=0,
                    delta=SimpleNamespace(
                        type="text_delta", text=self.text[start : start + chunk_size]
                    ),
                )
            )
        events.append(
            SimpleNamespace(
                type="message_delta",
                delta=SimpleNamespace(stop_reason=self._stop_reason, stop_sequence=None),
                usage=SimpleNamespace(output_tokens=self._output_tokens),
            )
        )
        events.append(SimpleNamespace(type="message_stop"))
        return events

    def __repr__(self) -> str:
        return f"FakeResponse(text={self.text!r}, stop_reason={self._stop_reason!r})"


async def _replay(events: Iterable[Any]) -> AsyncIterator[Any]:
    for event in events:
        yield event


class FakeMessages:
    """Recording ``MessagesClient``.

    Responses are served in order; once exhausted the last one repeats. With
    no responses at all every call gets ``"Fake response"``.
    """

    def __init__(
        self,
        responses: Iterable[FakeResponse | str] = (),
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        token_count: int = 10,
    ) -> None:
        self._responses: list[FakeResponse] = [
            r if isinstance(r, FakeResponse) else FakeResponse.make(r) for r in responses
        ]
        self._index = 0
        self._recorded: list[dict[str, Any]] = []
        self.chunk_size = chunk_size
        self.token_count = token_count

    def add_response(self, response: FakeResponse | str) -> FakeMessages:
        if not isinstance(response, FakeResponse):
            response = FakeResponse.make(response)
        self._responses.append(response)
        return self

    def _next(self) -> FakeResponse:
        if not self._responses:
            return FakeResponse.make(DEFAULT_FAKE_TEXT)
        response = self._responses[min(self._index, len(self._responses) - 1)]
        if self._index < len(self._responses) - 1:
            self._index += 1
        return response

    async def create_message(self, payload: dict[str, Any]) -> MessageResponse:
        self._recorded.append(payload)
        return self._next().to_message()

    async def create_message_stream(self, payload: dict[str, Any]) -> AsyncIterator[Any]:
        self._recorded.append(payload)
        return _replay(self._next().to_events(self.chunk_size))

    async def count_tokens(self, payload: dict[str, Any]) -> int:
        del payload
        return self.token_count

    def recorded(self) -> list[dict[str, Any]]:
        return list(self._recorded)

    def sent(self, predicate: Callable[[dict[str, Any]], bool]) -> bool:
        return any(predicate(payload) for payload in self._recorded)


class PendingClaudeFake(Claude):
    """A ``Claude`` wired to ``FakeMessages``, with request assertions."""

    def __init__(
        self,
        responses: Iterable[FakeResponse | str] | None = None,
        *,
        config: Config | None = None,
    ) -> None:
        self.fake_messages = FakeMessages(responses or ())
        super().__init__(
            config if config is not None else Config(use_mock=True),
            client=self.fake_messages,
        )

    def fake_token_count(self, tokens: int) -> PendingClaudeFake:
        self.fake_messages.token_count = tokens
        return self

    def recorded(self) -> list[dict[str, Any]]:
        return self.fake_messages.recorded()

    def assert_sent(self, predicate: Callable[[dict[str, Any]], bool]) -> None:
        if not self.fake_messages.sent(predicate):
            raise AssertionError("The expected request was not sent.")

    def assert_not_sent(self, predicate: Callable[[dict[str, Any]], bool]) -> None:
        if self.fake_messages.sent(predicate):
            raise AssertionError("An unexpected request was sent.")

    def assert_sent_count(self, count: int) -> None:
        sent = len(self.fake_messages.recorded())
        if sent != count:
            raise AssertionError(f"Expected {count} requests, but {sent} were sent.")

    def assert_nothing_sent(self) -> None:
        self.assert_sent_count(0)
