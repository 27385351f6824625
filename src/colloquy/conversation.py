"""Fluent conversation builder and the multi-step tool loop."""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from colloquy.config import DEFAULT_MODEL
from colloquy.content import CachedContent
from colloquy.errors import ConfigurationError, ValidationError
from colloquy.executor import ToolExecutor
from colloquy.jobs import ConversationJob
from colloquy.mcp import McpServer, validate_url
from colloquy.models import block_attr, block_type
from colloquy.payload import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_SCHEMA_NAME,
    ConversationConfig,
    PayloadBuilder,
)
from colloquy.streaming import StreamHandler
from colloquy.tools import Tool, ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from colloquy.config import Config
    from colloquy.models import StreamChunk, StreamComplete
    from colloquy.transport.base import MessagesClient

logger = logging.getLogger(__name__)

MIN_THINKING_BUDGET = 1024


class ConversationBuilder:
    """Accumulate a conversation and send it.

    Every setter validates before it mutates, so a rejected value leaves the
    builder exactly as it was.

    Example:
        response = await (
            claude.conversation()
            .system("You are terse.")
            .user("What's the weather in Paris?")
            .tools([weather])
            .max_steps(3)
            .send()
        )
    """

    def __init__(self, client: MessagesClient, config: Config | None = None) -> None:
        self._client = client
        self._settings = config
        self._model = config.default_model if config is not None else DEFAULT_MODEL
        self._system: str | CachedContent | None = None
        self._messages: list[dict[str, Any]] = []
        self._max_tokens = DEFAULT_MAX_TOKENS
        self._temperature: float | None = None
        self._top_k: int | None = None
        self._top_p: float | None = None
        self._stop_sequences: list[str] = []
        self._metadata: dict[str, Any] | None = None
        self._service_tier: str | None = None
        self._timeout: float | None = None
        self._tools: ToolRegistry = ToolRegistry()
        self._mcp_servers: list[McpServer] = []
        self._max_steps = 1
        self._thinking_budget: int | None = None
        self._json_schema: dict[str, Any] | None = None
        self._schema_name = DEFAULT_SCHEMA_NAME

    # --- Model and prompt ---

    def model(self, model: str) -> ConversationBuilder:
        if not isinstance(model, str) or not model.strip():
            raise ValidationError("model", model, "model cannot be empty")
        self._model = model
        return self

    def system(self, system: str | CachedContent) -> ConversationBuilder:
        self._system = system
        return self

    def user(self, content: str | list[dict[str, Any]]) -> ConversationBuilder:
        self._messages.append({"role": "user", "content": content})
        return self

    def assistant(self, content: str) -> ConversationBuilder:
        self._messages.append({"role": "assistant", "content": content})
        return self

    def image(
        self, data: str, media_type: str, text: str | None = None
    ) -> ConversationBuilder:
        """Append a user turn with a base64 image and optional text."""
        source = {"type": "base64", "media_type": media_type, "data": data}
        return self._append_media("image", source, text)

    def image_url(self, url: str, text: str | None = None) -> ConversationBuilder:
        """Append a user turn with an image fetched by URL.

        The URL goes through the same SSRF check as MCP server URLs.
        """
        validate_url(url)
        return self._append_media("image", {"type": "url", "url": url}, text)

    def pdf(self, data: str, text: str | None = None) -> ConversationBuilder:
        """Append a user turn with a base64 PDF document and optional text."""
        source = {"type": "base64", "media_type": "application/pdf", "data": data}
        return self._append_media("document", source, text)

    def _append_media(
        self, kind: str, source: dict[str, Any], text: str | None
    ) -> ConversationBuilder:
        content: list[dict[str, Any]] = [{"type": kind, "source": source}]
        if text is not None:
            content.append({"type": "text", "text": text})
        self._messages.append({"role": "user", "content": content})
        return self

    # --- Sampling ---

    def max_tokens(self, tokens: int) -> ConversationBuilder:
        if tokens < 1:
            raise ValidationError("max_tokens", tokens, "max_tokens must be at least 1")
        self._max_tokens = tokens
        return self

    def temperature(self, temperature: float) -> ConversationBuilder:
        if not 0.0 <= temperature <= 1.0:
            raise ValidationError(
                "temperature",
                temperature,
                "Temperature must be between 0.0 and 1.0",
            )
        self._temperature = temperature
        return self

    def top_k(self, k: int) -> ConversationBuilder:
        if k < 1:
            raise ValidationError("top_k", k, "top_k must be at least 1")
        self._top_k = k
        return self

    def top_p(self, p: float) -> ConversationBuilder:
        if not 0.0 <= p <= 1.0:
            raise ValidationError("top_p", p, "top_p must be between 0.0 and 1.0")
        self._top_p = p
        return self

    def stop_sequences(self, sequences: Iterable[str]) -> ConversationBuilder:
        self._stop_sequences = list(sequences)
        return self

    def metadata(self, metadata: dict[str, Any]) -> ConversationBuilder:
        self._metadata = dict(metadata)
        return self

    def service_tier(self, tier: str) -> ConversationBuilder:
        self._service_tier = tier
        return self

    # --- Tools ---

    def timeout(self, seconds: float) -> ConversationBuilder:
        """Default deadline for tools that do not declare their own."""
        if seconds <= 0:
            raise ValidationError("timeout", seconds, "timeout must be positive")
        self._timeout = float(seconds)
        return self

    def tools(self, tools: Iterable[Tool]) -> ConversationBuilder:
        """Replace the tool set. Names must be unique."""
        self._tools = ToolRegistry(tools)
        return self

    def mcp(self, servers: Iterable[McpServer | str]) -> ConversationBuilder:
        """Replace the MCP servers; bare names resolve against ``Config.mcp_servers``."""
        configured = self._settings.mcp_servers if self._settings is not None else {}
        resolved: list[McpServer] = []
        for server in servers:
            if isinstance(server, McpServer):
                resolved.append(server)
            elif server in configured:
                resolved.append(McpServer.from_config(server, configured[server]))
            else:
                raise ConfigurationError(
                    f"MCP server '{server}' not found in config",
                    hint="Register it under Config(mcp_servers={...}).",
                )
        self._mcp_servers = resolved
        return self

    def max_steps(self, steps: int) -> ConversationBuilder:
        if steps < 1:
            raise ValidationError("max_steps", steps, "max_steps must be at least 1")
        self._max_steps = steps
        return self

    def extended_thinking(self, budget_tokens: int) -> ConversationBuilder:
        if budget_tokens < MIN_THINKING_BUDGET:
            raise ValidationError(
                "budget_tokens",
                budget_tokens,
                "Extended thinking budget must be at least 1024 tokens",
            )
        self._thinking_budget = budget_tokens
        return self

    def schema(
        self,
        schema: dict[str, Any] | type[BaseModel],
        name: str = DEFAULT_SCHEMA_NAME,
    ) -> ConversationBuilder:
        """Constrain the reply to *schema* (a JSON schema or a pydantic model)."""
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            json_schema = schema.model_json_schema()
        elif isinstance(schema, dict):
            json_schema = dict(schema)
        else:
            raise ValidationError(
                "schema",
                schema,
                "schema must be a dict or a pydantic BaseModel subclass",
            )
        if not name.strip():
            raise ValidationError("schema_name", name, "schema name cannot be empty")
        self._json_schema = json_schema
        self._schema_name = name
        return self

    # --- Snapshots ---

    @property
    def messages(self) -> list[dict[str, Any]]:
        """A copy of the conversation history."""
        return list(self._messages)

    def to_config(self) -> ConversationConfig:
        return ConversationConfig(
            model=self._model,
            messages=tuple(self._messages),
            system=self._system,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            top_k=self._top_k,
            top_p=self._top_p,
            stop_sequences=tuple(self._stop_sequences),
            metadata=self._metadata,
            service_tier=self._service_tier,
            tools=tuple(self._tools),
            mcp_servers=tuple(self._mcp_servers),
            max_steps=self._max_steps,
            thinking_budget=self._thinking_budget,
            json_schema=self._json_schema,
            schema_name=self._schema_name,
            tool_timeout=self._timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_config().to_dict()

    def build_payload(self) -> dict[str, Any]:
        """Return the wire request for the current state."""
        return PayloadBuilder(self.to_config()).build()

    # --- Execution ---

    async def send(self) -> Any:
        """Run the tool loop and return the final response.

        When ``max_steps`` is exhausted the last response is returned as-is,
        even if it still asks for a tool; check ``stop_reason`` to detect it.
        """
        builder = PayloadBuilder(self.to_config())
        executor = ToolExecutor(self._tools, default_timeout=self._timeout)
        payload = builder.build()
        response: Any = None

        for step in range(1, self._max_steps + 1):
            response = await self._client.create_message(payload)
            stop_reason = getattr(response, "stop_reason", None)
            logger.debug(
                "Step %d/%d: stop_reason=%s", step, self._max_steps, stop_reason
            )

            if stop_reason != "tool_use" or not executor.has_executable_tools(response):
                self._append_assistant_response(response)
                return response

            results = await executor.execute_tools_from_response(response)
            if not results:
                self._append_assistant_response(response)
                return response

            logger.debug("Step %d: executed %d tool call(s)", step, len(results))
            self._messages.extend(
                executor.build_tool_interaction_messages(response, results)
            )
            builder = builder.with_messages(self._messages)
            payload = builder.build()

        logger.debug("Step budget of %d exhausted", self._max_steps)
        return response

    async def stream(self, callback: Callable[[StreamChunk], Any]) -> StreamComplete:
        """Stream a single response. Tools are declared but never executed."""
        payload = PayloadBuilder(self.to_config()).build()
        handler = StreamHandler()
        complete = await handler.stream(self._client, payload, callback)

        message = handler.assistant_message(complete.full_text)
        if message is not None:
            self._messages.append(message)
        return complete

    def queue(
        self, callback: str, context: dict[str, Any] | None = None
    ) -> ConversationJob:
        """Freeze the conversation into a background job.

        *callback* is an import path (``"package.module:Callback"``) resolved
        by the worker. Tool handlers are not carried.
        """
        config = self.to_config()
        return ConversationJob(
            config=replace(config, tools=tuple(t.to_dict() for t in self._tools)),
            callback=callback,
            context=dict(context or {}),
        )

    def _append_assistant_response(self, response: Any) -> None:
        """Record the first text block; thinking and tool_use blocks are skipped."""
        for block in getattr(response, "content", None) or []:
            if block_type(block) == "text":
                self._messages.append(
                    {"role": "assistant", "content": block_attr(block, "text", "")}
                )
                return

    @staticmethod
    def extract_structured_output(
        response: Any, model: type[BaseModel] | None = None
    ) -> Any:
        """Return the first tool_use input, validated into *model* when given."""
        for block in getattr(response, "content", None) or []:
            if block_type(block) == "tool_use":
                data = block_attr(block, "input") or {}
                return model.model_validate(data) if model is not None else data
        return None
