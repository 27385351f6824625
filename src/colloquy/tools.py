"""Declarative tool definitions and name-based lookup."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

from colloquy.errors import ToolExecutionError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator


class Tool:
    """A named capability the model may invoke.

    Handlers and validators may be plain functions or coroutine functions.
    A tool without a handler can still be declared (the model sees it), but
    executing it is a reported error.

    Example:
        weather = (
            Tool.make("get_weather")
            .description("Current weather for a city")
            .parameter("city", "string", "City name", required=True)
            .handler(lambda args: {"city": args["city"], "temp_c": 21})
        )
    """

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", name, "Tool name cannot be empty")
        self._name = name
        self._description: str | None = None
        self._parameters: dict[str, dict[str, Any]] = {}
        self._required: list[str] = []
        self._handler: Callable[[dict[str, Any]], Any] | None = None
        self._validator: Callable[[dict[str, Any]], Any] | None = None
        self._timeout: float | None = None

    @classmethod
    def make(cls, name: str) -> Tool:
        return cls(name)

    def description(self, description: str) -> Tool:
        self._description = description
        return self

    def parameter(
        self,
        name: str,
        type: str,  # noqa: A002
        description: str = "",
        *,
        required: bool = False,
        default: Any = None,
        enum: list[Any] | None = None,
    ) -> Tool:
        """Declare an input parameter. Declaration order is preserved."""
        prop: dict[str, Any] = {"type": type}
        if description:
            prop["description"] = description
        if enum is not None:
            prop["enum"] = list(enum)
        if default is not None:
            prop["default"] = default

        self._parameters[name] = prop
        if required and name not in self._required:
            self._required.append(name)
        return self

    def handler(self, handler: Callable[[dict[str, Any]], Any]) -> Tool:
        self._handler = handler
        return self

    def validator(self, validator: Callable[[dict[str, Any]], Any]) -> Tool:
        """Attach an input check: ``False`` or a message string rejects the input."""
        self._validator = validator
        return self

    def timeout(self, seconds: float) -> Tool:
        if seconds <= 0:
            raise ValidationError("timeout", seconds, "timeout must be positive")
        self._timeout = float(seconds)
        return self

    @property
    def name(self) -> str:
        return self._name

    @property
    def required(self) -> list[str]:
        return list(self._required)

    @property
    def parameters(self) -> dict[str, dict[str, Any]]:
        return {k: dict(v) for k, v in self._parameters.items()}

    def get_timeout(self) -> float | None:
        return self._timeout

    def has_handler(self) -> bool:
        return self._handler is not None

    @property
    def is_async(self) -> bool:
        """Whether the handler is a coroutine function."""
        return inspect.iscoroutinefunction(self._handler)

    async def validate_input(self, tool_input: dict[str, Any]) -> str | None:
        """Return an error message when *tool_input* is rejected, else None."""
        for param in self._required:
            if param not in tool_input:
                return f"Required parameter '{param}' is missing"

        if self._validator is None:
            return None

        verdict = self._validator(tool_input)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        if isinstance(verdict, str):
            return verdict
        if verdict is False:
            return f"Validation failed for tool '{self._name}'"
        return None

    def execute_sync(self, tool_input: dict[str, Any]) -> Any:
        """Call the handler without awaiting its result."""
        if self._handler is None:
            raise ToolExecutionError(
                self._name,
                tool_input,
                f"No handler defined for tool '{self._name}'",
            )
        return self._handler(tool_input)

    async def execute(self, tool_input: dict[str, Any]) -> Any:
        """Run the handler, awaiting it when it is asynchronous."""
        result = self.execute_sync(tool_input)
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_dict(self) -> dict[str, Any]:
        """Return the wire tool definition.

        ``properties`` is always present, even when empty, because schema
        validators downstream reject an object schema without it.
        """
        schema: dict[str, Any] = {
            "type": "object",
            "properties": self.parameters,
        }
        if self._required:
            schema["required"] = list(self._required)

        tool: dict[str, Any] = {"name": self._name, "input_schema": schema}
        if self._description is not None:
            tool["description"] = self._description
        return tool

    def __repr__(self) -> str:
        return (
            f"Tool(name={self._name!r}, parameters={list(self._parameters)}, "
            f"handler={'yes' if self._handler else 'no'})"
        )


class ToolRegistry:
    """Ordered collection of tools, unique by name."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> ToolRegistry:
        if not isinstance(tool, Tool):
            raise ValidationError(
                "tools", tool, f"Expected a Tool, got {type(tool).__name__}"
            )
        if tool.name in self._tools:
            raise ValidationError(
                "tools", tool.name, f"Duplicate tool name '{tool.name}'"
            )
        self._tools[tool.name] = tool
        return self

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.to_dict() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
