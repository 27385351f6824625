"""Tool declaration, validation, and registry behavior."""

from __future__ import annotations

import pytest

from colloquy.errors import ToolExecutionError, ValidationError
from colloquy.tools import Tool, ToolRegistry

pytestmark = pytest.mark.unit


def test_required_parameter_serializes_into_schema() -> None:
    tool = Tool.make("search").description("Web search").parameter(
        "query", "string", "What to look for", required=True
    )

    definition = tool.to_dict()

    assert definition["name"] == "search"
    assert definition["description"] == "Web search"
    assert definition["input_schema"]["type"] == "object"
    assert definition["input_schema"]["properties"]["query"]["type"] == "string"
    assert definition["input_schema"]["required"] == ["query"]


def test_empty_parameter_set_still_serializes_properties() -> None:
    definition = Tool.make("ping").to_dict()

    assert definition["input_schema"] == {"type": "object", "properties": {}}
    assert "description" not in definition


def test_parameter_enum_and_default_are_kept_in_order() -> None:
    tool = (
        Tool.make("convert")
        .parameter("unit", "string", enum=["c", "f"], default="c")
        .parameter("value", "number", required=True)
    )

    props = tool.to_dict()["input_schema"]["properties"]

    assert list(props) == ["unit", "value"]
    assert props["unit"] == {"type": "string", "enum": ["c", "f"], "default": "c"}


def test_empty_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Tool.make("")


@pytest.mark.parametrize("seconds", [0, -1.5])
def test_non_positive_timeout_is_rejected(seconds: float) -> None:
    with pytest.raises(ValidationError) as exc:
        Tool.make("slow").timeout(seconds)
    assert exc.value.field == "timeout"


@pytest.mark.asyncio
async def test_execute_without_handler_reports_no_handler() -> None:
    tool = Tool.make("orphan")

    assert tool.has_handler() is False
    with pytest.raises(ToolExecutionError, match="No handler defined for tool 'orphan'"):
        await tool.execute({})
    with pytest.raises(ToolExecutionError, match="No handler defined"):
        tool.execute_sync({})


@pytest.mark.asyncio
async def test_execute_awaits_async_handlers() -> None:
    async def handler(args: dict[str, object]) -> str:
        return f"hello {args['name']}"

    tool = Tool.make("greet").handler(handler)

    assert tool.is_async is True
    assert await tool.execute({"name": "Ada"}) == "hello Ada"


@pytest.mark.asyncio
async def test_validate_input_reports_missing_required_parameter() -> None:
    tool = Tool.make("search").parameter("query", "string", required=True)

    assert await tool.validate_input({}) == "Required parameter 'query' is missing"
    assert await tool.validate_input({"query": "x"}) is None


@pytest.mark.asyncio
async def test_validator_false_and_string_both_reject() -> None:
    rejecting = Tool.make("a").validator(lambda args: False)
    explaining = Tool.make("b").validator(lambda args: "query too short")
    accepting = Tool.make("c").validator(lambda args: True)

    assert await rejecting.validate_input({}) == "Validation failed for tool 'a'"
    assert await explaining.validate_input({}) == "query too short"
    assert await accepting.validate_input({}) is None


@pytest.mark.asyncio
async def test_async_validator_is_awaited() -> None:
    async def check(args: dict[str, object]) -> bool:
        return bool(args.get("ok"))

    tool = Tool.make("guarded").validator(check)

    assert await tool.validate_input({"ok": True}) is None
    assert await tool.validate_input({}) == "Validation failed for tool 'guarded'"


def test_registry_preserves_order_and_rejects_duplicates() -> None:
    registry = ToolRegistry([Tool.make("b"), Tool.make("a")])

    assert [t.name for t in registry] == ["b", "a"]
    assert "a" in registry
    assert len(registry) == 2
    assert registry.get("missing") is None
    assert [d["name"] for d in registry.definitions()] == ["b", "a"]

    with pytest.raises(ValidationError, match="Duplicate tool name 'a'"):
        registry.register(Tool.make("a"))
