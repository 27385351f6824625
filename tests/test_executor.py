"""Tool execution for a single tool-use response."""

from __future__ import annotations

import asyncio
import json
import time

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from colloquy.executor import ToolExecutor
from colloquy.models import MessageResponse, TextBlock, ToolResult, ToolUseBlock
from colloquy.tools import Tool

pytestmark = pytest.mark.unit


def _response(*blocks: object) -> MessageResponse:
    return MessageResponse(
        id="msg_1", content=list(blocks), model="m", stop_reason="tool_use"
    )


def _echo_tool(name: str = "echo") -> Tool:
    return Tool.make(name).handler(lambda args: args)


@pytest.mark.asyncio
async def test_results_align_with_tool_use_blocks() -> None:
    executor = ToolExecutor([_echo_tool("a"), _echo_tool("b")])
    response = _response(
        TextBlock("working on it"),
        ToolUseBlock("t1", "a", {"x": 1}),
        ToolUseBlock("t2", "b", {"y": 2}),
    )

    results = await executor.execute_tools_from_response(response)

    assert [r.tool_use_id for r in results] == ["t1", "t2"]
    assert [json.loads(r.content) for r in results] == [{"x": 1}, {"y": 2}]
    assert not any(r.is_error for r in results)


@settings(max_examples=25, deadline=None)
@given(
    names=st.lists(st.sampled_from(["echo", "missing", "broken"]), max_size=6)
)
def test_one_result_per_block_in_order(names: list[str]) -> None:
    """Every block yields one result with its own id, whatever the outcome."""

    def explode(args: dict[str, object]) -> object:
        raise RuntimeError("kaboom")

    executor = ToolExecutor([_echo_tool(), Tool.make("broken").handler(explode)])
    blocks = [ToolUseBlock(f"id{i}", name, {}) for i, name in enumerate(names)]

    results = asyncio.run(executor.execute_tools_from_response(_response(*blocks)))

    assert [r.tool_use_id for r in results] == [b.id for b in blocks]
    for block, result in zip(blocks, results):
        assert result.is_error is (block.name != "echo")


@pytest.mark.asyncio
async def test_unknown_or_handlerless_tool_becomes_error_result() -> None:
    executor = ToolExecutor([Tool.make("declared_only")])
    response = _response(
        ToolUseBlock("t1", "nope", {}), ToolUseBlock("t2", "declared_only", {})
    )

    assert executor.has_executable_tools(response) is False
    results = await executor.execute_tools_from_response(response)

    assert results[0].content == "Tool 'nope' not found or has no handler"
    assert results[1].content == "Tool 'declared_only' not found or has no handler"
    assert all(r.is_error for r in results)


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_sibling_calls() -> None:
    def explode(args: dict[str, object]) -> object:
        raise ValueError("bad input")

    executor = ToolExecutor([Tool.make("boom").handler(explode), _echo_tool()])
    response = _response(ToolUseBlock("t1", "boom", {}), ToolUseBlock("t2", "echo", {"k": 1}))

    first, second = await executor.execute_tools_from_response(response)

    assert first.is_error is True
    assert first.content == "Error: bad input"
    assert second.is_error is False


@pytest.mark.asyncio
async def test_missing_required_parameter_is_reported() -> None:
    tool = Tool.make("search").parameter("query", "string", required=True).handler(
        lambda args: "never"
    )
    executor = ToolExecutor([tool])

    (result,) = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "search", {}))
    )

    assert result.is_error is True
    assert result.content == "Error: Required parameter 'query' is missing"


@pytest.mark.asyncio
async def test_validator_message_is_reported() -> None:
    tool = (
        Tool.make("search")
        .validator(lambda args: "query too short")
        .handler(lambda args: "never")
    )

    (result,) = await ToolExecutor([tool]).execute_tools_from_response(
        _response(ToolUseBlock("t1", "search", {}))
    )

    assert result.content == "Error: query too short"
    assert result.is_error is True


@pytest.mark.asyncio
async def test_string_results_pass_through_and_others_are_json() -> None:
    executor = ToolExecutor(
        [
            Tool.make("text").handler(lambda args: "plain"),
            Tool.make("number").handler(lambda args: 42),
        ]
    )

    text, number = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "text", {}), ToolUseBlock("t2", "number", {}))
    )

    assert text.content == "plain"
    assert number.content == "42"


@pytest.mark.asyncio
async def test_unserializable_result_is_an_error_result() -> None:
    executor = ToolExecutor([Tool.make("weird").handler(lambda args: object())])

    (result,) = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "weird", {}))
    )

    assert result.is_error is True
    assert result.content == "Error: Tool result could not be encoded as JSON"


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
async def test_non_finite_floats_are_an_error_result(value: float) -> None:
    executor = ToolExecutor([Tool.make("stats").handler(lambda args: {"value": value})])

    (result,) = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "stats", {}))
    )

    assert result.is_error is True
    assert result.content == "Error: Tool result could not be encoded as JSON"


@pytest.mark.asyncio
async def test_async_handler_timeout_is_reported() -> None:
    async def slow(args: dict[str, object]) -> str:
        await asyncio.sleep(5)
        return "late"

    executor = ToolExecutor([Tool.make("slow").handler(slow).timeout(0.05)])

    (result,) = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "slow", {}))
    )

    assert result.is_error is True
    assert result.content == "Error: Tool 'slow' execution timed out"


@pytest.mark.asyncio
async def test_sync_handler_uses_executor_default_timeout() -> None:
    def slow(args: dict[str, object]) -> str:
        time.sleep(0.3)
        return "late"

    executor = ToolExecutor([Tool.make("slow").handler(slow)], default_timeout=0.05)

    (result,) = await executor.execute_tools_from_response(
        _response(ToolUseBlock("t1", "slow", {}))
    )

    assert result.content == "Error: Tool 'slow' execution timed out"


def test_interaction_messages_echo_blocks_and_results() -> None:
    response = _response(TextBlock("let me check"), ToolUseBlock("t1", "echo", {"a": 1}))

    messages = ToolExecutor.build_tool_interaction_messages(
        response, [ToolResult("t1", "ok"), ToolResult("t2", "bad", is_error=True)]
    )

    assert messages == [
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "let me check"},
                {"type": "tool_use", "id": "t1", "name": "echo", "input": {"a": 1}},
            ],
        },
        {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "t1", "content": "ok"},
                {
                    "type": "tool_result",
                    "tool_use_id": "t2",
                    "content": "bad",
                    "is_error": True,
                },
            ],
        },
    ]
