"""Tool execution for tool-use turns.

Every tool_use block in a response yields exactly one ``ToolResult``, in
block order. Failures of any kind (unknown tool, missing handler, invalid
input, handler exception, timeout, unserializable result) become
``is_error`` results so sibling calls still run and the model can react.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from colloquy.errors import ToolExecutionError
from colloquy.models import ToolResult, block_attr, block_type
from colloquy.tools import Tool, ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Run the tools requested by a model response.

    Tools within one step run sequentially so results align positionally
    with the blocks that produced them.
    """

    def __init__(
        self,
        tools: ToolRegistry | Iterable[Tool] = (),
        *,
        default_timeout: float | None = None,
    ) -> None:
        self._registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self._default_timeout = default_timeout

    def _find_tool(self, name: Any) -> Tool | None:
        return self._registry.get(name) if isinstance(name, str) else None

    def has_executable_tools(self, response: Any) -> bool:
        """Whether any tool_use block names a registered tool with a handler."""
        for block in getattr(response, "content", None) or []:
            if block_type(block) != "tool_use":
                continue
            tool = self._find_tool(block_attr(block, "name"))
            if tool is not None and tool.has_handler():
                return True
        return False

    async def execute_tools_from_response(self, response: Any) -> list[ToolResult]:
        """Execute every tool_use block in *response*, in order."""
        results: list[ToolResult] = []
        for block in getattr(response, "content", None) or []:
            if block_type(block) != "tool_use":
                continue
            results.append(await self._execute_block(block))
        return results

    async def _execute_block(self, block: Any) -> ToolResult:
        tool_use_id = str(block_attr(block, "id", ""))
        name = block_attr(block, "name", "")
        raw_input = block_attr(block, "input")
        tool_input: dict[str, Any] = raw_input if isinstance(raw_input, dict) else {}

        tool = self._find_tool(name)
        if tool is None or not tool.has_handler():
            logger.warning("Tool not found or has no handler: %s", name)
            return ToolResult(
                tool_use_id=tool_use_id,
                content=f"Tool '{name}' not found or has no handler",
                is_error=True,
            )

        try:
            problem = await tool.validate_input(tool_input)
            if problem is not None:
                logger.warning("Tool input rejected: %s: %s", name, problem)
                return ToolResult(
                    tool_use_id=tool_use_id,
                    content=f"Error: {problem}",
                    is_error=True,
                )

            result = await self._execute_with_timeout(tool, tool_input)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Tool execution failed: %s (%s: %s)", name, type(e).__name__, e
            )
            return ToolResult(
                tool_use_id=tool_use_id,
                content=f"Error: {e}",
                is_error=True,
            )

        if isinstance(result, str):
            return ToolResult(tool_use_id=tool_use_id, content=result)
        try:
            content = json.dumps(result, allow_nan=False)
        except (TypeError, ValueError) as e:
            logger.error("Tool result JSON encoding failed: %s (%s)", name, e)
            return ToolResult(
                tool_use_id=tool_use_id,
                content="Error: Tool result could not be encoded as JSON",
                is_error=True,
            )
        return ToolResult(tool_use_id=tool_use_id, content=content)

    async def _execute_with_timeout(
        self, tool: Tool, tool_input: dict[str, Any]
    ) -> Any:
        """Run *tool* under its deadline, or the executor default.

        Async handlers are cancelled at the deadline. Sync handlers run in a
        worker thread; the loop stops waiting at the deadline but the thread
        runs to completion, so long-running sync handlers should check their
        own deadline.
        """
        timeout = tool.get_timeout() or self._default_timeout
        if timeout is None:
            return await tool.execute(tool_input)

        if tool.is_async:
            pending = tool.execute(tool_input)
        else:
            pending = asyncio.to_thread(tool.execute_sync, tool_input)

        try:
            result = await asyncio.wait_for(pending, timeout)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout)
            return result
        except TimeoutError as e:
            raise ToolExecutionError(
                tool.name,
                tool_input,
                f"Tool '{tool.name}' execution timed out",
            ) from e

    @staticmethod
    def build_tool_interaction_messages(
        response: Any, results: list[ToolResult]
    ) -> list[dict[str, Any]]:
        """Return the assistant echo and the user tool_result message."""
        assistant_content: list[dict[str, Any]] = []
        for block in getattr(response, "content", None) or []:
            kind = block_type(block)
            if kind == "text":
                assistant_content.append(
                    {"type": "text", "text": block_attr(block, "text", "")}
                )
            elif kind == "tool_use":
                assistant_content.append(
                    {
                        "type": "tool_use",
                        "id": block_attr(block, "id"),
                        "name": block_attr(block, "name"),
                        "input": block_attr(block, "input") or {},
                    }
                )

        return [
            {"role": "assistant", "content": assistant_content},
            {"role": "user", "content": [r.to_block() for r in results]},
        ]
