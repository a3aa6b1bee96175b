"""Dispatches planner tool calls to a tool registry and turns every failure into data."""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Sequence,
)

from threadmind.agent.context import RuntimeContext
from threadmind.core.schema import ToolCall
from threadmind.tools import (
    Tool,
    ToolExecutionError,
)

__all__ = ["ToolExecutionError", "execute_tool", "execute_tool_calls"]

logger = logging.getLogger(__name__)


async def execute_tool(
    tools: Mapping[str, Tool],
    name: str,
    args: Dict[str, Any] | None = None,
    context: RuntimeContext | None = None,
) -> Dict[str, Any]:
    """
    Look up *name* in *tools* and invoke it with *args*.

    Parameters
    ----------
    tools:
        The registry offered to the planner for this session.
    name:
        The requested tool name.
    args:
        Raw arguments as produced by the planner.  If *None*, an empty dict is assumed.
    context:
        Ambient runtime context for the tool.

    Returns
    -------
    dict
        The tool result, or ``{"error": ...}`` if the tool is unknown or failed.
    """
    tool = tools.get(name)
    if tool is None:
        logger.warning("Planner requested unknown tool '%s'", name)
        return {"error": f"Tool '{name}' is not registered."}
    return await tool.execute(args or {}, context)


async def execute_tool_calls(
    tools: Mapping[str, Tool],
    calls: Sequence[ToolCall],
    context: RuntimeContext | None = None,
) -> List[Dict[str, Any]]:
    """Run all *calls* of one step concurrently; ``result[i]`` belongs to ``calls[i]``."""
    logger.info("Executing %d tool call(s): %s", len(calls), [call.name for call in calls])
    results = await asyncio.gather(
        *(execute_tool(tools, call.name, call.args, context) for call in calls)
    )
    return list(results)
