"""
Tool registry for threadmind.

This module provides a decorator to register tools and a registry to look them up by name.  A tool
is an async handler taking a validated pydantic arguments model plus the ambient
:class:`~threadmind.agent.context.RuntimeContext`, and returning a JSON-serialisable dict.

The handler's docstring is the description the LLM reads when choosing tools, so it has to state
accurately what the tool does and when it should be used.
"""

import dataclasses
import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    MutableMapping,
    Type,
    TypedDict,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from threadmind.agent.context import RuntimeContext

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, RuntimeContext], Awaitable[Dict[str, Any]]]

ANALYZING_STATUS = "is analyzing results..."

# Modules whose import populates TOOL_REGISTRY.
BUILTIN_TOOL_MODULES = (
    "threadmind.tools.web",
    "threadmind.tools.research",
    "threadmind.tools.canvas",
)


class ToolExecutionError(RuntimeError):
    """Raised inside a tool when it cannot run or its remote service fails."""


@dataclass(frozen=True)
class Tool:
    """A named, schema-validated capability the planner can call."""

    name: str
    description: str
    params: Type[BaseModel]
    handler: ToolHandler
    status: str | None = None

    def json_schema(self) -> Dict[str, Any]:
        """Return the JSON schema of the accepted arguments."""
        schema = self.params.model_json_schema()
        schema.pop("title", None)
        return schema

    def with_handler(self, handler: ToolHandler) -> "Tool":
        """Return a copy of this tool running *handler* instead."""
        return dataclasses.replace(self, handler=handler)

    async def execute(
        self, args: Mapping[str, Any] | BaseModel | None, context: RuntimeContext | None = None
    ) -> Dict[str, Any]:
        """
        Validate *args* and run the handler.

        Never raises: argument errors and every failure inside the handler come back as
        ``{"error": "..."}`` so the planner can read them as data.
        """
        if context is None:
            context = RuntimeContext()

        try:
            if isinstance(args, self.params):
                parsed = args
            else:
                parsed = self.params.model_validate(dict(args or {}))
        except ValidationError as exc:
            logger.warning("Invalid arguments for tool '%s': %s", self.name, exc)
            return {"error": f"Invalid arguments for tool '{self.name}': {exc}"}

        try:
            logger.debug("Executing tool '%s' with args=%s", self.name, parsed)
            return await self.handler(parsed, context)
        except ToolExecutionError as exc:
            logger.warning("Tool '%s' failed: %s", self.name, exc)
            return {"error": str(exc)}
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error in tool '%s'", self.name)
            return {"error": f"Tool '{self.name}' raised an error: {exc}"}


TOOL_REGISTRY: Dict[str, Tool] = {}
"""Global registry of the tools offered to the main assistant."""


def register_tool(
    name: str,
    params: Type[BaseModel],
    status: str | None = None,
    registry: MutableMapping[str, Tool] | None = None,
) -> Callable[[ToolHandler], ToolHandler]:
    """
    Register an async tool handler under *name*.

    The decorated function's docstring becomes the tool description:

        @register_tool("webScrape", ScrapeArgs, status="is scraping a webpage...")
        async def web_scrape(args: ScrapeArgs, context: RuntimeContext) -> dict:
            \"\"\"Scrape a webpage ...\"\"\"

    Parameters
    ----------
    name: str
        Unique tool name, as the planner will call it.
    params: Type[BaseModel]
        Pydantic model describing (and validating) the arguments.
    status: str | None
        Status line shown to the user while the tool runs.
    registry:
        Target registry; defaults to :data:`TOOL_REGISTRY`.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered in *registry*.
    """
    target = TOOL_REGISTRY if registry is None else registry
    if name in target:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: ToolHandler) -> ToolHandler:
        target[name] = Tool(
            name=name,
            description=inspect.getdoc(fn) or "",
            params=params,
            handler=fn,
            status=status,
        )
        return fn

    return wrapper


def default_registry() -> Mapping[str, Tool]:
    """Import the built-in tool modules and return the populated registry."""
    for module in BUILTIN_TOOL_MODULES:
        importlib.import_module(module)
    return TOOL_REGISTRY


def wrap_tool(tool: Tool) -> Tool:
    """
    Return a copy of *tool* that reports progress around each run.

    The tool's own status line goes out before the handler starts, and
    :data:`ANALYZING_STATUS` once it returns.  The shared registry entry is left untouched.
    """
    inner = tool.handler
    status = tool.status or f"is using {tool.name}..."

    async def handler(args: Any, context: RuntimeContext) -> Dict[str, Any]:
        await context.report(status)
        result = await inner(args, context)
        await context.report(ANALYZING_STATUS)
        return result

    return tool.with_handler(handler)


class ToolSchema(TypedDict):
    """
    Schema for a tool function
    """

    description: str
    parameters: Mapping[str, Any]


def get_tool_schemas(registry: Mapping[str, Tool]) -> Mapping[str, ToolSchema]:
    """Extract description and JSON-schema parameters from *registry*."""
    return {
        name: ToolSchema(description=tool.description, parameters=tool.json_schema())
        for name, tool in registry.items()
    }
