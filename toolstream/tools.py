"""
ToolStream - Tool definitions and the tool registry.

Usage:
    ```python
    from toolstream import ToolRegistry

    registry = ToolRegistry()

    @registry.tool(description="Get the current time in a city.", parameters={
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "City name."},
        },
        "required": ["city"],
    })
    def get_time(args: dict) -> dict:
        return {"time": "12:00", "city": args["city"]}

    result = await registry.invoke("get_time", {"city": "Paris"})
    ```
"""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .exceptions import ToolExecutionError, ToolNotFoundError

logger = logging.getLogger("toolstream.tools")

TOOL_NOT_FOUND = "tool not found"
TOOL_HAS_NO_HANDLER = "tool has no handler"


@dataclass
class ToolDefinition:
    """Definition for a tool the model may call.

    The ``parameters`` schema tells the model what arguments the tool
    accepts. The ``handler`` receives those arguments as a single dict and
    returns a JSON-serialisable value; it may be a plain function or a
    coroutine function.

    Example::

        ToolDefinition(
            name="get_weather",
            description="Fetch current weather for a city.",
            parameters={
                "type": "object",
                "properties": {
                    "city": {"type": "string", "description": "City name."},
                },
                "required": ["city"],
            },
            handler=fetch_weather,
        )
    """

    name: str
    description: str
    parameters: Optional[dict[str, Any]] = None
    handler: Optional[Callable[[dict[str, Any]], Any]] = None

    def to_schema(self) -> dict[str, Any]:
        """Return the function declaration sent to the model endpoint."""
        schema: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
        }
        if self.parameters is not None:
            schema["parameters"] = self.parameters
        return schema


def define_tool(
    name: Optional[str] = None,
    description: str = "",
    parameters: Optional[dict[str, Any]] = None,
) -> Callable[[Callable[..., Any]], ToolDefinition]:
    """Decorator that turns a function into a :class:`ToolDefinition`.

    The function's ``__name__`` is used as the tool name unless *name* is
    given, and its docstring as the description unless *description* is.
    """

    def decorator(func: Callable[..., Any]) -> ToolDefinition:
        tool_name = name or func.__name__
        return ToolDefinition(
            name=tool_name,
            description=description or (func.__doc__ or "").strip() or f"Tool: {tool_name}",
            parameters=parameters,
            handler=func,
        )

    return decorator


@dataclass
class ToolCallResult:
    """Outcome of one tool invocation.

    ``result`` is always what gets reported back to the model; on failure it
    is ``{"error": message}`` and ``error`` holds the same message.
    """

    name: str
    result: Any
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise ToolExecutionError if the invocation failed."""
        if self.error is not None:
            raise ToolExecutionError(self.error, tool_name=self.name)


class ToolRegistry:
    """Catalog of invocable tools.

    Tools are registered up front and the registry is only read while
    orchestration runs are in progress. Registering an existing name
    replaces the previous entry.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        definition: ToolDefinition,
        handler: Optional[Callable[[dict[str, Any]], Any]] = None,
    ) -> ToolDefinition:
        """Register a tool, optionally overriding its handler."""
        if handler is not None:
            definition = replace(definition, handler=handler)
        if definition.name in self._tools:
            logger.debug("Replacing registered tool %s", definition.name)
        self._tools[definition.name] = definition
        return definition

    def tool(
        self,
        name: Optional[str] = None,
        description: str = "",
        parameters: Optional[dict[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], ToolDefinition]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Callable[..., Any]) -> ToolDefinition:
            definition = define_tool(name, description, parameters)(func)
            return self.register(definition)

        return decorator

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def lookup(self, name: str) -> ToolDefinition:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is registered.
        """
        definition = self._tools.get(name)
        if definition is None:
            raise ToolNotFoundError(name)
        return definition

    def all(self) -> dict[str, ToolDefinition]:
        """Get a copy of all registered tools."""
        return self._tools.copy()

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, name: str, arguments: Optional[dict[str, Any]] = None) -> ToolCallResult:
        """Run a tool's handler.

        Never raises for handler failures or unknown tools: the failure is
        returned as ``{"error": message}`` so it can be reported back to
        the model.
        """
        arguments = arguments or {}
        definition = self._tools.get(name)
        if definition is None:
            logger.warning("Model requested unknown tool %s", name)
            return ToolCallResult(name=name, result={"error": TOOL_NOT_FOUND}, error=TOOL_NOT_FOUND)
        if definition.handler is None:
            logger.warning("Tool %s has no handler", name)
            return ToolCallResult(
                name=name, result={"error": TOOL_HAS_NO_HANDLER}, error=TOOL_HAS_NO_HANDLER
            )

        t0 = time.time()
        try:
            handler = definition.handler
            if asyncio.iscoroutinefunction(handler):
                result = await handler(arguments)
            else:
                result = await asyncio.to_thread(handler, arguments)
            if asyncio.iscoroutine(result):
                result = await result
        except Exception as e:
            duration_ms = (time.time() - t0) * 1000
            logger.warning("Tool %s failed: %s", name, e)
            return ToolCallResult(
                name=name,
                result={"error": str(e)},
                error=str(e),
                duration_ms=duration_ms,
            )

        duration_ms = (time.time() - t0) * 1000
        logger.debug("Tool %s completed in %.2fms", name, duration_ms)
        return ToolCallResult(name=name, result=result, duration_ms=duration_ms)


def load_registry(path: str) -> ToolRegistry:
    """Import a ToolRegistry from a ``package.module:attribute`` path."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Tools path must look like 'package.module:registry', got {path!r}")
    module = importlib.import_module(module_name)
    registry = getattr(module, attribute)
    if not isinstance(registry, ToolRegistry):
        raise TypeError(f"{path} is not a ToolRegistry")
    return registry
