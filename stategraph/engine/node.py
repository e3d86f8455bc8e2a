"""
Node Definition for the StateGraph engine.

A node is a named unit of work. Its handler receives the current state
and returns the next state, either directly or after suspending.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Union
from dataclasses import dataclass, field
from types import MappingProxyType
import asyncio
import functools
import inspect

from stategraph.exceptions import NodeExecutionError


# A handler maps state to new state; it may be sync, async, or return an awaitable
NodeHandler = Callable[[Any], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Node:
    """
    A node in the workflow graph.

    Attributes:
        name: Unique identifier for the node
        handler: Callable that transforms state (sync or async)
        description: Human-readable description
        metadata: Additional node metadata (read-only)
    """

    name: str
    handler: NodeHandler
    description: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Node name cannot be empty")
        if not callable(self.handler):
            raise ValueError(f"Handler for node '{self.name}' must be callable")
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_async(self) -> bool:
        """Check if the handler is a coroutine function."""
        if inspect.iscoroutinefunction(self.handler):
            return True
        # Callable objects with an async __call__
        call = getattr(self.handler, "__call__", None)
        return inspect.iscoroutinefunction(call)

    async def execute(self, state: Any) -> Any:
        """
        Invoke the handler with the given state.

        Sync handlers run in the event loop's default executor so they
        don't block other runs. A handler returning None leaves the state
        unchanged.

        Raises:
            NodeExecutionError: wrapping whatever the handler raised
        """
        try:
            if self.is_async:
                result = await self.handler(state)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None,
                    functools.partial(self.handler, state)
                )
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            raise NodeExecutionError(self.name, e) from e

        if result is None:
            return state
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the node to a dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "handler": getattr(self.handler, "__name__", type(self.handler).__name__),
            "metadata": dict(self.metadata),
        }
