"""
Exceptions raised by the StateGraph engine.

Construction-time problems raise subclasses of GraphBuildError (which is
also a ValueError) before a graph exists. Node failures during a run are
captured into the ExecutionResult instead of propagating.
"""

from typing import List, Optional


class StateGraphError(Exception):
    """Base class for all engine errors."""


class GraphBuildError(StateGraphError, ValueError):
    """A graph declaration is structurally invalid."""


class DuplicateNodeError(GraphBuildError):
    """A node with the same name was already added."""
    
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node '{name}' already exists in the graph")


class UnknownNodeError(GraphBuildError):
    """A transition or entry point refers to a node that was never added."""
    
    def __init__(self, name: str, role: str = "Node"):
        self.name = name
        self.role = role
        super().__init__(f"{role} '{name}' not found in graph")


class MissingEntryPointError(GraphBuildError):
    """build() was called before an entry point was set."""
    
    def __init__(self):
        super().__init__("Graph entry point must be set before building")


class CycleDetectedError(GraphBuildError):
    """The declared transitions contain a cycle."""
    
    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Graph contains a cycle: {' -> '.join(cycle)}")


class NodeExecutionError(StateGraphError, RuntimeError):
    """A node handler raised while processing state."""
    
    def __init__(self, node_name: str, cause: BaseException):
        self.node_name = node_name
        self.cause = cause
        super().__init__(f"Error in node '{node_name}': {cause}")


class CheckpointStorageError(StateGraphError):
    """Persisted checkpoint data could not be read back."""


class CheckpointNotFoundError(StateGraphError, LookupError):
    """There is no checkpoint to resume from."""
    
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"No checkpoint found for workflow '{workflow_id}'")
