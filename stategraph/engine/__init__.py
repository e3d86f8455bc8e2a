"""
Engine package - Graph construction, execution and checkpointing.
"""

from stategraph.engine.node import Node
from stategraph.engine.graph import (
    END,
    ConditionalEdge,
    Edge,
    EdgeType,
    GraphBuilder,
    Transition,
    WorkflowGraph,
)
from stategraph.engine.executor import (
    ExecutionError,
    ExecutionMetadata,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    ExecutionStep,
    WorkflowExecutor,
    execute_graph,
)
from stategraph.engine.checkpoint import CheckpointManager

__all__ = [
    "END",
    "Node",
    "Edge",
    "ConditionalEdge",
    "EdgeType",
    "Transition",
    "GraphBuilder",
    "WorkflowGraph",
    "WorkflowExecutor",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutionStep",
    "ExecutionError",
    "ExecutionMetadata",
    "execute_graph",
    "CheckpointManager",
]
