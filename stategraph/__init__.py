"""
StateGraph - A resumable, validated state-graph execution engine.

Declare nodes and transitions, validate the graph once, run it step by step
against an evolving state, and checkpoint progress so a run can be resumed.
"""

__version__ = "1.0.0"

from stategraph.engine import (  # noqa: E402
    END,
    CheckpointManager,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    GraphBuilder,
    WorkflowExecutor,
    WorkflowGraph,
    execute_graph,
)
from stategraph.workflows import ResumableWorkflow  # noqa: E402

__all__ = [
    "END",
    "CheckpointManager",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "GraphBuilder",
    "ResumableWorkflow",
    "WorkflowExecutor",
    "WorkflowGraph",
    "execute_graph",
]
