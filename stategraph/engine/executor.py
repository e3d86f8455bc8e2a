"""
Async Workflow Executor.

The executor runs a built graph against an initial state one node at a
time, resolving transitions after each step, and reports the outcome as an
ExecutionResult. It never mutates the graph and keeps no state between
runs.
"""

from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import inspect
import logging
import time
import uuid

from stategraph.config import settings
from stategraph.engine.graph import WorkflowGraph
from stategraph.exceptions import NodeExecutionError


logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    """Terminal status of a workflow execution."""
    COMPLETED = "completed"
    FAILED = "failed"
    MAX_STEPS_REACHED = "max_steps_reached"


@dataclass
class ExecutionStep:
    """A single step in the execution log."""
    step: int
    node: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = "success"
    error: Optional[str] = None
    route_taken: Optional[Hashable] = None
    next_node: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "node": self.node,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "route_taken": self.route_taken,
            "next_node": self.next_node,
        }


@dataclass
class ExecutionError:
    """Where and why a run failed."""
    message: str
    node: str
    state: Any
    error_type: str = "Exception"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "node": self.node,
            "state": self.state,
            "error_type": self.error_type,
        }


@dataclass
class ExecutionMetadata:
    """Timing information, populated for every outcome."""
    started_at: datetime
    completed_at: datetime
    duration_ms: float
    step_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "step_count": self.step_count,
        }


@dataclass
class ExecutionResult:
    """Result of a workflow execution."""
    run_id: str
    graph_id: str
    status: ExecutionStatus
    final_state: Any
    executed_nodes: List[str]
    metadata: ExecutionMetadata
    error: Optional[ExecutionError] = None
    execution_log: List[ExecutionStep] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "graph_id": self.graph_id,
            "status": self.status.value,
            "final_state": self.final_state,
            "executed_nodes": list(self.executed_nodes),
            "metadata": self.metadata.to_dict(),
            "error": self.error.to_dict() if self.error else None,
            "execution_log": [step.to_dict() for step in self.execution_log],
        }


StepCallback = Callable[[ExecutionStep, Any], Union[None, Awaitable[None]]]


@dataclass
class ExecutionOptions:
    """
    Per-run options.

    Attributes:
        max_steps: Upper bound on node invocations in this run
        start_node: Node to begin at instead of the graph's entry point
        on_step: Callback invoked after each successful step (sync or async)
        run_id: Identifier for this run (generated if not provided)
        raise_callback_errors: Let on_step exceptions abort the run and propagate
            out of execute() instead of being logged
    """
    max_steps: int = field(default_factory=lambda: settings.MAX_STEPS)
    start_node: Optional[str] = None
    on_step: Optional[StepCallback] = None
    run_id: Optional[str] = None
    raise_callback_errors: bool = False

    def __post_init__(self):
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")


class _RunFailed(Exception):
    """Internal signal carrying the failure of the current run."""

    def __init__(self, error: ExecutionError):
        self.error = error
        super().__init__(error.message)


class WorkflowExecutor:
    """
    Async workflow executor.

    Executes a graph with a given initial state, handling:
    - Sequential node execution
    - Conditional branching
    - A step bound against runtime loops
    - Per-step execution logging
    - Failure attribution to the node that raised

    Usage:
        executor = WorkflowExecutor()
        result = await executor.execute(graph, {"input": "data"})
    """

    async def execute(
        self,
        graph: WorkflowGraph,
        initial_state: Any,
        options: Optional[ExecutionOptions] = None
    ) -> ExecutionResult:
        """
        Execute the graph with the given initial state.

        Args:
            graph: The built workflow graph
            initial_state: State passed to the first node
            options: Step bound, start node and step callback

        Returns:
            ExecutionResult with final state, status and logs
        """
        options = options or ExecutionOptions()
        run_id = options.run_id or str(uuid.uuid4())
        started_at = datetime.now()
        start_time = time.perf_counter()

        state = initial_state
        executed_nodes: List[str] = []
        execution_log: List[ExecutionStep] = []
        status = ExecutionStatus.COMPLETED
        error: Optional[ExecutionError] = None
        current_node: Optional[str] = options.start_node or graph.entry_point

        logger.info(f"Run {run_id}: starting graph '{graph.name}' at '{current_node}'")

        try:
            while current_node is not None:
                if len(executed_nodes) >= options.max_steps:
                    status = ExecutionStatus.MAX_STEPS_REACHED
                    logger.warning(
                        f"Run {run_id}: max steps ({options.max_steps}) reached "
                        f"before '{current_node}'"
                    )
                    break

                node = graph.get_node(current_node)
                if node is None:
                    raise _RunFailed(ExecutionError(
                        message=f"Node '{current_node}' not found in graph",
                        node=current_node,
                        state=state,
                        error_type="NodeNotFound",
                    ))

                executed_nodes.append(node.name)
                step = ExecutionStep(
                    step=len(executed_nodes),
                    node=node.name,
                    started_at=datetime.now(),
                )
                execution_log.append(step)
                logger.info(f"Executing node: {node.name} (step {step.step})")

                node_start_time = time.perf_counter()
                try:
                    new_state = await node.execute(state)
                except NodeExecutionError as e:
                    self._finish_step(step, node_start_time, error=e.cause)
                    logger.error(f"Node {node.name} failed: {e.cause}")
                    raise _RunFailed(ExecutionError(
                        message=str(e.cause),
                        node=node.name,
                        state=state,
                        error_type=type(e.cause).__name__,
                    ))
                state = new_state

                try:
                    next_node, route_key = graph.resolve_next(node.name, state)
                except Exception as e:
                    self._finish_step(step, node_start_time, error=e)
                    logger.error(f"Routing from node {node.name} failed: {e}")
                    raise _RunFailed(ExecutionError(
                        message=f"Condition failed: {e}",
                        node=node.name,
                        state=state,
                        error_type=type(e).__name__,
                    ))

                self._finish_step(step, node_start_time)
                step.route_taken = route_key
                step.next_node = next_node
                if route_key is not None:
                    logger.debug(f"Conditional route: {route_key} -> {next_node}")

                await self._notify(options.on_step, step, state, options.raise_callback_errors)
                current_node = next_node

        except _RunFailed as failure:
            status = ExecutionStatus.FAILED
            error = failure.error

        completed_at = datetime.now()
        result = ExecutionResult(
            run_id=run_id,
            graph_id=graph.graph_id,
            status=status,
            final_state=state,
            executed_nodes=executed_nodes,
            metadata=ExecutionMetadata(
                started_at=started_at,
                completed_at=completed_at,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                step_count=len(executed_nodes),
            ),
            error=error,
            execution_log=execution_log,
        )
        logger.info(
            f"Run {run_id}: {status.value} after {len(executed_nodes)} steps "
            f"({result.metadata.duration_ms:.1f}ms)"
        )
        return result

    @staticmethod
    def _finish_step(
        step: ExecutionStep,
        node_start_time: float,
        error: Optional[BaseException] = None
    ) -> None:
        step.completed_at = datetime.now()
        step.duration_ms = (time.perf_counter() - node_start_time) * 1000
        if error is not None:
            step.result = "error"
            step.error = str(error)

    @staticmethod
    async def _notify(
        callback: Optional[StepCallback],
        step: ExecutionStep,
        state: Any,
        raise_errors: bool = False
    ) -> None:
        if callback is None:
            return
        try:
            outcome = callback(step, state)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            if raise_errors:
                logger.error(f"Step callback failed after node {step.node}: {e}")
                raise
            logger.warning(f"Step callback failed: {e}")


async def execute_graph(
    graph: WorkflowGraph,
    initial_state: Any,
    **option_kwargs: Any
) -> ExecutionResult:
    """
    Convenience function to execute a graph.

    Args:
        graph: The workflow graph
        initial_state: Initial state
        **option_kwargs: Fields of ExecutionOptions (max_steps, start_node, ...)

    Returns:
        ExecutionResult
    """
    return await WorkflowExecutor().execute(graph, initial_state, ExecutionOptions(**option_kwargs))
