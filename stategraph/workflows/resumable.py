"""
Resumable Workflow Runner.

Runs a graph while checkpointing after every step, so an interrupted,
failed or step-bounded run can carry on from where it stopped:

    workflow = ResumableWorkflow(graph, CheckpointManager(), workflow_id="order-42")
    result = await workflow.run({"order": 42}, max_steps=3)
    if result.status == ExecutionStatus.MAX_STEPS_REACHED:
        result = await workflow.resume()

Each checkpoint records the node that should run next together with the
state it should receive. A failing node never produces a checkpoint, so
resuming retries it with the state it was given.

A checkpoint that cannot be saved aborts the run and its storage error
propagates out of run() or resume(), so the latest checkpoint is never
silently behind the work already done.
"""

from typing import Any, Optional
import logging
import uuid

from stategraph.engine.checkpoint import CheckpointManager
from stategraph.engine.executor import (
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    ExecutionStep,
    WorkflowExecutor,
)
from stategraph.engine.graph import WorkflowGraph
from stategraph.exceptions import CheckpointNotFoundError
from stategraph.storage import Checkpoint


logger = logging.getLogger(__name__)


class ResumableWorkflow:
    """
    A graph bound to a workflow id and a checkpoint manager.

    Attributes:
        graph: The workflow graph to run
        checkpoints: Where progress is recorded
        workflow_id: Identifier shared by all checkpoints of this workflow
        cleanup_on_complete: Drop the workflow's checkpoints once a run completes
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        checkpoints: CheckpointManager,
        workflow_id: Optional[str] = None,
        executor: Optional[WorkflowExecutor] = None,
        cleanup_on_complete: bool = True
    ):
        self.graph = graph
        self.checkpoints = checkpoints
        self.workflow_id = workflow_id or str(uuid.uuid4())
        self.executor = executor or WorkflowExecutor()
        self.cleanup_on_complete = cleanup_on_complete

    async def run(self, initial_state: Any, max_steps: Optional[int] = None) -> ExecutionResult:
        """Start from the entry point, checkpointing the initial state first."""
        await self.checkpoints.create_checkpoint(
            self.workflow_id,
            self.graph.entry_point,
            initial_state,
            metadata={"reason": "start"},
        )
        return await self._execute(initial_state, self.graph.entry_point, max_steps)

    async def resume(self, max_steps: Optional[int] = None) -> ExecutionResult:
        """
        Continue from the most recent checkpoint.

        Raises:
            CheckpointNotFoundError: if the workflow has no checkpoints
        """
        checkpoint = await self.checkpoints.get_latest_checkpoint(self.workflow_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(self.workflow_id)
        return await self.resume_from(checkpoint, max_steps)

    async def resume_from(self, checkpoint: Checkpoint, max_steps: Optional[int] = None) -> ExecutionResult:
        """Continue from a specific checkpoint of this workflow."""
        if checkpoint.workflow_id != self.workflow_id:
            raise ValueError(
                f"Checkpoint {checkpoint.id} belongs to workflow "
                f"'{checkpoint.workflow_id}', not '{self.workflow_id}'"
            )
        logger.info(
            f"Resuming workflow '{self.workflow_id}' from checkpoint {checkpoint.id} "
            f"at '{checkpoint.current_node}'"
        )
        return await self._execute(checkpoint.state, checkpoint.current_node, max_steps)

    async def _execute(self, state: Any, start_node: str, max_steps: Optional[int]) -> ExecutionResult:
        option_kwargs = {
            "start_node": start_node,
            "on_step": self._checkpoint_step,
            "raise_callback_errors": True,
        }
        if max_steps is not None:
            option_kwargs["max_steps"] = max_steps

        result = await self.executor.execute(self.graph, state, ExecutionOptions(**option_kwargs))

        if result.status == ExecutionStatus.COMPLETED and self.cleanup_on_complete:
            await self.checkpoints.cleanup(self.workflow_id)
        return result

    async def _checkpoint_step(self, step: ExecutionStep, state: Any) -> None:
        if step.next_node is None:
            return
        await self.checkpoints.create_checkpoint(
            self.workflow_id,
            step.next_node,
            state,
            metadata={"after_node": step.node, "step": step.step},
        )
