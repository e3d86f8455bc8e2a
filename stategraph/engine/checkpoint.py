"""
Checkpoint Manager.

Turns "workflow W is at node X with state S" into a durable record behind
a CheckpointStorage backend and offers workflow-scoped retrieval. It knows
nothing about the executor; callers combine the two.
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import logging

from stategraph.config import Settings, settings as default_settings
from stategraph.storage import (
    Checkpoint,
    CheckpointStorage,
    FileCheckpointStorage,
    InMemoryCheckpointStorage,
)


logger = logging.getLogger(__name__)


class CheckpointManager:
    """
    Creates, loads, lists and deletes workflow checkpoints.
    
    Usage:
        manager = CheckpointManager()
        checkpoint = await manager.create_checkpoint("wf-1", "review", state)
        latest = await manager.get_latest_checkpoint("wf-1")
    """
    
    def __init__(
        self,
        storage: Optional[CheckpointStorage] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            storage: Persistence backend (in-memory if not provided)
            clock: Source of checkpoint timestamps (datetime.now if not provided)
        """
        self.storage = storage or InMemoryCheckpointStorage()
        self._clock = clock or datetime.now
    
    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "CheckpointManager":
        """Create a manager over the backend named by CHECKPOINT_BACKEND."""
        config = config or default_settings
        backend = config.CHECKPOINT_BACKEND.lower()
        if backend == "memory":
            storage: CheckpointStorage = InMemoryCheckpointStorage()
        elif backend == "file":
            storage = FileCheckpointStorage(config.CHECKPOINT_DIR)
        else:
            raise ValueError(f"Unknown checkpoint backend '{config.CHECKPOINT_BACKEND}'")
        return cls(storage)
    
    async def create_checkpoint(
        self,
        workflow_id: str,
        current_node: str,
        state: Any,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Checkpoint:
        """Snapshot a workflow's position and state, persist it and return it."""
        checkpoint = Checkpoint(
            workflow_id=workflow_id,
            current_node=current_node,
            state=state,
            timestamp=self._clock(),
            metadata=metadata or {},
        )
        await self.storage.save(checkpoint)
        logger.info(
            f"Checkpoint {checkpoint.id} created for workflow '{workflow_id}' at '{current_node}'"
        )
        return checkpoint
    
    async def load_checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        """Load a checkpoint by id; None if it doesn't exist."""
        return await self.storage.load(checkpoint_id)
    
    async def list_checkpoints(self, workflow_id: str) -> List[Checkpoint]:
        """All checkpoints of a workflow, newest first."""
        return await self.storage.list(workflow_id)
    
    async def get_latest_checkpoint(self, workflow_id: str) -> Optional[Checkpoint]:
        checkpoints = await self.list_checkpoints(workflow_id)
        return checkpoints[0] if checkpoints else None
    
    async def delete_checkpoint(self, checkpoint_id: str) -> None:
        await self.storage.delete(checkpoint_id)
    
    async def cleanup(self, workflow_id: str) -> None:
        """Delete every checkpoint of one workflow, leaving others alone."""
        await self.storage.delete_by_workflow(workflow_id)
        logger.info(f"Checkpoints cleaned up for workflow '{workflow_id}'")
