"""
Checkpoint storage interface.

Any persistence backend (memory, file, database, ...) implements this
so the checkpoint manager stays independent of storage details.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from stategraph.storage.models import Checkpoint


class CheckpointStorage(ABC):
    """Abstract persistence boundary for checkpoints."""
    
    @abstractmethod
    async def save(self, checkpoint: Checkpoint) -> None:
        """Persist a checkpoint, replacing any with the same id."""
    
    @abstractmethod
    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        """Return the checkpoint, or None if there is no such id."""
    
    @abstractmethod
    async def list(self, workflow_id: str) -> List[Checkpoint]:
        """Return a workflow's checkpoints, newest first."""
    
    @abstractmethod
    async def delete(self, checkpoint_id: str) -> None:
        """Remove one checkpoint. Missing ids are ignored."""
    
    @abstractmethod
    async def delete_by_workflow(self, workflow_id: str) -> None:
        """Remove every checkpoint of one workflow."""
    
    @staticmethod
    def newest_first(checkpoints: List[Checkpoint]) -> List[Checkpoint]:
        """
        Order checkpoints newest first.
        
        Expects save order; ties on timestamp keep the last saved first.
        """
        return sorted(reversed(checkpoints), key=lambda cp: cp.timestamp, reverse=True)
