"""
In-Memory Checkpoint Storage.

Keeps checkpoints in a dict guarded by an asyncio lock. Checkpoints are
deep-copied on the way in and out so callers can't change what was saved.
"""

from typing import Dict, List, Optional
import asyncio

from stategraph.storage.base import CheckpointStorage
from stategraph.storage.models import Checkpoint


class InMemoryCheckpointStorage(CheckpointStorage):
    """
    Process-local checkpoint storage.
    
    Suitable for tests and single-process use; nothing survives a restart.
    """
    
    def __init__(self):
        self._checkpoints: Dict[str, Checkpoint] = {}
        self._lock = asyncio.Lock()
    
    async def save(self, checkpoint: Checkpoint) -> None:
        async with self._lock:
            # Re-inserting moves the id to the end so save order stays accurate
            self._checkpoints.pop(checkpoint.id, None)
            self._checkpoints[checkpoint.id] = checkpoint.model_copy(deep=True)
    
    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        async with self._lock:
            stored = self._checkpoints.get(checkpoint_id)
            return stored.model_copy(deep=True) if stored else None
    
    async def list(self, workflow_id: str) -> List[Checkpoint]:
        async with self._lock:
            matching = [
                cp.model_copy(deep=True)
                for cp in self._checkpoints.values()
                if cp.workflow_id == workflow_id
            ]
        return self.newest_first(matching)
    
    async def delete(self, checkpoint_id: str) -> None:
        async with self._lock:
            self._checkpoints.pop(checkpoint_id, None)
    
    async def delete_by_workflow(self, workflow_id: str) -> None:
        async with self._lock:
            for checkpoint_id in [
                cp.id for cp in self._checkpoints.values() if cp.workflow_id == workflow_id
            ]:
                del self._checkpoints[checkpoint_id]
    
    def __len__(self) -> int:
        return len(self._checkpoints)
