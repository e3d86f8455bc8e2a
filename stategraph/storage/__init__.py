"""
Storage package - Checkpoint persistence backends.
"""

from stategraph.storage.models import Checkpoint
from stategraph.storage.base import CheckpointStorage
from stategraph.storage.memory import InMemoryCheckpointStorage
from stategraph.storage.file import FileCheckpointStorage

__all__ = [
    "Checkpoint",
    "CheckpointStorage",
    "InMemoryCheckpointStorage",
    "FileCheckpointStorage",
]
