"""
Persisted checkpoint record.
"""

from typing import Any, Dict
from pydantic import BaseModel, Field
from datetime import datetime
import uuid


def generate_checkpoint_id() -> str:
    return f"cp_{uuid.uuid4().hex}"


class Checkpoint(BaseModel):
    """
    A snapshot of where a workflow is and what its state looks like.

    Attributes:
        id: Unique, stable checkpoint identifier
        workflow_id: Workflow the checkpoint belongs to
        current_node: Node execution should continue from
        state: Arbitrary state payload
        timestamp: Creation time, never changed afterwards
        metadata: Free-form caller data
    """
    
    id: str = Field(default_factory=generate_checkpoint_id)
    workflow_id: str
    current_node: str
    state: Any = None
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    
    class Config:
        frozen = True
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert the checkpoint to a plain dictionary."""
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "current_node": self.current_node,
            "state": self.state,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }
