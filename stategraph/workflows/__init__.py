"""
Workflows package - Runners that compose the engine's pieces.
"""

from stategraph.workflows.resumable import ResumableWorkflow

__all__ = ["ResumableWorkflow"]
