"""Ingestion progress reporting: the progress observer and the task registry."""

from src.pipeline.progress_tracker import ProgressListener, ProgressTracker
from src.pipeline.task_registry import TaskRegistry

__all__ = [
    "ProgressListener",
    "ProgressTracker",
    "TaskRegistry",
]
