"""Bounded registry of ingestion task records keyed by document id.

One :class:`IndexingTask` per document, ordered by submission.  The registry
subscribes to the :class:`~src.pipeline.progress_tracker.ProgressTracker`
and folds every event into the matching record.

Retention: at most ``retention_limit`` records are kept.  When the limit is
exceeded the oldest *finished* record (completed or error) is evicted
first; only when every record is still active does the oldest record of
any status go.
"""

from __future__ import annotations

import uuid
from collections import OrderedDict
from datetime import datetime, timezone

import structlog

from src.config.components import TaskRegistryConfig
from src.models.pipeline import (
    IndexingTask,
    IngestionStage,
    IngestionStatusSnapshot,
    ProgressEvent,
    TaskStatus,
)

logger = structlog.get_logger(logger_name=__name__)


class TaskRegistry:
    """In-memory map from document id to its latest task record."""

    def __init__(self, config: TaskRegistryConfig | None = None) -> None:
        self._config = config or TaskRegistryConfig()
        self._tasks: OrderedDict[str, IndexingTask] = OrderedDict()

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def retention_limit(self) -> int:
        return self._config.retention_limit

    def submit(self, document_id: str, title: str = "") -> IndexingTask:
        """Start a fresh record for *document_id*, replacing any earlier one."""
        task = IndexingTask(task_id=str(uuid.uuid4()), document_id=document_id, title=title)
        self._tasks.pop(document_id, None)
        self._tasks[document_id] = task
        self._evict()
        return task

    def get(self, document_id: str) -> IndexingTask | None:
        return self._tasks.get(document_id)

    def handle_progress(self, event: ProgressEvent) -> None:
        """Progress listener: fold *event* into the document's record."""
        task = self._tasks.get(event.document_id)
        if task is None:
            task = self.submit(event.document_id)
        self._tasks[event.document_id] = task.model_copy(
            update={
                "status": TaskStatus.from_stage(event.stage),
                "stage": event.stage,
                "progress": event.progress,
                "message": event.message,
                "error": event.error if event.stage is IngestionStage.ERROR else None,
                "updated_at": datetime.now(tz=timezone.utc),  # noqa: UP017
            }
        )

    def snapshot(self, recent: int | None = None) -> IngestionStatusSnapshot:
        """Return status counts and the *recent* most recently submitted records."""
        recent = self._config.recent_limit if recent is None else recent
        counts = {status: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status] += 1
        latest = list(reversed(self._tasks.values()))[:recent] if recent > 0 else []
        return IngestionStatusSnapshot(
            queued=counts[TaskStatus.QUEUED],
            processing=counts[TaskStatus.PROCESSING],
            completed=counts[TaskStatus.COMPLETED],
            errors=counts[TaskStatus.ERROR],
            total=len(self._tasks),
            tasks=latest,
        )

    def _evict(self) -> None:
        while len(self._tasks) > self._config.retention_limit:
            victim = next(
                (doc_id for doc_id, task in self._tasks.items() if task.stage.is_terminal),
                next(iter(self._tasks)),
            )
            del self._tasks[victim]
            logger.debug("task_record_evicted", document_id=victim)
