"""Ingestion progress and task-status models.

:class:`IngestionStage` is the per-document state machine::

    queued -> fetching -> cleaning -> segmenting -> enriching
           -> embedding -> saving -> completed

with ``error`` reachable from any stage.  The coordinator emits one
:class:`ProgressEvent` per transition; the task registry folds those events
into one :class:`IndexingTask` record per document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IngestionStage(str, Enum):  # noqa: UP042
    """Stages a document moves through during ingestion."""

    QUEUED = "queued"
    FETCHING = "fetching"
    CLEANING = "cleaning"
    SEGMENTING = "segmenting"
    ENRICHING = "enriching"
    EMBEDDING = "embedding"
    SAVING = "saving"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionStage.COMPLETED, IngestionStage.ERROR)


# Percent reported when a stage starts.
STAGE_PROGRESS: dict[IngestionStage, int] = {
    IngestionStage.QUEUED: 0,
    IngestionStage.FETCHING: 10,
    IngestionStage.CLEANING: 20,
    IngestionStage.SEGMENTING: 30,
    IngestionStage.ENRICHING: 50,
    IngestionStage.EMBEDDING: 80,
    IngestionStage.SAVING: 90,
    IngestionStage.COMPLETED: 100,
}


class TaskStatus(str, Enum):  # noqa: UP042
    """Coarse status shown by the ingestion status endpoint."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @classmethod
    def from_stage(cls, stage: IngestionStage) -> TaskStatus:
        if stage is IngestionStage.QUEUED:
            return cls.QUEUED
        if stage is IngestionStage.COMPLETED:
            return cls.COMPLETED
        if stage is IngestionStage.ERROR:
            return cls.ERROR
        return cls.PROCESSING


class ProgressEvent(BaseModel):
    """One stage transition for one document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    stage: IngestionStage
    progress: int = Field(ge=0, le=100)
    message: str = ""
    error: str | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class IndexingTask(BaseModel):
    """Latest known status of one document's ingestion."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    document_id: str
    title: str = ""
    status: TaskStatus = TaskStatus.QUEUED
    stage: IngestionStage = IngestionStage.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    error: str | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class IngestionStatusSnapshot(BaseModel):
    """Counts per status plus the most recently submitted tasks."""

    model_config = ConfigDict(frozen=True)

    queued: int = 0
    processing: int = 0
    completed: int = 0
    errors: int = 0
    total: int = 0
    tasks: list[IndexingTask] = Field(default_factory=list)
