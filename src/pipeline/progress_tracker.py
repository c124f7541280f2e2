"""Per-document ingestion progress with observer-style listeners.

The ingestion coordinator is the only emitter: it calls :meth:`emit` on
every stage transition.  Consumers subscribe either to one document or to
every document and receive immutable :class:`ProgressEvent` objects::

    Coordinator --emit()--> ProgressTracker --callback(event)--> TaskRegistry
                                                             --> CLI printer
                                                             --> (any listener)

Progress is clamped to 0-100 and never decreases within one run of a
document, except that ``error`` reports the percentage reached when the
failure happened.  A ``queued`` event starts a new run.  Listener errors are
logged and skipped so a broken consumer cannot stall ingestion.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Union

import structlog

from src.models.pipeline import STAGE_PROGRESS, IngestionStage, ProgressEvent
from src.utils.logging import get_logger

ProgressListener = Callable[[ProgressEvent], Union[Awaitable[None], None]]


class ProgressTracker:
    """Emits ingestion progress events and fans them out to listeners."""

    def __init__(self) -> None:
        # In-flight documents only; cleared when a run reaches a terminal stage.
        self._current: dict[str, ProgressEvent] = {}
        self._document_listeners: dict[str, list[ProgressListener]] = {}
        self._global_listeners: list[ProgressListener] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    async def emit(
        self,
        document_id: str,
        stage: IngestionStage,
        progress: int | None = None,
        message: str = "",
        error: str | None = None,
    ) -> ProgressEvent:
        """Record a stage transition for *document_id* and notify listeners.

        Parameters
        ----------
        document_id:
            Document the event belongs to.
        stage:
            Stage being entered.
        progress:
            Percentage; defaults to the stage's nominal value.
        message:
            Human-readable status message.
        error:
            Failure description, for ``error`` events.
        """
        previous = self._current.get(document_id)
        if stage is IngestionStage.QUEUED:
            previous = None

        if stage is IngestionStage.ERROR:
            value = previous.progress if previous else 0
        else:
            value = STAGE_PROGRESS.get(stage, 0) if progress is None else progress
            value = max(0, min(100, int(value)))
            if previous is not None:
                value = max(value, previous.progress)

        event = ProgressEvent(
            document_id=document_id,
            stage=stage,
            progress=value,
            message=message,
            error=error,
        )

        if stage.is_terminal:
            self._current.pop(document_id, None)
        else:
            self._current[document_id] = event

        self._logger.debug(
            "progress_update",
            document_id=document_id,
            stage=stage.value,
            progress=value,
            message=message,
        )
        await self._notify(event)
        return event

    def current(self, document_id: str) -> ProgressEvent | None:
        """Return the latest event of an in-flight document, if any."""
        return self._current.get(document_id)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: ProgressListener, document_id: str | None = None) -> None:
        """Register *callback* for one document, or for all when *document_id* is ``None``."""
        listeners = (
            self._global_listeners
            if document_id is None
            else self._document_listeners.setdefault(document_id, [])
        )
        if callback not in listeners:
            listeners.append(callback)

    def unsubscribe(self, callback: ProgressListener, document_id: str | None = None) -> None:
        """Remove a callback registered with :meth:`subscribe`."""
        if document_id is None:
            if callback in self._global_listeners:
                self._global_listeners.remove(callback)
            return
        listeners = self._document_listeners.get(document_id, [])
        if callback in listeners:
            listeners.remove(callback)
        if not listeners:
            self._document_listeners.pop(document_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify(self, event: ProgressEvent) -> None:
        listeners = [
            *self._global_listeners,
            *self._document_listeners.get(event.document_id, []),
        ]
        for callback in listeners:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    document_id=event.document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
