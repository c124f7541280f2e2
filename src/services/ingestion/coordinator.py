"""Per-document ingestion pipeline and multi-document scheduler.

One document moves through::

    fetch -> normalize -> segment -> enrich -> embed -> save

and reports every stage transition through the shared
:class:`~src.pipeline.progress_tracker.ProgressTracker`.  Fragment and
question vectors are computed before the store is touched; the delete of the
document's previous rows and the inserts of the new ones then run in one
transaction (:meth:`IFragmentStore.replace_document`), so readers see either
the old fragment set or the new one.  Two runs for the same document (for
example a page queued twice) take turns at that step, so the later run
replaces the earlier run's rows instead of adding to them.

Failure isolation is per document: an exception anywhere in one document's
run becomes that document's ``error`` stage and a failed
:class:`DocumentIngestionResult`; other documents carry on.

Multi-document runs split the input into batches of ``batch_size``.  Within
a batch, documents start ``start_delay_seconds`` apart (by position) and at
most ``document_concurrency`` run at once; batches run one after another.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from src.config.components import IngestionConfig
from src.interfaces.content_source import IContentSource
from src.interfaces.fragment_store import IFragmentStore
from src.models.pipeline import IngestionStage
from src.models.rag import DocumentIngestionResult
from src.pipeline.progress_tracker import ProgressListener, ProgressTracker
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.enricher import Enricher
from src.services.ingestion.normalizer import ContentNormalizer
from src.services.ingestion.segmenter import Segmenter
from src.utils.concurrency import staggered, throttled_gather
from src.utils.errors import StorageError
from src.utils.text import html_to_text

logger = structlog.get_logger(logger_name=__name__)

# Enrichment progress rises from the ENRICHING to the EMBEDDING percentage.
_ENRICH_START = 50
_ENRICH_END = 80
_SAVING_QUESTIONS = 95


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class IngestionCoordinator:
    """Drives documents from the content source into the fragment store.

    All collaborators are injected so tests can swap any of them.
    """

    def __init__(
        self,
        normalizer: ContentNormalizer,
        segmenter: Segmenter,
        enricher: Enricher,
        batcher: EmbeddingBatcher,
        store: IFragmentStore,
        tracker: ProgressTracker,
        config: IngestionConfig | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._segmenter = segmenter
        self._enricher = enricher
        self._batcher = batcher
        self._store = store
        self._tracker = tracker
        self._config = config or IngestionConfig()
        # document_id -> (lock, number of runs holding or waiting for it)
        self._save_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Single document
    # ------------------------------------------------------------------

    async def process_document(
        self, document_id: str, source: IContentSource
    ) -> DocumentIngestionResult:
        """Ingest one document, replacing whatever was stored for it before.

        Never raises for pipeline failures; they are reported through the
        ``error`` stage and the returned result.
        """
        started = time.perf_counter()
        try:
            return await self._run_pipeline(document_id, source, started)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            logger.error("document_ingestion_failed", document_id=document_id, error=message)
            await self._tracker.emit(
                document_id, IngestionStage.ERROR, message="Ingestion failed", error=message
            )
            return DocumentIngestionResult(
                document_id=document_id,
                success=False,
                elapsed_ms=_elapsed_ms(started),
                error=message,
            )

    @asynccontextmanager
    async def _exclusive_save(self, document_id: str) -> AsyncIterator[None]:
        """Serialize the delete-then-insert of runs for the same document."""
        lock, users = self._save_locks.get(document_id, (asyncio.Lock(), 0))
        self._save_locks[document_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._save_locks[document_id]
            if users == 1:
                del self._save_locks[document_id]
            else:
                self._save_locks[document_id] = (lock, users - 1)

    async def _run_pipeline(
        self, document_id: str, source: IContentSource, started: float
    ) -> DocumentIngestionResult:
        emit = self._tracker.emit

        await emit(document_id, IngestionStage.FETCHING, message="Fetching page content")
        page = await source.get_page_content(document_id)

        await emit(document_id, IngestionStage.CLEANING, message="Cleaning markup")
        cleaned = self._normalizer.normalize(page.html)

        await emit(document_id, IngestionStage.SEGMENTING, message="Splitting into fragments")
        segmentation = await self._segmenter.segment(cleaned)
        fragments = segmentation.fragments
        if not fragments:
            await emit(document_id, IngestionStage.COMPLETED, message="No content to index")
            logger.info("document_ingestion_empty", document_id=document_id)
            return DocumentIngestionResult(
                document_id=document_id, success=True, elapsed_ms=_elapsed_ms(started)
            )

        await emit(
            document_id,
            IngestionStage.ENRICHING,
            message=f"Generating questions for {len(fragments)} fragments",
        )

        async def _on_fragment_done(done: int, total: int) -> None:
            span = _ENRICH_END - _ENRICH_START
            await emit(
                document_id,
                IngestionStage.ENRICHING,
                progress=_ENRICH_START + (span * done) // total,
                message=f"Questions generated for {done}/{total} fragments",
            )

        enrichments = await self._enricher.enrich_many(
            fragments,
            context=f"Page: {page.title}" if page.title else None,
            on_fragment_done=_on_fragment_done,
        )

        await emit(document_id, IngestionStage.EMBEDDING, message="Embedding fragments and questions")
        url = page.url or f"{self._config.base_url.rstrip('/')}/pages/viewpage.action?pageId={document_id}"
        display_texts = [Segmenter.add_provenance(f, page.title, url) for f in fragments]
        index_texts = [html_to_text(f) or f for f in fragments]
        fragment_embeddings = await self._batcher.embed_batch(index_texts)

        # Flattened questions keep the index of their owning fragment.
        questions: list[str] = []
        owners: list[int] = []
        for position, enrichment in enumerate(enrichments):
            for question in enrichment.questions:
                questions.append(question)
                owners.append(position)
        question_embeddings = await self._batcher.embed_batch(questions)

        await emit(document_id, IngestionStage.SAVING, message="Saving fragments")
        fragments_saved = 0
        questions_saved = 0
        async with self._exclusive_save(document_id), self._store.replace_document(
            document_id
        ) as writer:
            deleted = await writer.delete_document()
            fragment_ids: list[int | None] = []
            for display, index, vector in zip(
                display_texts, index_texts, fragment_embeddings.vectors
            ):
                try:
                    fragment_ids.append(await writer.insert_fragment(display, index, vector))
                    fragments_saved += 1
                except StorageError as exc:
                    logger.warning(
                        "fragment_insert_failed", document_id=document_id, error=str(exc)
                    )
                    fragment_ids.append(None)

            await emit(
                document_id,
                IngestionStage.SAVING,
                progress=_SAVING_QUESTIONS,
                message="Saving questions",
            )
            for question, owner, vector in zip(questions, owners, question_embeddings.vectors):
                fragment_id = fragment_ids[owner]
                if fragment_id is None:
                    continue
                try:
                    await writer.insert_question(fragment_id, question, vector)
                    questions_saved += 1
                except StorageError as exc:
                    logger.warning(
                        "question_insert_failed", document_id=document_id, error=str(exc)
                    )

        tokens = (
            segmentation.tokens_used
            + sum(e.tokens_used for e in enrichments)
            + fragment_embeddings.tokens_used
            + question_embeddings.tokens_used
        )
        cost = (
            segmentation.cost
            + sum(e.cost for e in enrichments)
            + fragment_embeddings.cost
            + question_embeddings.cost
        )
        result = DocumentIngestionResult(
            document_id=document_id,
            success=True,
            fragments_saved=fragments_saved,
            questions_saved=questions_saved,
            failed_fragment_embeddings=len(fragment_embeddings.failed_indices),
            failed_question_embeddings=len(question_embeddings.failed_indices),
            tokens_used=tokens,
            estimated_cost=cost,
            elapsed_ms=_elapsed_ms(started),
        )
        await emit(
            document_id,
            IngestionStage.COMPLETED,
            message=f"Saved {fragments_saved} fragments and {questions_saved} questions",
        )
        logger.info(
            "document_ingestion_complete",
            document_id=document_id,
            replaced_fragments=deleted,
            fragments=fragments_saved,
            questions=questions_saved,
            tokens=tokens,
            cost=round(cost, 6),
            elapsed_ms=result.elapsed_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Many documents
    # ------------------------------------------------------------------

    async def process_documents(
        self,
        document_ids: list[str],
        source: IContentSource,
        on_progress: ProgressListener | None = None,
    ) -> list[DocumentIngestionResult]:
        """Ingest *document_ids* in staggered, bounded batches.

        Results are returned in submission order.  *on_progress*, when given,
        receives every event of these documents for the duration of the run.
        """
        document_ids = list(dict.fromkeys(document_ids))
        if on_progress is not None:
            for document_id in document_ids:
                self._tracker.subscribe(on_progress, document_id)

        results: list[DocumentIngestionResult] = []
        try:
            for document_id in document_ids:
                await self._tracker.emit(document_id, IngestionStage.QUEUED, message="Queued")

            semaphore = asyncio.Semaphore(self._config.document_concurrency)
            batch_size = self._config.batch_size
            for start in range(0, len(document_ids), batch_size):
                batch = document_ids[start : start + batch_size]
                coros = [
                    staggered(
                        self.process_document(document_id, source),
                        position * self._config.start_delay_seconds,
                    )
                    for position, document_id in enumerate(batch)
                ]
                outcomes = await throttled_gather(coros, semaphore, return_exceptions=False)
                results.extend(outcomes)
        finally:
            if on_progress is not None:
                for document_id in document_ids:
                    self._tracker.unsubscribe(on_progress, document_id)

        succeeded = [r for r in results if r.success]
        logger.info(
            "ingestion_run_complete",
            documents=len(results),
            succeeded=len(succeeded),
            failed=len(results) - len(succeeded),
            fragments=sum(r.fragments_saved for r in results),
            questions=sum(r.questions_saved for r in results),
            tokens=sum(r.tokens_used for r in results),
            cost=round(sum(r.estimated_cost for r in results), 6),
        )
        return results

    async def expand_roots(
        self,
        root_ids: list[str],
        source: IContentSource,
        max_depth: int | None = None,
    ) -> list[str]:
        """Return *root_ids* followed by their descendants, without duplicates.

        A root whose tree cannot be walked is still returned on its own.
        """
        depth = max_depth or self._config.max_descendant_depth
        ordered: dict[str, None] = {}
        for root_id in root_ids:
            ordered.setdefault(root_id, None)
            try:
                descendants = await source.get_descendants(root_id, max_depth=depth)
            except Exception as exc:  # noqa: BLE001
                logger.warning("descendant_expansion_failed", root_id=root_id, error=str(exc))
                continue
            for page in descendants:
                ordered.setdefault(page.id, None)
        logger.info("roots_expanded", roots=len(root_ids), documents=len(ordered))
        return list(ordered)
