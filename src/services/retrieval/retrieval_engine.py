"""Similarity search over the fragment and question collections.

Threshold convention: ``threshold`` is a **maximum cosine distance**
(0 = identical direction, lower is more similar).  The same bound applies
to both collections.  A hit's similarity is reported as ``1 - distance``.

Search flow:

1. Validate the request (non-empty query, ``0 <= threshold <= 1``,
   ``1 <= limit <= max_limit``) before any external call.
2. Embed the query.
3. Query both collections concurrently.
4. Merge by ``fragment_id``, keeping each fragment's lowest distance; a
   question hit keeps the question text that matched.
5. Sort ascending by distance (ties by fragment id) and truncate to ``limit``.
"""

from __future__ import annotations

import asyncio
import time

import structlog

from src.config.components import RetrievalConfig
from src.interfaces.fragment_store import IFragmentStore
from src.models.rag import Collection, NeighborRow, RankedFragment, SearchResponse
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.utils.errors import SearchValidationError

logger = structlog.get_logger(logger_name=__name__)


class RetrievalEngine:
    """Ranks fragments against a search query."""

    def __init__(
        self,
        batcher: EmbeddingBatcher,
        store: IFragmentStore,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._batcher = batcher
        self._store = store
        self._config = config or RetrievalConfig()

    def validate(
        self, query: object, threshold: object, limit: object
    ) -> tuple[str, float, int]:
        """Return the normalized ``(query, threshold, limit)`` or raise.

        Raises
        ------
        SearchValidationError
            With a reason naming the offending parameter.
        """
        if not isinstance(query, str) or not query.strip():
            raise SearchValidationError(message="Query must be a non-empty string")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise SearchValidationError(message="Threshold must be a number between 0 and 1")
        if not 0.0 <= float(threshold) <= 1.0:
            raise SearchValidationError(message="Threshold must be between 0 and 1")
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise SearchValidationError(
                message=f"Limit must be an integer between 1 and {self._config.max_limit}"
            )
        if not 1 <= limit <= self._config.max_limit:
            raise SearchValidationError(
                message=f"Limit must be between 1 and {self._config.max_limit}"
            )
        return query.strip(), float(threshold), limit

    async def search(
        self,
        query: str,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> SearchResponse:
        """Return up to *limit* fragments within *threshold* cosine distance of *query*."""
        started = time.perf_counter()
        query, threshold, limit = self.validate(
            query,
            self._config.default_threshold if threshold is None else threshold,
            self._config.default_limit if limit is None else limit,
        )

        embedded = await self._batcher.embed_query(query)
        vector = embedded.vectors[0]

        question_rows, fragment_rows = await asyncio.gather(
            self._store.nearest_neighbors(Collection.QUESTION, vector, threshold),
            self._store.nearest_neighbors(Collection.FRAGMENT, vector, threshold),
        )
        results = self.merge_neighbors([*question_rows, *fragment_rows], limit)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "search_complete",
            query_chars=len(query),
            question_hits=len(question_rows),
            fragment_hits=len(fragment_rows),
            results=len(results),
            threshold=threshold,
            elapsed_ms=elapsed_ms,
        )
        return SearchResponse(
            query=query,
            results=results,
            total_results=len(results),
            threshold=threshold,
            processing_time_ms=elapsed_ms,
            tokens_used=embedded.tokens_used,
            estimated_cost=embedded.cost,
        )

    @staticmethod
    def merge_neighbors(rows: list[NeighborRow], limit: int) -> list[RankedFragment]:
        """Deduplicate *rows* by fragment, keep the best distance, rank and truncate.

        A later row replaces the current best for its fragment only when it
        is strictly closer, so on equal distance the first row seen wins.
        """
        best: dict[int, NeighborRow] = {}
        for row in rows:
            current = best.get(row.fragment_id)
            if current is None or row.distance < current.distance:
                best[row.fragment_id] = row

        ranked = sorted(best.values(), key=lambda r: (r.distance, r.fragment_id))
        return [
            RankedFragment(
                fragment_id=row.fragment_id,
                document_id=row.document_id,
                matched_question=row.question if row.source is Collection.QUESTION else None,
                display_text=row.display_text,
                distance=row.distance,
                source=row.source,
            )
            for row in ranked[:limit]
        ]
