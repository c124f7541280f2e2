"""Unit tests for RetrievalEngine — validation, merge/rank, search over the memory store."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.config.components import EmbeddingBatcherConfig, RetrievalConfig
from src.models.rag import Collection, NeighborRow
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.retrieval.retrieval_engine import RetrievalEngine
from src.utils.errors import SearchValidationError
from tests.conftest import InMemoryFragmentStore, MockEmbeddingProvider, _hash_to_vector


def _row(fragment_id: int, distance: float, source: Collection, question: str | None = None) -> NeighborRow:
    return NeighborRow(
        fragment_id=fragment_id,
        document_id=f"doc-{fragment_id}",
        display_text=f"fragment {fragment_id}",
        distance=distance,
        source=source,
        question=question,
    )


# ======================================================================
# Validation
# ======================================================================


class TestValidate:
    @pytest.fixture()
    def engine(self) -> RetrievalEngine:
        return RetrievalEngine(
            EmbeddingBatcher(MockEmbeddingProvider()), InMemoryFragmentStore(), RetrievalConfig()
        )

    @pytest.mark.parametrize("query", ["", "   ", None, 12])
    def test_rejects_bad_query(self, engine: RetrievalEngine, query: object) -> None:
        with pytest.raises(SearchValidationError, match="Query"):
            engine.validate(query, 0.5, 10)

    @pytest.mark.parametrize("threshold", [-0.1, 1.5, "0.5", True, None])
    def test_rejects_bad_threshold(self, engine: RetrievalEngine, threshold: object) -> None:
        with pytest.raises(SearchValidationError, match="Threshold"):
            engine.validate("deploy", threshold, 10)

    @pytest.mark.parametrize("limit", [0, -1, 101, 2.5, False, "10"])
    def test_rejects_bad_limit(self, engine: RetrievalEngine, limit: object) -> None:
        with pytest.raises(SearchValidationError, match="Limit"):
            engine.validate("deploy", 0.5, limit)

    def test_normalizes_valid_input(self, engine: RetrievalEngine) -> None:
        assert engine.validate("  deploy  ", 0, 1) == ("deploy", 0.0, 1)
        assert engine.validate("deploy", 1.0, 100) == ("deploy", 1.0, 100)

    @pytest.mark.asyncio
    async def test_invalid_request_makes_no_external_call(self) -> None:
        provider = MockEmbeddingProvider()
        store = InMemoryFragmentStore()
        store.nearest_neighbors = AsyncMock(return_value=[])  # type: ignore[method-assign]
        engine = RetrievalEngine(EmbeddingBatcher(provider), store)

        with pytest.raises(SearchValidationError):
            await engine.search("deploy", threshold=2.0)

        assert provider.calls == []
        store.nearest_neighbors.assert_not_awaited()


# ======================================================================
# Merge
# ======================================================================


class TestMergeNeighbors:
    def test_keeps_lowest_distance_per_fragment(self) -> None:
        rows = [
            _row(1, 0.30, Collection.QUESTION, "q-far"),
            _row(1, 0.10, Collection.QUESTION, "q-near"),
            _row(1, 0.20, Collection.FRAGMENT),
            _row(2, 0.15, Collection.FRAGMENT),
        ]
        ranked = RetrievalEngine.merge_neighbors(rows, limit=10)

        assert [r.fragment_id for r in ranked] == [1, 2]
        assert ranked[0].distance == 0.10
        assert ranked[0].matched_question == "q-near"
        assert ranked[0].source is Collection.QUESTION
        assert ranked[1].matched_question is None
        assert ranked[1].similarity == pytest.approx(0.85)

    def test_first_row_wins_on_tie(self) -> None:
        rows = [_row(3, 0.2, Collection.QUESTION, "q"), _row(3, 0.2, Collection.FRAGMENT)]
        ranked = RetrievalEngine.merge_neighbors(rows, limit=10)
        assert ranked[0].source is Collection.QUESTION
        assert ranked[0].matched_question == "q"

    def test_ties_ordered_by_fragment_id(self) -> None:
        rows = [_row(9, 0.4, Collection.FRAGMENT), _row(4, 0.4, Collection.FRAGMENT)]
        assert [r.fragment_id for r in RetrievalEngine.merge_neighbors(rows, 10)] == [4, 9]

    def test_truncates_to_limit(self) -> None:
        rows = [_row(i, i / 100, Collection.FRAGMENT) for i in range(1, 8)]
        ranked = RetrievalEngine.merge_neighbors(rows, limit=3)
        assert [r.fragment_id for r in ranked] == [1, 2, 3]

    def test_empty(self) -> None:
        assert RetrievalEngine.merge_neighbors([], limit=5) == []


# ======================================================================
# Search
# ======================================================================


async def _seed(store: InMemoryFragmentStore) -> dict[str, int]:
    ids: dict[str, int] = {}
    async with store.replace_document("100") as writer:
        ids["rotation"] = await writer.insert_fragment(
            "<p>Rotate keys</p>", "Rotate keys", _hash_to_vector("Rotate keys")
        )
        await writer.insert_question(
            ids["rotation"], "How do I rotate the API keys?", _hash_to_vector("How do I rotate the API keys?")
        )
        ids["unembedded"] = await writer.insert_fragment("<p>Lost</p>", "Lost", None)
        await writer.insert_question(ids["unembedded"], "Where did it go?", None)
    async with store.replace_document("200") as writer:
        ids["vpn"] = await writer.insert_fragment(
            "<p>VPN setup</p>", "VPN setup", _hash_to_vector("VPN setup")
        )
    return ids


class TestSearch:
    @pytest.mark.asyncio
    async def test_exact_question_match_ranks_first(self) -> None:
        store = InMemoryFragmentStore()
        ids = await _seed(store)
        batcher = EmbeddingBatcher(
            MockEmbeddingProvider(), EmbeddingBatcherConfig(inter_batch_delay_seconds=0.0)
        )
        engine = RetrievalEngine(batcher, store)

        response = await engine.search("How do I rotate the API keys?", threshold=0.05)

        assert response.total_results == 1
        hit = response.results[0]
        assert hit.fragment_id == ids["rotation"]
        assert hit.document_id == "100"
        assert hit.matched_question == "How do I rotate the API keys?"
        assert hit.distance == pytest.approx(0.0, abs=1e-9)
        assert response.threshold == 0.05
        assert response.tokens_used > 0

    @pytest.mark.asyncio
    async def test_nothing_within_threshold_returns_empty(self) -> None:
        store = InMemoryFragmentStore()
        await _seed(store)
        engine = RetrievalEngine(EmbeddingBatcher(MockEmbeddingProvider()), store)

        response = await engine.search("completely unrelated words", threshold=0.0)

        assert response.results == []
        assert response.total_results == 0

    @pytest.mark.asyncio
    async def test_rows_without_vectors_never_match(self) -> None:
        store = InMemoryFragmentStore()
        ids = await _seed(store)
        engine = RetrievalEngine(EmbeddingBatcher(MockEmbeddingProvider()), store)

        response = await engine.search("VPN setup", threshold=1.0, limit=100)

        found = {r.fragment_id for r in response.results}
        assert ids["unembedded"] not in found
        assert ids["vpn"] in found
        assert all(r.distance <= 1.0 for r in response.results)

    @pytest.mark.asyncio
    async def test_defaults_applied(self) -> None:
        store = InMemoryFragmentStore()
        engine = RetrievalEngine(
            EmbeddingBatcher(MockEmbeddingProvider()),
            store,
            RetrievalConfig(default_threshold=0.4, default_limit=2),
        )
        response = await engine.search("query text")
        assert response.threshold == 0.4
