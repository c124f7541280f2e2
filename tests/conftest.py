"""Shared pytest fixtures for the wiki RAG test suite.

Every external service has an in-memory stand-in here:

- :class:`MockEmbeddingProvider` -- deterministic hash-based vectors
- :class:`ScriptedLLMProvider`   -- canned chunking / question responses
- :class:`InMemoryFragmentStore` -- honours the unit-of-work contract
- :class:`FakeContentSource`     -- a small page tree
"""

from __future__ import annotations

import asyncio
import hashlib
import math
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest

from src.config.components import (
    EmbeddingBatcherConfig,
    EnricherConfig,
    IngestionConfig,
    RetrievalConfig,
    SegmenterConfig,
)
from src.interfaces.content_source import IContentSource
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.fragment_store import IFragmentStore, IFragmentWriter
from src.interfaces.llm_provider import ILLMProvider
from src.models.content import PageContent, PageRef, Space
from src.models.rag import (
    Collection,
    EmbeddingResponse,
    NeighborRow,
    StoreStats,
    StructuredCompletion,
)
from src.pipeline.progress_tracker import ProgressTracker
from src.services.ingestion.coordinator import IngestionCoordinator
from src.services.ingestion.embedding_batcher import EmbeddingBatcher
from src.services.ingestion.enricher import Enricher
from src.services.ingestion.normalizer import ContentNormalizer
from src.services.ingestion.segmenter import Segmenter
from src.services.retrieval.retrieval_engine import RetrievalEngine
from src.utils.errors import ContentSourceError, EmbeddingError, LLMError, StorageError
from src.utils.text import split_paragraphs

_EMBEDDING_DIM = 64


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic unit vector by hashing *text*.

    SHA-256 digests are chained until there is one byte per dimension; each
    byte maps to [-1, 1].  Same text, same vector.
    """
    raw = hashlib.sha256(text.encode("utf-8")).digest()
    while len(raw) < dim:
        raw += hashlib.sha256(raw).digest()
    values = [(b - 127.5) / 127.5 for b in raw[:dim]]
    magnitude = max(math.sqrt(sum(v * v for v in values)), 1e-10)
    return [v / magnitude for v in values]


def cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 1.0
    return max(0.0, 1.0 - dot / norm)


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Any input containing one of ``fail_markers`` makes the whole request
    fail with :class:`EmbeddingError`.
    """

    def __init__(self, fail_markers: tuple[str, ...] = ()) -> None:
        self.fail_markers = fail_markers
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> EmbeddingResponse:
        self.calls.append(list(texts))
        if any(marker in text for marker in self.fail_markers for text in texts):
            raise EmbeddingError(message="scripted embedding failure", provider_name="mock")
        return EmbeddingResponse(
            vectors=[_hash_to_vector(t) for t in texts],
            total_tokens=sum(max(1, len(t) // 4) for t in texts),
        )

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


def _default_questions(text: str) -> list[str]:
    snippet = " ".join(text.split()[:6])
    return [
        f"What does the page say about {snippet}?",
        f"How is {snippet} used?",
        f"Where can I read more about {snippet}?",
    ]


class ScriptedLLMProvider(ILLMProvider):
    """LLM stand-in answering by ``schema_name``.

    ``chunk_response`` splits the content on blank lines.  ``questions_response``
    returns ``questions_by_marker[marker]`` for the first marker found in the
    fragment text, else three generic questions.  ``fail`` makes every call
    raise :class:`LLMError`; ``payloads`` overrides the returned object per
    schema name.
    """

    def __init__(
        self,
        questions_by_marker: dict[str, list[str]] | None = None,
        fail: bool = False,
        payloads: dict[str, dict[str, Any]] | None = None,
        tokens_per_call: int = 100,
    ) -> None:
        self.questions_by_marker = questions_by_marker or {}
        self.fail = fail
        self.payloads = payloads or {}
        self.tokens_per_call = tokens_per_call
        self.calls: list[dict[str, Any]] = []

    async def complete_structured(
        self,
        system_prompt: str,
        user_content: str,
        json_schema: dict[str, Any],
        schema_name: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> StructuredCompletion:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_content": user_content,
                "schema_name": schema_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.fail:
            raise LLMError(message="scripted failure", provider_name="scripted")

        if schema_name in self.payloads:
            data = self.payloads[schema_name]
        elif schema_name == "chunk_response":
            data = {"chunks": split_paragraphs(user_content)}
        else:
            text = user_content.split("---TEXT---\n", 1)[-1].split("\n---CONTEXT---", 1)[0]
            questions = next(
                (qs for marker, qs in self.questions_by_marker.items() if marker in text),
                None,
            )
            data = {"questions": questions if questions is not None else _default_questions(text)}
        return StructuredCompletion(data=data, total_tokens=self.tokens_per_call, model="scripted")

    def get_provider_name(self) -> str:
        return "scripted-llm"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fragment store
# ---------------------------------------------------------------------------


class _MemoryState:
    def __init__(self) -> None:
        self.fragments: dict[int, dict[str, Any]] = {}
        self.questions: dict[int, dict[str, Any]] = {}
        self.next_fragment_id = 1
        self.next_question_id = 1


class _MemoryWriter(IFragmentWriter):
    """Writes straight into the live state and journals what it changed."""

    def __init__(self, state: _MemoryState, document_id: str, reject_marker: str | None) -> None:
        self._state = state
        self._document_id = document_id
        self._reject_marker = reject_marker
        self.deleted_fragments: dict[int, dict[str, Any]] = {}
        self.deleted_questions: dict[int, dict[str, Any]] = {}
        self.inserted_fragments: list[int] = []
        self.inserted_questions: list[int] = []

    @property
    def document_id(self) -> str:
        return self._document_id

    async def delete_document(self) -> int:
        doomed = [fid for fid, row in self._state.fragments.items() if row["document_id"] == self._document_id]
        for fid in doomed:
            self.deleted_fragments[fid] = self._state.fragments.pop(fid)
        for qid in [qid for qid, q in self._state.questions.items() if q["fragment_id"] in doomed]:
            self.deleted_questions[qid] = self._state.questions.pop(qid)
        return len(doomed)

    async def insert_fragment(
        self, display_text: str, index_text: str, vector: list[float] | None
    ) -> int:
        if self._reject_marker and self._reject_marker in display_text:
            raise StorageError(message="scripted insert failure", provider_name="memory")
        fragment_id = self._state.next_fragment_id
        self._state.next_fragment_id += 1
        self._state.fragments[fragment_id] = {
            "document_id": self._document_id,
            "display_text": display_text,
            "index_text": index_text,
            "embedding": vector,
        }
        self.inserted_fragments.append(fragment_id)
        return fragment_id

    async def insert_question(self, fragment_id: int, text: str, vector: list[float] | None) -> int:
        if fragment_id not in self._state.fragments:
            raise StorageError(message=f"unknown fragment {fragment_id}", provider_name="memory")
        question_id = self._state.next_question_id
        self._state.next_question_id += 1
        self._state.questions[question_id] = {
            "fragment_id": fragment_id,
            "document_id": self._document_id,
            "text": text,
            "embedding": vector,
        }
        self.inserted_questions.append(question_id)
        return question_id

    def rollback(self) -> None:
        for qid in self.inserted_questions:
            self._state.questions.pop(qid, None)
        for fid in self.inserted_fragments:
            self._state.fragments.pop(fid, None)
        self._state.fragments.update(self.deleted_fragments)
        self._state.questions.update(self.deleted_questions)


class InMemoryFragmentStore(IFragmentStore):
    """Dict-backed fragment store with journaled transactions.

    A unit of work writes into the shared state, so documents committing
    concurrently never overwrite each other, and undoes its own changes when
    the block raises.  Units of work for the same document are serialized by
    a per-document lock, like the advisory lock of the PostgreSQL store.
    """

    def __init__(self, reject_marker: str | None = None) -> None:
        self._state = _MemoryState()
        self._locks: dict[str, asyncio.Lock] = {}
        self.reject_marker = reject_marker
        self.initialized = False
        self.closed = False

    @property
    def fragments(self) -> dict[int, dict[str, Any]]:
        return self._state.fragments

    @property
    def questions(self) -> dict[int, dict[str, Any]]:
        return self._state.questions

    def fragments_of(self, document_id: str) -> list[dict[str, Any]]:
        return [row for _, row in sorted(self._state.fragments.items()) if row["document_id"] == document_id]

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    def document_lock(self, document_id: str) -> asyncio.Lock:
        return self._locks.setdefault(document_id, asyncio.Lock())

    @asynccontextmanager
    async def unit_of_work(self, document_id: str) -> AsyncIterator[_MemoryWriter]:
        writer = _MemoryWriter(self._state, document_id, self.reject_marker)
        try:
            yield writer
        except BaseException:
            writer.rollback()
            raise

    @asynccontextmanager
    async def replace_document(self, document_id: str) -> AsyncIterator[IFragmentWriter]:
        async with self.document_lock(document_id):
            async with self.unit_of_work(document_id) as writer:
                yield writer

    async def delete_by_document_id(self, document_id: str) -> int:
        async with self.document_lock(document_id):
            return await _MemoryWriter(self._state, document_id, None).delete_document()

    async def nearest_neighbors(
        self,
        collection: Collection,
        vector: list[float],
        max_distance: float,
        limit: int | None = None,
    ) -> list[NeighborRow]:
        rows: list[NeighborRow] = []
        if collection is Collection.FRAGMENT:
            for fid, row in self._state.fragments.items():
                if row["embedding"] is None:
                    continue
                distance = cosine_distance(vector, row["embedding"])
                if distance <= max_distance:
                    rows.append(
                        NeighborRow(
                            fragment_id=fid,
                            document_id=row["document_id"],
                            display_text=row["display_text"],
                            distance=distance,
                            source=Collection.FRAGMENT,
                        )
                    )
        else:
            for q in self._state.questions.values():
                if q["embedding"] is None:
                    continue
                distance = cosine_distance(vector, q["embedding"])
                if distance <= max_distance:
                    fragment = self._state.fragments[q["fragment_id"]]
                    rows.append(
                        NeighborRow(
                            fragment_id=q["fragment_id"],
                            document_id=q["document_id"],
                            display_text=fragment["display_text"],
                            distance=distance,
                            source=Collection.QUESTION,
                            question=q["text"],
                        )
                    )
        rows.sort(key=lambda r: (r.distance, r.fragment_id))
        return rows[:limit] if limit is not None else rows

    async def list_indexed_document_ids(self, candidate_ids: list[str]) -> list[str]:
        stored = {row["document_id"] for row in self._state.fragments.values()}
        return [c for c in dict.fromkeys(candidate_ids) if c in stored]

    async def get_stats(self) -> StoreStats:
        fragments = self._state.fragments.values()
        questions = self._state.questions.values()
        return StoreStats(
            fragments=len(self._state.fragments),
            questions=len(self._state.questions),
            documents=len({row["document_id"] for row in fragments}),
            fragments_without_embedding=sum(1 for r in fragments if r["embedding"] is None),
            questions_without_embedding=sum(1 for q in questions if q["embedding"] is None),
        )

    def get_provider_name(self) -> str:
        return "memory"


# ---------------------------------------------------------------------------
# Content source
# ---------------------------------------------------------------------------


class FakeContentSource(IContentSource):
    """A page tree held in dicts.  Ids in ``failing_ids`` raise ContentSourceError."""

    def __init__(
        self,
        pages: dict[str, PageContent] | None = None,
        children: dict[str, list[str]] | None = None,
        space_roots: dict[str, list[str]] | None = None,
        failing_ids: set[str] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.children = children or {}
        self.space_roots = space_roots or {}
        self.failing_ids = failing_ids or set()
        self.closed = False
        self.fetched: list[str] = []

    def _ref(self, page_id: str) -> PageRef:
        page = self.pages.get(page_id)
        return PageRef(
            id=page_id,
            title=page.title if page else "",
            has_children=bool(self.children.get(page_id)),
            space_key=page.space_key if page else None,
        )

    async def list_spaces(self) -> list[Space]:
        return [Space(key=key, name=f"Space {key}") for key in self.space_roots]

    async def list_root_pages(self, space_key: str) -> list[PageRef]:
        return [self._ref(pid) for pid in self.space_roots.get(space_key, [])]

    async def list_children(self, parent_id: str) -> list[PageRef]:
        if parent_id in self.failing_ids:
            raise ContentSourceError(message=f"cannot list {parent_id}", provider_name="fake")
        return [self._ref(pid) for pid in self.children.get(parent_id, [])]

    async def get_page_content(self, page_id: str) -> PageContent:
        self.fetched.append(page_id)
        if page_id in self.failing_ids or page_id not in self.pages:
            raise ContentSourceError(message=f"page {page_id} unavailable", provider_name="fake")
        return self.pages[page_id]

    async def get_descendants(self, page_id: str, max_depth: int = 10) -> list[PageRef]:
        found: list[PageRef] = []
        visited = {page_id}

        async def _walk(parent_id: str, depth: int) -> None:
            if depth > max_depth:
                return
            for child in await self.list_children(parent_id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                found.append(child)
                await _walk(child.id, depth + 1)

        await _walk(page_id, 1)
        return found

    async def test_connection(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True

    def get_provider_name(self) -> str:
        return "fake-wiki"


def make_page(page_id: str, title: str, body_html: str) -> PageContent:
    return PageContent(
        id=page_id,
        title=title,
        html=body_html,
        url=f"https://wiki.example.com/pages/viewpage.action?pageId={page_id}",
        space_key="ENG",
        space_name="Engineering",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def scripted_llm() -> ScriptedLLMProvider:
    return ScriptedLLMProvider()


@pytest.fixture
def memory_store() -> InMemoryFragmentStore:
    return InMemoryFragmentStore()


@pytest.fixture
def batcher(embedding_provider: MockEmbeddingProvider) -> EmbeddingBatcher:
    return EmbeddingBatcher(
        embedding_provider, EmbeddingBatcherConfig(inter_batch_delay_seconds=0.0)
    )


@pytest.fixture
def make_coordinator() -> Callable[..., tuple[IngestionCoordinator, ProgressTracker]]:
    """Factory building a coordinator over in-memory collaborators."""

    def _make(
        store: IFragmentStore,
        llm: ILLMProvider | None = None,
        embedding: IEmbeddingProvider | None = None,
        chars_limit: int = 2000,
        document_concurrency: int = 10,
        batch_size: int = 100,
    ) -> tuple[IngestionCoordinator, ProgressTracker]:
        llm = llm or ScriptedLLMProvider()
        embedding = embedding or MockEmbeddingProvider()
        tracker = ProgressTracker()
        coordinator = IngestionCoordinator(
            normalizer=ContentNormalizer(),
            segmenter=Segmenter(llm, SegmenterConfig(chars_limit=chars_limit)),
            enricher=Enricher(llm, EnricherConfig()),
            batcher=EmbeddingBatcher(
                embedding, EmbeddingBatcherConfig(inter_batch_delay_seconds=0.0)
            ),
            store=store,
            tracker=tracker,
            config=IngestionConfig(
                start_delay_seconds=0.0,
                document_concurrency=document_concurrency,
                batch_size=batch_size,
            ),
        )
        return coordinator, tracker

    return _make


@pytest.fixture
def retrieval_engine(batcher: EmbeddingBatcher, memory_store: InMemoryFragmentStore) -> RetrievalEngine:
    return RetrievalEngine(batcher, memory_store, RetrievalConfig())
