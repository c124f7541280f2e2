"""Abstract base classes for fragment and question persistence.

Fragments and their questions are written one document at a time through
a unit of work obtained from :meth:`IFragmentStore.replace_document`::

    async with store.replace_document(page_id) as writer:
        await writer.delete_document()
        fragment_id = await writer.insert_fragment(display, index, vector)
        await writer.insert_question(fragment_id, question, vector)

Everything inside the block is one transaction: readers see either the old
rows or the new ones.  Vectors may be ``None``; such rows are stored with a
NULL embedding and are skipped by :meth:`IFragmentStore.nearest_neighbors`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager

from src.models.rag import Collection, NeighborRow, StoreStats


class IFragmentWriter(ABC):
    """Writes one document's rows inside an open transaction."""

    @property
    @abstractmethod
    def document_id(self) -> str:
        """Identifier of the document this writer replaces."""

    @abstractmethod
    async def delete_document(self) -> int:
        """Delete the document's existing fragments (questions cascade); return the count."""

    @abstractmethod
    async def insert_fragment(
        self, display_text: str, index_text: str, vector: list[float] | None
    ) -> int:
        """Insert one fragment and return its generated identifier.

        Raises
        ------
        src.utils.errors.StorageError
            If the row is rejected.  The transaction stays usable.
        """

    @abstractmethod
    async def insert_question(
        self, fragment_id: int, text: str, vector: list[float] | None
    ) -> int:
        """Insert one question linked to *fragment_id* and return its identifier.

        Raises
        ------
        src.utils.errors.StorageError
            If the row is rejected.  The transaction stays usable.
        """


# Concrete implementations: PgVectorFragmentStore
# Located in: src/providers/fragment_store/
class IFragmentStore(ABC):
    """Contract for the fragment/question store and its similarity search."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the database objects the store needs, if missing."""

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections."""

    @abstractmethod
    def replace_document(self, document_id: str) -> AbstractAsyncContextManager[IFragmentWriter]:
        """Open a transactional unit of work scoped to *document_id*.

        Commits on clean exit, rolls back when the block raises.
        """

    @abstractmethod
    async def delete_by_document_id(self, document_id: str) -> int:
        """Delete every fragment of *document_id* and return how many were removed."""

    @abstractmethod
    async def nearest_neighbors(
        self,
        collection: Collection,
        vector: list[float],
        max_distance: float,
        limit: int | None = None,
    ) -> list[NeighborRow]:
        """Return rows within *max_distance* cosine distance, closest first.

        Rows without an embedding never match.  Question rows carry the
        display text of their fragment.
        """

    @abstractmethod
    async def list_indexed_document_ids(self, candidate_ids: list[str]) -> list[str]:
        """Return the subset of *candidate_ids* that have at least one fragment."""

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Return row counts for both collections."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
