"""Abstract base class for the wiki content source.

The ingestion coordinator only calls :meth:`IContentSource.get_page_content`;
the tree-walking methods back the space browser routes and the
``index-descendants`` operation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.content import PageContent, PageRef, Space


# Concrete implementations: ConfluenceContentSource
# Located in: src/providers/content/
class IContentSource(ABC):
    """Contract for reading spaces, page trees and page bodies."""

    @abstractmethod
    async def list_spaces(self) -> list[Space]:
        """Return every space the caller can browse."""

    @abstractmethod
    async def list_root_pages(self, space_key: str) -> list[PageRef]:
        """Return pages of *space_key* that have no ancestors."""

    @abstractmethod
    async def list_children(self, parent_id: str) -> list[PageRef]:
        """Return the direct child pages of *parent_id*."""

    @abstractmethod
    async def get_page_content(self, page_id: str) -> PageContent:
        """Fetch one page with its rendered body.

        Raises
        ------
        src.utils.errors.ContentSourceError
            If the page cannot be fetched.
        """

    @abstractmethod
    async def get_descendants(self, page_id: str, max_depth: int = 10) -> list[PageRef]:
        """Return every page below *page_id*, depth-first, down to *max_depth* levels."""

    @abstractmethod
    async def test_connection(self) -> bool:
        """Return ``True`` if the source accepts the configured credentials."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this source."""
