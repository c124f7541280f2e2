"""Content source adapters.

    - ConfluenceContentSource -- Confluence REST API over httpx.
"""

from src.providers.content.confluence_provider import ConfluenceContentSource

__all__ = ["ConfluenceContentSource"]
