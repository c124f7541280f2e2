"""Confluence REST API content source using httpx.

Reads spaces, page trees and rendered page bodies.  Page HTML comes from
the ``body.view`` representation; root-relative and protocol-relative
``src``/``href`` attributes are rewritten to absolute URLs so fragments
keep working links once they leave the wiki.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
import structlog

from src.config.components import ContentSourceConfig
from src.interfaces.content_source import IContentSource
from src.models.content import PageContent, PageRef, Space
from src.utils.errors import (
    ContentSourceError,
    ProviderUnavailableError,
    RateLimitError,
    WikiRagError,
)

logger = structlog.get_logger(logger_name=__name__)

# src="/x" and href='/x' but not protocol-relative "//host".
_ROOT_RELATIVE_RE = re.compile(r"""\b(src|href)=(["'])/(?!/)""")
_PROTOCOL_RELATIVE_RE = re.compile(r"""\b(src|href)=(["'])//""")


def page_url(base_url: str, page_id: str) -> str:
    """Return the canonical view URL of *page_id*."""
    return f"{base_url.rstrip('/')}/pages/viewpage.action?pageId={page_id}"


def absolutize_urls(html: str, base_url: str) -> str:
    """Rewrite root-relative and protocol-relative ``src``/``href`` values in *html*."""
    base = base_url.rstrip("/")
    html = _ROOT_RELATIVE_RE.sub(lambda m: f"{m.group(1)}={m.group(2)}{base}/", html)
    return _PROTOCOL_RELATIVE_RE.sub(lambda m: f"{m.group(1)}={m.group(2)}https://", html)


def _to_page_ref(item: dict[str, Any], space_key: str | None = None) -> PageRef:
    children = (item.get("children") or {}).get("page") or {}
    return PageRef(
        id=str(item["id"]),
        title=item.get("title", ""),
        has_children=int(children.get("size", 0) or 0) > 0,
        space_key=space_key or (item.get("space") or {}).get("key"),
    )


class ConfluenceContentSource(IContentSource):
    """Content source backed by the Confluence REST API.

    Parameters
    ----------
    config:
        Base URL, default token, TLS and timeout settings.
    token:
        Bearer token overriding ``config.token`` (HTTP callers pass their own).
    http_client:
        Optional pre-built client, mainly for tests.
    """

    def __init__(
        self,
        config: ContentSourceConfig,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = config.base_url.rstrip("/")
        self._page_limit = config.page_limit
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {token or config.token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(config.timeout_seconds),
            verify=not config.ignore_ssl_errors,
        )

    # ------------------------------------------------------------------
    # IContentSource implementation
    # ------------------------------------------------------------------

    async def list_spaces(self) -> list[Space]:
        payload = await self._get_json(
            "/rest/api/space", params={"start": 0, "limit": self._page_limit}
        )
        spaces: list[Space] = []
        for item in payload.get("results", []):
            if item.get("type") != "global":
                continue
            description = (((item.get("description") or {}).get("plain")) or {}).get("value", "")
            spaces.append(
                Space(
                    key=item["key"],
                    name=item.get("name", item["key"]),
                    type=item["type"],
                    description=description or "",
                )
            )
        return spaces

    async def list_root_pages(self, space_key: str) -> list[PageRef]:
        payload = await self._get_json(
            "/rest/api/content",
            params={
                "spaceKey": space_key,
                "type": "page",
                "expand": "ancestors,children.page",
                "limit": self._page_limit,
            },
        )
        return [
            _to_page_ref(item, space_key)
            for item in payload.get("results", [])
            if not item.get("ancestors")
        ]

    async def list_children(self, parent_id: str) -> list[PageRef]:
        payload = await self._get_json(
            f"/rest/api/content/{parent_id}/child/page",
            params={"expand": "children.page", "limit": self._page_limit},
        )
        return [_to_page_ref(item) for item in payload.get("results", [])]

    async def get_page_content(self, page_id: str) -> PageContent:
        payload = await self._get_json(
            f"/rest/api/content/{page_id}",
            params={"expand": "body.view,space,ancestors,version"},
        )
        html = ((payload.get("body") or {}).get("view") or {}).get("value", "")
        space = payload.get("space") or {}
        version = payload.get("version") or {}
        return PageContent(
            id=str(payload.get("id", page_id)),
            title=payload.get("title", ""),
            html=absolutize_urls(html, self._base_url),
            url=page_url(self._base_url, str(payload.get("id", page_id))),
            last_modified=version.get("when"),
            version=version.get("number"),
            space_key=space.get("key"),
            space_name=space.get("name"),
        )

    async def get_descendants(self, page_id: str, max_depth: int = 10) -> list[PageRef]:
        """Walk the tree below *page_id* depth-first.

        A branch whose children cannot be listed is logged and skipped; the
        rest of the walk continues.
        """
        visited: set[str] = {page_id}
        found: list[PageRef] = []

        async def _walk(parent_id: str, depth: int) -> None:
            if depth >= max_depth:
                return
            try:
                children = await self.list_children(parent_id)
            except WikiRagError as exc:
                logger.warning("descendant_walk_failed", page_id=parent_id, error=str(exc))
                return
            for child in children:
                if child.id in visited:
                    continue
                visited.add(child.id)
                found.append(child)
                if child.has_children:
                    await _walk(child.id, depth + 1)

        await _walk(page_id, 0)
        return found

    async def test_connection(self) -> bool:
        try:
            await self._get_json("/rest/api/user/current")
        except WikiRagError as exc:
            logger.warning("content_source_connection_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "confluence"

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError(
                message=f"Timeout requesting {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message=f"Rate limited requesting {path}",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise ContentSourceError(
                message=f"HTTP {exc.response.status_code} for {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"HTTP error requesting {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise ContentSourceError(
                message=f"Invalid JSON from {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(payload, dict):
            raise ContentSourceError(
                message=f"Expected a JSON object from {path}",
                provider_name=self.get_provider_name(),
            )
        return payload
