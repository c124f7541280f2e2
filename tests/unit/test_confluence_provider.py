"""Unit tests for the Confluence content source, served by httpx.MockTransport."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from src.config.components import ContentSourceConfig
from src.providers.content.confluence_provider import (
    ConfluenceContentSource,
    absolutize_urls,
    page_url,
)
from src.utils.errors import ContentSourceError, ProviderUnavailableError, RateLimitError

_BASE = "https://wiki.test"


def _source(handler: Callable[[httpx.Request], httpx.Response]) -> ConfluenceContentSource:
    client = httpx.AsyncClient(base_url=_BASE, transport=httpx.MockTransport(handler))
    return ConfluenceContentSource(ContentSourceConfig(base_url=_BASE), http_client=client)


def _page(page_id: str, children: int = 0, **extra: Any) -> dict[str, Any]:
    return {"id": page_id, "title": f"Page {page_id}", "children": {"page": {"size": children}}, **extra}


class TestUrlHelpers:
    def test_page_url(self) -> None:
        assert page_url("https://wiki.test/", "42") == "https://wiki.test/pages/viewpage.action?pageId=42"

    def test_absolutize_root_and_protocol_relative(self) -> None:
        html = (
            '<img src="/download/a.png"><a href=\'/display/X\'>x</a>'
            '<img src="//cdn.test/b.png"><a href="https://other.test/c">c</a>'
        )
        assert absolutize_urls(html, "https://wiki.test/") == (
            '<img src="https://wiki.test/download/a.png"><a href=\'https://wiki.test/display/X\'>x</a>'
            '<img src="https://cdn.test/b.png"><a href="https://other.test/c">c</a>'
        )


class TestListing:
    @pytest.mark.asyncio
    async def test_only_global_spaces_returned(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/api/space"
            return httpx.Response(
                200,
                json={
                    "results": [
                        {
                            "key": "OPS",
                            "name": "Operations",
                            "type": "global",
                            "description": {"plain": {"value": "Runbooks"}},
                        },
                        {"key": "~jdoe", "name": "Personal", "type": "personal"},
                        {"key": "DEV", "type": "global"},
                    ]
                },
            )

        spaces = await _source(handler).list_spaces()

        assert [(s.key, s.name, s.description) for s in spaces] == [
            ("OPS", "Operations", "Runbooks"),
            ("DEV", "DEV", ""),
        ]

    @pytest.mark.asyncio
    async def test_root_pages_exclude_pages_with_ancestors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["spaceKey"] == "OPS"
            return httpx.Response(
                200,
                json={
                    "results": [
                        _page("1", children=2, ancestors=[]),
                        _page("2", ancestors=[{"id": "1"}]),
                    ]
                },
            )

        roots = await _source(handler).list_root_pages("OPS")

        assert len(roots) == 1
        assert roots[0].id == "1"
        assert roots[0].has_children is True
        assert roots[0].space_key == "OPS"

    @pytest.mark.asyncio
    async def test_page_content(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/api/content/77"
            return httpx.Response(
                200,
                json={
                    "id": "77",
                    "title": "Deploy",
                    "body": {"view": {"value": '<p><a href="/x">x</a></p>'}},
                    "space": {"key": "OPS", "name": "Operations"},
                    "version": {"number": 4, "when": "2024-01-02T03:04:05Z"},
                },
            )

        page = await _source(handler).get_page_content("77")

        assert page.title == "Deploy"
        assert page.html == '<p><a href="https://wiki.test/x">x</a></p>'
        assert page.url == page_url(_BASE, "77")
        assert page.version == 4
        assert page.space_key == "OPS"

    @pytest.mark.asyncio
    async def test_page_without_body(self) -> None:
        source = _source(lambda request: httpx.Response(200, json={"id": "5", "title": "Empty"}))
        page = await source.get_page_content("5")
        assert page.html == ""


class TestDescendants:
    @pytest.mark.asyncio
    async def test_depth_first_walk_and_depth_limit(self) -> None:
        tree = {
            "root": [_page("a", children=1), _page("b")],
            "a": [_page("a1", children=1)],
            "a1": [_page("a11")],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            parent = request.url.path.split("/")[4]
            return httpx.Response(200, json={"results": tree.get(parent, [])})

        source = _source(handler)

        assert [p.id for p in await source.get_descendants("root")] == ["a", "a1", "a11", "b"]
        assert [p.id for p in await source.get_descendants("root", max_depth=1)] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_branch_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            parent = request.url.path.split("/")[4]
            if parent == "root":
                return httpx.Response(
                    200, json={"results": [_page("bad", children=1), _page("good")]}
                )
            return httpx.Response(403)

        found = await _source(handler).get_descendants("root")

        assert [p.id for p in found] == ["bad", "good"]


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [(404, ContentSourceError), (401, ContentSourceError), (429, RateLimitError)],
    )
    async def test_http_status_mapped(self, status: int, error: type[Exception]) -> None:
        source = _source(lambda request: httpx.Response(status))
        with pytest.raises(error):
            await source.list_children("1")

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderUnavailableError):
            await _source(handler).list_spaces()

    @pytest.mark.asyncio
    async def test_non_json_body_is_content_source_error(self) -> None:
        source = _source(lambda r: httpx.Response(200, text="<html>Login required</html>"))
        with pytest.raises(ContentSourceError, match="Invalid JSON"):
            await source.list_spaces()

    @pytest.mark.asyncio
    async def test_non_object_json_is_content_source_error(self) -> None:
        source = _source(lambda r: httpx.Response(200, json=["not", "an", "object"]))
        with pytest.raises(ContentSourceError, match="JSON object"):
            await source.get_page_content("1")

    @pytest.mark.asyncio
    async def test_connection_probe(self) -> None:
        assert await _source(lambda r: httpx.Response(200, json={"type": "known"})).test_connection()
        assert not await _source(lambda r: httpx.Response(500)).test_connection()

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self) -> None:
        client = httpx.AsyncClient(base_url=_BASE, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        source = ConfluenceContentSource(ContentSourceConfig(base_url=_BASE), http_client=client)
        await source.close()
        assert client.is_closed is False
        await client.aclose()
