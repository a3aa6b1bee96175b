"""Tests for the Jina-backed web tools, with HTTP mocked through ``httpx.MockTransport``."""

import json

import httpx
import pytest

from threadmind.agent.context import RuntimeContext
from threadmind.tools import (
    TOOL_REGISTRY,
    default_registry,
)
from threadmind.tools import web


@pytest.fixture
def jina_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JINA_API_KEY", "jina-test")


def _mock_http(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    monkeypatch.setattr(
        web,
        "http_client",
        lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout),
    )


def test_builtin_tools_registered() -> None:
    registry = default_registry()
    for name in ("webScrape", "webSearch", "deepResearch", "editDocument", "createDocument"):
        assert name in registry
    assert "sectionLookup" not in TOOL_REGISTRY
    assert "batchEdit" not in TOOL_REGISTRY


def test_dedupe_ignores_query_string() -> None:
    items = [
        {"url": "https://a.com/x?ref=1"},
        {"url": "https://a.com/x?ref=2"},
        {"url": "https://a.com/y"},
        {"url": "not a url"},
    ]
    assert web.dedupe_by_url(items) == [
        {"url": "https://a.com/x?ref=1"},
        {"url": "https://a.com/y"},
        {"url": "not a url"},
    ]


@pytest.mark.asyncio
async def test_scrape_without_key_is_an_error_result() -> None:
    result = await TOOL_REGISTRY["webScrape"].execute({"url": "https://example.com"})
    assert result == {"error": "JINA_API_KEY environment variable is not set"}


@pytest.mark.asyncio
async def test_scrape_returns_page(monkeypatch, jina_key) -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"code": 200, "data": {"title": "Example", "content": "Hello", "links": {"a": "b"}}},
        )

    _mock_http(monkeypatch, handler)
    result = await TOOL_REGISTRY["webScrape"].execute({"url": "https://example.com/page"})

    assert seen == {"auth": "Bearer jina-test", "body": {"url": "https://example.com/page"}}
    assert result["title"] == "Example"
    assert result["content"] == "Hello"
    assert result["links"] == {"a": "b"}
    assert result["images"] == {}


@pytest.mark.asyncio
async def test_scrape_upstream_failure_is_isolated(monkeypatch, jina_key) -> None:
    _mock_http(monkeypatch, lambda request: httpx.Response(503, text="down"))
    result = await TOOL_REGISTRY["webScrape"].execute({"url": "https://example.com"})
    assert "503" in result["error"]


@pytest.mark.asyncio
async def test_scrape_rejects_non_url() -> None:
    result = await TOOL_REGISTRY["webScrape"].execute({"url": "nope"})
    assert result["error"].startswith("Invalid arguments for tool 'webScrape'")


def _search_handler(request: httpx.Request) -> httpx.Response:
    query = json.loads(request.content)["q"]
    if query == "broken":
        return httpx.Response(500, text="boom")
    return httpx.Response(
        200,
        json={
            "code": 200,
            "data": [
                {"url": "https://a.com/x?ref=1", "title": "A1", "content": "first"},
                {"url": "https://a.com/x?ref=2", "title": "A2", "content": "dup"},
                {"url": "https://spam.io/p", "title": "S", "content": "spam"},
                {"url": "https://b.com/y", "title": "B", "content": "second"},
            ],
        },
    )


@pytest.mark.asyncio
async def test_search_partial_failure(monkeypatch, jina_key, status) -> None:
    _mock_http(monkeypatch, _search_handler)
    result = await TOOL_REGISTRY["webSearch"].execute(
        {"queries": ["ai news", "broken"], "excludeDomains": ["spam.io"]},
        RuntimeContext(status=status),
    )

    ok, failed = result["searches"]
    assert ok["query"] == "ai news"
    assert [r["url"] for r in ok["results"]] == ["https://a.com/x?ref=1", "https://b.com/y"]
    assert ok["resultCount"] == 2
    assert "error" not in ok
    assert failed["query"] == "broken"
    assert failed["results"] == []
    assert "500" in failed["error"]
    assert status.updates == ["is reviewing 2 search results..."]


@pytest.mark.asyncio
async def test_search_all_failed(monkeypatch, jina_key) -> None:
    _mock_http(monkeypatch, lambda request: httpx.Response(500, text="boom"))
    result = await TOOL_REGISTRY["webSearch"].execute({"queries": ["one", "two"]})
    assert result["error"].startswith("All search queries failed")


@pytest.mark.asyncio
async def test_search_body_code_is_checked(monkeypatch, jina_key) -> None:
    _mock_http(
        monkeypatch,
        lambda request: httpx.Response(200, json={"code": 402, "status": "quota exceeded"}),
    )
    result = await TOOL_REGISTRY["webSearch"].execute({"queries": ["q"]})
    assert "quota exceeded" in result["error"]


@pytest.mark.asyncio
async def test_search_validates_images(monkeypatch, jina_key, status) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            if request.url.path.endswith(".png"):
                return httpx.Response(200, headers={"content-type": "image/png"})
            return httpx.Response(200, headers={"content-type": "text/html"})
        return httpx.Response(
            200,
            json={
                "code": 200,
                "data": [
                    {
                        "url": "https://a.com/x",
                        "images": {
                            "logo": "https://img.com/logo.png",
                            "page": "https://img.com/page",
                        },
                    }
                ],
            },
        )

    _mock_http(monkeypatch, handler)
    result = await TOOL_REGISTRY["webSearch"].execute(
        {"queries": ["q"], "withImages": True}, RuntimeContext(status=status)
    )

    search = result["searches"][0]
    assert search["images"] == [{"url": "https://img.com/logo.png", "description": "logo"}]
    assert search["imageCount"] == 1
    assert status.updates == ["is reviewing 1 search results...", "is checking images..."]


@pytest.mark.asyncio
async def test_search_requires_a_query() -> None:
    result = await TOOL_REGISTRY["webSearch"].execute({"queries": []})
    assert "Invalid arguments" in result["error"]


@pytest.mark.asyncio
async def test_scrape_timeout_is_an_error_result(monkeypatch, jina_key) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    _mock_http(monkeypatch, handler)
    result = await TOOL_REGISTRY["webScrape"].execute({"url": "https://example.com"})

    assert result["error"].startswith("Failed to scrape webpage")
    assert "ReadTimeout" in result["error"]


@pytest.mark.asyncio
async def test_search_timeout_only_fails_its_query(monkeypatch, jina_key) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["q"] == "slow":
            raise httpx.ReadTimeout("timed out", request=request)
        return _search_handler(request)

    _mock_http(monkeypatch, handler)
    result = await TOOL_REGISTRY["webSearch"].execute({"queries": ["slow", "ai news"]})

    slow, ok = result["searches"]
    assert slow["results"] == []
    assert "ReadTimeout" in slow["error"]
    assert ok["resultCount"] == 3
    assert "error" not in ok


@pytest.mark.asyncio
async def test_excluded_and_duplicate_hits_do_not_use_up_the_limit(
    monkeypatch, jina_key
) -> None:
    _mock_http(monkeypatch, _search_handler)
    result = await TOOL_REGISTRY["webSearch"].execute(
        {"queries": ["ai news"], "maxResults": [2], "excludeDomains": ["spam.io"]}
    )

    urls = [r["url"] for r in result["searches"][0]["results"]]
    assert urls == ["https://a.com/x?ref=1", "https://b.com/y"]
