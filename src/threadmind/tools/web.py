"""
Web tools backed by Jina AI: page scraping (Reader API) and multi-query search (Search API).

Get a Jina AI API key for free at https://jina.ai/?sui=apikey and export it as ``JINA_API_KEY``.
"""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Literal,
    Sequence,
    Tuple,
    TypeVar,
)
from urllib.parse import urlsplit

import httpx
from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
)

from threadmind.agent.context import RuntimeContext
from threadmind.config import current_settings
from threadmind.tools import (
    ToolExecutionError,
    register_tool,
)

logger = logging.getLogger(__name__)

JINA_READER_URL = "https://r.jina.ai/"
JINA_SEARCH_URL = "https://s.jina.ai/"
TOKENS_PER_RESULT = 1000  # rough X-Token-Budget estimate
DEFAULT_MAX_RESULTS = 5

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def http_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout)


def _jina_api_key() -> str:
    api_key = current_settings().JINA_API_KEY
    if not api_key:
        raise ToolExecutionError("JINA_API_KEY environment variable is not set")
    return api_key


def _url_key(url: str) -> Tuple[str, str]:
    """(hostname, path) of *url*; query string and fragment are ignored."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"not an absolute URL: {url!r}")
    return parts.hostname, parts.path


def dedupe_by_url(items: Iterable[T], key: str = "url") -> List[T]:
    """
    Drop items whose URL points at an already seen host + path, keeping first-seen order.

    Items are dicts carrying the URL under *key*.  Items whose URL cannot be parsed are kept.
    """
    seen: set[Tuple[str, str]] = set()
    out: List[T] = []
    for item in items:
        url = str(item[key])  # type: ignore[index]
        try:
            url_key = _url_key(url)
        except ValueError:
            logger.warning("Invalid URL: %s", url)
            out.append(item)
            continue
        if url_key in seen:
            continue
        seen.add(url_key)
        out.append(item)
    return out


def sanitize_url(url: str) -> str:
    """Normalise *url*, or return it unchanged if it does not parse."""
    try:
        return urlsplit(url).geturl()
    except ValueError:
        return url


def _is_excluded(url: str, exclude_domains: Sequence[str]) -> bool:
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return False
    return any(host == d or host.endswith("." + d) for d in exclude_domains)


async def is_valid_image_url(client: httpx.AsyncClient, url: str) -> bool:
    """HEAD *url* and check that it answers with an image content type."""
    try:
        response = await client.head(url, follow_redirects=True)
    except httpx.HTTPError:
        return False
    content_type = response.headers.get("content-type", "")
    return response.is_success and content_type.startswith("image/")


def _decode(response: httpx.Response, action: str) -> Dict[str, Any]:
    """Check HTTP status and Jina's body-level ``code``; return the JSON payload."""
    if not response.is_success:
        raise ToolExecutionError(
            f"{action} failed: {response.status_code} {response.reason_phrase}"
        )
    try:
        data = response.json()
    except ValueError as exc:
        raise ToolExecutionError(f"{action} failed: malformed response body") from exc
    if not isinstance(data, dict) or data.get("code") != 200:
        status = data.get("status") if isinstance(data, dict) else data
        raise ToolExecutionError(f"{action} failed: {status}")
    return data


# ---------------------------------------------------------------------------
# webScrape
# ---------------------------------------------------------------------------
class ScrapeArgs(BaseModel):
    """Arguments of ``webScrape``."""

    url: AnyHttpUrl = Field(..., description="The URL of the webpage to scrape")


@register_tool("webScrape", ScrapeArgs, status="is scraping a webpage...")
async def web_scrape(args: ScrapeArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Scrape a webpage and return its content in a format optimized for LLMs. Use this when the
    user mentions a specific URL they want information from, e.g. "Can you summarize the content at
    https://example.com/article". Provide the exact URL."""
    api_key = _jina_api_key()
    url = str(args.url)
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-With-Links-Summary": "true",
        "X-With-Images-Summary": "true",
    }

    async with http_client(current_settings().HTTP_TIMEOUT) as client:
        try:
            response = await client.post(JINA_READER_URL, headers=headers, json={"url": url})
        except httpx.HTTPError as exc:
            raise ToolExecutionError(f"Failed to scrape webpage: {exc!r}") from exc

    page = _decode(response, "Scraping webpage").get("data") or {}
    return {
        "title": page.get("title"),
        "description": page.get("description"),
        "content": page.get("content"),
        "links": page.get("links") or {},
        "images": page.get("images") or {},
        "url": url,
    }


# ---------------------------------------------------------------------------
# webSearch
# ---------------------------------------------------------------------------
class SearchArgs(BaseModel):
    """Arguments of ``webSearch``.  Per-query lists fall back to their first entry."""

    model_config = ConfigDict(populate_by_name=True)

    queries: List[str] = Field(
        ..., min_length=1, description="Array of search queries to look up on the web"
    )
    options: List[Literal["Default", "Markdown", "HTML", "Text"]] = Field(
        default_factory=list, description="Array of format options for each query result"
    )
    sites: List[str] = Field(
        default_factory=list, description="Array of domains to limit search results for each query"
    )
    max_results: List[int] = Field(
        default_factory=list,
        alias="maxResults",
        description="Array of maximum number of results to return per query",
    )
    with_links: bool = Field(
        True, alias="withLinks", description="Whether to include links in the response"
    )
    with_images: bool = Field(
        False, alias="withImages", description="Whether to include images in the response"
    )
    exclude_domains: List[str] = Field(
        default_factory=list,
        alias="excludeDomains",
        description="A list of domains to exclude from all search results",
    )


def _pick(values: Sequence[T], index: int) -> T | None:
    if index < len(values) and values[index]:
        return values[index]
    return values[0] if values else None


def _failed_search(query: str, error: str) -> Dict[str, Any]:
    return {
        "query": query,
        "results": [],
        "images": [],
        "resultCount": 0,
        "imageCount": 0,
        "error": error,
    }


async def _search_one(
    client: httpx.AsyncClient, api_key: str, args: SearchArgs, index: int
) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """Run one query; returns the per-query entry and its candidate images."""
    query = args.queries[index]
    limit = _pick(args.max_results, index) or DEFAULT_MAX_RESULTS
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-Token-Budget": str(limit * TOKENS_PER_RESULT),
    }
    site = _pick(args.sites, index)
    if site:
        headers["X-Site"] = site
    if args.with_links:
        headers["X-With-Links-Summary"] = "true"
    if args.with_images:
        headers["X-With-Images-Summary"] = "true"

    try:
        response = await client.post(
            JINA_SEARCH_URL,
            headers=headers,
            json={"q": query, "options": _pick(args.options, index) or "Markdown"},
        )
        data = _decode(response, "Search")
    except httpx.HTTPError as exc:
        logger.warning("Query %r failed: %r", query, exc)
        return _failed_search(query, f"Search failed: {exc!r}"), []
    except ToolExecutionError as exc:
        logger.warning("Query %r failed: %s", query, exc)
        return _failed_search(query, str(exc)), []

    raw: List[Dict[str, Any]] = [
        r for r in data.get("data") or [] if isinstance(r, dict) and r.get("url")
    ]
    # Excluded and duplicate hits must not use up the result limit.
    kept = dedupe_by_url(r for r in raw if not _is_excluded(r["url"], args.exclude_domains))
    results = [
        {
            "url": r["url"],
            "title": r.get("title"),
            "description": r.get("description") or "",
            "content": r.get("content"),
            "links": r.get("links") or {},
            "images": r.get("images") or {},
        }
        for r in kept[:limit]
    ]
    images = [
        {"url": str(url), "description": alt}
        for r in raw
        for alt, url in (r.get("images") or {}).items()
    ]
    entry = {
        "query": query,
        "results": results,
        "images": [],
        "resultCount": len(results),
        "imageCount": 0,
    }
    return entry, images


@register_tool("webSearch", SearchArgs, status="is searching the web...")
async def web_search(args: SearchArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Search the web for current information. Pass several related queries at once to find
    comprehensive information; they run in parallel. Best for general information queries, current
    events, or when you need multiple sources, e.g. "What are the latest developments in AI
    regulation?". Always include sources from the search results in your final response."""
    api_key = _jina_api_key()
    logger.info("Searching %d queries: %s", len(args.queries), args.queries)

    async with http_client(current_settings().HTTP_TIMEOUT) as client:
        outcomes = await asyncio.gather(
            *(_search_one(client, api_key, args, i) for i in range(len(args.queries)))
        )
        searches = [entry for entry, _ in outcomes]

        if all("error" in entry for entry in searches):
            raise ToolExecutionError(
                "All search queries failed: " + ", ".join(entry["error"] for entry in searches)
            )

        total = sum(entry["resultCount"] for entry in searches)
        await context.report(f"is reviewing {total} search results...")

        if args.with_images and any(images for _, images in outcomes):
            await context.report("is checking images...")
            for entry, images in outcomes:
                candidates = [
                    {"url": sanitize_url(img["url"]), "description": img["description"] or ""}
                    for img in dedupe_by_url(images)
                ]
                valid = await asyncio.gather(
                    *(is_valid_image_url(client, img["url"]) for img in candidates)
                )
                entry["images"] = [img for img, ok in zip(candidates, valid) if ok]
                entry["imageCount"] = len(entry["images"])

    return {"searches": searches}
