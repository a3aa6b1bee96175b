"""Deep research through Perplexity's ``sonar-deep-research`` model."""

import logging
import re
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
)

from threadmind.agent.context import RuntimeContext
from threadmind.config import current_settings
from threadmind.tools import (
    ToolExecutionError,
    register_tool,
)
from threadmind.tools.web import (
    dedupe_by_url,
    http_client,
)

logger = logging.getLogger(__name__)

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"

_THINK_BLOCK = re.compile(r"<think>.*?</think>\s*", re.DOTALL)

RESEARCH_PROMPT = """\
You are a meticulous research analyst. Investigate the question thoroughly, compare sources, and \
answer with clear structure. Cite your sources."""


class ResearchArgs(BaseModel):
    """Arguments of ``deepResearch``."""

    query: str = Field(..., min_length=1, description="The research question, fully specified")
    format: Optional[str] = Field(
        None, description="Desired shape of the answer, e.g. 'summary', 'comparison', 'report'"
    )
    perspective: Optional[str] = Field(
        None, description="Point of view to take, e.g. 'business', 'technical', 'academic'"
    )


def _instructions(args: ResearchArgs) -> str:
    parts = [RESEARCH_PROMPT]
    if args.format:
        parts.append(f"Format the answer as a {args.format}.")
    if args.perspective:
        parts.append(f"Take a {args.perspective} perspective.")
    return " ".join(parts)


def _citations(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Collect cited sources from either response shape Perplexity uses."""
    found: List[Dict[str, Any]] = []
    for item in data.get("search_results") or []:
        if isinstance(item, dict) and item.get("url"):
            found.append({"url": item["url"], "title": item.get("title") or ""})
    for url in data.get("citations") or []:
        if isinstance(url, str):
            found.append({"url": url, "title": ""})
    return dedupe_by_url(found)


@register_tool("deepResearch", ResearchArgs, status="is conducting deep research...")
async def deep_research(args: ResearchArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Conduct in-depth research on a complex topic and return a comprehensive, cited analysis.
    Best for complex questions, academic topics, or when detailed analysis is requested, e.g.
    "Explain the implications of quantum computing on cryptography". This tool takes minutes rather
    than seconds; ask clarifying questions first if the request is vague."""
    cfg = current_settings()
    if not cfg.PERPLEXITY_API_KEY:
        raise ToolExecutionError("PERPLEXITY_API_KEY environment variable is not set")

    payload = {
        "model": cfg.PERPLEXITY_MODEL,
        "messages": [
            {"role": "system", "content": _instructions(args)},
            {"role": "user", "content": args.query},
        ],
    }
    headers = {
        "Authorization": f"Bearer {cfg.PERPLEXITY_API_KEY}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }

    await context.report("is researching sources (this can take a few minutes)...")
    async with http_client(cfg.RESEARCH_TIMEOUT) as client:
        try:
            response = await client.post(PERPLEXITY_URL, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise ToolExecutionError(f"Deep research request failed: {exc!r}") from exc

    if not response.is_success:
        raise ToolExecutionError(
            f"Deep research failed: {response.status_code} {response.reason_phrase}"
        )
    try:
        data = response.json()
        content = data["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise ToolExecutionError("Deep research failed: malformed response body") from exc

    await context.report("is compiling research findings...")
    citations = _citations(data)
    logger.info("Deep research returned %d chars and %d citations", len(content), len(citations))
    return {
        "query": args.query,
        "content": _THINK_BLOCK.sub("", content).strip(),
        "citations": citations,
        "model": data.get("model") or cfg.PERPLEXITY_MODEL,
    }
