"""
Turn generated text into Slack-sized message blocks.

Slack caps a message at 40,000 characters of text and a ``section`` block at 3,000.  Long answers
are truncated with a visible notice and then cut into ordered section blocks, preferring to break
on whitespace.
"""

import re
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import BaseModel

SLACK_TEXT_LIMIT = 40000
SECTION_BLOCK_LIMIT = 3000
BOUNDARY_WINDOW = 100
TRUNCATION_MARGIN = 100
TRUNCATION_NOTICE = (
    "\n\n[Message truncated due to length. Consider breaking your query into smaller parts.]"
)

_MARKDOWN_LINK = re.compile(r"\[(.*?)\]\((.*?)\)")


class MessageBlock(BaseModel):
    """One independently renderable piece of a chunked message."""

    text: str
    limit: int


def truncate_message(text: str, max_total: int = SLACK_TEXT_LIMIT) -> str:
    """Cut *text* down to *max_total* characters, appending :data:`TRUNCATION_NOTICE`."""
    if len(text) <= max_total:
        return text
    return text[: max(max_total - TRUNCATION_MARGIN, 0)] + TRUNCATION_NOTICE


def _find_cut(text: str, start: int, end: int, window: int) -> int:
    """Return where the block ``text[start:end]`` should end."""
    floor = max(start, end - window)
    for idx in range(end - 1, floor - 1, -1):
        if text[idx].isspace():
            return idx + 1  # keep the whitespace on this block
    return end


def chunk_message(
    text: str,
    max_total: int = SLACK_TEXT_LIMIT,
    max_block: int = SECTION_BLOCK_LIMIT,
    window: int = BOUNDARY_WINDOW,
) -> List[MessageBlock]:
    """
    Split *text* into ordered blocks of at most *max_block* characters.

    Joining the returned texts gives back the (possibly truncated) message exactly.  An empty
    message yields a single block holding one space, since Slack rejects empty text.
    """
    if max_block <= 0:
        raise ValueError("max_block must be positive")

    message = truncate_message(text, max_total)
    if not message:
        return [MessageBlock(text=" ", limit=max_block)]

    blocks: List[MessageBlock] = []
    start = 0
    while start < len(message):
        if start + max_block >= len(message):
            blocks.append(MessageBlock(text=message[start:], limit=max_block))
            break
        cut = _find_cut(message, start, start + max_block, window)
        blocks.append(MessageBlock(text=message[start:cut], limit=max_block))
        start = cut
    return blocks


def to_section_blocks(blocks: Sequence[MessageBlock]) -> List[Dict[str, Any]]:
    """Render blocks as Slack Block Kit ``section`` blocks, in order."""
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": block.text},
            "expand": True,
        }
        for block in blocks
    ]


def to_slack_mrkdwn(text: str) -> str:
    """Rewrite markdown links and bold markers into Slack's mrkdwn dialect."""
    return _MARKDOWN_LINK.sub(r"<\2|\1>", text).replace("**", "*")
