"""
Slack Web API helpers: thread history, status surfaces and reply posting.

All calls go through ``slack_sdk``'s :class:`AsyncWebClient` authenticated with
``SLACK_BOT_TOKEN``.
"""

import logging
import re
from typing import (
    Any,
    Dict,
    List,
)

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from threadmind.config import current_settings
from threadmind.core.schema import ConversationMessage
from threadmind.slack.blocks import (
    chunk_message,
    to_section_blocks,
)

logger = logging.getLogger(__name__)

THREAD_HISTORY_LIMIT = 50

_CANVAS_LINK = re.compile(r"/docs/(?:[^/]+/|canvas/)([A-Z0-9]+)")
_SLACK_LINK = re.compile(r"<(https?://[^|>]+)(?:\|[^>]+)?>")

_client: AsyncWebClient | None = None


def get_client() -> AsyncWebClient:
    """Return the shared Slack client, creating it on first use."""
    global _client  # pylint: disable=global-statement
    if _client is None:
        token = current_settings().SLACK_BOT_TOKEN
        if not token:
            raise RuntimeError("SLACK_BOT_TOKEN environment variable is not set")
        _client = AsyncWebClient(token=token)
    return _client


def set_client(client: AsyncWebClient | None) -> None:
    """Replace the shared client (used by tests and alternative entry points)."""
    global _client  # pylint: disable=global-statement
    _client = client


async def get_bot_id(client: AsyncWebClient | None = None) -> str:
    """Return the bot's own user id."""
    response = await (client or get_client()).auth_test()
    bot_user_id = response.get("user_id")
    if not bot_user_id:
        raise RuntimeError("botUserId is undefined")
    return bot_user_id


# ---------------------------------------------------------------------------
# Canvas links in messages
# ---------------------------------------------------------------------------
def extract_canvas_id(link: str) -> str | None:
    """
    Extract a canvas id from a Slack canvas link.

    Handles both ``https://<workspace>.slack.com/docs/<team>/F12345`` and
    ``https://slack.com/docs/canvas/F12345``.
    """
    match = _CANVAS_LINK.search(link)
    return match.group(1) if match else None


async def get_canvas_content(canvas_id: str, client: AsyncWebClient | None = None) -> str | None:
    """Return a text preview of the canvas, or ``None`` if it cannot be found."""
    try:
        response = await (client or get_client()).files_list(types="canvas")
    except SlackApiError as exc:
        logger.warning("Failed to retrieve canvas list: %s", exc)
        return None

    canvas = next((f for f in response.get("files") or [] if f.get("id") == canvas_id), None)
    if canvas is None:
        logger.info("Canvas with ID %s not found", canvas_id)
        return None
    if canvas.get("preview"):
        return canvas["preview"]
    if canvas.get("permalink"):
        return f"Canvas content available at: {canvas['permalink']}"
    logger.info("No preview content available for canvas %s", canvas_id)
    return None


async def _expand_canvas_links(content: str, client: AsyncWebClient) -> str:
    for url in _SLACK_LINK.findall(content):
        if "/docs/" not in url and "/canvas/" not in url:
            continue
        canvas_id = extract_canvas_id(url)
        if not canvas_id:
            continue
        logger.info("Found canvas link with ID: %s", canvas_id)
        canvas_content = await get_canvas_content(canvas_id, client)
        if canvas_content:
            content += (
                f"\n\n--- Canvas Content (id {canvas_id}) ---\n{canvas_content}"
                "\n--- End Canvas Content ---"
            )
    return content


# ---------------------------------------------------------------------------
# Thread history
# ---------------------------------------------------------------------------
async def get_thread(
    channel_id: str,
    thread_ts: str,
    bot_user_id: str,
    client: AsyncWebClient | None = None,
) -> List[ConversationMessage]:
    """
    Build the transcript of a thread.

    Messages posted by bots become ``assistant`` turns and everything else ``user`` turns.  The bot
    mention prefix is stripped from user messages and linked canvases are appended as context.
    """
    client = client or get_client()
    response = await client.conversations_replies(
        channel=channel_id, ts=thread_ts, limit=THREAD_HISTORY_LIMIT
    )
    messages = response.get("messages")
    if not messages:
        raise RuntimeError("No messages found in thread")

    transcript: List[ConversationMessage] = []
    for message in messages:
        text = message.get("text")
        if not text:
            continue
        is_bot = bool(message.get("bot_id"))
        if not is_bot:
            text = text.replace(f"<@{bot_user_id}> ", "").replace(f"<@{bot_user_id}>", "")
            text = await _expand_canvas_links(text, client)
        transcript.append(ConversationMessage(role="assistant" if is_bot else "user", content=text))
    return transcript


# ---------------------------------------------------------------------------
# Status surfaces
# ---------------------------------------------------------------------------
class SlackThreadStatus:
    """Shows progress in the assistant thread status line (``assistant.threads.setStatus``)."""

    def __init__(self, channel_id: str, thread_ts: str, client: AsyncWebClient | None = None):
        self.channel_id = channel_id
        self.thread_ts = thread_ts
        self._client = client

    async def update(self, text: str) -> None:
        logger.debug("Status for %s/%s: %s", self.channel_id, self.thread_ts, text)
        await (self._client or get_client()).assistant_threads_setStatus(
            channel_id=self.channel_id, thread_ts=self.thread_ts, status=text
        )


class SlackMessageStatus:
    """
    Shows progress by editing a placeholder message (used for channel mentions).

    Call :meth:`start` once to post the placeholder and :meth:`finish` to turn it into the reply.
    """

    def __init__(self, channel_id: str, thread_ts: str, client: AsyncWebClient | None = None):
        self.channel_id = channel_id
        self.thread_ts = thread_ts
        self._client = client
        self.message_ts: str | None = None

    async def start(self, text: str) -> None:
        response = await (self._client or get_client()).chat_postMessage(
            channel=self.channel_id, thread_ts=self.thread_ts, text=text
        )
        self.message_ts = response.get("ts")
        if not self.message_ts:
            raise RuntimeError("Failed to post initial message")

    async def update(self, text: str) -> None:
        if self.message_ts is None:
            await self.start(text or " ")
            return
        # Slack rejects empty message text.
        await (self._client or get_client()).chat_update(
            channel=self.channel_id, ts=self.message_ts, text=text if text.strip() else " "
        )

    async def finish(self, text: str) -> None:
        """Replace the placeholder with the final reply, so the thread keeps no status text."""
        if self.message_ts is None:
            await post_reply(self.channel_id, self.thread_ts, text, self._client)
            return
        blocks = chunk_message(text)
        await (self._client or get_client()).chat_update(
            channel=self.channel_id,
            ts=self.message_ts,
            text="".join(block.text for block in blocks),
            blocks=to_section_blocks(blocks),
        )
        logger.info(
            "Replaced placeholder %s with reply in %d block(s)", self.message_ts, len(blocks)
        )


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------
async def post_reply(
    channel_id: str,
    thread_ts: str,
    text: str,
    client: AsyncWebClient | None = None,
) -> Dict[str, Any]:
    """Post *text* to the thread as ordered section blocks, with the full text as fallback."""
    blocks = chunk_message(text)
    fallback = "".join(block.text for block in blocks)
    response = await (client or get_client()).chat_postMessage(
        channel=channel_id,
        thread_ts=thread_ts,
        text=fallback,
        blocks=to_section_blocks(blocks),
        unfurl_links=False,
    )
    logger.info("Posted reply in %d block(s) to %s/%s", len(blocks), channel_id, thread_ts)
    return {"ok": bool(response.get("ok")), "ts": response.get("ts"), "blocks": len(blocks)}
