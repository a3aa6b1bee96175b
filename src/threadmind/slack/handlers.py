"""Slack event handlers: assistant threads, DM thread messages and channel mentions."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

from slack_sdk.web.async_client import AsyncWebClient

from threadmind.agent.agent_loop import (
    THINKING_STATUS,
    generate_response,
)
from threadmind.agent.context import RuntimeContext
from threadmind.core.schema import ConversationMessage
from threadmind.slack.client import (
    SlackMessageStatus,
    SlackThreadStatus,
    get_bot_id,
    get_client,
    get_thread,
    post_reply,
)

logger = logging.getLogger(__name__)

GREETING = (
    "Hello, I'm an AI assistant. I can search the web, read webpages, research topics "
    "and work on canvases."
)
APOLOGY = "Sorry, I encountered an error while processing your request. Please try again."

SUGGESTED_PROMPTS: List[Dict[str, str]] = [
    {
        "title": "Search the web",
        "message": "What are the latest developments in AI technology?",
    },
    {
        "title": "Scrape a webpage",
        "message": "What are the strengths and weaknesses of this landing page? "
        "https://example.com",
    },
    {
        "title": "Research a topic",
        "message": "Ask me clarifying questions to research this query: "
        "the market size for AI consultants this year.",
    },
    {
        "title": "Create a canvas",
        "message": "Create a canvas summarizing the latest developments in AI technology, "
        "including key trends and breakthroughs.",
    },
]


def is_from_bot(event: Dict[str, Any], bot_user_id: str) -> bool:
    """True for events authored by a bot, including this one."""
    return bool(event.get("bot_id") or event.get("bot_profile") or event.get("user") == bot_user_id)


async def assistant_thread_started(
    event: Dict[str, Any], client: AsyncWebClient | None = None
) -> None:
    """Greet the user and offer suggested prompts in a new assistant thread."""
    client = client or get_client()
    thread = event["assistant_thread"]
    channel_id, thread_ts = thread["channel_id"], thread["thread_ts"]
    logger.info("Thread started: %s %s", channel_id, thread_ts)

    await client.chat_postMessage(channel=channel_id, thread_ts=thread_ts, text=GREETING)
    await client.assistant_threads_setSuggestedPrompts(
        channel_id=channel_id, thread_ts=thread_ts, prompts=SUGGESTED_PROMPTS
    )


async def handle_new_assistant_message(
    event: Dict[str, Any], bot_user_id: str, client: AsyncWebClient | None = None
) -> None:
    """Answer a message posted in an assistant (DM) thread."""
    if is_from_bot(event, bot_user_id) or not event.get("thread_ts"):
        return

    client = client or get_client()
    channel_id, thread_ts = event["channel"], event["thread_ts"]
    status = SlackThreadStatus(channel_id, thread_ts, client)
    context = RuntimeContext(status=status, channel_id=channel_id, thread_ts=thread_ts)

    try:
        messages = await get_thread(channel_id, thread_ts, bot_user_id, client)
        reply = await generate_response(messages, context=context)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Error answering assistant message in %s/%s", channel_id, thread_ts)
        await post_reply(channel_id, thread_ts, APOLOGY, client)
        await context.report("")
        return

    await post_reply(channel_id, thread_ts, reply, client)
    await context.report("")


async def handle_app_mention(
    event: Dict[str, Any], bot_user_id: str, client: AsyncWebClient | None = None
) -> None:
    """Answer a mention of the bot in a channel, in the mention's thread."""
    if is_from_bot(event, bot_user_id):
        logger.info("Skipping app mention from bot")
        return

    client = client or get_client()
    channel_id = event["channel"]
    thread_ts = event.get("thread_ts") or event["ts"]
    status = SlackMessageStatus(channel_id, thread_ts, client)
    context = RuntimeContext(status=status, channel_id=channel_id, thread_ts=thread_ts)
    logger.info("Handling app mention %s in %s (thread %s)", event["ts"], channel_id, thread_ts)

    try:
        # Read the thread before the placeholder exists so it never ends the transcript.
        if event.get("thread_ts"):
            messages = await get_thread(channel_id, thread_ts, bot_user_id, client)
        else:
            text = event.get("text", "").replace(f"<@{bot_user_id}>", "").strip()
            messages = [ConversationMessage(role="user", content=text)]
        await status.start(THINKING_STATUS)
        reply = await generate_response(messages, context=context)
        await status.finish(reply)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Error handling app mention %s", event.get("ts"))
        await context.report(APOLOGY)


async def dispatch_event(event: Dict[str, Any], client: AsyncWebClient | None = None) -> None:
    """Route one ``event_callback`` inner event to its handler."""
    event_type = event.get("type")
    if event_type == "assistant_thread_started":
        await assistant_thread_started(event, client)
        return

    bot_user_id = await get_bot_id(client)
    if event_type == "app_mention":
        await handle_app_mention(event, bot_user_id, client)
    elif (
        event_type == "message"
        and event.get("channel_type") == "im"
        and not event.get("subtype")
        and not event.get("bot_id")
        and not event.get("bot_profile")
        and event.get("user") != bot_user_id
    ):
        await handle_new_assistant_message(event, bot_user_id, client)
    else:
        logger.debug("Ignoring event of type %s", event_type)
