"""Main orchestration loop for threadmind."""

from __future__ import annotations

import dataclasses
import logging
from datetime import date
from typing import (
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
)

from threadmind.agent.context import (
    RuntimeContext,
    StatusReporter,
)
from threadmind.agent.planner_interface import (
    BasePlanner,
    load_planner,
)
from threadmind.agent.tool_executor import execute_tool_calls
from threadmind.config import settings
from threadmind.core.schema import (
    ConversationMessage,
    SessionResult,
    StepRecord,
    ToolExchange,
    TranscriptEntry,
)
from threadmind.slack.blocks import to_slack_mrkdwn
from threadmind.tools import (
    Tool,
    default_registry,
    get_tool_schemas,
    wrap_tool,
)

logger = logging.getLogger(__name__)

THINKING_STATUS = "is thinking..."
FINALIZING_STATUS = "is finalizing response..."

StepHook = Callable[[StepRecord], Awaitable[None]]

SYSTEM_PROMPT = """\
You are a helpful Slack bot assistant. Keep your responses concise and to the point. \
Before doing deep research, you should ask clarifying questions.

CURRENT DATE: {today}

AVAILABLE TOOLS:
{catalog}

TOOL SELECTION GUIDELINES:
- For simple questions you can answer directly, don't use any tools
- For factual questions about current events or recent information, use webSearch
- For questions about specific websites or articles, use webScrape
- For complex questions requiring in-depth analysis, use deepResearch
- To change an existing canvas, use editDocument with the canvas id and the user's instruction
- When uncertain about information accuracy or recency, use webSearch to verify
- Only use one tool per response unless absolutely necessary

RESPONSE FORMATTING:
- Keep responses concise and focused
- Format lists with bullet points
- Do not tag users
- Always include sources when using web search tools
- Convert markdown links to Slack format in your final response

Remember to maintain a helpful, professional tone while being conversational and engaging."""


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
def build_system_prompt(tools: Mapping[str, Tool], today: date | None = None) -> str:
    """Render the assistant's system prompt for the given tool roster."""
    catalog = "\n".join(
        f"{i}. {name} - {' '.join(tool.description.split())}"
        for i, (name, tool) in enumerate(tools.items(), start=1)
    )
    return SYSTEM_PROMPT.format(
        today=(today or date.today()).isoformat(), catalog=catalog or "(none)"
    )


async def run_session(
    planner: BasePlanner,
    system_prompt: str,
    transcript: Sequence[TranscriptEntry],
    tools: Mapping[str, Tool],
    context: RuntimeContext | None = None,
    max_steps: int = 10,
    on_step_finish: StepHook | None = None,
) -> SessionResult:
    """
    Run a bounded tool-calling session.

    Each step asks *planner* for a decision.  A step without tool calls ends the session with that
    text.  Otherwise every requested call runs concurrently against *tools*, the exchange is
    appended to the (private copy of the) transcript and the loop continues.  When *max_steps* runs
    out, the text of the last step is returned as-is with ``finished=False``.

    Planner exceptions are not caught.
    """
    if context is None:
        context = RuntimeContext()
    if max_steps < 1:
        raise ValueError("max_steps must be at least 1")

    history: List[TranscriptEntry] = list(transcript)
    schemas = get_tool_schemas(tools)
    steps: List[StepRecord] = []
    last_text = ""

    for step_no in range(1, max_steps + 1):
        decision = await planner.step(system_prompt, history, schemas)
        last_text = decision.text

        if not decision.tool_calls:
            logger.info("Session finished after %d step(s)", step_no)
            steps.append(StepRecord(text=decision.text))
            return SessionResult(text=decision.text, steps=steps, finished=True)

        logger.info(
            "Step %d/%d: planner returned %d tool call(s): %s",
            step_no,
            max_steps,
            len(decision.tool_calls),
            [call.name for call in decision.tool_calls],
        )
        results = await execute_tool_calls(tools, decision.tool_calls, context)
        history.append(
            ToolExchange(content=decision.text, calls=decision.tool_calls, results=results)
        )
        record = StepRecord(
            text=decision.text, tool_calls=decision.tool_calls, tool_results=results
        )
        steps.append(record)

        if results and on_step_finish is not None:
            await on_step_finish(record)

    logger.warning("Step budget of %d exhausted; returning last planner text", max_steps)
    return SessionResult(text=last_text, steps=steps, finished=False)


async def generate_response(
    messages: Sequence[ConversationMessage],
    status: StatusReporter | None = None,
    context: RuntimeContext | None = None,
    planner: BasePlanner | None = None,
    tools: Mapping[str, Tool] | None = None,
) -> str:
    """
    Answer the last user turn of *messages*.

    Progress is reported through *status* (or the reporter already on *context*).  The returned
    text is already converted to Slack mrkdwn.  Planner failures propagate to the caller.
    """
    if context is None:
        context = RuntimeContext()
    if status is not None:
        context = dataclasses.replace(context, status=status)
    planner = planner or context.planner or load_planner()
    context = dataclasses.replace(context, planner=planner)

    logger.info("Starting response generation (%d message(s))", len(messages))
    await context.report(THINKING_STATUS)

    registry = default_registry() if tools is None else tools
    wrapped: Dict[str, Tool] = {name: wrap_tool(tool) for name, tool in registry.items()}

    async def finalizing(_record: StepRecord) -> None:
        await context.report(FINALIZING_STATUS)

    result = await run_session(
        planner,
        build_system_prompt(registry),
        messages,
        wrapped,
        context=context,
        max_steps=settings.MAX_STEPS,
        on_step_finish=finalizing,
    )

    logger.info("Formatting complete, returning response")
    return to_slack_mrkdwn(result.text)
