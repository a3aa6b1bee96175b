"""Tests for the orchestration loop and the response pipeline."""

from datetime import date
from typing import Dict

import pytest
from pydantic import BaseModel

from threadmind.agent.agent_loop import (
    FINALIZING_STATUS,
    THINKING_STATUS,
    build_system_prompt,
    generate_response,
    run_session,
)
from threadmind.agent.context import RuntimeContext
from threadmind.core.schema import (
    ConversationMessage,
    PlannerStep,
    ToolExchange,
)
from threadmind.slack.blocks import chunk_message
from threadmind.tools import (
    ANALYZING_STATUS,
    Tool,
    ToolExecutionError,
    register_tool,
)

from conftest import (
    ScriptedPlanner,
    call,
)

TOOLS: Dict[str, Tool] = {}


class EchoArgs(BaseModel):
    text: str


@register_tool("echo", EchoArgs, status="is echoing...", registry=TOOLS)
async def _echo(args: EchoArgs, context: RuntimeContext) -> dict:
    """Echo the given text back."""
    return {"echo": args.text}


@register_tool("broken", EchoArgs, registry=TOOLS)
async def _broken(args: EchoArgs, context: RuntimeContext) -> dict:
    """Always fails."""
    raise ToolExecutionError("service unavailable")


USER = [ConversationMessage(role="user", content="hi")]


@pytest.mark.asyncio
async def test_direct_answer_finishes_in_one_step() -> None:
    planner = ScriptedPlanner([PlannerStep(text="Hello!")])
    result = await run_session(planner, "sys", USER, TOOLS)

    assert result.finished
    assert result.text == "Hello!"
    assert len(result.steps) == 1
    assert set(planner.calls[0]["tools"]) == {"echo", "broken"}


@pytest.mark.asyncio
async def test_tool_results_are_fed_back() -> None:
    planner = ScriptedPlanner(
        [
            PlannerStep(text="Let me check.", tool_calls=[call("echo", text="ping")]),
            PlannerStep(text="Got ping."),
        ]
    )
    result = await run_session(planner, "sys", USER, TOOLS)

    assert result.text == "Got ping."
    exchange = planner.calls[1]["transcript"][-1]
    assert isinstance(exchange, ToolExchange)
    assert exchange.content == "Let me check."
    assert exchange.results == [{"echo": "ping"}]
    assert result.steps[0].tool_results == [{"echo": "ping"}]


@pytest.mark.asyncio
async def test_caller_transcript_not_mutated() -> None:
    transcript = list(USER)
    planner = ScriptedPlanner(
        [PlannerStep(tool_calls=[call("echo", text="x")]), PlannerStep(text="done")]
    )
    await run_session(planner, "sys", transcript, TOOLS)
    assert transcript == USER


@pytest.mark.asyncio
async def test_tool_error_does_not_abort_session() -> None:
    planner = ScriptedPlanner(
        [
            PlannerStep(tool_calls=[call("broken", "c1", text="x"), call("missing", "c2")]),
            PlannerStep(text="Sorry, the service is down."),
        ]
    )
    result = await run_session(planner, "sys", USER, TOOLS)

    assert result.finished
    assert result.steps[0].tool_results[0] == {"error": "service unavailable"}
    assert "missing" in result.steps[0].tool_results[1]["error"]


@pytest.mark.asyncio
async def test_step_budget_returns_last_text() -> None:
    planner = ScriptedPlanner([PlannerStep(text="still working", tool_calls=[call("echo", text="x")])])
    result = await run_session(planner, "sys", USER, TOOLS, max_steps=3)

    assert not result.finished
    assert result.text == "still working"
    assert len(result.steps) == 3
    assert len(planner.calls) == 3


@pytest.mark.asyncio
async def test_invalid_budget() -> None:
    with pytest.raises(ValueError):
        await run_session(ScriptedPlanner([PlannerStep()]), "sys", USER, TOOLS, max_steps=0)


@pytest.mark.asyncio
async def test_step_hook_runs_only_after_tool_steps() -> None:
    seen = []

    async def hook(record) -> None:
        seen.append(record.tool_results)

    planner = ScriptedPlanner(
        [PlannerStep(tool_calls=[call("echo", text="a")]), PlannerStep(text="done")]
    )
    await run_session(planner, "sys", USER, TOOLS, on_step_finish=hook)
    assert seen == [[{"echo": "a"}]]


@pytest.mark.asyncio
async def test_planner_errors_propagate() -> None:
    class ExplodingPlanner(ScriptedPlanner):
        async def step(self, system_prompt, transcript, tools):
            raise RuntimeError("rate limited")

    with pytest.raises(RuntimeError, match="rate limited"):
        await run_session(ExplodingPlanner([]), "sys", USER, TOOLS)


def test_system_prompt_lists_tools() -> None:
    prompt = build_system_prompt(TOOLS, today=date(2025, 3, 1))
    assert "CURRENT DATE: 2025-03-01" in prompt
    assert "1. echo - Echo the given text back." in prompt
    assert "2. broken - Always fails." in prompt


@pytest.mark.asyncio
async def test_generate_response_direct_answer_is_single_block(status) -> None:
    planner = ScriptedPlanner([PlannerStep(text="**Hi** see [docs](https://x.io)")])
    reply = await generate_response(USER, status=status, planner=planner, tools=TOOLS)

    assert reply == "*Hi* see <https://x.io|docs>"
    assert len(chunk_message(reply)) == 1
    assert status.updates == [THINKING_STATUS]


@pytest.mark.asyncio
async def test_generate_response_status_order(status) -> None:
    planner = ScriptedPlanner(
        [PlannerStep(tool_calls=[call("echo", text="x")]), PlannerStep(text="done")]
    )
    reply = await generate_response(USER, status=status, planner=planner, tools=TOOLS)

    assert reply == "done"
    assert status.updates == [
        THINKING_STATUS,
        "is echoing...",
        ANALYZING_STATUS,
        FINALIZING_STATUS,
    ]
    # Wrapping for status reporting must not touch the registry itself.
    assert TOOLS["echo"].handler is _echo


@pytest.mark.asyncio
async def test_failing_status_reporter_is_ignored() -> None:
    class BrokenStatus:
        async def update(self, text: str) -> None:
            raise ConnectionError("slack down")

    planner = ScriptedPlanner(
        [PlannerStep(tool_calls=[call("echo", text="x")]), PlannerStep(text="done")]
    )
    assert await generate_response(USER, status=BrokenStatus(), planner=planner, tools=TOOLS) == "done"
