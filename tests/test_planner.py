"""Tests for the OpenAI / Anthropic planners, with the SDK clients replaced by fakes."""

from types import SimpleNamespace

import pytest

from threadmind.agent.planner_interface import (
    AnthropicPlanner,
    OpenAIPlanner,
    load_planner,
)
from threadmind.core.schema import (
    ConversationMessage,
    ToolExchange,
)

from conftest import call

TRANSCRIPT = [
    ConversationMessage(role="user", content="weather?"),
    ToolExchange(
        content="checking",
        calls=[call("webSearch", "c1", queries=["weather"]), call("webScrape", "c2", url="x")],
        results=[{"searches": []}, {"error": "bad url"}],
    ),
]

SCHEMAS = {"webSearch": {"description": "Search", "parameters": {"type": "object"}}}


class FakeCompletions:
    def __init__(self, message) -> None:
        self.message = message
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(choices=[SimpleNamespace(message=self.message)])


def test_load_planner_by_name() -> None:
    assert isinstance(load_planner("anthropic"), AnthropicPlanner)
    assert isinstance(load_planner("OpenAI"), OpenAIPlanner)
    with pytest.raises(ValueError):
        load_planner("tgi")


def test_openai_messages() -> None:
    messages = OpenAIPlanner.build_messages("sys", TRANSCRIPT)
    assert messages[0] == {"role": "system", "content": "sys"}
    assert messages[1] == {"role": "user", "content": "weather?"}
    assert messages[2]["role"] == "assistant"
    assert [tc["id"] for tc in messages[2]["tool_calls"]] == ["c1", "c2"]
    assert messages[3] == {"role": "tool", "tool_call_id": "c1", "content": '{"searches": []}'}
    assert messages[4]["tool_call_id"] == "c2"


@pytest.mark.asyncio
async def test_openai_step_parses_tool_calls() -> None:
    message = SimpleNamespace(
        content=None,
        tool_calls=[
            SimpleNamespace(
                id="c9",
                function=SimpleNamespace(name="webSearch", arguments='{"queries": ["a"]}'),
            ),
            SimpleNamespace(id="c10", function=SimpleNamespace(name="webScrape", arguments="{oops")),
        ],
    )
    completions = FakeCompletions(message)
    planner = OpenAIPlanner(model="m", client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))

    step = await planner.step("sys", TRANSCRIPT[:1], SCHEMAS)

    assert step.text == ""
    assert [(c.id, c.name, c.args) for c in step.tool_calls] == [
        ("c9", "webSearch", {"queries": ["a"]}),
        ("c10", "webScrape", {}),
    ]
    assert completions.kwargs["tools"][0]["function"]["name"] == "webSearch"


def test_anthropic_messages_alternate_roles() -> None:
    transcript = [ConversationMessage(role="user", content="one"), ConversationMessage(role="user", content="two")]
    transcript += TRANSCRIPT[1:]
    messages = AnthropicPlanner.build_messages(transcript)

    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert [b["text"] for b in messages[0]["content"]] == ["one", "two"]
    assert [b["type"] for b in messages[1]["content"]] == ["text", "tool_use", "tool_use"]
    results = messages[2]["content"]
    assert [r["tool_use_id"] for r in results] == ["c1", "c2"]
    assert [r["is_error"] for r in results] == [False, True]


@pytest.mark.asyncio
async def test_anthropic_step() -> None:
    class FakeMessages:
        async def create(self, **kwargs):
            self.kwargs = kwargs
            return SimpleNamespace(
                stop_reason="tool_use",
                content=[
                    SimpleNamespace(type="text", text="Searching."),
                    SimpleNamespace(type="tool_use", id="t1", name="webSearch", input={"queries": ["a"]}),
                ],
            )

    fake = FakeMessages()
    planner = AnthropicPlanner(model="m", client=SimpleNamespace(messages=fake))
    step = await planner.step("sys", TRANSCRIPT[:1], SCHEMAS)

    assert step.text == "Searching."
    assert step.tool_calls[0].args == {"queries": ["a"]}
    assert fake.kwargs["system"] == "sys"
    assert fake.kwargs["tools"][0]["input_schema"] == {"type": "object"}
