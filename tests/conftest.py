"""Shared fixtures: a scripted planner, a recording status reporter and a clean environment."""

from typing import (
    Callable,
    List,
    Mapping,
    Sequence,
    Union,
)

import pytest

from threadmind.agent.planner_interface import BasePlanner
from threadmind.core.schema import (
    PlannerStep,
    ToolCall,
    TranscriptEntry,
)
from threadmind.tools import ToolSchema

ScriptItem = Union[PlannerStep, Callable[[Sequence[TranscriptEntry]], PlannerStep]]


class ScriptedPlanner(BasePlanner):
    """Planner replaying a fixed list of decisions; the last one repeats forever."""

    def __init__(self, script: List[ScriptItem]) -> None:
        self.script = list(script)
        self.calls: List[dict] = []

    async def step(
        self,
        system_prompt: str,
        transcript: Sequence[TranscriptEntry],
        tools: Mapping[str, ToolSchema],
    ) -> PlannerStep:
        self.calls.append(
            {"system_prompt": system_prompt, "transcript": list(transcript), "tools": dict(tools)}
        )
        item = self.script[min(len(self.calls), len(self.script)) - 1]
        return item(transcript) if callable(item) else item


class RecordingStatus:
    """Status reporter keeping every update in order."""

    def __init__(self) -> None:
        self.updates: List[str] = []

    async def update(self, text: str) -> None:
        self.updates.append(text)


def call(name: str, call_id: str = "call_1", **args) -> ToolCall:
    return ToolCall(id=call_id, name=name, args=args)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials from the developer's shell out of the tests."""
    for key in ("JINA_API_KEY", "PERPLEXITY_API_KEY", "SLACK_BOT_TOKEN"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def status() -> RecordingStatus:
    return RecordingStatus()
