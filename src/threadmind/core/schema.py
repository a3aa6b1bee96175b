"""
Schema definitions for planner <-> agent <-> tool messages.

These data models serve as the contract between the planner LLM, the orchestration loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


class ConversationMessage(BaseModel):
    """One chat message of the thread transcript."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class ToolCall(BaseModel):
    """A call that the planner wants the agent to execute."""

    id: str = Field(..., description="Provider-assigned call id, echoed back with the result")
    name: str = Field(..., description="Registered tool name")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the tool")


class ToolExchange(BaseModel):
    """
    A completed tool step: what the assistant asked for and what came back.

    ``results[i]`` is the result of ``calls[i]``.
    """

    content: str = ""
    calls: List[ToolCall] = Field(default_factory=list)
    results: List[Dict[str, Any]] = Field(default_factory=list)


TranscriptEntry = Union[ConversationMessage, ToolExchange]


class PlannerStep(BaseModel):
    """A single decision of the planner LLM."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)


class StepRecord(BaseModel):
    """One round of the orchestration loop (for logging / tool result inspection)."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[Dict[str, Any]] = Field(default_factory=list)


class SessionResult(BaseModel):
    """Outcome of a bounded planner session."""

    text: str
    steps: List[StepRecord] = Field(default_factory=list)
    finished: bool = True  # False when the step budget ran out
