"""
Planner interface for threadmind.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
Slack glue) stays model-agnostic.

A planner performs one step of a tool-calling session: given the system prompt, the transcript so
far and the tools on offer, it returns either a final answer or a list of tool calls.  We support
two back-ends out of the box:

1. **OpenAI** chat completions with function tools.
2. **Anthropic** messages with ``tool_use`` blocks.

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.

Unlike tool failures, errors raised by the provider SDKs are *not* caught here: they propagate to
the caller of the session, which is responsible for telling the user.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
    Type,
)

from threadmind.config import settings
from threadmind.core.schema import (
    ConversationMessage,
    PlannerStep,
    ToolCall,
    ToolExchange,
    TranscriptEntry,
)
from threadmind.tools import ToolSchema

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "PLANNER", "openai")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that turns a transcript into tool calls or a final answer."""

    @abstractmethod
    async def step(
        self,
        system_prompt: str,
        transcript: Sequence[TranscriptEntry],
        tools: Mapping[str, ToolSchema],
    ) -> PlannerStep:
        """Run one LLM call and return its decision."""


def _parse_arguments(name: str, raw: str | None) -> Dict[str, Any]:
    """Decode the JSON arguments string of a function call."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Tool call '%s' carried malformed JSON arguments: %s", name, exc)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Tool call '%s' arguments are not an object: %r", name, parsed)
        return {}
    return parsed


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI chat-completions planner with native function calling."""

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self.model = model or settings.OPENAI_MODEL
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily construct the async SDK client."""
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        return self._client

    @staticmethod
    def build_messages(
        system_prompt: str, transcript: Sequence[TranscriptEntry]
    ) -> List[Dict[str, Any]]:
        """Translate the transcript into chat-completions messages."""
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for entry in transcript:
            if isinstance(entry, ConversationMessage):
                messages.append({"role": entry.role, "content": entry.content})
                continue
            messages.append(
                {
                    "role": "assistant",
                    "content": entry.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.args)},
                        }
                        for call in entry.calls
                    ],
                }
            )
            for call, result in zip(entry.calls, entry.results):
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "content": json.dumps(result)}
                )
        return messages

    @staticmethod
    def build_tools(tools: Mapping[str, ToolSchema]) -> List[Dict[str, Any]]:
        """Translate tool schemas into OpenAI function specs."""
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": schema["description"],
                    "parameters": schema["parameters"],
                },
            }
            for name, schema in tools.items()
        ]

    async def step(
        self,
        system_prompt: str,
        transcript: Sequence[TranscriptEntry],
        tools: Mapping[str, ToolSchema],
    ) -> PlannerStep:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(system_prompt, transcript),
        }
        if tools:
            kwargs["tools"] = self.build_tools(tools)

        resp = await self.client.chat.completions.create(**kwargs)
        message = resp.choices[0].message

        calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                args=_parse_arguments(tc.function.name, tc.function.arguments),
            )
            for tc in message.tool_calls or []
        ]
        logger.debug("OpenAI planner step: text=%r calls=%s", message.content, calls)
        return PlannerStep(text=message.content or "", tool_calls=calls)


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude planner using ``tool_use`` content blocks."""

    max_tokens = 8192

    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self.model = model or settings.ANTHROPIC_MODEL
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily construct the async SDK client."""
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        return self._client

    @staticmethod
    def build_messages(transcript: Sequence[TranscriptEntry]) -> List[Dict[str, Any]]:
        """
        Translate the transcript into Anthropic messages.

        The messages API wants strictly alternating roles, so consecutive entries of the same role
        are merged into one message with several content blocks.
        """
        messages: List[Dict[str, Any]] = []

        def push(role: str, blocks: List[Dict[str, Any]]) -> None:
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(blocks)
            else:
                messages.append({"role": role, "content": blocks})

        for entry in transcript:
            if isinstance(entry, ConversationMessage):
                push(entry.role, [{"type": "text", "text": entry.content}])
                continue
            blocks: List[Dict[str, Any]] = []
            if entry.content:
                blocks.append({"type": "text", "text": entry.content})
            blocks.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.args}
                for call in entry.calls
            )
            push("assistant", blocks)
            push(
                "user",
                [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": json.dumps(result),
                        "is_error": "error" in result,
                    }
                    for call, result in zip(entry.calls, entry.results)
                ],
            )
        return messages

    async def step(
        self,
        system_prompt: str,
        transcript: Sequence[TranscriptEntry],
        tools: Mapping[str, ToolSchema],
    ) -> PlannerStep:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": self.build_messages(transcript),
        }
        if tools:
            kwargs["tools"] = [
                {
                    "name": name,
                    "description": schema["description"],
                    "input_schema": schema["parameters"],
                }
                for name, schema in tools.items()
            ]

        response = await self.client.messages.create(**kwargs)

        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, args=dict(block.input or {})))

        logger.debug("Anthropic planner step: stop_reason=%s calls=%s", response.stop_reason, calls)
        return PlannerStep(text="".join(texts), tool_calls=calls)
