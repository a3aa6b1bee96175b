"""
Ambient runtime context handed to every tool invocation.

The planner never sees any of this: it is threaded through by the agent loop next to the arguments
the LLM supplied.
"""

from __future__ import annotations

import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    TYPE_CHECKING,
    Protocol,
)

if TYPE_CHECKING:
    from threadmind.agent.planner_interface import BasePlanner

logger = logging.getLogger(__name__)


class StatusReporter(Protocol):
    """Receives human-readable progress strings while a turn is running."""

    async def update(self, text: str) -> None:
        """Show *text* as the current status."""


class NullStatusReporter:
    """Reporter used when the caller did not ask for progress updates."""

    async def update(self, text: str) -> None:
        return None


@dataclass(frozen=True)
class RuntimeContext:
    """Per-request data injected into tool execution."""

    status: StatusReporter = field(default_factory=NullStatusReporter)
    channel_id: str | None = None
    thread_ts: str | None = None
    # Planner of the running turn, reused by tools that start a nested session.
    planner: BasePlanner | None = None

    async def report(self, text: str) -> None:
        """
        Forward *text* to the status reporter.

        Status updates are advisory: a failing reporter is logged and otherwise ignored so the
        turn itself keeps going.
        """
        try:
            await self.status.update(text)
        except Exception:  # pylint: disable=broad-except
            logger.warning("Status update %r failed", text, exc_info=True)
