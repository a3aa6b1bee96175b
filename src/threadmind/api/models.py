"""
Pydantic models for threadmind API requests and responses.
This module defines the request and response schemas used by the threadmind API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from threadmind.core.schema import ConversationMessage


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the assistant")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    blocks: List[Dict[str, Any]] = Field(
        default_factory=list, description="The reply as Slack section blocks"
    )
    statuses: List[str] = Field(
        default_factory=list, description="Status updates emitted while answering"
    )
    session_id: str


class SessionHistory(BaseModel):
    """Transcript of a session."""

    session_id: str
    messages: List[ConversationMessage]


class SlackEnvelope(BaseModel):
    """Outer payload of the Slack Events API."""

    type: str
    token: Optional[str] = None
    challenge: Optional[str] = None
    team_id: Optional[str] = None
    event_id: Optional[str] = None
    event: Dict[str, Any] = Field(default_factory=dict)
