"""
HTTP backend for threadmind.

It exposes the following endpoints:
- **GET /health**     - liveness check for load balancers.
- **POST /api/events** - Slack Events API receiver (URL verification + event callbacks).
- **POST /sessions**   - create a new session, returns a session ID.
- **GET /sessions**    - list all active sessions.
- **GET /sessions/{session_id}** - transcript of a session.
- **POST /agent**      - multi-turn interaction: {"message": "...", "session_id": "..."}

Slack expects an answer within three seconds, so events are acknowledged at once and processed in
a background task.
"""

import logging
import uuid
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    BackgroundTasks,
    FastAPI,
    Header,
    HTTPException,
)

from threadmind.agent.agent_loop import generate_response
from threadmind.agent.context import RuntimeContext
from threadmind.api.models import (
    MessageRequest,
    MessageResponse,
    SessionHistory,
    SessionResponse,
    SlackEnvelope,
)
from threadmind.common import (
    AnsiColors,
    colored_print,
)
from threadmind.config import settings
from threadmind.core.schema import ConversationMessage
from threadmind.slack.blocks import (
    chunk_message,
    to_section_blocks,
)
from threadmind.slack.handlers import dispatch_event

logger = logging.getLogger(__name__)

# Session storage (in-memory for now, could be moved to a database)
sessions: Dict[str, List[ConversationMessage]] = {}

app = FastAPI(
    title="threadmind API", version="0.1.0", description="Slack assistant with tool orchestration"
)


class StatusLog:
    """Status reporter that keeps the updates for the HTTP response."""

    def __init__(self) -> None:
        self.statuses: List[str] = []

    async def update(self, text: str) -> None:
        self.statuses.append(text)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_or_create_session(session_id: Optional[str] = None) -> str:
    """Get existing session or create a new one."""
    if session_id and session_id in sessions:
        return session_id

    new_session_id = str(uuid.uuid4())
    sessions[new_session_id] = []
    return new_session_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/api/events", summary="Slack Events API receiver")
async def slack_events(
    envelope: SlackEnvelope,
    background_tasks: BackgroundTasks,
    x_slack_retry_num: Optional[str] = Header(None),
) -> dict[str, object]:
    """Acknowledge a Slack event and process it in the background."""
    if envelope.type == "url_verification":
        return {"challenge": envelope.challenge or ""}

    if envelope.type != "event_callback":
        raise HTTPException(status_code=400, detail="Invalid request")

    if x_slack_retry_num is not None:
        # Slack retries events it thinks we missed; the first delivery is already being handled.
        logger.info("Ignoring Slack retry #%s of event %s", x_slack_retry_num, envelope.event_id)
        return {"ok": True}

    logger.info("Queued Slack event %s (%s)", envelope.event_id, envelope.event.get("type"))
    background_tasks.add_task(dispatch_event, envelope.event)
    return {"ok": True}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session()
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.get("/sessions/{session_id}", response_model=SessionHistory, summary="Session transcript")
async def get_session(session_id: str) -> SessionHistory:
    """Return the transcript of *session_id*."""
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
    return SessionHistory(session_id=session_id, messages=sessions[session_id])


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(req: MessageRequest) -> MessageResponse:
    """Process a user message with optional session context."""
    session_id = get_or_create_session(req.session_id)
    transcript = sessions[session_id] + [ConversationMessage(role="user", content=req.message)]

    status = StatusLog()
    try:
        reply = await generate_response(transcript, context=RuntimeContext(status=status))
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Response generation failed for session %s", session_id)
        raise HTTPException(status_code=502, detail=f"Response generation failed: {exc}") from exc

    transcript.append(ConversationMessage(role="assistant", content=reply))
    sessions[session_id] = transcript

    return MessageResponse(
        reply=reply,
        blocks=to_section_blocks(chunk_message(reply)),
        statuses=status.statuses,
        session_id=session_id,
    )


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting threadmind API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"threadmind API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(
        f"Point the Slack Events API at http://<public-host>:{port}/api/events.", AnsiColors.BLUE
    )
    uvicorn.run(
        "threadmind.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m threadmind.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
