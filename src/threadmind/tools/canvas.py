"""
Canvas tools, including the ``editDocument`` sub-agent.

``editDocument`` runs a nested planner session restricted to two tools, ``sectionLookup`` and
``batchEdit``.  Those two live in :data:`CANVAS_TOOLS`, not in the main registry, and only work with
the :class:`CanvasEditContext` the sub-agent creates for each invocation.
"""

import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Set,
    Tuple,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from threadmind.agent.agent_loop import run_session
from threadmind.agent.context import RuntimeContext
from threadmind.agent.planner_interface import load_planner
from threadmind.config import current_settings
from threadmind.core.schema import ConversationMessage
from threadmind.documents.model import (
    CanvasChange,
    CanvasDocument,
)
from threadmind.documents.store import (
    DocumentStore,
    DocumentStoreError,
    load_document_store,
)
from threadmind.tools import (
    Tool,
    ToolExecutionError,
    register_tool,
    wrap_tool,
)

logger = logging.getLogger(__name__)

CANVAS_TOOLS: Dict[str, Tool] = {}
"""Tools available to the canvas editing sub-agent only."""

EDITOR_PROMPT = """\
You edit a Slack canvas on behalf of a user. The canvas id is {document_id}.

CANVAS TITLE: {title}

CURRENT CONTENT:
{content}

You can only change the canvas through these tools:
- sectionLookup finds sections by text and returns their section ids.
- batchEdit applies a list of changes in one atomic edit.

RULES:
- Any change that targets a location (insert_after, insert_before, replace of a part, delete) needs
  a section id. Call sectionLookup first with a short distinctive phrase from the target (for
  "the coffee line" search for "coffee"). Never invent section ids.
- If sectionLookup finds nothing, add new content with insert_at_end instead.
- If it finds several sections, use the most relevant one (the first result).
- To move content, delete it and insert it elsewhere in the SAME batchEdit call. Put everything one
  request needs into a single batchEdit call.
- replace without a section_id replaces the whole canvas.
- Section ids expire after every batchEdit; look them up again before a further edit.
- Write canvas content in markdown.

When you are done, reply with one or two sentences describing what you changed."""


@dataclass(frozen=True)
class CanvasEditContext(RuntimeContext):
    """Runtime context of one ``editDocument`` invocation."""

    store: DocumentStore | None = None
    document_id: str = ""
    resolved: Set[str] = field(default_factory=set)
    applied: List[Dict[str, Any]] = field(default_factory=list)


def _edit_context(
    context: RuntimeContext, document_id: str
) -> Tuple[CanvasEditContext, DocumentStore]:
    if not isinstance(context, CanvasEditContext) or context.store is None:
        raise ToolExecutionError("This tool is only available while editing a canvas")
    if document_id != context.document_id:
        raise ToolExecutionError(
            f"This session edits canvas '{context.document_id}', not '{document_id}'"
        )
    return context, context.store


def _store() -> DocumentStore:
    try:
        return load_document_store()
    except ValueError as exc:
        raise ToolExecutionError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Sub-agent tools
# ---------------------------------------------------------------------------
class LookupArgs(BaseModel):
    """Arguments of ``sectionLookup``."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId", description="Canvas id")
    query: str = Field(..., min_length=1, description="Text the target section contains")
    section_types: List[Literal["h1", "h2", "h3", "any_header"]] = Field(
        default_factory=list,
        alias="sectionTypes",
        description="Only return sections of these types (default: any section)",
    )


@register_tool(
    "sectionLookup", LookupArgs, status="is locating canvas sections...", registry=CANVAS_TOOLS
)
async def section_lookup(args: LookupArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Find canvas sections containing the given text. Returns matching section ids, most relevant
    first. Section ids are only valid until the next batchEdit."""
    ctx, store = _edit_context(context, args.document_id)
    try:
        matches = await store.lookup_sections(
            args.document_id, args.query, args.section_types or None
        )
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc

    ctx.resolved.update(section.id for section in matches)
    logger.info("sectionLookup %r matched %d section(s)", args.query, len(matches))
    return {
        "documentId": args.document_id,
        "query": args.query,
        "matches": [section.model_dump() for section in matches],
        "count": len(matches),
    }


class BatchEditArgs(BaseModel):
    """Arguments of ``batchEdit``."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId", description="Canvas id")
    changes: List[CanvasChange] = Field(
        ..., min_length=1, description="Changes to apply together, in order"
    )


@register_tool(
    "batchEdit", BatchEditArgs, status="is updating the canvas...", registry=CANVAS_TOOLS
)
async def batch_edit(args: BatchEditArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Apply a list of changes to the canvas as one atomic edit. Each change is one of
    insert_after, insert_before (need section_id), insert_at_start, insert_at_end, replace
    (section_id optional; without it the whole canvas is replaced) or delete (needs section_id).
    Every section_id must come from a sectionLookup result."""
    ctx, store = _edit_context(context, args.document_id)

    unresolved = sorted(
        {c.section_id for c in args.changes if c.section_id and c.section_id not in ctx.resolved}
    )
    if unresolved:
        raise ToolExecutionError(
            f"Unknown section id(s) {unresolved}: call sectionLookup to resolve section ids "
            "before editing"
        )

    await ctx.report(f"is applying {len(args.changes)} canvas change(s)...")
    try:
        await store.batch_edit(args.document_id, args.changes)
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc

    ctx.applied.extend(change.model_dump(mode="json", exclude_none=True) for change in args.changes)
    # The store may have renumbered sections.
    ctx.resolved.clear()
    return {"ok": True, "documentId": args.document_id, "applied": len(args.changes)}


# ---------------------------------------------------------------------------
# Main registry tools
# ---------------------------------------------------------------------------
class EditArgs(BaseModel):
    """Arguments of ``editDocument``."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId", description="Canvas id (e.g. F0123ABCD)")
    instruction: str = Field(
        ..., min_length=1, description="The user's edit request in natural language"
    )


def build_editor_prompt(snapshot: CanvasDocument) -> str:
    """System prompt of the editing sub-agent for *snapshot*."""
    return EDITOR_PROMPT.format(
        document_id=snapshot.id,
        title=snapshot.title or "(untitled)",
        content=snapshot.to_markdown() or "(empty canvas)",
    )


@register_tool("editDocument", EditArgs, status="is editing the canvas...")
async def edit_document(args: EditArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Edit an existing Slack canvas following a natural-language instruction, e.g. "add a line
    about coffee under the Snacks heading" or "delete the todo section". Pass the canvas id and the
    user's request verbatim; the section lookups and edits are worked out for you."""
    store = _store()
    try:
        snapshot = await store.read_document(args.document_id)
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc

    edit_ctx = CanvasEditContext(
        status=context.status,
        channel_id=context.channel_id,
        thread_ts=context.thread_ts,
        planner=context.planner,
        store=store,
        document_id=args.document_id,
    )
    result = await run_session(
        context.planner or load_planner(),
        build_editor_prompt(snapshot),
        [ConversationMessage(role="user", content=args.instruction)],
        {name: wrap_tool(tool) for name, tool in CANVAS_TOOLS.items()},
        context=edit_ctx,
        max_steps=current_settings().CANVAS_MAX_STEPS,
    )

    logger.info(
        "Canvas %s: %d change(s) applied in %d step(s), finished=%s",
        args.document_id,
        len(edit_ctx.applied),
        len(result.steps),
        result.finished,
    )
    return {
        "documentId": args.document_id,
        "completed": result.finished,
        "applied": edit_ctx.applied,
        "summary": result.text,
    }


class CreateArgs(BaseModel):
    """Arguments of ``createDocument``."""

    title: str = Field(..., min_length=1, description="Title of the canvas")
    content: str = Field(..., min_length=1, description="Canvas body in markdown")


@register_tool("createDocument", CreateArgs, status="is creating a canvas...")
async def create_document(args: CreateArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Create a new Slack canvas in the current channel from markdown content. Use this when the
    user asks for a canvas, document or write-up they can keep and edit."""
    try:
        document_id = await _store().create_document(args.title, args.content, context.channel_id)
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc
    return {"documentId": document_id, "title": args.title, "channelId": context.channel_id}


class ListArgs(BaseModel):
    """``listDocuments`` takes no arguments."""


@register_tool("listDocuments", ListArgs, status="is looking for canvases...")
async def list_documents(args: ListArgs, context: RuntimeContext) -> Dict[str, Any]:
    """List the canvases in the current channel with their ids and titles. Use this to find the id
    of a canvas the user refers to by name."""
    try:
        documents = await _store().list_documents(context.channel_id)
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc
    return {"documents": [doc.model_dump() for doc in documents], "count": len(documents)}


class ReadArgs(BaseModel):
    """Arguments of ``readDocument``."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId", description="Canvas id")


@register_tool("readDocument", ReadArgs, status="is reading a canvas...")
async def read_document(args: ReadArgs, context: RuntimeContext) -> Dict[str, Any]:
    """Read the current content of a Slack canvas as markdown, with its heading outline."""
    try:
        snapshot = await _store().read_document(args.document_id)
    except DocumentStoreError as exc:
        raise ToolExecutionError(str(exc)) from exc
    return {
        "documentId": snapshot.id,
        "title": snapshot.title,
        "content": snapshot.to_markdown(),
        "outline": snapshot.outline(),
    }
