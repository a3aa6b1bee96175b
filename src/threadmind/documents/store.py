"""
Document store collaborators for canvases.

The agent never keeps its own copy of a canvas: it reads a snapshot, works out a list of changes
and submits them as one batch.  Two stores are provided and selected by name through
``settings.DOCUMENT_STORE``:

* ``slack``  - Slack canvases through the Web API.
* ``memory`` - an in-process store, handy for local runs and tests.
"""

import copy
import itertools
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
    Sequence,
    Type,
)

from pydantic import BaseModel
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from threadmind.config import (
    current_settings,
    settings,
)
from threadmind.documents.model import (
    CanvasChange,
    CanvasDocument,
    ChangeOperation,
    Section,
    parse_markdown,
)

logger = logging.getLogger(__name__)


class DocumentStoreError(RuntimeError):
    """Raised when the store rejects a read or an edit."""


class DocumentSummary(BaseModel):
    """A canvas as listed in a channel."""

    id: str
    title: str = ""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_STORE_REGISTRY: dict[str, Type["DocumentStore"]] = {}
_STORE_INSTANCES: dict[str, "DocumentStore"] = {}


def register_store(name: str) -> Callable:
    """Decorator to register a document store class under *name*."""

    def wrapper(cls: Type["DocumentStore"]) -> Type["DocumentStore"]:
        _STORE_REGISTRY[name] = cls
        return cls

    return wrapper


def load_document_store(name: str | None = None) -> "DocumentStore":
    """Return the (process-wide) store registered under *name* or ``settings.DOCUMENT_STORE``."""
    target = (name or settings.DOCUMENT_STORE).lower()
    if target not in _STORE_INSTANCES:
        cls = _STORE_REGISTRY.get(target)
        if cls is None:
            raise ValueError(f"Document store '{target}' is not registered.")
        _STORE_INSTANCES[target] = cls()
    return _STORE_INSTANCES[target]


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class DocumentStore(ABC):
    """Remote owner of canvas documents."""

    @abstractmethod
    async def list_documents(self, channel_id: str | None) -> List[DocumentSummary]:
        """List canvases visible in *channel_id* (all canvases if *None*)."""

    @abstractmethod
    async def create_document(self, title: str, markdown: str, channel_id: str | None) -> str:
        """Create a canvas and return its id."""

    @abstractmethod
    async def read_document(self, document_id: str) -> CanvasDocument:
        """Return a snapshot of the canvas."""

    @abstractmethod
    async def lookup_sections(
        self, document_id: str, query: str, section_types: Sequence[str] | None = None
    ) -> List[Section]:
        """Return sections matching *query*, most relevant first."""

    @abstractmethod
    async def batch_edit(self, document_id: str, changes: Sequence[CanvasChange]) -> None:
        """Apply *changes* as one atomic edit."""


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------
def _matches_type(section: Section, section_types: Sequence[str] | None) -> bool:
    if not section_types:
        return True
    if "any_header" in section_types and section.is_header:
        return True
    return section.type in section_types


def _relevance(section: Section, query: str) -> int:
    text = section.content.lower()
    needle = query.lower().strip()
    if not needle:
        return 0
    hits = text.count(needle)
    if hits:
        return 10 * hits
    return sum(1 for word in needle.split() if len(word) > 2 and word in text)


@register_store("memory")
class MemoryDocumentStore(DocumentStore):
    """Keeps canvases in a dict; section ids survive edits of other sections."""

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._doc_ids = itertools.count(1)
        self._section_ids = itertools.count(1)

    def _next_section_id(self) -> str:
        return f"temp:C:{next(self._section_ids):06d}"

    def _get(self, document_id: str) -> Dict[str, Any]:
        doc = self._docs.get(document_id)
        if doc is None:
            raise DocumentStoreError(f"Canvas '{document_id}' not found")
        return doc

    async def list_documents(self, channel_id: str | None) -> List[DocumentSummary]:
        return [
            DocumentSummary(id=doc_id, title=doc["title"])
            for doc_id, doc in self._docs.items()
            if channel_id is None or doc["channel_id"] in (None, channel_id)
        ]

    async def create_document(self, title: str, markdown: str, channel_id: str | None) -> str:
        doc_id = f"F{next(self._doc_ids):08d}"
        self._docs[doc_id] = {
            "title": title,
            "channel_id": channel_id,
            "sections": parse_markdown(markdown, self._next_section_id),
        }
        logger.info("Created in-memory canvas %s (%r)", doc_id, title)
        return doc_id

    async def read_document(self, document_id: str) -> CanvasDocument:
        doc = self._get(document_id)
        return CanvasDocument(
            id=document_id, title=doc["title"], sections=copy.deepcopy(doc["sections"])
        )

    async def lookup_sections(
        self, document_id: str, query: str, section_types: Sequence[str] | None = None
    ) -> List[Section]:
        sections: List[Section] = self._get(document_id)["sections"]
        scored = [
            (_relevance(section, query), not section.is_header, pos, section)
            for pos, section in enumerate(sections)
            if _matches_type(section, section_types)
        ]
        ranked = sorted((item for item in scored if item[0] > 0), key=lambda t: (-t[0], t[1], t[2]))
        return [section.model_copy() for *_, section in ranked]

    async def batch_edit(self, document_id: str, changes: Sequence[CanvasChange]) -> None:
        doc = self._get(document_id)
        working: List[Section] = list(doc["sections"])

        def index_of(section_id: str | None) -> int:
            for pos, section in enumerate(working):
                if section.id == section_id:
                    return pos
            raise DocumentStoreError(f"Section '{section_id}' not found in canvas '{document_id}'")

        for change in changes:
            new = parse_markdown(change.markdown or "", self._next_section_id)
            op = change.operation
            if op is ChangeOperation.INSERT_AT_START:
                working[0:0] = new
            elif op is ChangeOperation.INSERT_AT_END:
                working.extend(new)
            elif op is ChangeOperation.INSERT_BEFORE:
                pos = index_of(change.section_id)
                working[pos:pos] = new
            elif op is ChangeOperation.INSERT_AFTER:
                pos = index_of(change.section_id) + 1
                working[pos:pos] = new
            elif op is ChangeOperation.REPLACE and change.section_id is None:
                working = new
            elif op is ChangeOperation.REPLACE:
                pos = index_of(change.section_id)
                working[pos : pos + 1] = new
            elif op is ChangeOperation.DELETE:
                del working[index_of(change.section_id)]

        # Nothing is committed unless every change applied.
        doc["sections"] = working
        logger.info("Applied %d change(s) to in-memory canvas %s", len(changes), document_id)


# ---------------------------------------------------------------------------
# Slack canvases
# ---------------------------------------------------------------------------
@register_store("slack")
class SlackCanvasStore(DocumentStore):
    """Canvases through the Slack Web API."""

    def __init__(self, client: AsyncWebClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> AsyncWebClient:
        if self._client is None:
            token = current_settings().SLACK_BOT_TOKEN
            if not token:
                raise DocumentStoreError("SLACK_BOT_TOKEN environment variable is not set")
            self._client = AsyncWebClient(token=token)
        return self._client

    @staticmethod
    def _error(action: str, exc: SlackApiError) -> DocumentStoreError:
        detail = exc.response.get("error", str(exc)) if exc.response else str(exc)
        return DocumentStoreError(f"Failed to {action}: {detail}")

    async def list_documents(self, channel_id: str | None) -> List[DocumentSummary]:
        kwargs: Dict[str, Any] = {"types": "canvas"}
        if channel_id:
            kwargs["channel"] = channel_id
        try:
            response = await self.client.files_list(**kwargs)
        except SlackApiError as exc:
            raise self._error("list canvases", exc) from exc
        return [
            DocumentSummary(id=f["id"], title=f.get("title") or f.get("name") or "")
            for f in response.get("files") or []
        ]

    async def create_document(self, title: str, markdown: str, channel_id: str | None) -> str:
        content = {"type": "markdown", "markdown": markdown}
        try:
            if channel_id:
                response = await self.client.conversations_canvases_create(
                    channel_id=channel_id, document_content=content, title=title
                )
            else:
                response = await self.client.canvases_create(title=title, document_content=content)
        except SlackApiError as exc:
            raise self._error("create canvas", exc) from exc
        return str(response["canvas_id"])

    async def read_document(self, document_id: str) -> CanvasDocument:
        try:
            info = await self.client.files_info(file=document_id)
            headers = await self.client.canvases_sections_lookup(
                canvas_id=document_id, criteria={"section_types": ["any_header"]}
            )
        except SlackApiError as exc:
            raise self._error(f"read canvas '{document_id}'", exc) from exc

        file_info = info.get("file") or {}
        return CanvasDocument(
            id=document_id,
            title=file_info.get("title") or "",
            sections=[Section(id=s["id"], type="header") for s in headers.get("sections") or []],
            markdown=file_info.get("preview") or "",
        )

    async def lookup_sections(
        self, document_id: str, query: str, section_types: Sequence[str] | None = None
    ) -> List[Section]:
        criteria: Dict[str, Any] = {"contains_text": query}
        if section_types:
            criteria["section_types"] = list(section_types)
        try:
            response = await self.client.canvases_sections_lookup(
                canvas_id=document_id, criteria=criteria
            )
        except SlackApiError as exc:
            raise self._error(f"look up sections of '{document_id}'", exc) from exc
        return [
            Section(id=s["id"], type="match", content=query)
            for s in response.get("sections") or []
        ]

    async def batch_edit(self, document_id: str, changes: Sequence[CanvasChange]) -> None:
        try:
            await self.client.canvases_edit(
                canvas_id=document_id, changes=[change.to_slack() for change in changes]
            )
        except SlackApiError as exc:
            raise self._error(f"edit canvas '{document_id}'", exc) from exc
