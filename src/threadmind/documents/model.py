"""
Section model of a canvas document.

A canvas is an ordered list of sections, each with an opaque id assigned by the store.  Ids are
only meaningful for the snapshot they came from: after any edit, look them up again.
"""

import re
from enum import Enum
from typing import (
    Callable,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    model_validator,
)

_HEADING = re.compile(r"^(#{1,3})\s+\S")


class ChangeOperation(str, Enum):
    """Edit operations understood by the canvas store."""

    INSERT_AFTER = "insert_after"
    INSERT_BEFORE = "insert_before"
    INSERT_AT_START = "insert_at_start"
    INSERT_AT_END = "insert_at_end"
    REPLACE = "replace"
    DELETE = "delete"


_NEEDS_SECTION = {
    ChangeOperation.INSERT_AFTER,
    ChangeOperation.INSERT_BEFORE,
    ChangeOperation.DELETE,
}
_NEEDS_CONTENT = set(ChangeOperation) - {ChangeOperation.DELETE}


class Section(BaseModel):
    """An addressable span of a document."""

    id: str
    type: str = "body"  # h1, h2, h3 or body
    content: str = ""

    @property
    def is_header(self) -> bool:
        return self.type.startswith("h")


class CanvasDocument(BaseModel):
    """A read-only snapshot of a canvas."""

    id: str
    title: str = ""
    sections: List[Section] = Field(default_factory=list)
    markdown: Optional[str] = None

    def to_markdown(self) -> str:
        """Return the document body as markdown."""
        if self.markdown is not None:
            return self.markdown
        return render_markdown(self.sections)

    def outline(self) -> List[str]:
        """Header lines of the document, in order."""
        return [s.content for s in self.sections if s.is_header and s.content]


class CanvasChange(BaseModel):
    """One entry of a batch edit."""

    operation: ChangeOperation
    section_id: Optional[str] = Field(
        None, description="Target section; omit for insert_at_start/insert_at_end"
    )
    markdown: Optional[str] = Field(None, description="Markdown content to insert or replace with")

    @model_validator(mode="after")
    def _check_shape(self) -> "CanvasChange":
        if self.operation in _NEEDS_SECTION and not self.section_id:
            raise ValueError(f"{self.operation.value} requires a section_id")
        if self.operation in _NEEDS_CONTENT and self.markdown is None:
            raise ValueError(f"{self.operation.value} requires markdown content")
        return self

    def to_slack(self) -> dict:
        """Serialise in the shape of Slack's ``canvases.edit`` changes."""
        payload: dict = {"operation": self.operation.value}
        if self.section_id:
            payload["section_id"] = self.section_id
        if self.markdown is not None:
            payload["document_content"] = {"type": "markdown", "markdown": self.markdown}
        return payload


def parse_markdown(markdown: str, next_id: Callable[[], str]) -> List[Section]:
    """
    Split *markdown* into sections.

    Every heading line (``#`` to ``###``) is its own header section.  Other lines are grouped into
    body sections, separated by blank lines.
    """
    sections: List[Section] = []
    buffer: List[str] = []

    def flush() -> None:
        if buffer:
            sections.append(Section(id=next_id(), type="body", content="\n".join(buffer)))
            buffer.clear()

    for line in markdown.splitlines():
        match = _HEADING.match(line)
        if match:
            flush()
            sections.append(Section(id=next_id(), type=f"h{len(match.group(1))}", content=line))
        elif not line.strip():
            flush()
        else:
            buffer.append(line)
    flush()
    return sections


def render_markdown(sections: List[Section]) -> str:
    """Inverse of :func:`parse_markdown` (up to blank-line normalisation)."""
    return "\n\n".join(section.content for section in sections)
