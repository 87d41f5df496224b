"""
Retrieval-side domain types.

`RetrievedRow` wraps one raw similarity-search row together with the
document metadata needed to display it.
"""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

from rag_chat.models.chat import Source

SNIPPET_LENGTH = 80
NO_PREVIEW = "(no preview)"
ELLIPSIS = "…"


@dataclass(frozen=True)
class RetrievalQuery:
    """A retrieval request; `caller_id` is set only for UUID-shaped callers."""

    query_text: str
    caller_id: UUID | None = None


@dataclass(frozen=True)
class RetrievedRow:
    """A single similarity-search hit."""

    document_id: str
    similarity: float
    content: str = ""
    document: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "RetrievedRow":
        """Build a row from a backend record (`match_documents` shape)."""
        return cls(
            document_id=str(raw.get("document_id") or raw.get("id") or ""),
            similarity=float(raw.get("similarity") or 0.0),
            content=str(raw.get("content") or ""),
            document=dict(raw.get("document") or {}),
        )

    @property
    def title(self) -> str:
        return self.document.get("title") or self.document.get("file_name") or "Untitled"

    @property
    def domain(self) -> str:
        if self.document.get("source"):
            return self.document["source"]
        file_url = self.document.get("file_url")
        if file_url:
            host = urlparse(file_url).hostname
            if host:
                return host
        return "unknown"

    @property
    def snippet(self) -> str:
        summary = self.document.get("ai_summary") or self.document.get("description") or ""
        return summary[:SNIPPET_LENGTH] or NO_PREVIEW

    def to_source(self) -> Source:
        snippet = self.snippet
        return Source(
            id=self.document_id,
            title=self.title,
            domain=self.domain,
            snippet=snippet,
            preview=snippet + ELLIPSIS,
        )

    def to_function_payload(self) -> dict[str, Any]:
        """Shape handed back to the model as the tool response."""
        return {
            "document_id": self.document_id,
            "title": self.title,
            "domain": self.domain,
            "snippet": self.snippet,
            "similarity": self.similarity,
            "content": self.content,
        }


def merge_rows(
    private_rows: list[RetrievedRow],
    public_rows: list[RetrievedRow],
    limit: int = 3,
) -> list[RetrievedRow]:
    """
    Merge partition results into the citation-ordered source set.

    Private rows are concatenated first, then the stable sort by similarity
    (descending) decides the order; ties keep concatenation order.
    """
    rows = [*private_rows, *public_rows]
    rows.sort(key=lambda row: row.similarity, reverse=True)
    return rows[:limit]
