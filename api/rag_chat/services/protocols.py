"""
Typed collaborator interfaces.

The orchestrator and the retrieval client only depend on these protocols,
so provider backends (Gemini, Azure OpenAI, Supabase, Azure AI Search) can
be swapped by configuration and replaced with fakes in tests.
"""

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol
from uuid import UUID

from rag_chat.models.stream import ModelChunk


class EmbeddingProvider(Protocol):
    """Turns a query string into an embedding vector."""

    async def embed(self, text: str) -> list[float]: ...


class SimilaritySearch(Protocol):
    """Nearest-neighbour search over one named partition.

    Implementations return raw rows in the `match_documents` shape:
    `{"document_id", "similarity", "content", "document": {...}}`, already
    filtered by `similarity_threshold`.
    """

    async def search(
        self,
        embedding: list[float],
        partition: str,
        *,
        match_count: int = 3,
        similarity_threshold: float = 0.75,
        caller_id: UUID | None = None,
    ) -> list[dict[str, Any]]: ...


class DocumentStore(Protocol):
    """Read-only lookup of document display metadata by id."""

    async def get_documents(self, document_ids: list[str]) -> dict[str, dict[str, Any]]: ...


class ModelStream(Protocol):
    """An open upstream generation stream."""

    def chunks(self) -> AsyncIterator[ModelChunk]: ...


class ChatModel(Protocol):
    """Opens streaming generation sessions against a generative model."""

    def open_stream(
        self,
        contents: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AbstractAsyncContextManager[ModelStream]: ...
