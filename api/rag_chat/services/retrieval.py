"""
Vector retrieval client.

Embeds the tool's query, searches the public partition (always) and the
caller's private partition (UUID callers only), and merges both into the
citation-ordered source set.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from uuid import UUID

from rag_chat.core.errors import EmbeddingError, RetrievalError
from rag_chat.core.telemetry import traced
from rag_chat.models.chat import Source
from rag_chat.models.retrieval import RetrievalQuery, RetrievedRow, merge_rows
from rag_chat.services.protocols import DocumentStore, EmbeddingProvider, SimilaritySearch

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """Merged rows (at most `max_sources`) in citation order."""

    rows: list[RetrievedRow] = field(default_factory=list)

    @property
    def sources(self) -> list[Source]:
        return [row.to_source() for row in self.rows]


class VectorRetrievalClient:
    """Embedding + two-partition similarity search + merge."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        search: SimilaritySearch,
        *,
        documents: DocumentStore | None = None,
        public_partition: str = "public_vectors",
        private_partition: str = "private_vectors",
        match_count: int = 3,
        similarity_threshold: float = 0.75,
        embedding_dimensions: int = 2000,
        max_sources: int = 3,
    ) -> None:
        self._embedder = embedder
        self._search = search
        self._documents = documents
        self._public_partition = public_partition
        self._private_partition = private_partition
        self._match_count = match_count
        self._similarity_threshold = similarity_threshold
        self._embedding_dimensions = embedding_dimensions
        self._max_sources = max_sources

    async def retrieve(self, query: RetrievalQuery) -> RetrievalResult:
        """
        Run the full retrieval for one tool invocation.

        Raises:
            EmbeddingError: the provider failed or returned an empty vector.
            RetrievalError: any partition search (or metadata lookup) failed;
                no partial results are returned.
        """
        with traced("retrieval.retrieve", **{"retrieval.private": query.caller_id is not None}) as span:
            embedding = await self._embed(query.query_text)
            public_rows, private_rows = await self._search_partitions(embedding, query.caller_id)
            rows = merge_rows(private_rows, public_rows, limit=self._max_sources)
            rows = await self._attach_documents(rows)
            span.set_attribute("retrieval.count", len(rows))

        logger.info(
            "Retrieved %d sources (public=%d, private=%d)",
            len(rows),
            len(public_rows),
            len(private_rows),
        )
        return RetrievalResult(rows=rows)

    async def _embed(self, text: str) -> list[float]:
        try:
            vector = await self._embedder.embed(text)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}") from exc

        vector = list(vector or [])[: self._embedding_dimensions]
        if not vector:
            raise EmbeddingError()
        return vector

    async def _search_partitions(
        self,
        embedding: list[float],
        caller_id: UUID | None,
    ) -> tuple[list[RetrievedRow], list[RetrievedRow]]:
        """Query both partitions concurrently; the first failure cancels the other."""
        public_task = asyncio.create_task(
            self._search_partition("public", self._public_partition, embedding, None)
        )
        tasks = [public_task]
        if caller_id is not None:
            tasks.append(
                asyncio.create_task(
                    self._search_partition("private", self._private_partition, embedding, caller_id)
                )
            )
        else:
            logger.debug("Anonymous caller; skipping private partition")

        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # reap the siblings so their failures are retrieved, not leaked
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        public_rows = results[0]
        private_rows = results[1] if len(results) > 1 else []
        return public_rows, private_rows

    async def _search_partition(
        self,
        label: str,
        partition: str,
        embedding: list[float],
        caller_id: UUID | None,
    ) -> list[RetrievedRow]:
        try:
            raw_rows = await self._search.search(
                embedding,
                partition,
                match_count=self._match_count,
                similarity_threshold=self._similarity_threshold,
                caller_id=caller_id,
            )
        except Exception as exc:
            logger.error("Similarity search failed on %s partition: %s", label, exc)
            raise RetrievalError(label, str(exc) or type(exc).__name__) from exc
        return [RetrievedRow.from_raw(raw) for raw in raw_rows or []]

    async def _attach_documents(self, rows: list[RetrievedRow]) -> list[RetrievedRow]:
        """Fill in display metadata for rows returned without an embedded document."""
        missing = [row.document_id for row in rows if not row.document]
        if not missing or self._documents is None:
            return rows
        try:
            documents = await self._documents.get_documents(missing)
        except Exception as exc:
            raise RetrievalError("documents", str(exc) or type(exc).__name__) from exc
        return [
            row if row.document else dataclasses.replace(row, document=documents.get(row.document_id, {}))
            for row in rows
        ]
