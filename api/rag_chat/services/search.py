"""
Similarity search backends.

Each backend answers `search(embedding, partition, ...)` with raw rows in
the `match_documents` shape and applies the similarity threshold itself:

- `SupabaseVectorSearch`: the `match_documents` Postgres function via the
  PostgREST RPC endpoint (pgvector). The partition is the vector table name;
  the private partition is scoped with `current_user_id`.
- `AzureVectorSearch`: Azure AI Search vector queries, one index per
  partition, private results filtered on `owner_id`.
"""

import asyncio
import logging
from typing import Any
from uuid import UUID

import httpx
from azure.identity import DefaultAzureCredential
from azure.search.documents import SearchClient
from azure.search.documents.models import VectorizedQuery

from rag_chat.core.telemetry import traced

logger = logging.getLogger(__name__)


def supabase_headers(service_role_key: str) -> dict[str, str]:
    """PostgREST auth headers for the service role."""
    return {
        "apikey": service_role_key,
        "Authorization": f"Bearer {service_role_key}",
    }


class SupabaseVectorSearch:
    """pgvector similarity search through the `match_documents` RPC."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        supabase_url: str,
        service_role_key: str,
        function_name: str = "match_documents",
    ) -> None:
        self._http = http
        self._url = f"{supabase_url.rstrip('/')}/rest/v1/rpc/{function_name}"
        self._headers = supabase_headers(service_role_key)

    async def search(
        self,
        embedding: list[float],
        partition: str,
        *,
        match_count: int = 3,
        similarity_threshold: float = 0.75,
        caller_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run `match_documents` against one vector table.

        Raises:
            httpx.HTTPStatusError: the RPC answered with a non-success status.
        """
        body: dict[str, Any] = {
            "query_embedding": embedding,
            "match_count": match_count,
            "similarity_threshold": similarity_threshold,
            "table_name": partition,
        }
        if caller_id is not None:
            body["current_user_id"] = str(caller_id)

        with traced("search.match_documents", **{"search.partition": partition}) as span:
            response = await self._http.post(self._url, json=body, headers=self._headers)
            response.raise_for_status()
            rows = response.json() or []
            span.set_attribute("search.results_count", len(rows))

        logger.info("match_documents on %s returned %d rows", partition, len(rows))
        return rows


class AzureVectorSearch:
    """Azure AI Search vector retrieval with one index per partition."""

    SELECT_FIELDS = [
        "id",
        "document_id",
        "content",
        "title",
        "file_name",
        "source",
        "file_url",
        "ai_summary",
        "description",
    ]

    def __init__(
        self,
        *,
        endpoint: str,
        index_names: dict[str, str],
        credential: Any | None = None,
    ) -> None:
        credential = credential or DefaultAzureCredential()
        self._clients = {
            partition: SearchClient(
                endpoint=endpoint,
                index_name=index_name,
                credential=credential,
            )
            for partition, index_name in index_names.items()
        }

    async def search(
        self,
        embedding: list[float],
        partition: str,
        *,
        match_count: int = 3,
        similarity_threshold: float = 0.75,
        caller_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        client = self._clients.get(partition)
        if client is None:
            raise KeyError(f"No search index configured for partition '{partition}'")

        with traced("search.vector", **{"search.partition": partition, "search.top_k": match_count}) as span:
            rows = await asyncio.to_thread(
                self._search_sync,
                client,
                embedding,
                match_count,
                similarity_threshold,
                caller_id,
            )
            span.set_attribute("search.results_count", len(rows))
        return rows

    def _search_sync(
        self,
        client: SearchClient,
        embedding: list[float],
        match_count: int,
        similarity_threshold: float,
        caller_id: UUID | None,
    ) -> list[dict[str, Any]]:
        vector_query = VectorizedQuery(
            vector=embedding,
            k_nearest_neighbors=match_count,
            fields="content_vector",
        )
        # caller_id is a parsed UUID, safe to inline in the OData filter
        owner_filter = f"owner_id eq '{caller_id}'" if caller_id is not None else None
        results = client.search(
            search_text=None,
            vector_queries=[vector_query],
            filter=owner_filter,
            select=self.SELECT_FIELDS,
            top=match_count,
        )

        rows = []
        for doc in results:
            score = doc.get("@search.score", 0.0)
            if score < similarity_threshold:
                continue
            rows.append(
                {
                    "document_id": doc.get("document_id") or doc["id"],
                    "similarity": score,
                    "content": doc.get("content", ""),
                    "document": {
                        key: doc.get(key)
                        for key in ("title", "file_name", "source", "file_url", "ai_summary", "description")
                    },
                }
            )
        return rows
