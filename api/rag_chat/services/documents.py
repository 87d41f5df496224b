"""
Read-only document metadata lookup.

Similarity rows normally embed their document metadata; this store fills
the gap for rows that only carry a `document_id`.
"""

import logging
from typing import Any

import httpx

from rag_chat.services.search import supabase_headers

logger = logging.getLogger(__name__)

DISPLAY_COLUMNS = "id,title,file_name,source,file_url,ai_summary,description"


class SupabaseDocumentStore:
    """Fetches display metadata from the `documents` table via PostgREST."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        supabase_url: str,
        service_role_key: str,
        table: str = "documents",
    ) -> None:
        self._http = http
        self._url = f"{supabase_url.rstrip('/')}/rest/v1/{table}"
        self._headers = supabase_headers(service_role_key)

    async def get_documents(self, document_ids: list[str]) -> dict[str, dict[str, Any]]:
        if not document_ids:
            return {}
        response = await self._http.get(
            self._url,
            params={
                "select": DISPLAY_COLUMNS,
                "id": f"in.({','.join(document_ids)})",
            },
            headers=self._headers,
        )
        response.raise_for_status()
        documents = {str(doc["id"]): doc for doc in response.json()}
        logger.debug("Resolved metadata for %d/%d documents", len(documents), len(document_ids))
        return documents
