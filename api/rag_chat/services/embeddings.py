"""
Embedding providers.

Two interchangeable backends for query embeddings:
- `GeminiEmbeddingProvider`: Gemini `embedContent` over HTTP (task type
  RETRIEVAL_QUERY), authenticated with an `x-goog-api-key` header.
- `AzureOpenAIEmbeddingProvider`: Azure OpenAI embeddings via the OpenAI SDK,
  authenticated with DefaultAzureCredential (Managed Identity in production,
  az login locally).

Providers return the raw vector; truncation to the index dimension happens
in the retrieval client.
"""

import logging

import httpx
from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from openai import AsyncAzureOpenAI, OpenAIError

from rag_chat.core.errors import EmbeddingError
from rag_chat.core.telemetry import traced
from rag_chat.services.gemini_client import API_KEY_HEADER

logger = logging.getLogger(__name__)


class GeminiEmbeddingProvider:
    """Query embeddings from the Gemini REST API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str,
        model: str = "gemini-embedding-exp-03-07",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    async def embed(self, text: str) -> list[float]:
        """
        Embed a retrieval query.

        Raises:
            EmbeddingError: transport failure or non-success status.
        """
        with traced("gemini.embed", **{"gemini.model": self._model}):
            try:
                response = await self._http.post(
                    f"{self._base_url}/models/{self._model}:embedContent",
                    headers={API_KEY_HEADER: self._api_key},
                    json={
                        "model": f"models/{self._model}",
                        "content": {"parts": [{"text": text}]},
                        "taskType": "RETRIEVAL_QUERY",
                    },
                )
            except httpx.HTTPError as exc:
                raise EmbeddingError(f"Gemini embedContent unreachable: {exc}") from exc

            if response.is_error:
                raise EmbeddingError(
                    f"Gemini embedContent {response.status_code}: {response.text}"
                )
            values = (response.json().get("embedding") or {}).get("values") or []
            logger.debug("Gemini embedding returned %d dimensions", len(values))
            return list(values)


class AzureOpenAIEmbeddingProvider:
    """Query embeddings from an Azure OpenAI deployment."""

    def __init__(
        self,
        *,
        endpoint: str,
        deployment: str = "text-embedding-3-small",
        api_version: str = "2024-06-01",
        client: AsyncAzureOpenAI | None = None,
    ) -> None:
        self._deployment = deployment
        if client is None:
            # Entra ID token-based auth (no API keys)
            token_provider = get_bearer_token_provider(
                DefaultAzureCredential(),
                "https://cognitiveservices.azure.com/.default",
            )
            client = AsyncAzureOpenAI(
                azure_endpoint=endpoint,
                azure_ad_token_provider=token_provider,
                api_version=api_version,
            )
        self._client = client

    async def embed(self, text: str) -> list[float]:
        with traced("openai.embed", **{"openai.model": self._deployment}):
            try:
                response = await self._client.embeddings.create(
                    input=[text],
                    model=self._deployment,
                )
            except OpenAIError as exc:
                raise EmbeddingError(f"Azure OpenAI embeddings failed: {exc}") from exc
            if not response.data:
                return []
            return list(response.data[0].embedding)
