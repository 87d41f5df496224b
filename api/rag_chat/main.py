"""
FastAPI application entrypoint.

Registers routers, configures CORS, initializes telemetry, and wires the
chat orchestrator from the configured backends on startup.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rag_chat.core.config import Settings, get_settings
from rag_chat.core.telemetry import setup_telemetry
from rag_chat.routers import chat, health
from rag_chat.services.documents import SupabaseDocumentStore
from rag_chat.services.embeddings import AzureOpenAIEmbeddingProvider, GeminiEmbeddingProvider
from rag_chat.services.gemini_client import GeminiStreamClient
from rag_chat.services.orchestrator import ChatOrchestrator
from rag_chat.services.retrieval import VectorRetrievalClient
from rag_chat.services.search import AzureVectorSearch, SupabaseVectorSearch

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, http: httpx.AsyncClient) -> ChatOrchestrator:
    """Assemble the orchestrator from the backends selected in settings."""
    if settings.embedding_backend == "azure_openai":
        embedder = AzureOpenAIEmbeddingProvider(
            endpoint=settings.azure_openai_endpoint,
            deployment=settings.azure_openai_embedding_deployment,
            api_version=settings.azure_openai_api_version,
        )
    else:
        embedder = GeminiEmbeddingProvider(
            http,
            api_key=settings.gemini_api_key,
            model=settings.gemini_embedding_model,
            base_url=settings.gemini_base_url,
        )

    documents = None
    if settings.search_backend == "azure_search":
        search = AzureVectorSearch(
            endpoint=settings.azure_search_endpoint,
            index_names={
                settings.public_partition: settings.azure_search_public_index,
                settings.private_partition: settings.azure_search_private_index,
            },
        )
    else:
        search = SupabaseVectorSearch(
            http,
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
        )
        documents = SupabaseDocumentStore(
            http,
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
        )

    retrieval = VectorRetrievalClient(
        embedder,
        search,
        documents=documents,
        public_partition=settings.public_partition,
        private_partition=settings.private_partition,
        match_count=settings.match_count,
        similarity_threshold=settings.similarity_threshold,
        embedding_dimensions=settings.embedding_dimensions,
    )
    model = GeminiStreamClient(
        http,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        idle_timeout=settings.idle_timeout_seconds,
        connect_timeout=settings.connect_timeout_seconds,
    )
    return ChatOrchestrator(model, retrieval)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """
    Application lifespan handler.
    Opens the shared HTTP client and builds services on startup,
    closes the client on shutdown.
    """
    settings = get_settings()

    # Configure logging
    logging.basicConfig(level=settings.log_level)

    # Initialize telemetry
    setup_telemetry(settings.applicationinsights_connection_string)

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.connect_timeout_seconds, read=30.0)
    ) as http:
        application.state.chat_orchestrator = build_orchestrator(settings, http)
        logger.info(
            "RAG chat API started (embeddings=%s, search=%s, model=%s).",
            settings.embedding_backend,
            settings.search_backend,
            settings.gemini_model,
        )
        yield
    logger.info("RAG chat API shutting down.")


app = FastAPI(
    title="RAG Chat Orchestrator API",
    description="Streaming retrieval-augmented chat over public and private document collections.",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Register routers
app.include_router(health.router)
app.include_router(chat.router)


def run() -> None:
    """Serve the API with uvicorn (the `rag-chat` console script)."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
