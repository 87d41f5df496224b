"""
Health router — GET /health endpoint.

Liveness probe only: it never touches the model provider or vector store.
"""

from fastapi import APIRouter

from rag_chat.core.telemetry import SERVICE_NAME

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": SERVICE_NAME}
