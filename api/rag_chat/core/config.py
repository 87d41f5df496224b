"""
Configuration module using Pydantic Settings.

Loads model provider, vector store and streaming settings from environment
variables. Supports .env files for local development.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Gemini (generation + default embeddings)
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash"
    gemini_embedding_model: str = "gemini-embedding-exp-03-07"

    # Backend selection
    embedding_backend: Literal["gemini", "azure_openai"] = "gemini"
    search_backend: Literal["supabase", "azure_search"] = "supabase"

    # Supabase (similarity search RPC + document metadata)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    public_partition: str = "public_vectors"
    private_partition: str = "private_vectors"

    # Azure OpenAI (alternative embedding backend)
    azure_openai_endpoint: str = ""
    azure_openai_embedding_deployment: str = "text-embedding-3-small"
    azure_openai_api_version: str = "2024-06-01"

    # Azure AI Search (alternative similarity backend, one index per partition)
    azure_search_endpoint: str = ""
    azure_search_public_index: str = "public-documents-idx"
    azure_search_private_index: str = "private-documents-idx"

    # Retrieval
    embedding_dimensions: int = 2000
    match_count: int = 3
    similarity_threshold: float = 0.75

    # Streaming
    idle_timeout_seconds: float = 60.0
    connect_timeout_seconds: float = 10.0

    # Application Insights
    applicationinsights_connection_string: str = ""

    # App
    log_level: str = "INFO"
    allowed_origins: str = "*"

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]


def get_settings() -> Settings:
    """Factory for cached settings instance."""
    return Settings()
