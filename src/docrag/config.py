"""
Configuration management using Pydantic Settings.

All configuration is loaded from environment variables with sensible defaults.
Use a .env file for local development.

Environment Variables:
    OPENAI_API_KEY: API key for the remote embedding provider (optional)
    EMBEDDING_PROVIDER: "remote" or "deterministic"
    EMBEDDING_MODEL: Remote embedding model name
    CHUNK_SIZE: Character size for document chunks
    CHUNK_OVERLAP: Overlap between chunks
    DATABASE_URL: SQLAlchemy database URL
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Embedding Provider
    # ==========================================================================
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="API key for the remote embedding provider",
    )
    embedding_provider: Literal["remote", "deterministic"] = Field(
        default="deterministic",
        description="Embedding strategy: remote API or deterministic offline generator",
    )
    allow_fallback_embeddings: bool = Field(
        default=True,
        description="Use the deterministic generator when the remote provider has no API key",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Remote embedding model name",
    )
    embedding_api_url: str = Field(
        default="https://api.openai.com/v1/embeddings",
        description="Remote embeddings endpoint (OpenAI-compatible)",
    )
    embedding_dimension: int = Field(
        default=1536,
        ge=1,
        description="Dimension of embedding vectors (must match model)",
    )
    embedding_max_chars: int = Field(
        default=8000,
        ge=1,
        description="Input text is truncated to this many characters before embedding",
    )
    provider_timeout_seconds: float = Field(
        default=12.0,
        gt=0.0,
        description="Timeout for a single call to the embedding provider",
    )

    # ==========================================================================
    # Batch Embedding
    # ==========================================================================
    embedding_batch_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Chunks embedded per batch",
    )
    embedding_batch_delay_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Pause between provider calls inside a batch",
    )

    # ==========================================================================
    # Chunking Configuration
    # ==========================================================================
    chunk_size: int = Field(
        default=1000,
        ge=100,
        le=2000,
        description="Target size in characters for document chunks",
    )
    chunk_overlap: int = Field(
        default=200,
        ge=0,
        le=500,
        description="Overlap between consecutive chunks",
    )

    # ==========================================================================
    # Retrieval Configuration
    # ==========================================================================
    retrieval_top_k: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Number of chunks to retrieve",
    )
    similarity_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for retrieved chunks",
    )
    citation_snippet_length: int = Field(
        default=200,
        ge=1,
        description="Maximum characters of chunk text shown in a citation",
    )

    # ==========================================================================
    # Storage
    # ==========================================================================
    database_url: str = Field(
        default="sqlite:///data/docrag.db",
        description="SQLAlchemy database URL",
    )
    echo_sql: bool = Field(
        default=False,
        description="Log emitted SQL statements",
    )
    projects_dir: Path = Field(
        default=Path("data/projects"),
        description="Root directory for per-project JSON embedding mirrors",
    )
    enable_file_mirror: bool = Field(
        default=False,
        description="Also write embeddings to <projects_dir>/<id>/embeddings.json",
    )

    # ==========================================================================
    # API Configuration
    # ==========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="Host to bind API server",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for API server",
    )

    # ==========================================================================
    # Observability Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================
    @field_validator("chunk_overlap")
    @classmethod
    def validate_chunk_overlap(cls, v: int, info) -> int:
        """Ensure overlap is less than chunk size."""
        chunk_size = info.data.get("chunk_size", 1000)
        if v >= chunk_size:
            raise ValueError(f"chunk_overlap ({v}) must be less than chunk_size ({chunk_size})")
        return v

    @field_validator("projects_dir")
    @classmethod
    def resolve_path(cls, v: Path) -> Path:
        """Resolve paths to absolute paths."""
        return v.resolve()

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def openai_api_key_value(self) -> Optional[str]:
        """Get the actual API key value (use sparingly)."""
        if self.openai_api_key:
            return self.openai_api_key.get_secret_value()
        return None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call `get_settings.cache_clear()` to reload settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience alias
settings = get_settings()
