"""
Process-wide resources for the retrieval pipeline.

Provides cached instances of objects that should be created once per
process: the embedding service and the database session factory. Uses the
same @lru_cache pattern as config.get_settings().

Usage:
    # CLI and scripts
    service = get_embedding_service()
    factory = get_session_factory()

    # API startup (explicit initialization; instances are placed on app.state)
    status = initialize_resources()

    # In tests (reset cache)
    clear_resource_cache()
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import sessionmaker

from docrag.config import Settings, get_settings
from docrag.db import connection
from docrag.retrieval.embeddings import (
    DeterministicEmbeddingProvider,
    EmbeddingService,
    OpenAIEmbeddingProvider,
)
from docrag.retrieval.mirror import EmbeddingFileMirror

logger = logging.getLogger(__name__)


def build_embedding_service(settings: Settings) -> EmbeddingService:
    """
    Create an embedding service from configuration.

    ``embedding_provider="deterministic"`` selects the offline generator.
    ``"remote"`` selects the OpenAI-compatible API; when fallback is allowed
    the offline generator is used if the API key is missing.
    """
    deterministic = DeterministicEmbeddingProvider(dimension=settings.embedding_dimension)

    if settings.embedding_provider == "deterministic":
        return EmbeddingService(deterministic)

    remote = OpenAIEmbeddingProvider(
        api_key=settings.openai_api_key_value,
        model=settings.embedding_model,
        base_url=settings.embedding_api_url,
        dimension=settings.embedding_dimension,
        timeout=settings.provider_timeout_seconds,
        max_chars=settings.embedding_max_chars,
    )
    fallback = deterministic if settings.allow_fallback_embeddings else None
    return EmbeddingService(remote, fallback=fallback)


def build_file_mirror(settings: Settings) -> Optional[EmbeddingFileMirror]:
    if not settings.enable_file_mirror:
        return None
    return EmbeddingFileMirror(settings.projects_dir)


@lru_cache(maxsize=1)
def get_embedding_service() -> EmbeddingService:
    """
    Get or create the process-wide embedding service.

    The service is not initialized here; ``initialize()`` runs on first use.
    """
    settings = get_settings()
    logger.info(f"Creating embedding service (provider={settings.embedding_provider})")
    return build_embedding_service(settings)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    """Get or create the process-wide session factory, creating tables if needed."""
    settings = get_settings()
    engine = connection.get_engine(settings.database_url, settings.echo_sql)
    connection.create_tables(engine)
    logger.info(f"Database ready at {engine.url.render_as_string(hide_password=True)}")
    return connection.get_session_factory(engine)


def initialize_resources() -> dict[str, bool]:
    """
    Eagerly create and initialize all resources.

    Returns:
        dict: Status of each resource initialization

    Raises:
        RuntimeError: If any resource fails to initialize
    """
    status = {}

    try:
        get_session_factory()
        status["database"] = True
    except Exception as e:
        status["database"] = False
        raise RuntimeError(f"Failed to initialize database: {e}") from e

    try:
        service = get_embedding_service()
        service.initialize()
        status["embedding_service"] = service.is_initialized
    except Exception as e:
        status["embedding_service"] = False
        raise RuntimeError(f"Failed to initialize embedding service: {e}") from e

    return status


def clear_resource_cache() -> None:
    """
    Clear all cached resources.

    Used in tests to reset state between test cases.
    """
    get_embedding_service.cache_clear()
    get_session_factory.cache_clear()
    logger.debug("Resource cache cleared")
