"""
Pytest configuration and shared fixtures.

Provides common fixtures for:
    - In-memory SQLite session factory
    - Deterministic and scripted embedding services
    - Seeded projects, documents and chunks
    - Sample document files in temporary directories
"""

from pathlib import Path
from typing import Callable, Iterable, Optional

import numpy as np
import pytest
from numpy.typing import NDArray

from docrag.db import crud
from docrag.db.connection import create_tables, get_engine, get_session_factory, session_scope
from docrag.db.models import DocumentStatus
from docrag.exceptions import EmbeddingProviderError
from docrag.retrieval.chunker import PAGE_BREAK, ChunkMetadata
from docrag.retrieval.embeddings import DeterministicEmbeddingProvider, EmbeddingService
from docrag.retrieval.store import EmbeddingStore

TEST_DIMENSION = 64


class ScriptedEmbeddingProvider:
    """
    Provider returning fixed vectors for known texts.

    Texts listed in ``fail_on`` raise EmbeddingProviderError. Any other text
    falls back to the deterministic generator.
    """

    name = "scripted"

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        dimension: int = TEST_DIMENSION,
        fail_on: Iterable[str] = (),
    ) -> None:
        self.vectors = vectors or {}
        self.dimension = dimension
        self.fail_on = set(fail_on)
        self.calls: list[str] = []
        self._fallback = DeterministicEmbeddingProvider(dimension)

    def check_configuration(self) -> None:
        return None

    def embed(self, text: str) -> NDArray[np.float32]:
        self.calls.append(text)
        if text in self.fail_on:
            raise EmbeddingProviderError(f"scripted failure for {text!r}", provider=self.name)
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)
        return self._fallback.embed(text)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def session_factory():
    """Provide a session factory bound to a fresh in-memory database."""
    engine = get_engine("sqlite://", echo=False)
    create_tables(engine)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> EmbeddingStore:
    return EmbeddingStore(session_factory)


@pytest.fixture
def project_id(session_factory) -> str:
    """Create an empty project and return its id."""
    with session_scope(session_factory) as session:
        return crud.create_project(session, "Architecture review", "Test project").id


# =============================================================================
# Embedding Fixtures
# =============================================================================

@pytest.fixture
def embedding_service() -> EmbeddingService:
    """Provide a deterministic embedding service with small vectors."""
    return EmbeddingService(DeterministicEmbeddingProvider(dimension=TEST_DIMENSION))


@pytest.fixture
def scripted_service() -> Callable[..., EmbeddingService]:
    """Factory for services backed by ScriptedEmbeddingProvider."""
    def _make(
        vectors: Optional[dict[str, list[float]]] = None,
        dimension: int = TEST_DIMENSION,
        fail_on: Iterable[str] = (),
    ) -> EmbeddingService:
        return EmbeddingService(ScriptedEmbeddingProvider(vectors, dimension, fail_on))
    return _make


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def add_chunks(session_factory) -> Callable[..., str]:
    """
    Factory creating a processed document with the given chunk texts.

    Returns the document id. Chunks are laid out back to back; ``pages``
    optionally gives the page of each chunk.
    """
    def _add(
        project_id: str,
        texts: list[str],
        name: str = "report.txt",
        pages: Optional[list[int]] = None,
        sections: Optional[list[str]] = None,
    ) -> str:
        with session_scope(session_factory) as session:
            document = crud.create_document(
                session,
                project_id=project_id,
                name=name,
                mime_type="text/plain",
                storage_path=f"/tmp/{name}",
                size_bytes=sum(len(t) for t in texts),
            )
            rows = []
            offset = 0
            for sequence, text in enumerate(texts):
                extra = {"section": sections[sequence]} if sections else {}
                rows.append(
                    {
                        "project_id": project_id,
                        "document_id": document.id,
                        "sequence": sequence,
                        "page": pages[sequence] if pages else 1,
                        "text": text,
                        "start": offset,
                        "end": offset + len(text),
                        "metadata_json": ChunkMetadata(
                            start=offset,
                            end=offset + len(text),
                            chunk_size=1000,
                            overlap=0,
                            extra=extra,
                        ).to_dict(),
                    }
                )
                offset += len(text)
            crud.create_chunks(session, rows)
            crud.set_document_status(session, document.id, DocumentStatus.PROCESSED)
            return document.id
    return _add


@pytest.fixture
def sample_text() -> str:
    """Three-page markdown document with form-feed page breaks."""
    return (
        "# Executive Summary\n\n"
        "The current platform runs on a monolithic application server. "
        "Deployments take several hours and require a maintenance window.\n"
        f"{PAGE_BREAK}"
        "## Target Architecture\n\n"
        "Services are split by business capability and communicate through an event bus. "
        "Each service owns its data store.\n"
        f"{PAGE_BREAK}"
        "## Risks\n\n"
        "Data migration and team onboarding are the main delivery risks. "
        "A phased rollout limits the blast radius of each release.\n"
    )


@pytest.fixture
def sample_files(tmp_path: Path, sample_text: str) -> dict[str, Path]:
    """Write sample documents of every supported type."""
    files = {
        "architecture.md": sample_text,
        "inventory.csv": "system,owner,criticality\nbilling,finance,high\ncrm,sales,medium\n",
        "settings.json": '{"region": "eu-west", "replicas": 3}',
        "empty.txt": "   \n",
    }
    paths = {}
    for name, content in files.items():
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        paths[name] = path
    return paths


@pytest.fixture
def register_file(session_factory) -> Callable[..., str]:
    """Factory registering a file on disk as an uploaded document."""
    def _register(project_id: str, path: Path, mime_type: str) -> str:
        with session_scope(session_factory) as session:
            return crud.create_document(
                session,
                project_id=project_id,
                name=path.name,
                mime_type=mime_type,
                storage_path=str(path),
                size_bytes=path.stat().st_size if path.exists() else 0,
            ).id
    return _register
