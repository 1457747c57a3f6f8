"""
Chunk embedding persistence.

Tracks which chunks of a project carry an embedding and attaches new ones.
Every write runs in its own short transaction touching a single chunk row,
so concurrent runs over the same project never block each other; a repeated
write for the same chunk overwrites the previous vector.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import ChunkModel, DocumentModel
from docrag.exceptions import NotFoundError, StorageError
from docrag.retrieval.embeddings import EmbeddingService

logger = logging.getLogger(__name__)


@dataclass
class ChunkRecord:
    """A chunk row detached from its session."""

    id: str
    project_id: str
    document_id: str
    document_name: str
    sequence: int
    page: int
    text: str
    start: int
    end: int
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: Optional[bytes] = None


@dataclass
class EmbeddingStatus:
    """Embedding progress of a project."""

    project_id: str
    total_chunks: int
    embedded_chunks: int
    vector_dimension: int = 0

    @property
    def pending_chunks(self) -> int:
        return self.total_chunks - self.embedded_chunks

    @property
    def embedding_progress(self) -> float:
        if self.total_chunks == 0:
            return 0.0
        return self.embedded_chunks / self.total_chunks


class EmbeddingStore:
    """
    Read and write chunk embeddings for projects.

    Example:
        >>> store = EmbeddingStore(session_factory)
        >>> for chunk in store.list_chunks_missing_embeddings(project_id):
        ...     store.save_embedding(chunk.id, service.generate_embedding(chunk.text))
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _select_chunks(self, project_id: str):
        return (
            select(ChunkModel, DocumentModel.name)
            .join(DocumentModel, ChunkModel.document_id == DocumentModel.id)
            .where(ChunkModel.project_id == project_id)
            .order_by(DocumentModel.created_at, DocumentModel.id, ChunkModel.sequence)
        )

    @staticmethod
    def _to_record(chunk: ChunkModel, document_name: str, with_embedding: bool) -> ChunkRecord:
        return ChunkRecord(
            id=chunk.id,
            project_id=chunk.project_id,
            document_id=chunk.document_id,
            document_name=document_name,
            sequence=chunk.sequence,
            page=chunk.page,
            text=chunk.text,
            start=chunk.start,
            end=chunk.end,
            metadata=dict(chunk.metadata_json or {}),
            embedding=chunk.embedding if with_embedding else None,
        )

    def list_chunks_missing_embeddings(self, project_id: str) -> list[ChunkRecord]:
        """Chunks of the project without a stored vector, in document order."""
        stmt = self._select_chunks(project_id).where(ChunkModel.embedding.is_(None))
        with session_scope(self.session_factory) as session:
            rows = session.execute(stmt).all()
            return [self._to_record(chunk, name, with_embedding=False) for chunk, name in rows]

    def load_embedded_chunks(self, project_id: str) -> list[ChunkRecord]:
        """Chunks of the project with their serialized vectors, in document order."""
        stmt = self._select_chunks(project_id).where(ChunkModel.embedding.is_not(None))
        with session_scope(self.session_factory) as session:
            rows = session.execute(stmt).all()
            return [self._to_record(chunk, name, with_embedding=True) for chunk, name in rows]

    def save_embedding(self, chunk_id: str, vector: NDArray[np.float32]) -> None:
        """
        Attach a vector to a chunk, replacing any previous one.

        Raises:
            NotFoundError: If the chunk does not exist
            StorageError: If the database rejects the write
        """
        payload = EmbeddingService.serialize_embedding(vector)
        stmt = update(ChunkModel).where(ChunkModel.id == chunk_id).values(embedding=payload)
        try:
            with session_scope(self.session_factory) as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    raise NotFoundError("Chunk", chunk_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save embedding for chunk {chunk_id}: {e}") from e

    def count_embedded(self, project_id: str) -> int:
        with session_scope(self.session_factory) as session:
            return crud.count_project_chunks(session, project_id, embedded_only=True)

    def count_total(self, project_id: str) -> int:
        with session_scope(self.session_factory) as session:
            return crud.count_project_chunks(session, project_id)

    def embedding_progress(self, project_id: str) -> float:
        """Fraction of chunks embedded; 0.0 for a project without chunks."""
        return self.status(project_id).embedding_progress

    def status(self, project_id: str) -> EmbeddingStatus:
        """
        Summarize embedding progress for a project.

        Raises:
            NotFoundError: If the project does not exist
        """
        with session_scope(self.session_factory) as session:
            crud.get_project(session, project_id)
            total = crud.count_project_chunks(session, project_id)
            embedded = crud.count_project_chunks(session, project_id, embedded_only=True)
            sample = session.execute(
                select(ChunkModel.embedding)
                .where(ChunkModel.project_id == project_id, ChunkModel.embedding.is_not(None))
                .limit(1)
            ).scalar_one_or_none()

        dimension = len(sample) // 4 if sample else 0
        return EmbeddingStatus(
            project_id=project_id,
            total_chunks=total,
            embedded_chunks=embedded,
            vector_dimension=dimension,
        )
