"""
CRUD operations for projects, documents and chunks.

All functions take an open session and leave transaction control
(commit/rollback) to the caller, usually via ``session_scope``.
Lookups of missing rows raise NotFoundError.
"""

from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from docrag.db.models import (
    ChunkModel,
    DocumentModel,
    DocumentStatus,
    ProjectModel,
    ProjectStatus,
)
from docrag.exceptions import NotFoundError


# =============================================================================
# Projects
# =============================================================================

def create_project(session: Session, name: str, description: Optional[str] = None) -> ProjectModel:
    project = ProjectModel(name=name, description=description)
    session.add(project)
    session.flush()
    return project


def get_project(session: Session, project_id: str) -> ProjectModel:
    project = session.get(ProjectModel, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def delete_project(session: Session, project_id: str) -> None:
    """Delete a project together with its documents and chunks."""
    project = get_project(session, project_id)
    session.delete(project)
    session.flush()


def set_project_status(session: Session, project_id: str, status: ProjectStatus) -> ProjectModel:
    project = get_project(session, project_id)
    project.status = status
    session.flush()
    return project


# =============================================================================
# Documents
# =============================================================================

def create_document(
    session: Session,
    project_id: str,
    name: str,
    mime_type: str,
    storage_path: str,
    size_bytes: int = 0,
) -> DocumentModel:
    get_project(session, project_id)
    document = DocumentModel(
        project_id=project_id,
        name=name,
        mime_type=mime_type,
        storage_path=storage_path,
        size_bytes=size_bytes,
    )
    session.add(document)
    session.flush()
    return document


def get_document(session: Session, document_id: str) -> DocumentModel:
    document = session.get(DocumentModel, document_id)
    if document is None:
        raise NotFoundError("Document", document_id)
    return document


def list_documents(session: Session, project_id: str) -> Sequence[DocumentModel]:
    stmt = (
        select(DocumentModel)
        .where(DocumentModel.project_id == project_id)
        .order_by(DocumentModel.created_at, DocumentModel.id)
    )
    return session.execute(stmt).scalars().all()


def count_documents_by_status(session: Session, project_id: str) -> dict[str, int]:
    """Number of documents per status; statuses with no documents are omitted."""
    stmt = (
        select(DocumentModel.status, func.count(DocumentModel.id))
        .where(DocumentModel.project_id == project_id)
        .group_by(DocumentModel.status)
    )
    return {doc_status.value: int(count) for doc_status, count in session.execute(stmt).all()}


def set_document_status(
    session: Session,
    document_id: str,
    status: DocumentStatus,
    error_message: Optional[str] = None,
    page_count: Optional[int] = None,
) -> DocumentModel:
    document = get_document(session, document_id)
    document.status = status
    document.error_message = error_message
    if page_count is not None:
        document.page_count = page_count
    session.flush()
    return document


# =============================================================================
# Chunks
# =============================================================================

def create_chunks(session: Session, rows: Iterable[dict[str, Any]]) -> list[ChunkModel]:
    """
    Insert chunk rows.

    Args:
        rows: Keyword arguments for ChunkModel (project_id, document_id,
            sequence, page, text, start, end, metadata_json)

    Returns:
        Created chunks in input order
    """
    chunks = [ChunkModel(**row) for row in rows]
    session.add_all(chunks)
    session.flush()
    return chunks


def delete_document_chunks(session: Session, document_id: str) -> int:
    """Remove every chunk of a document. Returns the number of rows deleted."""
    result = session.execute(delete(ChunkModel).where(ChunkModel.document_id == document_id))
    return result.rowcount or 0


def list_project_chunks(session: Session, project_id: str) -> Sequence[ChunkModel]:
    """Chunks of a project in document order, then sequence order."""
    stmt = (
        select(ChunkModel)
        .join(DocumentModel, ChunkModel.document_id == DocumentModel.id)
        .where(ChunkModel.project_id == project_id)
        .order_by(DocumentModel.created_at, DocumentModel.id, ChunkModel.sequence)
    )
    return session.execute(stmt).scalars().all()


def count_project_chunks(session: Session, project_id: str, embedded_only: bool = False) -> int:
    stmt = select(func.count(ChunkModel.id)).where(ChunkModel.project_id == project_id)
    if embedded_only:
        stmt = stmt.where(ChunkModel.embedding.is_not(None))
    return int(session.execute(stmt).scalar_one())
