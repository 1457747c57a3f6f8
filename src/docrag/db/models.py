"""
ORM models for projects, documents and chunks.

Ownership: a project owns its documents and chunks; deleting a project
removes both. A chunk's embedding is a nullable binary column on the chunk
row (little-endian float32 components).
"""

import enum
from typing import Any, Optional

from sqlalchemy import JSON, Enum, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docrag.db.base import Base, TimestampMixin, UUIDMixin


class ProjectStatus(str, enum.Enum):
    """
    Project pipeline states.

    CREATED: No document ingested yet
    INGESTED: Documents chunked, embeddings pending
    EMBEDDED: Embedding run completed (possibly partially)
    ERROR: Every chunk of the last embedding run failed
    """

    CREATED = "created"
    INGESTED = "ingested"
    EMBEDDED = "embedded"
    ERROR = "error"


class DocumentStatus(str, enum.Enum):
    """
    Document lifecycle states.

    UPLOADED: File stored, not parsed
    PROCESSING: Parsing and chunking in progress
    PROCESSED: Chunks created
    ERROR: Parsing or chunking failed; error_message holds details
    """

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class ProjectModel(Base, UUIDMixin, TimestampMixin):
    """A named collection of documents."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus, native_enum=False),
        nullable=False,
        default=ProjectStatus.CREATED,
    )

    documents = relationship(
        "DocumentModel",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    chunks = relationship(
        "ChunkModel",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DocumentModel(Base, UUIDMixin, TimestampMixin):
    """
    One uploaded file belonging to a project.

    Attributes:
        name: Display name (original filename)
        mime_type: MIME type used to select the parser
        storage_path: Where the raw file lives
        size_bytes: File size
        page_count: Null until parsed
        status: Lifecycle state (see DocumentStatus)
        error_message: Details when status is ERROR
    """

    __tablename__ = "documents"

    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False),
        nullable=False,
        default=DocumentStatus.UPLOADED,
    )
    error_message: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    project = relationship("ProjectModel", back_populates="documents")
    chunks = relationship(
        "ChunkModel",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChunkModel.sequence",
    )


class ChunkModel(Base, UUIDMixin, TimestampMixin):
    """
    A contiguous slice of a document's extracted text.

    ``sequence`` is the 0-based position within the document; ``start`` and
    ``end`` are character offsets into the extracted text.
    """

    __tablename__ = "chunks"

    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    start: Mapped[int] = mapped_column(Integer, nullable=False)
    end: Mapped[int] = mapped_column(Integer, nullable=False)
    embedding: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    project = relationship("ProjectModel", back_populates="chunks")
    document = relationship("DocumentModel", back_populates="chunks")
