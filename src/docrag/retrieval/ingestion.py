"""
Document ingestion: parse, chunk and persist.

Each document is handled in its own transaction. A document that fails to
parse or chunk is marked "error" and the remaining documents continue.
Re-ingesting a document replaces its chunks instead of duplicating them.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import sessionmaker

from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import DocumentStatus, ProjectStatus
from docrag.exceptions import DocRAGError
from docrag.retrieval.chunker import (
    ChunkMetadata,
    chunk_text,
    extract_page_from_chunk,
    extract_section_headers,
    find_section,
    validate_chunk_config,
)
from docrag.retrieval.parser import DocumentParser

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    """Outcome of ingesting a project's documents."""

    project_id: str
    processed_documents: int = 0
    failed_documents: int = 0
    skipped_documents: int = 0
    created_chunks: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    """Error message per failed document id."""


def ingest_project(
    session_factory: sessionmaker,
    project_id: str,
    parser: DocumentParser,
    chunk_size: int,
    overlap: int,
    force: bool = False,
) -> IngestionReport:
    """
    Chunk every document of a project that is not processed yet.

    Args:
        session_factory: Session factory for the relational store
        project_id: Project to ingest
        parser: Text extractor for stored files
        chunk_size: Window length in characters
        overlap: Characters shared by consecutive windows
        force: Re-ingest documents that are already processed

    Returns:
        IngestionReport with per-document outcomes

    Raises:
        ConfigurationError: If the chunk configuration is invalid (before any work)
        NotFoundError: If the project does not exist
    """
    validate_chunk_config(chunk_size, overlap)

    with session_scope(session_factory) as session:
        crud.get_project(session, project_id)
        documents = [
            (doc.id, doc.name, doc.storage_path, doc.mime_type, doc.status)
            for doc in crud.list_documents(session, project_id)
        ]

    report = IngestionReport(project_id=project_id)

    for document_id, name, storage_path, mime_type, status in documents:
        if status == DocumentStatus.PROCESSED and not force:
            report.skipped_documents += 1
            continue

        try:
            created = ingest_document(
                session_factory, project_id, document_id, parser, chunk_size, overlap
            )
        except DocRAGError as e:
            logger.warning(f"Ingestion failed for document {name} ({document_id}): {e}")
            _mark_failed(session_factory, report, document_id, str(e))
            continue
        except Exception as e:
            # Parsers are pluggable and may raise anything
            logger.exception(f"Unexpected error ingesting document {name} ({document_id})")
            _mark_failed(session_factory, report, document_id, f"{type(e).__name__}: {e}")
            continue

        report.processed_documents += 1
        report.created_chunks += created

    if report.processed_documents > 0:
        with session_scope(session_factory) as session:
            crud.set_project_status(session, project_id, ProjectStatus.INGESTED)

    logger.info(
        f"Project {project_id}: ingestion finished ({report.processed_documents} processed, "
        f"{report.failed_documents} failed, {report.skipped_documents} skipped, "
        f"{report.created_chunks} chunks)"
    )
    return report


def _mark_failed(
    session_factory: sessionmaker, report: IngestionReport, document_id: str, message: str
) -> None:
    with session_scope(session_factory) as session:
        crud.set_document_status(session, document_id, DocumentStatus.ERROR, error_message=message)
    report.failed_documents += 1
    report.errors[document_id] = message


def ingest_document(
    session_factory: sessionmaker,
    project_id: str,
    document_id: str,
    parser: DocumentParser,
    chunk_size: int,
    overlap: int,
) -> int:
    """
    Parse one document and replace its chunks.

    Returns:
        Number of chunks created
    """
    with session_scope(session_factory) as session:
        document = crud.set_document_status(session, document_id, DocumentStatus.PROCESSING)
        storage_path, mime_type = document.storage_path, document.mime_type

    parsed = parser.parse(storage_path, mime_type)
    windows = chunk_text(parsed.text, chunk_size, overlap)
    headers = extract_section_headers(parsed.text)

    rows = []
    for sequence, window in enumerate(windows):
        extra = dict(parsed.metadata)
        section: Optional[str] = find_section(headers, window.start, window.end)
        if section:
            extra["section"] = section
        metadata = ChunkMetadata(
            start=window.start,
            end=window.end,
            chunk_size=chunk_size,
            overlap=overlap,
            extra=extra,
        )
        rows.append(
            {
                "project_id": project_id,
                "document_id": document_id,
                "sequence": sequence,
                "page": extract_page_from_chunk(window.text, window.start, parsed.text),
                "text": window.text,
                "start": window.start,
                "end": window.end,
                "metadata_json": metadata.to_dict(),
            }
        )

    with session_scope(session_factory) as session:
        removed = crud.delete_document_chunks(session, document_id)
        if removed:
            logger.debug(f"Replaced {removed} existing chunks of document {document_id}")
        crud.create_chunks(session, rows)
        crud.set_document_status(
            session, document_id, DocumentStatus.PROCESSED, page_count=parsed.pages
        )

    return len(rows)
