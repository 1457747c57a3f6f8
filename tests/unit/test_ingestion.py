"""Unit tests for retrieval.ingestion module."""

import pytest

from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import DocumentStatus, ProjectStatus
from docrag.exceptions import ConfigurationError, NotFoundError
from docrag.retrieval.chunker import PAGE_BREAK, ChunkMetadata
from docrag.retrieval.ingestion import ingest_project
from docrag.retrieval.parser import TextDocumentParser


def _document(session_factory, document_id):
    with session_scope(session_factory) as session:
        return crud.get_document(session, document_id)


def _chunks(session_factory, project_id):
    with session_scope(session_factory) as session:
        return list(crud.list_project_chunks(session, project_id))


@pytest.mark.unit
class TestIngestProject:
    """Tests for ingest_project."""

    def test_ingests_markdown_with_pages(self, session_factory, project_id, sample_files, sample_text, register_file):
        document_id = register_file(project_id, sample_files["architecture.md"], "text/markdown")

        report = ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=120, overlap=20)

        chunks = _chunks(session_factory, project_id)
        document = _document(session_factory, document_id)
        assert report.processed_documents == 1
        assert report.created_chunks == len(chunks) > 1
        assert document.status == DocumentStatus.PROCESSED
        assert document.page_count == 3
        assert [c.sequence for c in chunks] == list(range(len(chunks)))
        assert chunks[0].page == 1
        assert chunks[-1].page == 3
        assert all(c.end > c.start for c in chunks)

        text = sample_text.strip()
        for chunk in chunks:
            assert chunk.text == text[chunk.start : chunk.end]
            assert chunk.page == text.count(PAGE_BREAK, 0, chunk.start) + 1 + (
                1 if text.startswith(PAGE_BREAK, chunk.start) else 0
            )

    def test_chunk_metadata(self, session_factory, project_id, sample_files, register_file):
        register_file(project_id, sample_files["architecture.md"], "text/markdown")

        ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=120, overlap=20)

        metadata = ChunkMetadata.from_dict(_chunks(session_factory, project_id)[0].metadata_json)
        assert metadata.chunk_size == 120
        assert metadata.overlap == 20
        assert metadata.start == 0
        assert metadata.extra["section"] == "Executive Summary"
        assert metadata.extra["type"] == "markdown"

    def test_project_marked_ingested(self, session_factory, project_id, sample_files, register_file):
        register_file(project_id, sample_files["inventory.csv"], "text/csv")

        ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=100, overlap=10)

        with session_scope(session_factory) as session:
            assert crud.get_project(session, project_id).status == ProjectStatus.INGESTED

    def test_failing_document_does_not_stop_siblings(self, session_factory, project_id, sample_files, register_file, tmp_path):
        good_id = register_file(project_id, sample_files["inventory.csv"], "text/csv")
        bad_id = register_file(project_id, tmp_path / "missing.txt", "text/plain")

        report = ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=100, overlap=10)

        assert report.processed_documents == 1
        assert report.failed_documents == 1
        assert bad_id in report.errors
        assert _document(session_factory, good_id).status == DocumentStatus.PROCESSED
        bad = _document(session_factory, bad_id)
        assert bad.status == DocumentStatus.ERROR
        assert "Cannot read" in bad.error_message

    def test_unsupported_type_marks_error(self, session_factory, project_id, sample_files, register_file):
        document_id = register_file(project_id, sample_files["architecture.md"], "application/pdf")

        report = ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=100, overlap=10)

        assert report.failed_documents == 1
        assert _document(session_factory, document_id).status == DocumentStatus.ERROR
        with session_scope(session_factory) as session:
            assert crud.get_project(session, project_id).status == ProjectStatus.CREATED

    def test_processed_documents_are_skipped(self, session_factory, project_id, sample_files, register_file):
        register_file(project_id, sample_files["architecture.md"], "text/markdown")
        first = ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=120, overlap=20)

        second = ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=120, overlap=20)

        assert second.skipped_documents == 1
        assert second.created_chunks == 0
        assert len(_chunks(session_factory, project_id)) == first.created_chunks

    def test_force_replaces_chunks(self, session_factory, project_id, sample_files, register_file):
        register_file(project_id, sample_files["architecture.md"], "text/markdown")
        ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=120, overlap=20)

        report = ingest_project(
            session_factory, project_id, TextDocumentParser(), chunk_size=200, overlap=0, force=True
        )

        chunks = _chunks(session_factory, project_id)
        assert report.processed_documents == 1
        assert len(chunks) == report.created_chunks
        assert all(ChunkMetadata.from_dict(c.metadata_json).chunk_size == 200 for c in chunks)

    def test_invalid_config_before_any_work(self, session_factory, project_id, sample_files, register_file):
        document_id = register_file(project_id, sample_files["architecture.md"], "text/markdown")

        with pytest.raises(ConfigurationError):
            ingest_project(session_factory, project_id, TextDocumentParser(), chunk_size=100, overlap=100)

        assert _document(session_factory, document_id).status == DocumentStatus.UPLOADED
        assert _chunks(session_factory, project_id) == []

    def test_unknown_project(self, session_factory):
        with pytest.raises(NotFoundError):
            ingest_project(session_factory, "missing", TextDocumentParser(), chunk_size=100, overlap=10)

    def test_unexpected_parser_error_marks_document(self, session_factory, project_id, sample_files, register_file):
        class BrokenCsvParser(TextDocumentParser):
            def parse(self, path, mime_type):
                if mime_type == "text/csv":
                    raise ValueError("row 2 has no owner")
                return super().parse(path, mime_type)

        bad_id = register_file(project_id, sample_files["inventory.csv"], "text/csv")
        good_id = register_file(project_id, sample_files["architecture.md"], "text/markdown")

        report = ingest_project(session_factory, project_id, BrokenCsvParser(), chunk_size=120, overlap=20)

        assert report.processed_documents == 1
        assert report.failed_documents == 1
        assert report.errors[bad_id] == "ValueError: row 2 has no owner"
        bad = _document(session_factory, bad_id)
        assert bad.status == DocumentStatus.ERROR
        assert bad.error_message == "ValueError: row 2 has no owner"
        assert _document(session_factory, good_id).status == DocumentStatus.PROCESSED
        with session_scope(session_factory) as session:
            assert crud.get_project(session, project_id).status == ProjectStatus.INGESTED
