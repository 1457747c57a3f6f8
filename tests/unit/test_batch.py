"""Unit tests for retrieval.batch module."""

import pytest
from sqlalchemy.exc import OperationalError

from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import ProjectStatus
from docrag.exceptions import ConfigurationError, NotFoundError
from docrag.retrieval.batch import RUN_STATUS_UP_TO_DATE, embed_project
from docrag.retrieval.embeddings import EmbeddingService, OpenAIEmbeddingProvider
from docrag.retrieval.mirror import EmbeddingFileMirror
from docrag.retrieval.store import EmbeddingStore

TEXTS = [f"chunk-{i}" for i in range(1, 8)]


def _project_status(session_factory, project_id) -> ProjectStatus:
    with session_scope(session_factory) as session:
        return crud.get_project(session, project_id).status


class FlakyStore(EmbeddingStore):
    """Store whose n-th save raises a raw database error."""

    def __init__(self, session_factory, fail_on_call: int) -> None:
        super().__init__(session_factory)
        self.fail_on_call = fail_on_call
        self.saves = 0

    def save_embedding(self, chunk_id, vector):
        self.saves += 1
        if self.saves == self.fail_on_call:
            raise OperationalError("UPDATE chunks", {}, Exception("database is locked"))
        super().save_embedding(chunk_id, vector)


@pytest.mark.unit
class TestEmbedProject:
    """Tests for embed_project batch runs."""

    def test_partial_failure_scenario(self, session_factory, store, project_id, add_chunks, scripted_service):
        """7 chunks, batch size 5, chunk #3 fails: 6 processed and project embedded."""
        add_chunks(project_id, TEXTS)
        service = scripted_service(fail_on=["chunk-3"])
        pauses = []

        report = embed_project(
            project_id, service, store, batch_size=5, delay_seconds=0.1, sleep=pauses.append
        )

        assert report.total_chunks == 7
        assert report.processed_chunks == 6
        assert report.error_chunks == 1
        assert report.status == "embedded"
        assert report.embedding_progress == pytest.approx(6 / 7)
        assert _project_status(session_factory, project_id) == ProjectStatus.EMBEDDED
        assert pauses == [0.1] * 7
        assert service.provider.calls == TEXTS

    def test_failed_chunk_stays_pending(self, store, project_id, add_chunks, scripted_service):
        add_chunks(project_id, TEXTS)

        embed_project(project_id, scripted_service(fail_on=["chunk-3"]), store, sleep=lambda _: None)

        assert [c.text for c in store.list_chunks_missing_embeddings(project_id)] == ["chunk-3"]

    def test_rerun_processes_only_missing(self, store, project_id, add_chunks, scripted_service):
        add_chunks(project_id, TEXTS)
        embed_project(project_id, scripted_service(fail_on=["chunk-3"]), store, sleep=lambda _: None)
        retry_service = scripted_service()

        report = embed_project(project_id, retry_service, store, sleep=lambda _: None)

        assert report.total_chunks == 1
        assert report.processed_chunks == 1
        assert retry_service.provider.calls == ["chunk-3"]
        assert report.embedding_progress == 1.0

    def test_database_error_on_one_chunk(self, session_factory, project_id, add_chunks, embedding_service):
        add_chunks(project_id, TEXTS)
        store = FlakyStore(session_factory, fail_on_call=3)

        report = embed_project(project_id, embedding_service, store, batch_size=5, sleep=lambda _: None)

        assert report.processed_chunks == 6
        assert report.error_chunks == 1
        assert report.status == "embedded"
        assert _project_status(session_factory, project_id) == ProjectStatus.EMBEDDED
        assert [c.text for c in store.list_chunks_missing_embeddings(project_id)] == ["chunk-3"]

    def test_all_failing_marks_error(self, session_factory, store, project_id, add_chunks, scripted_service):
        add_chunks(project_id, ["a", "b"])

        report = embed_project(project_id, scripted_service(fail_on=["a", "b"]), store, sleep=lambda _: None)

        assert report.processed_chunks == 0
        assert report.error_chunks == 2
        assert report.status == "error"
        assert _project_status(session_factory, project_id) == ProjectStatus.ERROR

    def test_nothing_missing_is_up_to_date(self, session_factory, store, project_id, embedding_service):
        report = embed_project(project_id, embedding_service, store, sleep=lambda _: None)

        assert report.status == RUN_STATUS_UP_TO_DATE
        assert report.total_chunks == 0
        assert report.embedding_progress == 0.0
        assert _project_status(session_factory, project_id) == ProjectStatus.CREATED

    def test_no_delay_skips_sleep(self, store, project_id, add_chunks, embedding_service):
        add_chunks(project_id, ["x", "y"])
        pauses = []

        embed_project(project_id, embedding_service, store, delay_seconds=0, sleep=pauses.append)

        assert pauses == []

    def test_unknown_project(self, store, embedding_service):
        with pytest.raises(NotFoundError):
            embed_project("missing", embedding_service, store)

    def test_invalid_batch_size(self, store, project_id, embedding_service):
        with pytest.raises(ValueError):
            embed_project(project_id, embedding_service, store, batch_size=0)

    def test_unconfigured_service_fails_fast(self, store, project_id, add_chunks):
        add_chunks(project_id, ["needs a provider"])
        service = EmbeddingService(OpenAIEmbeddingProvider(api_key=None))

        with pytest.raises(ConfigurationError):
            embed_project(project_id, service, store, sleep=lambda _: None)

        assert store.count_embedded(project_id) == 0

    def test_mirror_written_per_batch(self, tmp_path, store, project_id, add_chunks, scripted_service):
        add_chunks(project_id, TEXTS, name="notes.txt")
        mirror = EmbeddingFileMirror(tmp_path)
        service = scripted_service(fail_on=["chunk-3"])

        embed_project(project_id, service, store, batch_size=5, mirror=mirror, sleep=lambda _: None)

        entries = mirror.load(project_id)
        assert len(entries) == 6
        first = entries[0]
        assert set(first) == {"chunkId", "embedding", "metadata", "createdAt"}
        assert first["metadata"]["documentName"] == "notes.txt"
        assert first["metadata"]["vectorSize"] == service.dimension
        assert first["metadata"]["embeddingModel"] == "scripted"
