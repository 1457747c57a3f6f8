"""
Incremental embedding runs over a project's chunks.

Only chunks without a stored vector are processed. Chunks are handled in
fixed-size batches, sequentially inside a batch with a short pause between
provider calls. A failing chunk is logged and counted; the run continues.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import ProjectStatus
from docrag.exceptions import DocRAGError
from docrag.retrieval.embeddings import EmbeddingService
from docrag.retrieval.mirror import EmbeddingFileMirror, make_mirror_record
from docrag.retrieval.store import EmbeddingStore

logger = logging.getLogger(__name__)

RUN_STATUS_UP_TO_DATE = "up_to_date"


@dataclass
class EmbeddingRunReport:
    """Outcome of one embedding run."""

    project_id: str
    total_chunks: int
    """Chunks missing an embedding when the run started."""

    processed_chunks: int
    error_chunks: int
    status: str
    """Project status after the run, or "up_to_date" when nothing was missing."""

    embedding_progress: float


def embed_project(
    project_id: str,
    service: EmbeddingService,
    store: EmbeddingStore,
    batch_size: int = 5,
    delay_seconds: float = 0.1,
    mirror: Optional[EmbeddingFileMirror] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> EmbeddingRunReport:
    """
    Embed every chunk of a project that has no vector yet.

    The project is marked "embedded" when at least one chunk succeeded and
    "error" when every chunk failed. With nothing to embed the status is
    left unchanged.

    Args:
        project_id: Project to process
        service: Embedding service used for every chunk
        store: Embedding store for reads and writes
        batch_size: Chunks per batch
        delay_seconds: Pause after each provider call
        mirror: Optional JSON mirror updated after each batch
        sleep: Sleep function (injectable for tests)

    Returns:
        EmbeddingRunReport with processed and failed counts

    Raises:
        NotFoundError: If the project does not exist
        ConfigurationError: If the embedding service cannot be initialized
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    with session_scope(store.session_factory) as session:
        crud.get_project(session, project_id)

    missing = store.list_chunks_missing_embeddings(project_id)
    total = len(missing)

    if total == 0:
        logger.info(f"Project {project_id}: all chunks already embedded")
        return EmbeddingRunReport(
            project_id=project_id,
            total_chunks=0,
            processed_chunks=0,
            error_chunks=0,
            status=RUN_STATUS_UP_TO_DATE,
            embedding_progress=store.embedding_progress(project_id),
        )

    # Fail fast on configuration problems instead of counting them per chunk
    service.initialize()

    logger.info(f"Project {project_id}: embedding {total} chunks in batches of {batch_size}")

    processed = 0
    errors = 0

    for batch_start in range(0, total, batch_size):
        batch = missing[batch_start : batch_start + batch_size]
        mirror_records = []

        for chunk in batch:
            try:
                vector = service.generate_embedding(chunk.text)
                store.save_embedding(chunk.id, vector)
            except (DocRAGError, SQLAlchemyError) as e:
                errors += 1
                logger.warning(f"Embedding failed for chunk {chunk.id}: {e}")
            else:
                processed += 1
                if mirror is not None:
                    mirror_records.append(
                        make_mirror_record(
                            chunk.id,
                            vector,
                            {
                                "documentName": chunk.document_name,
                                "chunkIndex": chunk.sequence,
                                "contentLength": len(chunk.text),
                                "embeddingModel": service.provider.name,
                                "vectorSize": int(vector.shape[0]),
                            },
                        )
                    )

            if delay_seconds > 0:
                sleep(delay_seconds)

        if mirror is not None and mirror_records:
            mirror.append(project_id, mirror_records)

        logger.debug(
            f"Project {project_id}: batch ending at {batch_start + len(batch)}/{total} "
            f"({processed} ok, {errors} failed)"
        )

    status = ProjectStatus.EMBEDDED if processed > 0 else ProjectStatus.ERROR
    with session_scope(store.session_factory) as session:
        crud.set_project_status(session, project_id, status)

    logger.info(
        f"Project {project_id}: embedding run finished "
        f"({processed}/{total} processed, {errors} failed, status={status.value})"
    )

    return EmbeddingRunReport(
        project_id=project_id,
        total_chunks=total,
        processed_chunks=processed,
        error_chunks=errors,
        status=status.value,
        embedding_progress=store.embedding_progress(project_id),
    )
