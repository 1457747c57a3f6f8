"""
FastAPI application for the docrag REST API.

Run with:
    uvicorn docrag.api.main:app --reload

Or use the CLI:
    docrag serve
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from docrag import __version__
from docrag.api.models import (
    CitationSchema,
    DocumentCreateRequest,
    DiagnosticsResponse,
    DocumentResponse,
    EmbeddingStatusResponse,
    EmbedResponse,
    ErrorResponse,
    HealthResponse,
    IngestResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ResultDocument,
    SearchRequest,
    SearchResponse,
    SearchResultSchema,
)
from docrag.config import get_settings
from docrag.db import crud
from docrag.db.connection import session_scope
from docrag.db.models import DocumentModel, ProjectModel
from docrag.exceptions import (
    ConfigurationError,
    DeadlineExceededError,
    DimensionMismatchError,
    DocRAGError,
    EmbeddingProviderError,
    NotFoundError,
)
from docrag.logging_setup import configure_logging
from docrag.retrieval import resources
from docrag.retrieval.batch import embed_project
from docrag.retrieval.embeddings import EmbeddingService
from docrag.retrieval.ingestion import ingest_project
from docrag.retrieval.parser import TextDocumentParser, guess_mime_type
from docrag.retrieval.retriever import Retriever
from docrag.retrieval.store import EmbeddingStore

logger = logging.getLogger(__name__)

# Most specific first: DeadlineExceededError subclasses EmbeddingProviderError
ERROR_STATUS_CODES: list[tuple[type[DocRAGError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (DeadlineExceededError, status.HTTP_504_GATEWAY_TIMEOUT),
    (EmbeddingProviderError, status.HTTP_502_BAD_GATEWAY),
    (DimensionMismatchError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(error: DocRAGError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Configure logging
        - Create database tables and the embedding service (cached)
        - Place instances on app.state unless they were injected

    Shutdown:
        - Resources persist until process exit (@lru_cache lifetime)
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Initializing docrag resources...")

    if getattr(app.state, "session_factory", None) is None:
        app.state.session_factory = resources.get_session_factory()
    if getattr(app.state, "embedding_service", None) is None:
        app.state.embedding_service = resources.get_embedding_service()

    try:
        app.state.embedding_service.initialize()
    except ConfigurationError as e:
        logger.error(f"Failed to initialize embedding service: {e}")
        raise RuntimeError(f"Startup failed: {e}") from e

    yield

    logger.info("Shutting down docrag...")


def create_app(
    embedding_service: Optional[EmbeddingService] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        embedding_service: Service to use instead of the process default
        session_factory: Session factory to use instead of the process default

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="docrag",
        description="Document chunking, embedding and retrieval for grounded report generation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.embedding_service = embedding_service
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DocRAGError)
    async def docrag_error_handler(request: Request, exc: DocRAGError) -> JSONResponse:
        code = status_code_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=code,
            content={"error": exc.error_code, "details": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"error": "validation_error", "details": str(exc.errors())},
        )

    app.include_router(router)
    return app


# =============================================================================
# Dependencies
# =============================================================================

def get_session_factory(request: Request) -> sessionmaker:
    factory = request.app.state.session_factory
    if factory is None:
        factory = request.app.state.session_factory = resources.get_session_factory()
    return factory


def get_embedding_service(request: Request) -> EmbeddingService:
    service = request.app.state.embedding_service
    if service is None:
        service = request.app.state.embedding_service = resources.get_embedding_service()
    return service


def _project_response(project: ProjectModel) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        status=project.status.value,
    )


def _document_response(document: DocumentModel) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        project_id=document.project_id,
        name=document.name,
        mime_type=document.mime_type,
        size_bytes=document.size_bytes,
        page_count=document.page_count,
        status=document.status.value,
        error_message=document.error_message,
    )


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid configuration"},
    404: {"model": ErrorResponse, "description": "Project not found"},
    502: {"model": ErrorResponse, "description": "Embedding provider error"},
    504: {"model": ErrorResponse, "description": "Provider deadline exceeded"},
}


@router.get("/health", response_model=HealthResponse, tags=["System"])
def health_check(
    service: EmbeddingService = Depends(get_embedding_service),
) -> HealthResponse:
    """Health check endpoint for liveness/readiness probes."""
    return HealthResponse(
        status="healthy" if service.is_initialized else "degraded",
        version=__version__,
        embedding_provider=service.provider.name,
    )


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Projects"],
)
def create_project(
    request: ProjectCreateRequest,
    factory: sessionmaker = Depends(get_session_factory),
) -> ProjectResponse:
    with session_scope(factory) as session:
        project = crud.create_project(session, request.name, request.description)
        return _project_response(project)


@router.get("/projects/{project_id}", response_model=ProjectResponse, responses=ERROR_RESPONSES, tags=["Projects"])
def get_project(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
) -> ProjectResponse:
    with session_scope(factory) as session:
        return _project_response(crud.get_project(session, project_id))


@router.delete(
    "/projects/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
    tags=["Projects"],
)
def delete_project(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
) -> None:
    """Delete a project with all of its documents and chunks."""
    with session_scope(factory) as session:
        crud.delete_project(session, project_id)


@router.post(
    "/projects/{project_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    tags=["Documents"],
)
def register_document(
    project_id: str,
    request: DocumentCreateRequest,
    factory: sessionmaker = Depends(get_session_factory),
) -> DocumentResponse:
    """Register a stored file as a project document (status "uploaded")."""
    with session_scope(factory) as session:
        document = crud.create_document(
            session,
            project_id=project_id,
            name=request.name,
            mime_type=request.mime_type or guess_mime_type(request.name),
            storage_path=request.storage_path,
            size_bytes=request.size_bytes,
        )
        return _document_response(document)


@router.get(
    "/projects/{project_id}/documents",
    response_model=list[DocumentResponse],
    responses=ERROR_RESPONSES,
    tags=["Documents"],
)
def list_documents(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
) -> list[DocumentResponse]:
    with session_scope(factory) as session:
        crud.get_project(session, project_id)
        return [_document_response(doc) for doc in crud.list_documents(session, project_id)]


@router.post(
    "/projects/{project_id}/ingest",
    response_model=IngestResponse,
    responses=ERROR_RESPONSES,
    tags=["Pipeline"],
)
def ingest_endpoint(
    project_id: str,
    force: bool = False,
    factory: sessionmaker = Depends(get_session_factory),
) -> IngestResponse:
    """Parse and chunk every unprocessed document of the project."""
    settings = get_settings()
    report = ingest_project(
        factory,
        project_id,
        TextDocumentParser(),
        chunk_size=settings.chunk_size,
        overlap=settings.chunk_overlap,
        force=force,
    )
    return IngestResponse(
        project_id=report.project_id,
        processed_documents=report.processed_documents,
        failed_documents=report.failed_documents,
        skipped_documents=report.skipped_documents,
        created_chunks=report.created_chunks,
        errors=report.errors,
    )


@router.post(
    "/projects/{project_id}/embed",
    response_model=EmbedResponse,
    responses=ERROR_RESPONSES,
    tags=["Pipeline"],
)
def embed_endpoint(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
    service: EmbeddingService = Depends(get_embedding_service),
) -> EmbedResponse:
    """Embed every chunk of the project that has no embedding yet."""
    settings = get_settings()
    report = embed_project(
        project_id,
        service,
        EmbeddingStore(factory),
        batch_size=settings.embedding_batch_size,
        delay_seconds=settings.embedding_batch_delay_seconds,
        mirror=resources.build_file_mirror(settings),
    )
    return EmbedResponse(
        project_id=report.project_id,
        total_chunks=report.total_chunks,
        processed_chunks=report.processed_chunks,
        error_chunks=report.error_chunks,
        status=report.status,
        embedding_progress=report.embedding_progress,
    )


def _embedding_status_response(project_id: str, factory: sessionmaker) -> EmbeddingStatusResponse:
    embedding_status = EmbeddingStore(factory).status(project_id)
    return EmbeddingStatusResponse(
        project_id=project_id,
        total_chunks=embedding_status.total_chunks,
        embedded_chunks=embedding_status.embedded_chunks,
        pending_chunks=embedding_status.pending_chunks,
        can_embed=embedding_status.pending_chunks > 0,
        vector_size=embedding_status.vector_dimension,
        embedding_progress=embedding_status.embedding_progress,
    )


@router.get(
    "/projects/{project_id}/embed",
    response_model=EmbeddingStatusResponse,
    responses=ERROR_RESPONSES,
    tags=["Pipeline"],
)
def embedding_status_endpoint(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
) -> EmbeddingStatusResponse:
    return _embedding_status_response(project_id, factory)


@router.get(
    "/projects/{project_id}/diagnose",
    response_model=DiagnosticsResponse,
    responses=ERROR_RESPONSES,
    tags=["Pipeline"],
)
def diagnose_endpoint(
    project_id: str,
    factory: sessionmaker = Depends(get_session_factory),
) -> DiagnosticsResponse:
    """Summarize where a project stands in the ingest and embed pipeline."""
    with session_scope(factory) as session:
        project = _project_response(crud.get_project(session, project_id))
        document_statuses = crud.count_documents_by_status(session, project_id)
    embedding = _embedding_status_response(project_id, factory)

    total_documents = sum(document_statuses.values())
    recommendations = []
    if total_documents == 0:
        recommendations.append("No documents uploaded. Upload documents first.")
    elif document_statuses.get("uploaded"):
        recommendations.append(
            f"{document_statuses['uploaded']} documents ready for ingestion. Run the ingest endpoint."
        )
    if embedding.total_chunks == 0 and document_statuses.get("processed"):
        recommendations.append("Documents processed but no chunks found. Check the document parser.")
    if embedding.pending_chunks > 0:
        recommendations.append(
            f"{embedding.pending_chunks} chunks without embeddings. Run the embed endpoint."
        )
    if document_statuses.get("error"):
        recommendations.append(
            f"{document_statuses['error']} documents in error state. Check the logs for processing issues."
        )

    return DiagnosticsResponse(
        project=project,
        total_documents=total_documents,
        document_statuses=document_statuses,
        embedding=embedding,
        recommendations=recommendations,
    )


@router.post(
    "/projects/{project_id}/search",
    response_model=SearchResponse,
    responses=ERROR_RESPONSES,
    tags=["Search"],
)
def search_endpoint(
    project_id: str,
    request: SearchRequest,
    factory: sessionmaker = Depends(get_session_factory),
    service: EmbeddingService = Depends(get_embedding_service),
) -> SearchResponse:
    """
    Retrieve the passages of a project most relevant to a query.

    Returns ranked results, a context block for a generator and citations.
    """
    with session_scope(factory) as session:
        crud.get_project(session, project_id)

    settings = get_settings()
    retriever = Retriever(service, EmbeddingStore(factory), settings.citation_snippet_length)
    results = retriever.retrieve_relevant_chunks(
        project_id, request.query, request.top_k, request.min_similarity
    )

    return SearchResponse(
        query=request.query,
        results=[
            SearchResultSchema(
                chunk_id=r.chunk_id,
                text=r.text,
                similarity=r.similarity,
                document=ResultDocument(id=r.document_id, name=r.document_name, page=r.page),
            )
            for r in results
        ],
        context=retriever.format_retrieval_context(results),
        citations=[
            CitationSchema(
                doc_id=c.document_id,
                doc_name=c.document_name,
                page=c.page,
                snippet=c.snippet,
                section=c.section,
            )
            for c in retriever.extract_citations(results)
        ],
        total_results=len(results),
    )


# Create app instance
app = create_app()
