"""
Pydantic models for API request and response schemas.

These models provide automatic validation and OpenAPI documentation.
JSON field names are camelCase to match the web client.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchRequest(CamelModel):
    """Request schema for the /projects/{id}/search endpoint."""

    query: str = Field(
        ...,
        min_length=1,
        description="Natural language query",
        examples=["What are the main risks of the current architecture?"],
    )
    top_k: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Maximum number of results",
    )
    min_similarity: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for a result",
    )


class ResultDocument(CamelModel):
    id: str
    name: str
    page: int


class SearchResultSchema(CamelModel):
    """A ranked chunk."""

    chunk_id: str
    text: str
    similarity: float = Field(description="Cosine similarity to the query")
    document: ResultDocument


class CitationSchema(CamelModel):
    """Schema for a source citation."""

    doc_id: str
    doc_name: str
    page: int
    snippet: str = Field(default="", description="Preview of the source text")
    section: str = ""


class SearchResponse(CamelModel):
    """Response schema for the /projects/{id}/search endpoint."""

    query: str
    results: list[SearchResultSchema] = Field(default_factory=list)
    context: str = Field(description="Ranked passages formatted for a generator")
    citations: list[CitationSchema] = Field(default_factory=list)
    total_results: int


class ProjectCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    status: str


class DocumentCreateRequest(CamelModel):
    """Registers a file that is already stored on disk."""

    name: str = Field(..., min_length=1, max_length=255)
    storage_path: str = Field(..., min_length=1)
    mime_type: Optional[str] = Field(
        default=None,
        description="MIME type; guessed from the file extension when omitted",
    )
    size_bytes: int = Field(default=0, ge=0)


class DocumentResponse(CamelModel):
    id: str
    project_id: str
    name: str
    mime_type: str
    size_bytes: int
    page_count: Optional[int] = None
    status: str
    error_message: Optional[str] = None


class IngestResponse(CamelModel):
    project_id: str
    processed_documents: int
    failed_documents: int
    skipped_documents: int
    created_chunks: int
    errors: dict[str, str] = Field(default_factory=dict)


class EmbedResponse(CamelModel):
    project_id: str
    total_chunks: int
    processed_chunks: int
    error_chunks: int
    status: str
    embedding_progress: float


class EmbeddingStatusResponse(CamelModel):
    project_id: str
    total_chunks: int
    embedded_chunks: int
    pending_chunks: int
    can_embed: bool
    vector_size: int
    embedding_progress: float


class DiagnosticsResponse(CamelModel):
    """Document and chunk breakdown for a project, with suggested next steps."""

    project: ProjectResponse
    total_documents: int
    document_statuses: dict[str, int] = Field(
        default_factory=dict,
        description="Document count per status",
        examples=[{"uploaded": 1, "processed": 3, "error": 1}],
    )
    embedding: EmbeddingStatusResponse
    recommendations: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response schema for the /health endpoint."""

    status: str = Field(
        description="Health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(
        description="API version",
    )
    embedding_provider: str = Field(
        description="Active embedding provider",
    )


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: str = Field(
        description="Error code",
        examples=["not_found", "configuration_error", "deadline_exceeded"],
    )
    details: str = Field(
        description="Human-readable error message",
    )
