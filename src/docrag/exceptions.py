"""
Error types raised by the retrieval core.

The HTTP layer maps each type to a status code and renders
``{"error": error_code, "details": message}``.
"""

from typing import Optional


class DocRAGError(Exception):
    """Base exception for all docrag errors."""

    error_code = "internal_error"


class ConfigurationError(DocRAGError):
    """
    Invalid configuration.

    Raised when:
    - Chunk size / overlap are inconsistent
    - Provider credentials are missing and no fallback is permitted
    """

    error_code = "configuration_error"


class EmbeddingProviderError(DocRAGError):
    """The embedding backend rejected or failed a request."""

    error_code = "embedding_provider_error"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class DeadlineExceededError(EmbeddingProviderError):
    """An outbound provider call did not complete within its timeout."""

    error_code = "deadline_exceeded"


class DimensionMismatchError(DocRAGError):
    """Two vectors of unequal length were compared."""

    error_code = "dimension_mismatch"

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vectors must have the same length: got {left} and {right}")
        self.left = left
        self.right = right


class NotFoundError(DocRAGError):
    """A project, document or chunk does not exist."""

    error_code = "not_found"

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class DocumentParseError(DocRAGError):
    """The document parser could not extract text from a file."""

    error_code = "document_parse_error"


class StorageError(DocRAGError):
    """The relational store rejected a read or write."""

    error_code = "storage_error"
