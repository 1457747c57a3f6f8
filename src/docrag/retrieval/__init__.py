"""
Document retrieval components for the RAG pipeline.

Components:
    - chunker: Split extracted text into overlapping, page-attributed windows
    - parser: Extract text from stored files
    - ingestion: Parse, chunk and persist a project's documents
    - embeddings: Embedding providers, service and vector primitives
    - store: Chunk embedding persistence and progress tracking
    - batch: Incremental embedding runs
    - retriever: Similarity search, context formatting and citations
"""

from docrag.retrieval.chunker import TextChunk, chunk_text, extract_page_from_chunk
from docrag.retrieval.embeddings import (
    DeterministicEmbeddingProvider,
    EmbeddingService,
    OpenAIEmbeddingProvider,
)
from docrag.retrieval.retriever import Citation, RetrievalResult, Retriever
from docrag.retrieval.store import EmbeddingStore

__all__ = [
    "Citation",
    "DeterministicEmbeddingProvider",
    "EmbeddingService",
    "EmbeddingStore",
    "OpenAIEmbeddingProvider",
    "RetrievalResult",
    "Retriever",
    "TextChunk",
    "chunk_text",
    "extract_page_from_chunk",
]
