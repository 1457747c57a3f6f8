"""
docrag: document retrieval for report generation

Users upload documents into a project; docrag chunks their text, embeds the
chunks and retrieves the passages most relevant to a query, with citations,
so a downstream generator can ground its output.

Key Components:
    - retrieval: Chunking, embeddings, embedding store, batch runs and retriever
    - db: SQLAlchemy models and session management
    - api: FastAPI REST endpoints
    - cli: Typer command-line interface

Example:
    >>> from docrag.retrieval.resources import get_embedding_service, get_session_factory
    >>> from docrag.retrieval import EmbeddingStore, Retriever
    >>> retriever = Retriever(get_embedding_service(), EmbeddingStore(get_session_factory()))
    >>> results = retriever.retrieve_relevant_chunks(project_id, "target architecture")
"""

__version__ = "0.1.0"

from docrag.config import settings

__all__ = [
    "__version__",
    "settings",
]
