"""
Similarity retrieval over a project's embedded chunks.

The query is embedded, compared against every embedded chunk of the project
(linear scan), filtered by a similarity threshold and ranked. Results can be
rendered as a context block for a generator and reduced to citations.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from docrag.exceptions import ConfigurationError
from docrag.retrieval.embeddings import EmbeddingService
from docrag.retrieval.store import EmbeddingStore

logger = logging.getLogger(__name__)

MIN_TOP_K = 1
MAX_TOP_K = 20
NO_CONTEXT_MESSAGE = "No relevant context found in the project documents."


@dataclass
class RetrievalResult:
    """A chunk ranked against a query."""

    chunk_id: str
    text: str
    similarity: float
    """Cosine similarity to the query (-1.0 to 1.0)."""

    document_id: str
    document_name: str
    page: int
    sequence: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Citation:
    """A source reference derived from a retrieval result."""

    document_id: str
    document_name: str
    page: int
    snippet: str
    section: str = ""


class Retriever:
    """
    Rank a project's chunks against natural-language queries.

    Example:
        >>> retriever = Retriever(service, store)
        >>> results = retriever.retrieve_relevant_chunks(project_id, "data governance", top_k=5)
        >>> context = retriever.format_retrieval_context(results)
        >>> citations = retriever.extract_citations(results)
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: EmbeddingStore,
        snippet_length: int = 200,
    ) -> None:
        self.embedding_service = embedding_service
        self.store = store
        self.snippet_length = snippet_length

    def retrieve_relevant_chunks(
        self,
        project_id: str,
        query: str,
        top_k: int = 8,
        min_similarity: float = 0.3,
    ) -> list[RetrievalResult]:
        """
        Return the chunks most similar to the query.

        Args:
            project_id: Project whose chunks are searched
            query: Natural-language query
            top_k: Maximum number of results (1..20)
            min_similarity: Inclusion threshold (0..1); lower scores are dropped

        Returns:
            Results sorted by similarity descending; equal scores keep document order

        Raises:
            ConfigurationError: If top_k or min_similarity is out of range
            EmbeddingProviderError: If the query cannot be embedded
        """
        if not MIN_TOP_K <= top_k <= MAX_TOP_K:
            raise ConfigurationError(f"top_k must be between {MIN_TOP_K} and {MAX_TOP_K}, got {top_k}")
        if not 0.0 <= min_similarity <= 1.0:
            raise ConfigurationError(f"min_similarity must be between 0 and 1, got {min_similarity}")

        query_embedding = self.embedding_service.generate_embedding(query)

        chunks = self.store.load_embedded_chunks(project_id)
        if not chunks:
            logger.info(f"Project {project_id} has no embedded chunks")
            return []

        results: list[RetrievalResult] = []
        for chunk in chunks:
            chunk_embedding = EmbeddingService.deserialize_embedding(chunk.embedding)
            similarity = EmbeddingService.cosine_similarity(query_embedding, chunk_embedding)

            if similarity < min_similarity:
                continue

            results.append(
                RetrievalResult(
                    chunk_id=chunk.id,
                    text=chunk.text,
                    similarity=similarity,
                    document_id=chunk.document_id,
                    document_name=chunk.document_name,
                    page=chunk.page,
                    sequence=chunk.sequence,
                    metadata=chunk.metadata,
                )
            )

        # sorted() is stable: ties keep document order
        ranked = sorted(results, key=lambda r: r.similarity, reverse=True)[:top_k]

        logger.debug(
            f"Project {project_id}: {len(chunks)} chunks scanned, "
            f"{len(results)} above {min_similarity}, returning {len(ranked)}"
        )
        return ranked

    def retrieve_by_section(
        self,
        project_id: str,
        section_keywords: list[str],
        top_k: int = 5,
        min_similarity: float = 0.3,
    ) -> list[RetrievalResult]:
        """
        Retrieve for several keywords and merge the results.

        Each keyword contributes up to ``ceil(top_k / len(keywords))`` results.
        Duplicate chunks keep their best score.
        """
        if not section_keywords:
            return []

        per_keyword = max(MIN_TOP_K, min(MAX_TOP_K, math.ceil(top_k / len(section_keywords))))

        best: dict[str, RetrievalResult] = {}
        for keyword in section_keywords:
            for result in self.retrieve_relevant_chunks(project_id, keyword, per_keyword, min_similarity):
                current = best.get(result.chunk_id)
                if current is None or result.similarity > current.similarity:
                    best[result.chunk_id] = result

        return sorted(best.values(), key=lambda r: r.similarity, reverse=True)[:top_k]

    def format_retrieval_context(self, results: list[RetrievalResult]) -> str:
        """
        Render results as numbered passages tagged with their source.

        Each passage reads ``[n] <text> [[<document>:<page>]]``.
        """
        if not results:
            return NO_CONTEXT_MESSAGE

        passages = []
        for index, result in enumerate(results, 1):
            citation = f"[[{result.document_name}:{result.page}]]"
            passages.append(f"[{index}] {result.text.strip()} {citation}")
        return "\n\n".join(passages)

    def extract_citations(self, results: list[RetrievalResult]) -> list[Citation]:
        """
        Build one citation per (document, page).

        When several results hit the same page, the highest-similarity one is
        kept; the rank order of the kept results is preserved.
        """
        best: dict[tuple[str, int], RetrievalResult] = {}
        for result in results:
            key = (result.document_id, result.page)
            if key not in best or result.similarity > best[key].similarity:
                best[key] = result

        citations = []
        for result in results:
            if best[(result.document_id, result.page)] is not result:
                continue
            citations.append(
                Citation(
                    document_id=result.document_id,
                    document_name=result.document_name,
                    page=result.page,
                    snippet=self.snippet(result.text),
                    section=str((result.metadata.get("extra") or {}).get("section", "")),
                )
            )
        return citations

    def snippet(self, text: str) -> str:
        if len(text) <= self.snippet_length:
            return text
        return text[: self.snippet_length] + "..."
