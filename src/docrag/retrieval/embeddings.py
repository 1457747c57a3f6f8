"""
Embedding generation and vector primitives.

Two interchangeable providers produce raw vectors:
    - OpenAIEmbeddingProvider: remote OpenAI-compatible embeddings API
    - DeterministicEmbeddingProvider: offline generator seeded from the text

EmbeddingService wraps one provider, normalizes its output to unit length and
offers the binary (de)serialization and cosine similarity used by the store
and the retriever.
"""

import logging
import threading
import time
from typing import Optional, Protocol, runtime_checkable

import httpx
import numpy as np
from numpy.typing import NDArray

from docrag.exceptions import (
    ConfigurationError,
    DeadlineExceededError,
    DimensionMismatchError,
    EmbeddingProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 1536

# Little-endian IEEE-754 float32, 4 bytes per component
VECTOR_DTYPE = np.dtype("<f4")


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Contract for raw embedding generation."""

    name: str
    dimension: int

    def check_configuration(self) -> None:
        """Raise ConfigurationError if the provider cannot be used."""
        ...

    def embed(self, text: str) -> NDArray[np.float32]:
        """Return an (unnormalized) vector of length ``dimension``."""
        ...


class DeterministicEmbeddingProvider:
    """
    Offline embedding generator for tests and local runs.

    The seed is the sum of the text's character codes; component ``i`` is
    derived from ``sin(seed + i)``. Identical text always yields the identical
    vector. The vectors carry no semantic meaning.

    Example:
        >>> provider = DeterministicEmbeddingProvider()
        >>> provider.embed("hello").shape
        (1536,)
    """

    name = "deterministic"

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        self.dimension = dimension

    def check_configuration(self) -> None:
        return None

    def embed(self, text: str) -> NDArray[np.float32]:
        seed = sum(ord(char) for char in text)
        x = np.sin(seed + np.arange(self.dimension, dtype=np.float64)) * 10000.0
        values = (x - np.floor(x)) * 2.0 - 1.0
        return values.astype(np.float32)


class OpenAIEmbeddingProvider:
    """
    Generate embeddings with an OpenAI-compatible embeddings endpoint.

    Rate-limited requests (HTTP 429) are retried with exponential backoff.
    Timeouts raise DeadlineExceededError; any other failure raises
    EmbeddingProviderError.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1/embeddings",
        dimension: int = DEFAULT_DIMENSION,
        timeout: float = 12.0,
        max_chars: int = 8000,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            api_key: Bearer token for the endpoint
            model: Embedding model name
            base_url: Full URL of the embeddings endpoint
            dimension: Expected vector length
            timeout: Per-request timeout in seconds
            max_chars: Input is truncated to this many characters
            max_retries: Attempts for rate-limited requests
            initial_retry_delay: First backoff delay in seconds
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.dimension = dimension
        self.timeout = timeout
        self.max_chars = max_chars
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay

    def check_configuration(self) -> None:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for the remote embedding provider")

    def prepare_text(self, text: str) -> str:
        """Collapse whitespace and truncate to ``max_chars``."""
        clean = " ".join(text.split())
        return clean[: self.max_chars]

    def embed(self, text: str) -> NDArray[np.float32]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"input": self.prepare_text(text), "model": self.model}

        retry_delay = self.initial_retry_delay

        with httpx.Client(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = client.post(self.base_url, json=payload, headers=headers)
                except httpx.TimeoutException as e:
                    raise DeadlineExceededError(
                        f"Embedding request timed out after {self.timeout}s",
                        provider=self.name,
                    ) from e
                except httpx.HTTPError as e:
                    raise EmbeddingProviderError(
                        f"Embedding request failed: {e}", provider=self.name
                    ) from e

                if response.status_code == 429 and attempt < self.max_retries - 1:
                    logger.warning(
                        f"Embedding provider rate limited, retrying in {retry_delay:.1f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(retry_delay)
                    retry_delay *= 2
                    continue

                if response.is_error:
                    raise EmbeddingProviderError(
                        f"Embedding provider returned HTTP {response.status_code}",
                        provider=self.name,
                        status_code=response.status_code,
                    )

                return self._parse_response(response)

        # max_retries < 1
        raise EmbeddingProviderError("No embedding request was attempted", provider=self.name)

    def _parse_response(self, response: httpx.Response) -> NDArray[np.float32]:
        try:
            data = response.json()
            vector = np.asarray(data["data"][0]["embedding"], dtype=np.float32)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingProviderError(
                f"Malformed embedding response: {e}", provider=self.name
            ) from e
        return vector


def normalize_embedding(vector: NDArray[np.float32]) -> NDArray[np.float32]:
    """
    Scale a vector to unit length.

    Zero vectors are returned unchanged.
    """
    values = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(values)
    if norm == 0:
        return values.astype(np.float32)
    return (values / norm).astype(np.float32)


class EmbeddingService:
    """
    Process-wide embedding service.

    Construct one per application (see ``docrag.retrieval.resources``) and
    share it. ``initialize()`` runs once; when the primary provider is not
    configured and a fallback provider was supplied, the fallback is used.

    Example:
        >>> service = EmbeddingService(DeterministicEmbeddingProvider())
        >>> vector = service.generate_embedding("hello")
        >>> round(float(np.linalg.norm(vector)), 6)
        1.0
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        fallback: Optional[EmbeddingProvider] = None,
    ) -> None:
        self._provider = provider
        self._fallback = fallback
        self._initialized = False
        self._lock = threading.Lock()

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Validate provider configuration once.

        Raises:
            ConfigurationError: If the provider is unusable and no fallback exists
        """
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            try:
                self._provider.check_configuration()
            except ConfigurationError:
                if self._fallback is None:
                    raise
                logger.warning(
                    f"Embedding provider '{self._provider.name}' is not configured; "
                    f"using '{self._fallback.name}' embeddings instead"
                )
                self._fallback.check_configuration()
                self._provider = self._fallback
            self._initialized = True
            logger.info(
                f"Embedding service ready (provider={self._provider.name}, "
                f"dimension={self._provider.dimension})"
            )

    def generate_embedding(self, text: str) -> NDArray[np.float32]:
        """
        Embed a single text.

        Returns:
            Unit-length float32 vector of length ``dimension``

        Raises:
            ConfigurationError: If initialization fails
            EmbeddingProviderError: If the provider fails or returns a wrong-sized vector
        """
        self.initialize()
        vector = self._provider.embed(text)
        if vector.shape != (self.dimension,):
            raise EmbeddingProviderError(
                f"Provider returned vector of shape {vector.shape}, expected ({self.dimension},)",
                provider=self._provider.name,
            )
        return normalize_embedding(vector)

    @staticmethod
    def serialize_embedding(vector: NDArray[np.float32]) -> bytes:
        """Pack a vector as little-endian float32 bytes (4 bytes per component)."""
        return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()

    @staticmethod
    def deserialize_embedding(buffer: bytes) -> NDArray[np.float32]:
        """
        Unpack bytes produced by ``serialize_embedding``.

        Raises:
            ValueError: If the buffer length is not a multiple of 4
        """
        if len(buffer) % VECTOR_DTYPE.itemsize != 0:
            raise ValueError(
                f"Embedding buffer length {len(buffer)} is not a multiple of {VECTOR_DTYPE.itemsize}"
            )
        return np.frombuffer(buffer, dtype=VECTOR_DTYPE).astype(np.float32)

    @staticmethod
    def cosine_similarity(a: NDArray[np.float32], b: NDArray[np.float32]) -> float:
        """
        Cosine similarity in [-1, 1].

        Returns 0.0 when either vector has zero magnitude.

        Raises:
            DimensionMismatchError: If the vectors differ in length
        """
        a64 = np.asarray(a, dtype=np.float64).ravel()
        b64 = np.asarray(b, dtype=np.float64).ravel()
        if a64.shape[0] != b64.shape[0]:
            raise DimensionMismatchError(a64.shape[0], b64.shape[0])

        norm_a = np.linalg.norm(a64)
        norm_b = np.linalg.norm(b64)
        if norm_a == 0 or norm_b == 0:
            return 0.0

        similarity = float(np.dot(a64, b64) / (norm_a * norm_b))
        return max(-1.0, min(1.0, similarity))
