"""
Unit tests for resource construction and caching in retrieval.resources.

Tests:
    - build_embedding_service() provider selection and fallback
    - build_file_mirror()
    - get_embedding_service() / get_session_factory() caching
    - initialize_resources() / clear_resource_cache()
"""

from unittest.mock import patch

import pytest

from docrag.config import Settings
from docrag.exceptions import ConfigurationError
from docrag.retrieval.embeddings import DeterministicEmbeddingProvider, OpenAIEmbeddingProvider
from docrag.retrieval.mirror import EmbeddingFileMirror
from docrag.retrieval.resources import (
    build_embedding_service,
    build_file_mirror,
    clear_resource_cache,
    get_embedding_service,
    get_session_factory,
    initialize_resources,
)


def _settings(**overrides) -> Settings:
    values = {"database_url": "sqlite://", "embedding_dimension": 16}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def reset_cache():
    clear_resource_cache()
    yield
    clear_resource_cache()


@pytest.mark.unit
class TestBuildEmbeddingService:
    """Provider strategy selection."""

    def test_deterministic(self):
        service = build_embedding_service(_settings(embedding_provider="deterministic"))

        assert isinstance(service.provider, DeterministicEmbeddingProvider)
        assert service.dimension == 16

    def test_remote_with_key(self):
        service = build_embedding_service(
            _settings(embedding_provider="remote", openai_api_key="sk-test", embedding_model="m-1")
        )
        service.initialize()

        assert isinstance(service.provider, OpenAIEmbeddingProvider)
        assert service.provider.model == "m-1"
        assert service.provider.api_key == "sk-test"

    def test_remote_without_key_falls_back(self):
        service = build_embedding_service(_settings(embedding_provider="remote", openai_api_key=None))
        service.initialize()

        assert isinstance(service.provider, DeterministicEmbeddingProvider)

    def test_remote_without_key_and_no_fallback(self):
        service = build_embedding_service(
            _settings(embedding_provider="remote", openai_api_key=None, allow_fallback_embeddings=False)
        )

        with pytest.raises(ConfigurationError):
            service.initialize()


@pytest.mark.unit
class TestBuildFileMirror:
    def test_disabled_by_default(self):
        assert build_file_mirror(_settings()) is None

    def test_enabled(self, tmp_path):
        mirror = build_file_mirror(_settings(enable_file_mirror=True, projects_dir=tmp_path))

        assert isinstance(mirror, EmbeddingFileMirror)
        assert mirror.path_for("p1") == tmp_path.resolve() / "p1" / "embeddings.json"


@pytest.mark.unit
class TestResourceCaching:
    """Test that resource getters implement proper caching."""

    def test_get_embedding_service_caches_result(self):
        with patch("docrag.retrieval.resources.get_settings", return_value=_settings()):
            service1 = get_embedding_service()
            service2 = get_embedding_service()

        assert service1 is service2

    def test_get_session_factory_caches_result(self):
        with patch("docrag.retrieval.resources.get_settings", return_value=_settings()):
            factory1 = get_session_factory()
            factory2 = get_session_factory()

        assert factory1 is factory2

    def test_clear_resource_cache(self):
        with patch("docrag.retrieval.resources.get_settings", return_value=_settings()):
            service1 = get_embedding_service()
            clear_resource_cache()
            service2 = get_embedding_service()

        assert service1 is not service2

    def test_initialize_resources(self):
        with patch("docrag.retrieval.resources.get_settings", return_value=_settings()):
            status = initialize_resources()

            assert status == {"database": True, "embedding_service": True}
            assert get_embedding_service().is_initialized

    def test_initialize_resources_failure(self):
        broken = _settings(embedding_provider="remote", openai_api_key=None, allow_fallback_embeddings=False)
        with patch("docrag.retrieval.resources.get_settings", return_value=broken):
            with pytest.raises(RuntimeError, match="embedding service"):
                initialize_resources()
