"""Build configured service clients and the analyzer from Settings."""

from __future__ import annotations

import logging

from callsight.config import ModelRegistry, ModelSpec, Settings
from callsight.errors import ConfigurationError
from callsight.models import (
    JinaEmbeddingClient,
    LLMJsonClient,
    OpenAIEmbeddingClient,
    OpenAIJsonClient,
    PineconeIndexClient,
    TextEmbeddingClient,
)
from callsight.pipeline.analysis import CallAnalyzer, LLMClientFactory
from callsight.pipeline.retrieval import RelatedDocumentSearch
from callsight.pipeline.storage import StorageWriter

logger = logging.getLogger(__name__)

SUPPORTED_EMBEDDING_PROVIDERS = {"openai", "jina"}


def build_llm_client_factory(settings: Settings) -> LLMClientFactory:
    """Return a factory creating one generation client per model, on demand."""

    def _factory(model: ModelSpec) -> LLMJsonClient:
        api_key = settings.resolved_api_key(model.provider)
        if not api_key:
            raise ConfigurationError(
                f"No API key configured for provider '{model.provider}'. "
                "Set OPENAI_API_KEY or provider_api_keys."
            )
        return OpenAIJsonClient(
            api_key=api_key,
            model=model.model_id,
            base_url=settings.resolved_base_url(model.provider) or None,
            temperature=settings.openai_temperature,
            max_retries=settings.client_max_retries,
            backoff_seconds=settings.client_backoff_seconds,
        )

    return _factory


def build_embedding_client(settings: Settings) -> TextEmbeddingClient:
    provider = settings.embedding_provider.strip().lower()
    if provider not in SUPPORTED_EMBEDDING_PROVIDERS:
        allowed = ", ".join(sorted(SUPPORTED_EMBEDDING_PROVIDERS))
        raise ConfigurationError(
            f"Unsupported embedding_provider '{settings.embedding_provider}'. "
            f"Expected one of: {allowed}."
        )
    if provider == "jina":
        if not settings.jina_api_key.strip():
            raise ConfigurationError("JINA_API_KEY is required for jina embeddings.")
        return JinaEmbeddingClient(
            api_key=settings.jina_api_key,
            model=settings.embedding_model,
            max_retries=settings.client_max_retries,
            backoff_seconds=settings.client_backoff_seconds,
        )
    api_key = settings.resolved_api_key("openai")
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY is required for openai embeddings.")
    return OpenAIEmbeddingClient(
        api_key=api_key,
        model=settings.embedding_model,
        base_url=settings.resolved_base_url("openai") or None,
        max_retries=settings.client_max_retries,
        backoff_seconds=settings.client_backoff_seconds,
    )


def build_vector_index_client(settings: Settings) -> PineconeIndexClient:
    if not settings.vector_index_api_key.strip():
        raise ConfigurationError("VECTOR_INDEX_API_KEY is required for the vector index.")
    return PineconeIndexClient(
        api_key=settings.vector_index_api_key,
        control_url=settings.vector_index_control_url,
        max_retries=settings.client_max_retries,
        backoff_seconds=settings.client_backoff_seconds,
    )


def build_analyzer(
    settings: Settings,
    *,
    with_storage: bool = True,
    with_related_search: bool = True,
) -> CallAnalyzer:
    """Wire an analyzer with the registry, storage and related search from settings."""

    registry = ModelRegistry.from_settings(settings)
    storage_writer = None
    related_search = None
    owned_clients: tuple = ()
    use_related = with_related_search and bool(settings.products_index_name.strip())
    if with_storage or use_related:
        index_client = build_vector_index_client(settings)
        embedding_client = build_embedding_client(settings)
        owned_clients = (index_client, embedding_client)
        if with_storage:
            storage_writer = StorageWriter(
                index_client,
                embedding_client,
                index_name=settings.calls_index_name,
                namespace=settings.namespace_or_none(settings.calls_namespace),
            )
        if use_related:
            related_search = RelatedDocumentSearch(
                index_client,
                embedding_client,
                index_name=settings.products_index_name,
                namespace=settings.namespace_or_none(settings.products_namespace),
                top_k=settings.related_top_k,
            )
    logger.debug(
        "Built analyzer: %d models, storage=%s, related_search=%s.",
        len(registry.models),
        storage_writer is not None,
        related_search is not None,
    )
    return CallAnalyzer(
        registry=registry,
        client_factory=build_llm_client_factory(settings),
        storage_writer=storage_writer,
        related_search=related_search,
        max_concurrency=settings.analysis_max_concurrency,
        owned_clients=owned_clients,
    )
