"""External service client abstractions."""

from callsight.models.embedding_clients import (
    EmbeddingResponseError,
    JinaEmbeddingClient,
    OpenAIEmbeddingClient,
    TextEmbeddingClient,
    embed_one,
)
from callsight.models.openai_client import LLMJsonClient, OpenAIJsonClient, StructuredOutputError
from callsight.models.vector_index import (
    PineconeIndexClient,
    VectorIndexClient,
    VectorIndexError,
    VectorMatch,
    VectorRecord,
)

__all__ = [
    "EmbeddingResponseError",
    "JinaEmbeddingClient",
    "LLMJsonClient",
    "OpenAIEmbeddingClient",
    "OpenAIJsonClient",
    "PineconeIndexClient",
    "StructuredOutputError",
    "TextEmbeddingClient",
    "VectorIndexClient",
    "VectorIndexError",
    "VectorMatch",
    "VectorRecord",
    "embed_one",
]
