"""Text embedding clients (OpenAI and Jina)."""

from __future__ import annotations

from typing import Protocol

import httpx
from openai import APIError, APITimeoutError, BadRequestError, OpenAI, RateLimitError

from callsight.models.retry import build_retryer


class EmbeddingResponseError(ValueError):
    """Raised when an embeddings response is missing or malformed."""


class TextEmbeddingClient(Protocol):
    """Protocol for text embedding clients."""

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Return one embedding vector per input text."""


def embed_one(client: TextEmbeddingClient, text: str) -> list[float]:
    """Embed a single text through a batch client."""

    vectors = client.embed_texts([text])
    if len(vectors) != 1:
        raise EmbeddingResponseError(f"Expected one embedding, got {len(vectors)}.")
    return vectors[0]


def _vectors_by_index(data: object, expected: int) -> list[list[float]]:
    """Order ``[{index, embedding}, ...]`` items by index and check the count."""

    if not isinstance(data, list):
        raise EmbeddingResponseError("Embeddings response missing list field 'data'.")

    embeddings_by_index: dict[int, list[float]] = {}
    for item in data:
        if not isinstance(item, dict):
            raise EmbeddingResponseError("Embeddings response 'data' contains non-object entries.")
        index = item.get("index")
        embedding = item.get("embedding")
        if not isinstance(index, int):
            raise EmbeddingResponseError("Embedding item missing integer 'index'.")
        if not isinstance(embedding, list):
            raise EmbeddingResponseError("Embedding item missing list 'embedding'.")
        embeddings_by_index[index] = [float(value) for value in embedding]

    if len(embeddings_by_index) != expected:
        raise EmbeddingResponseError(
            "Embeddings response count does not match input count: "
            f"{len(embeddings_by_index)} != {expected}."
        )
    return [embeddings_by_index[idx] for idx in range(expected)]


class OpenAIEmbeddingClient:
    """Batch embeddings through the OpenAI embeddings endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_retries: int = 4,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._client = OpenAI(api_key=api_key, base_url=base_url or None)
        self._model = model
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds

    def close(self) -> None:
        """Close the underlying OpenAI client."""

        self._client.close()

    def _is_retryable_openai_error(self, exc: BaseException) -> bool:
        if isinstance(exc, (RateLimitError, APITimeoutError)):
            return True
        if isinstance(exc, BadRequestError):
            return False
        return isinstance(exc, APIError) and getattr(exc, "status_code", 500) >= 500

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts using OpenAI."""

        if not texts:
            return []

        response = None
        retryer = build_retryer(
            self._is_retryable_openai_error,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
        )
        for attempt in retryer:
            with attempt:
                response = self._client.embeddings.create(model=self._model, input=texts)

        if response is None:
            raise EmbeddingResponseError("OpenAI embeddings response missing after retries.")

        data = [{"index": item.index, "embedding": list(item.embedding)} for item in response.data]
        return _vectors_by_index(data, len(texts))


class JinaEmbeddingClient:
    """Thin client around Jina's embeddings endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.jina.ai/v1/embeddings",
        timeout_seconds: float = 60.0,
        max_retries: int = 4,
        backoff_seconds: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._model = model
        self._base_url = base_url
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._http = httpx.Client(
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""

        self._http.close()

    def _is_retryable_jina_error(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code == 429 or exc.response.status_code >= 500
        return isinstance(exc, (httpx.TimeoutException, httpx.RequestError))

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts using Jina."""

        if not texts:
            return []

        response: httpx.Response | None = None
        retryer = build_retryer(
            self._is_retryable_jina_error,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
        )
        for attempt in retryer:
            with attempt:
                response = self._http.post(
                    self._base_url,
                    json={"model": self._model, "input": texts},
                )
                response.raise_for_status()

        if response is None:
            raise EmbeddingResponseError("Jina embeddings response missing after retries.")

        payload = response.json()
        if not isinstance(payload, dict):
            raise EmbeddingResponseError(
                f"Unexpected embeddings response type: {type(payload).__name__}"
            )
        return _vectors_by_index(payload.get("data"), len(texts))
