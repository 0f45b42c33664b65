"""Vector index client: protocol plus a Pinecone REST implementation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from callsight.models.retry import build_retryer

logger = logging.getLogger(__name__)


class VectorIndexError(RuntimeError):
    """Raised when the vector index returns an unusable response."""


@dataclass(frozen=True, slots=True)
class VectorRecord:
    """One vector with metadata to upsert."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VectorMatch:
    """One query match."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorIndexClient(Protocol):
    """Protocol for namespaced vector index services."""

    def describe_dimension(self, index_name: str) -> int:
        """Return the fixed dimensionality of ``index_name``."""

    def upsert(
        self,
        index_name: str,
        records: Sequence[VectorRecord],
        *,
        namespace: str | None = None,
    ) -> int:
        """Insert or replace records; return the upserted count."""

    def query(
        self,
        index_name: str,
        vector: Sequence[float],
        *,
        top_k: int,
        namespace: str | None = None,
        filter: dict[str, Any] | None = None,
        include_metadata: bool = True,
    ) -> list[VectorMatch]:
        """Return up to ``top_k`` nearest matches."""


class PineconeIndexClient:
    """Pinecone data-plane client over plain HTTP.

    Index hosts and dimensions are looked up once per index through the
    control plane and reused for the lifetime of the client.
    """

    def __init__(
        self,
        *,
        api_key: str,
        control_url: str = "https://api.pinecone.io",
        api_version: str = "2024-07",
        timeout_seconds: float = 30.0,
        max_retries: int = 4,
        backoff_seconds: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._control_url = control_url.rstrip("/")
        self._max_retries = max_retries
        self._backoff_seconds = backoff_seconds
        self._descriptions: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._http = httpx.Client(
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Api-Key": api_key,
                "Content-Type": "application/json",
                "X-Pinecone-API-Version": api_version,
            },
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""

        self._http.close()

    def _is_retryable_pinecone_error(self, exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code == 429 or exc.response.status_code >= 500
        return isinstance(exc, (httpx.TimeoutException, httpx.RequestError))

    def _request(self, method: str, url: str, *, json: dict | None = None) -> dict[str, Any]:
        response: httpx.Response | None = None
        retryer = build_retryer(
            self._is_retryable_pinecone_error,
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
        )
        for attempt in retryer:
            with attempt:
                response = self._http.request(method, url, json=json)
                response.raise_for_status()

        if response is None:
            raise VectorIndexError(f"No response from vector index for {method} {url}.")
        if not response.content:
            return {}
        payload = response.json()
        if not isinstance(payload, dict):
            raise VectorIndexError(
                f"Unexpected vector index response type: {type(payload).__name__}"
            )
        return payload

    def _describe(self, index_name: str) -> dict[str, Any]:
        with self._lock:
            cached = self._descriptions.get(index_name)
        if cached is not None:
            return cached

        description = self._request("GET", f"{self._control_url}/indexes/{index_name}")
        if not isinstance(description.get("host"), str) or not description["host"]:
            raise VectorIndexError(f"Index '{index_name}' description is missing 'host'.")
        with self._lock:
            self._descriptions[index_name] = description
        return description

    def _host_url(self, index_name: str) -> str:
        host = str(self._describe(index_name)["host"]).rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        return host

    def describe_dimension(self, index_name: str) -> int:
        dimension = self._describe(index_name).get("dimension")
        if not isinstance(dimension, int):
            raise VectorIndexError(f"Index '{index_name}' description is missing 'dimension'.")
        return dimension

    def upsert(
        self,
        index_name: str,
        records: Sequence[VectorRecord],
        *,
        namespace: str | None = None,
    ) -> int:
        body: dict[str, Any] = {
            "vectors": [
                {"id": record.id, "values": list(record.values), "metadata": record.metadata}
                for record in records
            ]
        }
        if namespace:
            body["namespace"] = namespace
        payload = self._request("POST", f"{self._host_url(index_name)}/vectors/upsert", json=body)
        upserted = int(payload.get("upsertedCount", len(records)) or 0)
        logger.debug("Upserted %d vectors into %s.", upserted, index_name)
        return upserted

    def query(
        self,
        index_name: str,
        vector: Sequence[float],
        *,
        top_k: int,
        namespace: str | None = None,
        filter: dict[str, Any] | None = None,
        include_metadata: bool = True,
    ) -> list[VectorMatch]:
        body: dict[str, Any] = {
            "vector": [float(value) for value in vector],
            "topK": int(top_k),
            "includeMetadata": include_metadata,
            "includeValues": False,
        }
        if namespace:
            body["namespace"] = namespace
        if filter:
            body["filter"] = filter
        payload = self._request("POST", f"{self._host_url(index_name)}/query", json=body)

        matches: list[VectorMatch] = []
        for item in payload.get("matches") or []:
            if not isinstance(item, dict) or "id" not in item:
                continue
            metadata = item.get("metadata")
            matches.append(
                VectorMatch(
                    id=str(item["id"]),
                    score=float(item.get("score") or 0.0),
                    metadata=dict(metadata) if isinstance(metadata, dict) else {},
                )
            )
        return matches
