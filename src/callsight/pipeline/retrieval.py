"""Related-document search used to enrich an analysis with products and keywords."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from callsight.models import TextEmbeddingClient, VectorIndexClient, VectorMatch, embed_one
from callsight.normalization import clamp01
from callsight.vectors import fit_vector_dimension

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RelatedSearchResult:
    """Related documents plus the products and keywords derived from them."""

    related_docs: tuple[dict[str, Any], ...] = ()
    products: tuple[dict[str, Any], ...] = ()
    keywords: tuple[dict[str, Any], ...] = ()


EMPTY_RELATED_RESULT = RelatedSearchResult()


def _metadata_terms(value: Any) -> list[str]:
    """Read a keyword list stored either as a list or as a JSON-encoded list."""

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item).strip()]


def build_related_result(
    matches: Sequence[VectorMatch],
    *,
    max_products: int = 5,
    max_keywords: int = 10,
) -> RelatedSearchResult:
    """Derive products and keywords from retrieved document metadata."""

    related_docs = tuple(
        {"id": match.id, "score": match.score, "metadata": dict(match.metadata)}
        for match in matches
    )
    products = tuple(
        {
            "id": match.id,
            "name": str(match.metadata.get("name") or match.id),
            "score": clamp01(match.score),
        }
        for match in matches[:max_products]
    )

    term_scores: dict[str, float] = {}
    for match in matches:
        for term in _metadata_terms(match.metadata.get("keywords")):
            term_scores[term] = max(term_scores.get(term, 0.0), match.score)
    keywords = tuple(
        {"term": term, "score": clamp01(score)}
        for term, score in list(term_scores.items())[:max_keywords]
    )
    return RelatedSearchResult(related_docs=related_docs, products=products, keywords=keywords)


class RelatedDocumentSearch:
    """Nearest-neighbor lookup of a transcript against a product/document index."""

    def __init__(
        self,
        index_client: VectorIndexClient,
        embedding_client: TextEmbeddingClient,
        *,
        index_name: str,
        namespace: str | None = None,
        top_k: int = 8,
    ) -> None:
        self._index_client = index_client
        self._embedding_client = embedding_client
        self._index_name = index_name
        self._namespace = namespace
        self._top_k = top_k

    def search(self, transcript: str) -> RelatedSearchResult:
        vector = embed_one(self._embedding_client, transcript)
        dimension = self._index_client.describe_dimension(self._index_name)
        matches = self._index_client.query(
            self._index_name,
            fit_vector_dimension(vector, dimension),
            top_k=self._top_k,
            namespace=self._namespace,
            include_metadata=True,
        )
        logger.debug("Related search returned %d matches from %s.", len(matches), self._index_name)
        return build_related_result(matches)
