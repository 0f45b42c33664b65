"""Greedy embedding-similarity clustering of stored call intents."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from callsight.errors import BadRequest, ClusteringTimeout
from callsight.models import TextEmbeddingClient, VectorIndexClient, VectorMatch
from callsight.vectors import placeholder_vector

logger = logging.getLogger(__name__)


class IntentClusteringError(ValueError):
    """Raised when clustering inputs are inconsistent."""


@dataclass(frozen=True, slots=True)
class IntentRecord:
    """One distinct intent with its occurrence count and embedding."""

    intent: str
    count: int
    embedding: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class ClusterMember:
    intent: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"intent": self.intent, "count": self.count}


@dataclass(frozen=True, slots=True)
class IntentCluster:
    """Merged intents; ``primary`` is the most frequent member."""

    primary: str
    members: tuple[ClusterMember, ...]
    total_count: int
    centroid: tuple[float, ...]

    @property
    def variations(self) -> int:
        return len(self.members)

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary,
            "count": self.total_count,
            "members": [member.to_dict() for member in self.members],
            "variations": self.variations,
        }


@dataclass(frozen=True, slots=True)
class ClusteringReport:
    total_intents: int
    total_clusters: int
    avg_intents_per_cluster: float
    threshold: float
    clusters: tuple[IntentCluster, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalIntents": self.total_intents,
            "totalClusters": self.total_clusters,
            "avgIntentsPerCluster": self.avg_intents_per_cluster,
            "threshold": self.threshold,
            "clusters": [cluster.to_dict() for cluster in self.clusters],
        }


@dataclass(slots=True)
class _WorkingCluster:
    members: list[ClusterMember]
    total_count: int
    centroid: np.ndarray
    retired: bool = field(default=False)

    @property
    def primary(self) -> str:
        return self.members[0].intent

    def absorb(self, other: _WorkingCluster) -> None:
        own_weight = self.total_count
        other_weight = other.total_count
        total = own_weight + other_weight
        self.centroid = (self.centroid * own_weight + other.centroid * other_weight) / total
        # sorted() is stable, so earlier members win ties on count.
        self.members = sorted(self.members + other.members, key=lambda member: -member.count)
        self.total_count = total
        other.retired = True

    def freeze(self) -> IntentCluster:
        return IntentCluster(
            primary=self.primary,
            members=tuple(self.members),
            total_count=self.total_count,
            centroid=tuple(float(value) for value in self.centroid),
        )


def validate_clustering_request(threshold: Any, limit: Any) -> tuple[float, int]:
    """Check the similarity threshold and scan limit of a clustering request."""

    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise BadRequest("Threshold must be a number.", details={"field": "threshold"})
    if not math.isfinite(threshold) or not 0.0 < threshold < 1.0:
        raise BadRequest(
            f"Threshold must be strictly between 0 and 1, got {threshold}.",
            details={"field": "threshold"},
        )
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise BadRequest(
            f"Limit must be a positive integer, got {limit}.", details={"field": "limit"}
        )
    return float(threshold), limit


def count_intents(matches: Iterable[VectorMatch]) -> list[tuple[str, int]]:
    """Count intent metadata values, most frequent first, ties in first-seen order."""

    counts: dict[str, int] = {}
    for match in matches:
        intent = match.metadata.get("intent")
        if not isinstance(intent, str) or not intent:
            continue
        counts[intent] = counts.get(intent, 0) + 1
    return sorted(counts.items(), key=lambda item: -item[1])


def merge_intent_clusters(
    intents: Sequence[IntentRecord],
    threshold: float,
    *,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> list[IntentCluster]:
    """Greedily merge intents whose centroids are at least ``threshold`` similar.

    Each scan looks at every pair (i < j) of live clusters in insertion order
    and merges the first qualifying pair, j into i, then scans again. The
    result is deterministic for a given input order and threshold. Clusters
    are returned in insertion order of their surviving cluster.
    """

    if not intents:
        return []
    dimension = len(intents[0].embedding)
    arena: list[_WorkingCluster] = []
    for record in intents:
        if record.count < 1:
            raise IntentClusteringError(
                f"Intent '{record.intent}' has count {record.count}; expected >= 1."
            )
        if len(record.embedding) != dimension:
            raise IntentClusteringError(
                f"Intent '{record.intent}' embedding has {len(record.embedding)} dimensions; "
                f"expected {dimension}."
            )
        arena.append(
            _WorkingCluster(
                members=[ClusterMember(intent=record.intent, count=record.count)],
                total_count=record.count,
                centroid=np.asarray(record.embedding, dtype=float),
            )
        )

    merges = 0
    while True:
        if deadline is not None and clock() > deadline:
            raise ClusteringTimeout(
                "Intent clustering exceeded its timeout.",
                details={"intents": len(intents), "merges": merges},
            )
        live = [position for position, cluster in enumerate(arena) if not cluster.retired]
        if len(live) < 2:
            break
        similarities = cosine_similarity(np.vstack([arena[position].centroid for position in live]))
        # argwhere walks row-major, so the first hit is the first (i, j) pair in scan order.
        candidates = np.argwhere(np.triu(similarities >= threshold, k=1))
        if candidates.size == 0:
            break
        keep, absorbed = candidates[0]
        arena[live[keep]].absorb(arena[live[absorbed]])
        merges += 1

    logger.debug("Merged %d intents into clusters with %d merges.", len(intents), merges)
    return [cluster.freeze() for cluster in arena if not cluster.retired]


def build_clustering_report(
    intent_count: int,
    clusters: Sequence[IntentCluster],
    threshold: float,
) -> ClusteringReport:
    ordered = sorted(clusters, key=lambda cluster: -cluster.total_count)
    average = round(intent_count / len(ordered), 2) if ordered else 0.0
    return ClusteringReport(
        total_intents=intent_count,
        total_clusters=len(ordered),
        avg_intents_per_cluster=average,
        threshold=threshold,
        clusters=tuple(ordered),
    )


def cluster_intents(
    index_client: VectorIndexClient,
    embedding_client: TextEmbeddingClient,
    *,
    index_name: str,
    namespace: str | None = None,
    threshold: float = 0.8,
    limit: int = 1000,
    timeout_seconds: float = 30.0,
    max_intents: int = 5000,
    clock: Callable[[], float] = time.monotonic,
) -> ClusteringReport:
    """Cluster the distinct intents stored in the calls index."""

    threshold, limit = validate_clustering_request(threshold, limit)
    deadline = clock() + timeout_seconds

    dimension = index_client.describe_dimension(index_name)
    matches = index_client.query(
        index_name,
        placeholder_vector(dimension),
        top_k=limit,
        namespace=namespace,
        include_metadata=True,
    )
    counted = count_intents(matches)
    if not counted:
        logger.info("No stored intents found in %s.", index_name)
        return build_clustering_report(0, [], threshold)
    if len(counted) > max_intents:
        raise ClusteringTimeout(
            f"Found {len(counted)} distinct intents; the limit is {max_intents}.",
            details={"intents": len(counted), "maxIntents": max_intents},
        )

    texts = [intent for intent, _ in counted]
    embeddings = embedding_client.embed_texts(texts)
    if len(embeddings) != len(texts):
        raise IntentClusteringError(
            f"Embedding service returned {len(embeddings)} vectors for {len(texts)} intents."
        )
    records = [
        IntentRecord(intent=intent, count=count, embedding=tuple(vector))
        for (intent, count), vector in zip(counted, embeddings, strict=True)
    ]

    clusters = merge_intent_clusters(records, threshold, deadline=deadline, clock=clock)
    report = build_clustering_report(len(records), clusters, threshold)
    logger.info(
        "Clustered %d intents from %d calls into %d clusters (threshold %.2f).",
        report.total_intents,
        len(matches),
        report.total_clusters,
        threshold,
    )
    return report
