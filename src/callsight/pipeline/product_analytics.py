"""Per-product aggregation over stored call metadata."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from callsight.errors import BadRequest
from callsight.models import VectorIndexClient, VectorMatch
from callsight.schemas import SuccessCategory
from callsight.vectors import placeholder_vector

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
SNIPPET_LENGTH = 200
TOP_INTENTS = 5


def normalize_intent_label(value: Any) -> str:
    """Trim and collapse whitespace; empty or missing intents become ``Unknown``."""

    if not isinstance(value, str):
        return UNKNOWN
    collapsed = re.sub(r"\s+", " ", value).strip()
    return collapsed or UNKNOWN


def parse_json_list(value: Any) -> list[str]:
    """Decode a JSON-encoded string list; malformed input yields an empty list."""

    if isinstance(value, list):
        decoded: Any = value
    elif isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return []
    else:
        return []
    if not isinstance(decoded, list):
        return []
    return [str(item) for item in decoded if isinstance(item, str) and item]


def _snippet(text: str) -> str:
    if len(text) <= SNIPPET_LENGTH:
        return text
    return f"{text[:SNIPPET_LENGTH]}..."


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


@dataclass(frozen=True, slots=True)
class IntentCount:
    intent: str
    category: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"intent": self.intent, "category": self.category, "count": self.count}


@dataclass(frozen=True, slots=True)
class RecordLink:
    """Pointer back to one stored call."""

    id: str
    intent: str
    outcome: str
    call_type: str
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "intent": self.intent,
            "outcome": self.outcome,
            "callType": self.call_type,
            "snippet": self.snippet,
        }


@dataclass(frozen=True, slots=True)
class ProductSummary:
    product: str
    total_calls: int
    success_rate: float
    partial_success_rate: float
    failure_rate: float
    top_intents: tuple[IntentCount, ...]
    outcomes: dict[str, int]
    call_types: dict[str, int]
    records: tuple[RecordLink, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product,
            "totalCalls": self.total_calls,
            "successRate": self.success_rate,
            "partialSuccessRate": self.partial_success_rate,
            "failureRate": self.failure_rate,
            "topIntents": [item.to_dict() for item in self.top_intents],
            "outcomes": dict(self.outcomes),
            "callTypes": dict(self.call_types),
            "recordsByOutcome": {
                category.value: [
                    record.to_dict() for record in self.records if record.outcome == category.value
                ]
                for category in SuccessCategory
            },
            "records": [record.to_dict() for record in self.records],
        }


@dataclass(frozen=True, slots=True)
class ProductAnalyticsReport:
    total_records: int
    products: tuple[ProductSummary, ...]
    filters: dict[str, str | None] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProducts": len(self.products),
            "totalRecords": self.total_records,
            "products": [product.to_dict() for product in self.products],
            "filters": dict(self.filters),
        }


@dataclass(slots=True)
class _ProductTally:
    total_calls: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    call_types: dict[str, int] = field(default_factory=dict)
    intents: dict[str, list] = field(default_factory=dict)
    records: list[RecordLink] = field(default_factory=list)


def aggregate_product_analytics(
    matches: Iterable[VectorMatch],
    *,
    product: str | None = None,
) -> list[ProductSummary]:
    """Group stored calls by the products they mention, busiest product first."""

    tallies: dict[str, _ProductTally] = {}
    for match in matches:
        metadata = match.metadata or {}
        outcome = str(metadata.get("successCategory") or UNKNOWN)
        call_type = str(metadata.get("callType") or UNKNOWN)
        intent = normalize_intent_label(metadata.get("intent"))
        category = str(metadata.get("intentCategory") or UNKNOWN)
        transcript = metadata.get("transcript") or metadata.get("transcriptSnippet") or ""

        for name in parse_json_list(metadata.get("productNames")):
            if product is not None and name != product:
                continue
            tally = tallies.setdefault(name, _ProductTally())
            tally.total_calls += 1
            tally.outcomes[outcome] = tally.outcomes.get(outcome, 0) + 1
            tally.call_types[call_type] = tally.call_types.get(call_type, 0) + 1
            # First category seen for an intent is kept.
            entry = tally.intents.setdefault(intent, [category, 0])
            entry[1] += 1
            tally.records.append(
                RecordLink(
                    id=match.id,
                    intent=intent,
                    outcome=outcome,
                    call_type=call_type,
                    snippet=_snippet(str(transcript)),
                )
            )

    summaries = []
    for name, tally in tallies.items():
        ranked = sorted(tally.intents.items(), key=lambda item: -item[1][1])
        summaries.append(
            ProductSummary(
                product=name,
                total_calls=tally.total_calls,
                success_rate=_rate(
                    tally.outcomes.get(SuccessCategory.SUCCESSFUL.value, 0), tally.total_calls
                ),
                partial_success_rate=_rate(
                    tally.outcomes.get(SuccessCategory.PARTIALLY_SUCCESSFUL.value, 0),
                    tally.total_calls,
                ),
                failure_rate=_rate(
                    tally.outcomes.get(SuccessCategory.UNSUCCESSFUL.value, 0), tally.total_calls
                ),
                top_intents=tuple(
                    IntentCount(intent=intent, category=category, count=count)
                    for intent, (category, count) in ranked[:TOP_INTENTS]
                ),
                outcomes=tally.outcomes,
                call_types=tally.call_types,
                records=tuple(tally.records),
            )
        )
    summaries.sort(key=lambda summary: -summary.total_calls)
    return summaries


def product_analytics(
    index_client: VectorIndexClient,
    *,
    index_name: str,
    namespace: str | None = None,
    limit: int = 100,
    product: str | None = None,
    intent: str | None = None,
    success_category: str | None = None,
) -> ProductAnalyticsReport:
    """Scan stored calls and aggregate them per mentioned product."""

    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise BadRequest(
            f"Limit must be a positive integer, got {limit}.", details={"field": "limit"}
        )

    metadata_filter: dict[str, Any] = {}
    if intent:
        metadata_filter["intent"] = intent
    if success_category:
        metadata_filter["successCategory"] = success_category

    dimension = index_client.describe_dimension(index_name)
    matches = index_client.query(
        index_name,
        placeholder_vector(dimension),
        top_k=limit,
        namespace=namespace,
        filter=metadata_filter or None,
        include_metadata=True,
    )
    summaries = aggregate_product_analytics(matches, product=product)
    logger.info(
        "Aggregated %d calls into %d products from %s.",
        len(matches),
        len(summaries),
        index_name,
    )
    return ProductAnalyticsReport(
        total_records=len(matches),
        products=tuple(summaries),
        filters={"product": product, "intent": intent, "successCategory": success_category},
    )
