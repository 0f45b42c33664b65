"""Tests for per-product call analytics."""

from __future__ import annotations

import json

import pytest

from callsight.errors import BadRequest
from callsight.models import VectorMatch
from callsight.pipeline.product_analytics import (
    aggregate_product_analytics,
    normalize_intent_label,
    parse_json_list,
    product_analytics,
)


def _call(call_id: str, products, *, outcome: str, call_type: str, intent: str, **extra):
    metadata = {
        "productNames": json.dumps(products) if isinstance(products, list) else products,
        "successCategory": outcome,
        "callType": call_type,
        "intent": intent,
        "intentCategory": extra.pop("category", "Orders"),
        "transcript": extra.pop("transcript", f"transcript for {call_id}"),
    }
    return VectorMatch(id=call_id, score=0.0, metadata=metadata)


CALLS = [
    _call(
        "c1", ["Air Runner 2"], outcome="Successful", call_type="Automated", intent="Track order"
    ),
    _call(
        "c2",
        ["Air Runner 2", "Trail Sock"],
        outcome="Partially Successful",
        call_type="Escalated",
        intent="  Return   shoes ",
        category="Returns",
    ),
    _call(
        "c3", ["Air Runner 2"], outcome="Unsuccessful", call_type="Automated", intent="Track order"
    ),
    _call("c4", "not json", outcome="Successful", call_type="Automated", intent="Track order"),
]


def test_helpers_normalize_labels_and_lists():
    assert normalize_intent_label("  Return \n shoes ") == "Return shoes"
    assert normalize_intent_label("") == "Unknown"
    assert normalize_intent_label(None) == "Unknown"
    assert parse_json_list('["a", 3, "", "b"]') == ["a", "b"]
    assert parse_json_list("{bad") == []
    assert parse_json_list('{"a": 1}') == []


def test_products_sorted_by_call_count_with_rates():
    summaries = aggregate_product_analytics(CALLS)

    assert [summary.product for summary in summaries] == ["Air Runner 2", "Trail Sock"]
    runner = summaries[0]
    assert runner.total_calls == 3
    assert runner.success_rate == 33.3
    assert runner.partial_success_rate == 33.3
    assert runner.failure_rate == 33.3
    assert runner.outcomes == {"Successful": 1, "Partially Successful": 1, "Unsuccessful": 1}
    assert runner.call_types == {"Automated": 2, "Escalated": 1}
    assert [(item.intent, item.count) for item in runner.top_intents] == [
        ("Track order", 2),
        ("Return shoes", 1),
    ]
    assert runner.top_intents[1].category == "Returns"


def test_malformed_product_list_contributes_nothing():
    summaries = aggregate_product_analytics(CALLS)
    linked_ids = {record.id for summary in summaries for record in summary.records}
    assert "c4" not in linked_ids


def test_product_filter_and_record_grouping():
    long_transcript = "x" * 250
    calls = [
        _call(
            "c9",
            ["Trail Sock"],
            outcome="Unsuccessful",
            call_type="Escalated",
            intent="Refund",
            transcript=long_transcript,
        ),
        *CALLS,
    ]
    (summary,) = aggregate_product_analytics(calls, product="Trail Sock")

    payload = summary.to_dict()
    assert payload["totalCalls"] == 2
    assert [record["id"] for record in payload["recordsByOutcome"]["Unsuccessful"]] == ["c9"]
    assert payload["recordsByOutcome"]["Successful"] == []
    snippet = payload["records"][0]["snippet"]
    assert snippet == "x" * 200 + "..."


class _FakeIndexClient:
    def __init__(self, matches) -> None:
        self.matches = matches
        self.calls: list[dict] = []

    def describe_dimension(self, index_name: str) -> int:
        return 3

    def query(self, index_name, vector, *, top_k, namespace=None, filter=None, **kwargs):
        self.calls.append({"vector": list(vector), "top_k": top_k, "filter": filter})
        return list(self.matches)


def test_product_analytics_queries_with_metadata_filter():
    index_client = _FakeIndexClient(CALLS)

    report = product_analytics(
        index_client,
        index_name="calls",
        limit=50,
        intent="Track order",
        success_category="Successful",
    )

    assert index_client.calls == [
        {
            "vector": [0.0, 0.0, 0.0],
            "top_k": 50,
            "filter": {"intent": "Track order", "successCategory": "Successful"},
        }
    ]
    payload = report.to_dict()
    assert payload["totalRecords"] == 4
    assert payload["totalProducts"] == 2
    assert payload["filters"] == {
        "product": None,
        "intent": "Track order",
        "successCategory": "Successful",
    }


def test_product_analytics_without_filters_sends_none():
    index_client = _FakeIndexClient([])
    report = product_analytics(index_client, index_name="calls")
    assert index_client.calls[0]["filter"] is None
    assert report.products == ()


@pytest.mark.parametrize("limit", [0, -1, True, 2.5])
def test_product_analytics_rejects_bad_limit(limit):
    with pytest.raises(BadRequest):
        product_analytics(_FakeIndexClient([]), index_name="calls", limit=limit)
