"""Tests for the calls index storage writer."""

from __future__ import annotations

import json

import pytest

from callsight.errors import StorageWriteFailure
from callsight.pipeline.storage import StorageWriter, build_call_metadata
from callsight.vectors import content_hash_id

FIELDS = {
    "callType": "Escalated",
    "successCategory": "Partially Successful",
    "intent": "Return shoes",
    "intentCategory": "Returns",
    "summary": "Customer wanted to return shoes and was sent to the returns desk.",
    "products": [
        {"id": "sku-1", "name": "Air Runner 2", "score": 0.8},
        {"id": "trail-sock", "name": "Trail Sock", "score": 0.9},
    ],
    "keywords": [{"term": "returns", "score": 0.7}],
}


class _FakeIndexClient:
    def __init__(self, *, dimension: int = 3, fail_describe: bool = False) -> None:
        self.dimension = dimension
        self.fail_describe = fail_describe
        self.upserts: list = []

    def describe_dimension(self, index_name: str) -> int:
        if self.fail_describe:
            raise RuntimeError("control plane down")
        return self.dimension

    def upsert(self, index_name, records, *, namespace=None) -> int:
        self.upserts.append((index_name, list(records), namespace))
        return len(records)


class _FakeEmbeddingClient:
    def __init__(self, size: int = 5) -> None:
        self.size = size

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [[1.0] * self.size for _ in texts]


def test_build_call_metadata_encodes_lists_as_json_strings():
    metadata = build_call_metadata(
        "transcript text",
        FIELDS,
        model_id="gpt-4o-mini",
        analyzed_at="2026-01-01T00:00:00+00:00",
    )
    assert json.loads(metadata["productIds"]) == ["sku-1", "trail-sock"]
    assert json.loads(metadata["productNames"]) == ["Air Runner 2", "Trail Sock"]
    assert json.loads(metadata["keywords"]) == ["returns"]
    assert metadata["transcriptLength"] == len("transcript text")
    assert metadata["callType"] == "Escalated"
    assert metadata["analyzedAt"] == "2026-01-01T00:00:00+00:00"
    assert metadata["modelUsed"] == "gpt-4o-mini"


def test_store_upserts_fitted_vector_keyed_by_content_hash():
    index_client = _FakeIndexClient(dimension=3)
    writer = StorageWriter(
        index_client,
        _FakeEmbeddingClient(size=5),
        index_name="calls",
        namespace="prod",
        clock=lambda: "2026-01-01T00:00:00+00:00",
    )

    record_id = writer.store("transcript text", FIELDS, model_id="gpt-4o-mini")

    assert record_id == content_hash_id("transcript text")
    ((index_name, records, namespace),) = index_client.upserts
    assert index_name == "calls"
    assert namespace == "prod"
    assert records[0].id == record_id
    assert records[0].values == [1.0, 1.0, 1.0]
    assert records[0].metadata["transcript"] == "transcript text"


def test_same_transcript_maps_to_same_record_id():
    writer = StorageWriter(_FakeIndexClient(), _FakeEmbeddingClient(), index_name="calls")
    first = writer.store("repeat me please", FIELDS, model_id="m")
    second = writer.store("repeat me please", FIELDS, model_id="m")
    assert first == second


def test_collaborator_errors_become_storage_write_failure():
    writer = StorageWriter(
        _FakeIndexClient(fail_describe=True),
        _FakeEmbeddingClient(),
        index_name="calls",
    )
    with pytest.raises(StorageWriteFailure) as excinfo:
        writer.store("transcript text", FIELDS, model_id="m")
    assert excinfo.value.details["index"] == "calls"
    assert excinfo.value.to_dict()["errorKind"] == "StorageWriteFailure"
