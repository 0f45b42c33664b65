"""Persist analyzed calls into the calls vector index."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from callsight.errors import StorageWriteFailure
from callsight.models import TextEmbeddingClient, VectorIndexClient, VectorRecord, embed_one
from callsight.vectors import content_hash_id, fit_vector_dimension

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PreparedVector:
    """Transcript embedding already fitted to the target index."""

    record_id: str
    transcript: str
    values: list[float]


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def build_call_metadata(
    transcript: str,
    fields: Mapping[str, Any],
    *,
    model_id: str,
    analyzed_at: str,
) -> dict[str, Any]:
    """Metadata stored next to the call vector.

    Product and keyword lists are JSON-encoded strings because the index only
    accepts flat metadata values.
    """

    products = list(fields.get("products") or [])
    keywords = list(fields.get("keywords") or [])
    return {
        "intent": str(fields.get("intent", "")),
        "intentCategory": str(fields.get("intentCategory", "")),
        "successCategory": str(fields.get("successCategory", "")),
        "callType": str(fields.get("callType", "")),
        "productIds": json.dumps([str(item.get("id", "")) for item in products]),
        "productNames": json.dumps([str(item.get("name", "")) for item in products]),
        "keywords": json.dumps([str(item.get("term", "")) for item in keywords]),
        "summary": str(fields.get("summary", "")),
        "transcript": transcript,
        "transcriptLength": len(transcript),
        "analyzedAt": analyzed_at,
        "modelUsed": model_id,
    }


class StorageWriter:
    """Embed a transcript and upsert it, keyed by its content hash."""

    def __init__(
        self,
        index_client: VectorIndexClient,
        embedding_client: TextEmbeddingClient,
        *,
        index_name: str,
        namespace: str | None = None,
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._index_client = index_client
        self._embedding_client = embedding_client
        self._index_name = index_name
        self._namespace = namespace
        self._clock = clock

    @property
    def index_name(self) -> str:
        return self._index_name

    def prepare(self, transcript: str) -> PreparedVector:
        """Embed the transcript and fit it to the index dimension."""

        record_id = content_hash_id(transcript)
        try:
            raw_vector = embed_one(self._embedding_client, transcript)
            dimension = self._index_client.describe_dimension(self._index_name)
        except Exception as exc:
            raise StorageWriteFailure(
                f"Could not embed transcript for storage: {exc}",
                details={"recordId": record_id, "index": self._index_name},
            ) from exc
        return PreparedVector(
            record_id=record_id,
            transcript=transcript,
            values=fit_vector_dimension(raw_vector, dimension),
        )

    def write(self, prepared: PreparedVector, fields: Mapping[str, Any], *, model_id: str) -> str:
        """Upsert a prepared vector with analysis metadata and return its id."""

        metadata = build_call_metadata(
            prepared.transcript,
            fields,
            model_id=model_id,
            analyzed_at=self._clock(),
        )
        record = VectorRecord(id=prepared.record_id, values=prepared.values, metadata=metadata)
        try:
            self._index_client.upsert(self._index_name, [record], namespace=self._namespace)
        except Exception as exc:
            raise StorageWriteFailure(
                f"Upsert into '{self._index_name}' failed: {exc}",
                details={"recordId": prepared.record_id, "index": self._index_name},
            ) from exc
        logger.info("Stored call %s in index %s.", prepared.record_id, self._index_name)
        return prepared.record_id

    def store(self, transcript: str, fields: Mapping[str, Any], *, model_id: str) -> str:
        """Prepare and write in one step."""

        return self.write(self.prepare(transcript), fields, model_id=model_id)
