"""Run one transcript through every registered model and tally agreement."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from callsight.config import ModelSpec
from callsight.errors import BadRequest, CallsightError, ConfigurationError, GenerationError
from callsight.pipeline.analysis import MIN_TRANSCRIPT_LENGTH, CallAnalyzer
from callsight.schemas import AnalysisRecord

logger = logging.getLogger(__name__)

NO_CONSENSUS = "Unknown"


@dataclass(frozen=True, slots=True)
class ModelRunResult:
    """Outcome of analyzing the transcript with one model."""

    model_id: str
    provider: str
    display_name: str
    elapsed_seconds: float
    record: AnalysisRecord | None = None
    error_kind: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "modelId": self.model_id,
            "provider": self.provider,
            "displayName": self.display_name,
            "ok": self.ok,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
        }
        if self.record is not None:
            payload["record"] = self.record.to_payload()
        else:
            payload["error"] = {"errorKind": self.error_kind, "message": self.error_message}
        return payload


@dataclass(frozen=True, slots=True)
class Consensus:
    call_type: str
    success_category: str
    intent: str
    total_votes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "callType": self.call_type,
            "successCategory": self.success_category,
            "intent": self.intent,
            "totalVotes": self.total_votes,
        }


@dataclass(frozen=True, slots=True)
class ComparisonReport:
    results: tuple[ModelRunResult, ...]
    consensus: Consensus
    elapsed_seconds: float = 0.0
    providers: tuple[str, ...] = field(default=())

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    def to_dict(self) -> dict[str, Any]:
        by_provider: dict[str, list[dict[str, Any]]] = {}
        for result in self.results:
            by_provider.setdefault(result.provider, []).append(result.to_dict())
        return {
            "totalModels": len(self.results),
            "successfulAnalyses": self.successful,
            "failedAnalyses": self.failed,
            "consensus": self.consensus.to_dict(),
            "providers": list(self.providers),
            "resultsByProvider": by_provider,
            "results": [result.to_dict() for result in self.results],
            "elapsedSeconds": round(self.elapsed_seconds, 3),
        }


def _majority(values: Iterable[str]) -> str:
    """Most common value; the first one seen wins ties."""

    votes: dict[str, int] = {}
    for value in values:
        votes[value] = votes.get(value, 0) + 1
    if not votes:
        return NO_CONSENSUS
    return max(votes, key=lambda value: votes[value])


def build_consensus(records: Iterable[AnalysisRecord]) -> Consensus:
    records = list(records)
    return Consensus(
        call_type=_majority(record.call_type.value for record in records),
        success_category=_majority(record.success_category.value for record in records),
        intent=_majority(record.intent.lower() for record in records),
        total_votes=len(records),
    )


def compare_models(
    analyzer: CallAnalyzer,
    transcript: str,
    *,
    providers: Collection[str] | None = None,
    max_concurrency: int = 4,
    clock: Callable[[], float] = time.perf_counter,
) -> ComparisonReport:
    """Analyze ``transcript`` with each registered model, without storing results."""

    if not isinstance(transcript, str) or len(transcript) < MIN_TRANSCRIPT_LENGTH:
        raise BadRequest(
            f"Transcript must be at least {MIN_TRANSCRIPT_LENGTH} characters.",
            details={"field": "transcript"},
        )
    models = analyzer.registry.models_for(providers)
    if not models:
        raise BadRequest(
            "No registered models match the requested providers.",
            details={"providers": sorted(providers or [])},
        )

    def _run(model: ModelSpec) -> ModelRunResult:
        started = clock()
        try:
            record = analyzer.analyze(transcript, model.model_id, store=False)
        except ConfigurationError:
            raise
        except Exception as exc:
            error = (
                exc if isinstance(exc, CallsightError) else GenerationError.from_exception(exc)
            )
            logger.warning("Model %s failed: %s", model.model_id, error.message, exc_info=True)
            return ModelRunResult(
                model_id=model.model_id,
                provider=model.provider,
                display_name=model.display_name,
                elapsed_seconds=clock() - started,
                error_kind=error.error_kind,
                error_message=error.message,
            )
        return ModelRunResult(
            model_id=model.model_id,
            provider=model.provider,
            display_name=model.display_name,
            elapsed_seconds=clock() - started,
            record=record,
        )

    started = clock()
    with ThreadPoolExecutor(max_workers=max(1, min(max_concurrency, len(models)))) as pool:
        results = tuple(pool.map(_run, models))
    consensus = build_consensus(result.record for result in results if result.record is not None)
    logger.info(
        "Compared %d models: %d succeeded, consensus %s / %s.",
        len(results),
        consensus.total_votes,
        consensus.call_type,
        consensus.success_category,
    )
    return ComparisonReport(
        results=results,
        consensus=consensus,
        elapsed_seconds=clock() - started,
        providers=tuple(dict.fromkeys(model.provider for model in models)),
    )
