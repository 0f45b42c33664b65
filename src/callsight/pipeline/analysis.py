"""Transcript analysis: concurrent generation passes, composition, validation."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from callsight.config import ModelRegistry, ModelSpec
from callsight.errors import (
    BadRequest,
    CallsightError,
    ConfigurationError,
    GenerationError,
    SchemaValidationError,
    StorageWriteFailure,
)
from callsight.models import LLMJsonClient, StructuredOutputError
from callsight.normalization import normalize_candidate
from callsight.pipeline.retrieval import (
    EMPTY_RELATED_RESULT,
    RelatedDocumentSearch,
    RelatedSearchResult,
)
from callsight.pipeline.storage import PreparedVector, StorageWriter
from callsight.prompts import (
    CLASSIFICATION_STRICT_SYSTEM_PROMPT,
    CLASSIFICATION_SYSTEM_PROMPT,
    EXTRACTION_STRICT_SYSTEM_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    build_classification_strict_user_prompt,
    build_classification_user_prompt,
    build_extraction_strict_user_prompt,
    build_extraction_user_prompt,
)
from callsight.schemas import (
    AnalysisRecord,
    CallType,
    NonEmptyStr,
    RawPayload,
    SuccessCategory,
    call_outcome_issues,
    validate_final,
)

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_LENGTH = 10
AI_PRODUCT_SCORE = 0.9

CLASSIFICATION_PASS = "classification"
EXTRACTION_PASS = "extraction"

LLMClientFactory = Callable[[ModelSpec], LLMJsonClient]


class _PassPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


class ClassificationPayload(_PassPayload):
    call_type: CallType
    success_category: SuccessCategory
    intent: NonEmptyStr
    intent_category: NonEmptyStr
    confidence: float = 0.0
    rationale: NonEmptyStr

    @model_validator(mode="after")
    def _check_call_outcome(self) -> ClassificationPayload:
        issues = call_outcome_issues(self.call_type, self.success_category)
        if issues:
            raise ValueError(" ".join(issue.reason for issue in issues))
        return self


class MentionedProduct(_PassPayload):
    name: NonEmptyStr
    brand: str | None = None
    category: str | None = None


class ExtractionPayload(_PassPayload):
    summary: NonEmptyStr
    key_points: list[NonEmptyStr] = Field(min_length=1)
    action_items: list[NonEmptyStr] = Field(default_factory=list)
    products_mentioned: list[MentionedProduct] = Field(default_factory=list)


class PassState(StrEnum):
    FIRST_ATTEMPT = "first_attempt"
    RETRY_ATTEMPT = "retry_attempt"
    DONE = "done"
    FAILED = "failed"


# (state, attempt succeeded) -> next state
_PASS_TRANSITIONS: dict[tuple[PassState, bool], PassState] = {
    (PassState.FIRST_ATTEMPT, True): PassState.DONE,
    (PassState.FIRST_ATTEMPT, False): PassState.RETRY_ATTEMPT,
    (PassState.RETRY_ATTEMPT, True): PassState.DONE,
    (PassState.RETRY_ATTEMPT, False): PassState.FAILED,
}


@dataclass(frozen=True, slots=True)
class PassSpec:
    """One independent generation pass and its stricter retry policy."""

    name: str
    payload_model: type[BaseModel]
    system_prompt: str
    strict_system_prompt: str
    build_prompt: Callable[[str], str]
    build_strict_prompt: Callable[[str], str]

    def prompts_for(self, state: PassState, transcript: str) -> tuple[str, str]:
        if state is PassState.FIRST_ATTEMPT:
            return self.system_prompt, self.build_prompt(transcript)
        return self.strict_system_prompt, self.build_strict_prompt(transcript)


@dataclass(slots=True)
class PassOutcome:
    """Trace of one pass through its attempt states."""

    name: str
    states: list[PassState] = field(default_factory=lambda: [PassState.FIRST_ATTEMPT])
    payload: BaseModel | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def state(self) -> PassState:
        return self.states[-1]

    @property
    def succeeded(self) -> bool:
        return self.state is PassState.DONE

    @property
    def attempts(self) -> int:
        return sum(
            1
            for state in self.states
            if state in (PassState.FIRST_ATTEMPT, PassState.RETRY_ATTEMPT)
        )


CLASSIFICATION_PASS_SPEC = PassSpec(
    name=CLASSIFICATION_PASS,
    payload_model=ClassificationPayload,
    system_prompt=CLASSIFICATION_SYSTEM_PROMPT,
    strict_system_prompt=CLASSIFICATION_STRICT_SYSTEM_PROMPT,
    build_prompt=build_classification_user_prompt,
    build_strict_prompt=build_classification_strict_user_prompt,
)

EXTRACTION_PASS_SPEC = PassSpec(
    name=EXTRACTION_PASS,
    payload_model=ExtractionPayload,
    system_prompt=EXTRACTION_SYSTEM_PROMPT,
    strict_system_prompt=EXTRACTION_STRICT_SYSTEM_PROMPT,
    build_prompt=build_extraction_user_prompt,
    build_strict_prompt=build_extraction_strict_user_prompt,
)

DEFAULT_PASSES: tuple[PassSpec, ...] = (CLASSIFICATION_PASS_SPEC, EXTRACTION_PASS_SPEC)


def run_generation_pass(
    spec: PassSpec,
    llm_client: LLMJsonClient,
    transcript: str,
) -> PassOutcome:
    """Run one pass: first attempt, then at most one strict retry on schema failure.

    Only schema failures (unparseable JSON or payload validation errors) move
    the pass to its retry state; any other error propagates.
    """

    outcome = PassOutcome(name=spec.name)
    while outcome.state in (PassState.FIRST_ATTEMPT, PassState.RETRY_ATTEMPT):
        system_prompt, user_prompt = spec.prompts_for(outcome.state, transcript)
        try:
            raw = llm_client.complete_json(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                schema_name=f"{spec.name}_payload",
                json_schema=spec.payload_model.model_json_schema(),
                strict_schema=False,
            )
            payload = spec.payload_model.model_validate(raw)
        except (StructuredOutputError, ValidationError) as exc:
            outcome.errors.append(str(exc))
            next_state = _PASS_TRANSITIONS[(outcome.state, False)]
            if next_state is PassState.RETRY_ATTEMPT:
                logger.warning("Pass '%s' failed schema validation; retrying strictly.", spec.name)
        else:
            outcome.payload = payload
            next_state = _PASS_TRANSITIONS[(outcome.state, True)]
        outcome.states.append(next_state)
    return outcome


def product_slug(name: str) -> str:
    """Lower-case slug with non-alphanumeric runs collapsed to single hyphens."""

    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def merge_mentioned_products(
    existing: Sequence[dict[str, Any]],
    mentioned: Sequence[MentionedProduct],
) -> list[dict[str, Any]]:
    """Append generation-extracted products not already present by name."""

    products = [dict(item) for item in existing]
    seen = {str(item.get("name", "")).strip().lower() for item in products}
    for product in mentioned:
        name = product.name.strip()
        key = name.lower()
        if not name or key in seen:
            continue
        entry: dict[str, Any] = {
            "id": product_slug(name) or name,
            "name": name,
            "score": AI_PRODUCT_SCORE,
        }
        if product.brand:
            entry["brand"] = product.brand
        if product.category:
            entry["category"] = product.category
        products.append(entry)
        seen.add(key)
    return products


def compose_candidate(
    classification: ClassificationPayload,
    extraction: ExtractionPayload,
    related: RelatedSearchResult = EMPTY_RELATED_RESULT,
) -> dict[str, Any]:
    """Merge pass outputs and related-search results into one candidate."""

    candidate: dict[str, Any] = {
        "callType": classification.call_type.value,
        "successCategory": classification.success_category.value,
        "intent": classification.intent,
        "intentCategory": classification.intent_category,
        "confidence": classification.confidence,
        "summary": extraction.summary,
        "keyPoints": list(extraction.key_points),
        "actionItems": list(extraction.action_items),
        "products": merge_mentioned_products(related.products, extraction.products_mentioned),
        "keywords": [dict(item) for item in related.keywords],
        "relatedDocs": [dict(item) for item in related.related_docs],
    }
    if classification.call_type is CallType.ESCALATED:
        candidate["escalationReason"] = classification.rationale
    return candidate


def _close_client(client: Any) -> None:
    close = getattr(client, "close", None)
    if callable(close):
        close()


class CallAnalyzer:
    """Analyze call transcripts into validated AnalysisRecords.

    The analyzer holds only immutable configuration and collaborators; every
    call to ``analyze`` works on request-local state.
    """

    def __init__(
        self,
        *,
        registry: ModelRegistry,
        client_factory: LLMClientFactory,
        storage_writer: StorageWriter | None = None,
        related_search: RelatedDocumentSearch | None = None,
        passes: Sequence[PassSpec] = DEFAULT_PASSES,
        max_concurrency: int = 4,
        owned_clients: Sequence[Any] = (),
    ) -> None:
        pass_names = {spec.name for spec in passes}
        if not {CLASSIFICATION_PASS, EXTRACTION_PASS} <= pass_names:
            raise ValueError("CallAnalyzer requires classification and extraction passes.")
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}.")
        self._registry = registry
        self._client_factory = client_factory
        self._storage_writer = storage_writer
        self._related_search = related_search
        self._passes = tuple(passes)
        self._owned_clients = tuple(owned_clients)
        self._batch_executor = ThreadPoolExecutor(
            max_workers=max_concurrency,
            thread_name_prefix="callsight-batch",
        )

    def __enter__(self) -> CallAnalyzer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop batch work, cancelling queued analyses, then close owned clients."""

        self._batch_executor.shutdown(wait=True, cancel_futures=True)
        for client in self._owned_clients:
            _close_client(client)

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    def _validate_request(self, transcript: Any, model_id: Any) -> tuple[str, ModelSpec]:
        if not isinstance(transcript, str) or len(transcript) < MIN_TRANSCRIPT_LENGTH:
            raise BadRequest(
                f"Transcript must be at least {MIN_TRANSCRIPT_LENGTH} characters.",
                details={"field": "transcript"},
            )
        if model_id is not None and not isinstance(model_id, str):
            raise BadRequest("Model id must be a string.", details={"field": "model"})
        return transcript, self._registry.resolve(model_id)

    def _search_related(self, transcript: str) -> RelatedSearchResult:
        if self._related_search is None:
            return EMPTY_RELATED_RESULT
        try:
            return self._related_search.search(transcript)
        except Exception:
            logger.warning("Related document search failed; continuing without it.", exc_info=True)
            return EMPTY_RELATED_RESULT

    def _prepare_storage(self, transcript: str) -> PreparedVector | None:
        if self._storage_writer is None:
            return None
        try:
            return self._storage_writer.prepare(transcript)
        except StorageWriteFailure:
            logger.warning("Storage preparation failed; record will not be stored.", exc_info=True)
            return None

    def _store(
        self,
        prepared: PreparedVector | None,
        fields: dict[str, Any],
        model_id: str,
    ) -> str | None:
        if self._storage_writer is None or prepared is None:
            return None
        try:
            return self._storage_writer.write(prepared, fields, model_id=model_id)
        except StorageWriteFailure:
            logger.warning("Storage write failed; returning record without id.", exc_info=True)
            return None

    def analyze(
        self,
        transcript: str,
        model_id: str | None = None,
        *,
        store: bool = True,
    ) -> AnalysisRecord:
        """Analyze one transcript with the given model."""

        transcript, model = self._validate_request(transcript, model_id)
        llm_client = self._client_factory(model)

        with ThreadPoolExecutor(max_workers=len(self._passes) + 2) as pool:
            pass_futures: dict[Future, str] = {
                pool.submit(run_generation_pass, spec, llm_client, transcript): spec.name
                for spec in self._passes
            }
            related_future = pool.submit(self._search_related, transcript)
            storage_future = pool.submit(self._prepare_storage, transcript) if store else None
            # A failing pass does not cancel its siblings.
            wait(pass_futures)
            _close_client(llm_client)

        outcomes: dict[str, PassOutcome] = {}
        for future in pass_futures:
            outcomes[pass_futures[future]] = future.result()
        for spec in self._passes:
            outcome = outcomes[spec.name]
            if not outcome.succeeded:
                raise SchemaValidationError(
                    f"Generation pass '{spec.name}' did not match its schema after retry: "
                    f"{outcome.errors[-1] if outcome.errors else 'unknown error'}",
                    pass_name=spec.name,
                    attempts=outcome.attempts,
                )

        candidate = compose_candidate(
            outcomes[CLASSIFICATION_PASS].payload,
            outcomes[EXTRACTION_PASS].payload,
            related_future.result(),
        )
        # Stored whether or not the candidate survives final validation.
        if storage_future is not None:
            record_id = self._store(storage_future.result(), candidate, model.model_id)
            if record_id is not None:
                candidate["storageRecordId"] = record_id

        normalized = normalize_candidate(
            RawPayload(source=f"generation:{model.model_id}", data=candidate)
        )
        record = validate_final(normalized)
        logger.info(
            "Analyzed call with %s: %s / %s (%s).",
            model.model_id,
            record.call_type.value,
            record.success_category.value,
            record.intent,
        )
        return record

    def analyze_many(
        self,
        transcripts: Sequence[str],
        model_id: str | None = None,
        *,
        store: bool = True,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> list[dict[str, Any]]:
        """Analyze several transcripts; one ``{index, ok, record | error}`` row each."""

        def _analyze_one(index: int, transcript: str) -> dict[str, Any]:
            try:
                record = self.analyze(transcript, model_id, store=store)
            except ConfigurationError:
                raise
            except CallsightError as exc:
                return {"index": index, "ok": False, "error": exc.to_dict()}
            except Exception as exc:
                logger.warning("Analysis of transcript %d failed.", index, exc_info=True)
                error = GenerationError.from_exception(exc)
                return {"index": index, "ok": False, "error": error.to_dict()}
            return {"index": index, "ok": True, "record": record.to_payload()}

        rows: dict[int, dict[str, Any]] = {}
        total = len(transcripts)
        futures = [
            self._batch_executor.submit(_analyze_one, index, transcript)
            for index, transcript in enumerate(transcripts)
        ]
        for done, future in enumerate(as_completed(futures), start=1):
            row = future.result()
            rows[row["index"]] = row
            if progress_callback is not None:
                progress_callback(done, total)
        failed = sum(1 for row in rows.values() if not row["ok"])
        logger.info("Analyzed %d transcripts (%d failed).", total, failed)
        return [rows[index] for index in range(total)]
