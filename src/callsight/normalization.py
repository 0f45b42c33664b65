"""Best-effort repair of loosely-typed analysis candidates.

The normalizer never rejects input. It maps free-text labels onto the
canonical enumerations and sanitizes numeric and list fields so that a
candidate has a better chance of passing ``validate_final``; the caller must
still run that validation before trusting the result.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

from callsight.schemas import CallType, RawPayload, SuccessCategory

_CALL_TYPE_SYNONYMS: dict[str, CallType] = {
    "automated": CallType.AUTOMATED,
    "bot": CallType.AUTOMATED,
    "ivr": CallType.AUTOMATED,
    "ai": CallType.AUTOMATED,
    "escalated": CallType.ESCALATED,
    "escalation": CallType.ESCALATED,
    "external": CallType.ESCALATED,
}

# Looked up after separator collapsing, before the substring rules.
_OUTCOME_SYNONYMS: dict[str, SuccessCategory] = {
    "successful": SuccessCategory.SUCCESSFUL,
    "success": SuccessCategory.SUCCESSFUL,
    "pass": SuccessCategory.SUCCESSFUL,
    "partially successful": SuccessCategory.PARTIALLY_SUCCESSFUL,
    "partial success": SuccessCategory.PARTIALLY_SUCCESSFUL,
    "partial": SuccessCategory.PARTIALLY_SUCCESSFUL,
    "unsuccessful": SuccessCategory.UNSUCCESSFUL,
    "failed": SuccessCategory.UNSUCCESSFUL,
    "fail": SuccessCategory.UNSUCCESSFUL,
}

_SEPARATOR_PATTERN = re.compile(r"[\s_\-]+")
_PARTIAL_PATTERN = re.compile(r"partial")
# Checked before the failure rule, so "call unsuccessful" maps to Successful.
_SUCCESS_PATTERN = re.compile(r"success|pass|ok|resolved")
_FAILURE_PATTERN = re.compile(r"fail|unsuccess")

_TRIMMED_TEXT_FIELDS = ("intent", "intentCategory", "summary", "escalationReason")
_TEXT_LIST_FIELDS = ("keyPoints", "actionItems")


def normalize_call_type(value: Any) -> Any:
    """Map a free-text call-type label onto CallType, or return it unchanged."""

    if not isinstance(value, str):
        return value
    mapped = _CALL_TYPE_SYNONYMS.get(value.strip().lower())
    return mapped.value if mapped is not None else value


def normalize_success_category(value: Any) -> Any:
    """Map a free-text outcome label onto SuccessCategory, or return it unchanged.

    Rules apply in order: partial, then success/pass/ok/resolved, then
    fail/unsuccess.
    """

    if not isinstance(value, str):
        return value
    key = _SEPARATOR_PATTERN.sub(" ", value.strip().lower()).strip()
    exact = _OUTCOME_SYNONYMS.get(key)
    if exact is not None:
        return exact.value
    if _PARTIAL_PATTERN.search(key):
        return SuccessCategory.PARTIALLY_SUCCESSFUL.value
    if _SUCCESS_PATTERN.search(key):
        return SuccessCategory.SUCCESSFUL.value
    if _FAILURE_PATTERN.search(key):
        return SuccessCategory.UNSUCCESSFUL.value
    return value


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def clamp01(value: Any) -> float:
    """Coerce to a finite float in [0, 1]; unusable input becomes 0."""

    return max(0.0, min(1.0, _to_float(value)))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(entry: Mapping[str, Any], key: str) -> str | None:
    text = _text(entry.get(key))
    return text or None


def _normalize_text_list(values: Any) -> Any:
    if not isinstance(values, (list, tuple)):
        return values
    cleaned = [_text(item) for item in values if item is not None]
    return [item for item in cleaned if item]


def _normalize_product(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, Mapping):
        return None
    product_id = _text(entry.get("id"))
    name = _text(entry.get("name"))
    if not product_id and not name:
        return None
    product: dict[str, Any] = {
        "id": product_id or name,
        "name": name or product_id,
        "score": clamp01(entry.get("score")),
    }
    for key in ("brand", "category"):
        text = _optional_text(entry, key)
        if text is not None:
            product[key] = text
    return product


def _normalize_keyword(entry: Any) -> dict[str, Any] | None:
    if isinstance(entry, Mapping):
        term = _text(entry.get("term"))
        score = clamp01(entry.get("score"))
    else:
        term = _text(entry)
        score = 0.0
    if not term:
        return None
    return {"term": term, "score": score}


def _normalize_related_doc(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, Mapping):
        return None
    doc_id = _text(entry.get("id"))
    if not doc_id:
        return None
    doc: dict[str, Any] = {"id": doc_id, "score": _to_float(entry.get("score"))}
    metadata = entry.get("metadata")
    if isinstance(metadata, Mapping):
        doc["metadata"] = dict(metadata)
    return doc


def _normalize_entries(values: Any, normalizer) -> Any:
    if not isinstance(values, (list, tuple)):
        return values
    normalized = (normalizer(item) for item in values)
    return [item for item in normalized if item is not None]


def normalize_candidate(payload: RawPayload | Mapping[str, Any] | Any) -> dict[str, Any]:
    """Return a canonicalized copy of a loosely-typed analysis candidate."""

    if isinstance(payload, RawPayload):
        source = payload.data
    elif isinstance(payload, Mapping):
        source = payload
    else:
        return {}

    candidate: dict[str, Any] = dict(source)

    if "callType" in candidate:
        candidate["callType"] = normalize_call_type(candidate["callType"])
    if "successCategory" in candidate:
        candidate["successCategory"] = normalize_success_category(candidate["successCategory"])

    for key in _TRIMMED_TEXT_FIELDS:
        if isinstance(candidate.get(key), str):
            candidate[key] = candidate[key].strip()
    for key in _TEXT_LIST_FIELDS:
        if key in candidate:
            candidate[key] = _normalize_text_list(candidate[key])

    if "products" in candidate:
        candidate["products"] = _normalize_entries(candidate["products"], _normalize_product)
    if "keywords" in candidate:
        candidate["keywords"] = _normalize_entries(candidate["keywords"], _normalize_keyword)
    if "relatedDocs" in candidate:
        candidate["relatedDocs"] = _normalize_entries(
            candidate["relatedDocs"], _normalize_related_doc
        )

    confidence = candidate.get("confidence")
    if isinstance(confidence, (int, float, str)) and not isinstance(confidence, bool):
        candidate["confidence"] = clamp01(confidence)

    return candidate
