"""Canonical analysis record shapes and the call-type/outcome invariant."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from callsight.errors import FieldIssue, InvariantViolation

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]

CALL_OUTCOME_ERROR_TYPE = "call_outcome_invariant"


class CallType(StrEnum):
    AUTOMATED = "Automated"
    ESCALATED = "Escalated"


class SuccessCategory(StrEnum):
    SUCCESSFUL = "Successful"
    PARTIALLY_SUCCESSFUL = "Partially Successful"
    UNSUCCESSFUL = "Unsuccessful"


ALLOWED_OUTCOMES: dict[CallType, frozenset[SuccessCategory]] = {
    CallType.AUTOMATED: frozenset({SuccessCategory.SUCCESSFUL, SuccessCategory.UNSUCCESSFUL}),
    CallType.ESCALATED: frozenset(
        {SuccessCategory.PARTIALLY_SUCCESSFUL, SuccessCategory.UNSUCCESSFUL}
    ),
}


@dataclass(frozen=True, slots=True)
class RawPayload:
    """Untrusted object returned by an external service.

    Only the normalizer reads ``data``; nothing downstream of it sees a RawPayload.
    """

    source: str
    data: Mapping[str, Any] = field(default_factory=dict)
    schema_version: int = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Product(_CamelModel):
    """A product mentioned in, or retrieved for, a call."""

    id: NonEmptyStr
    name: NonEmptyStr
    score: float = Field(ge=0.0, le=1.0)
    brand: str | None = None
    category: str | None = None


class Keyword(_CamelModel):
    term: NonEmptyStr
    score: float = Field(ge=0.0, le=1.0)


class RelatedDoc(_CamelModel):
    id: NonEmptyStr
    score: float
    metadata: dict[str, Any] | None = None


def _coerce_enum(enum_cls: type[StrEnum], value: Any) -> StrEnum | None:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def call_outcome_issues(
    call_type: Any,
    success_category: Any,
    escalation_reason: Any = None,
) -> list[FieldIssue]:
    """Return cross-field violations for a call type / outcome pair.

    Values that are not valid enum members are ignored here; per-field
    validation reports them.
    """

    resolved_type = _coerce_enum(CallType, call_type)
    resolved_outcome = _coerce_enum(SuccessCategory, success_category)
    issues: list[FieldIssue] = []
    if resolved_type is None:
        return issues

    if resolved_outcome is not None and resolved_outcome not in ALLOWED_OUTCOMES[resolved_type]:
        allowed = " or ".join(sorted(item.value for item in ALLOWED_OUTCOMES[resolved_type]))
        issues.append(
            FieldIssue(
                field="successCategory",
                reason=(
                    f"{resolved_type.value} calls cannot be {resolved_outcome.value}; "
                    f"expected {allowed}."
                ),
            )
        )
    if resolved_type is CallType.AUTOMATED and escalation_reason not in (None, ""):
        issues.append(
            FieldIssue(
                field="escalationReason",
                reason="escalationReason is only allowed on Escalated calls.",
            )
        )
    return issues


class AnalysisRecord(_CamelModel):
    """Validated, immutable result of one transcript analysis."""

    call_type: CallType
    success_category: SuccessCategory
    intent: NonEmptyStr
    intent_category: NonEmptyStr
    confidence: float = Field(ge=0.0, le=1.0)
    summary: NonEmptyStr
    key_points: tuple[NonEmptyStr, ...] = Field(min_length=1)
    action_items: tuple[NonEmptyStr, ...] = ()
    escalation_reason: str | None = None
    products: tuple[Product, ...] = ()
    keywords: tuple[Keyword, ...] = ()
    related_docs: tuple[RelatedDoc, ...] = ()
    storage_record_id: str | None = None

    @model_validator(mode="after")
    def _check_call_outcome(self) -> AnalysisRecord:
        issues = call_outcome_issues(
            self.call_type, self.success_category, self.escalation_reason
        )
        if issues:
            raise PydanticCustomError(
                CALL_OUTCOME_ERROR_TYPE,
                "{reason}",
                {"reason": " ".join(issue.reason for issue in issues)},
            )
        return self

    def to_payload(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _issues_from_validation_error(exc: ValidationError) -> list[FieldIssue]:
    issues: list[FieldIssue] = []
    for error in exc.errors():
        if error.get("type") == CALL_OUTCOME_ERROR_TYPE:
            continue
        location = ".".join(str(part) for part in error.get("loc", ())) or "(record)"
        issue = FieldIssue(field=location, reason=str(error.get("msg", "invalid value")))
        if issue not in issues:
            issues.append(issue)
    return issues


def validate_final(candidate: AnalysisRecord | Mapping[str, Any]) -> AnalysisRecord:
    """Validate a candidate and return the typed record.

    Raises InvariantViolation listing every violated field when the candidate
    fails per-field constraints or the call-type/outcome rule.
    """

    if isinstance(candidate, AnalysisRecord):
        data: dict[str, Any] = candidate.model_dump(by_alias=True)
    elif isinstance(candidate, Mapping):
        data = dict(candidate)
    else:
        raise InvariantViolation(
            [FieldIssue("(record)", f"Expected an object, got {type(candidate).__name__}.")]
        )

    try:
        return AnalysisRecord.model_validate(data)
    except ValidationError as exc:
        issues = _issues_from_validation_error(exc)

    for issue in call_outcome_issues(
        data.get("callType", data.get("call_type")),
        data.get("successCategory", data.get("success_category")),
        data.get("escalationReason", data.get("escalation_reason")),
    ):
        if issue not in issues:
            issues.append(issue)
    raise InvariantViolation(issues)
