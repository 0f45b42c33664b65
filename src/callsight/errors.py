"""Error kinds surfaced by the analysis and clustering pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class FieldIssue:
    """One violated field with a human-readable reason."""

    field: str
    reason: str


class CallsightError(Exception):
    """Base class for errors with a machine-readable kind."""

    error_kind = "InternalError"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON-serializable payload."""

        return {
            "errorKind": self.error_kind,
            "message": self.message,
            "details": self.details,
        }


class BadRequest(CallsightError):
    """Raised for unusable caller input (short transcript, unknown model id)."""

    error_kind = "BadRequest"


class SchemaValidationError(CallsightError):
    """Raised when a generation pass never matched its schema after the retry."""

    error_kind = "SchemaValidationError"

    def __init__(self, message: str, *, pass_name: str, attempts: int = 2) -> None:
        super().__init__(message, details={"pass": pass_name, "attempts": attempts})
        self.pass_name = pass_name
        self.attempts = attempts


class GenerationAuthError(CallsightError):
    """Raised when the generation service rejects the configured credentials."""

    error_kind = "GenerationAuthError"


class GenerationError(CallsightError):
    """Wraps an unexpected generation or transport failure for one batch item."""

    error_kind = "GenerationError"

    @classmethod
    def from_exception(cls, exc: BaseException) -> GenerationError:
        return cls(str(exc) or type(exc).__name__, details={"exceptionType": type(exc).__name__})


class InvariantViolation(CallsightError):
    """Raised when a candidate record fails field or cross-field validation."""

    error_kind = "InvariantViolation"

    def __init__(self, issues: list[FieldIssue]) -> None:
        fields = ", ".join(issue.field for issue in issues) or "(record)"
        super().__init__(
            f"Analysis record failed validation on: {fields}.",
            details={"issues": [asdict(issue) for issue in issues]},
        )
        self.issues = list(issues)

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class StorageWriteFailure(CallsightError):
    """Raised by the storage writer; trapped by the orchestrator."""

    error_kind = "StorageWriteFailure"


class ClusteringTimeout(CallsightError):
    """Raised when intent clustering exceeds its time or size limit."""

    error_kind = "ClusteringTimeout"


class ConfigurationError(ValueError):
    """Raised when settings are missing credentials or name unknown providers."""
