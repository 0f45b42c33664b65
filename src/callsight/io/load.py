"""Loaders for transcript inputs."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class TranscriptDatasetError(ValueError):
    """Raised when a transcript file is missing or malformed."""


class TranscriptInput(BaseModel):
    """One transcript line of a batch JSONL file."""

    model_config = ConfigDict(extra="ignore")

    transcript: str = Field(min_length=1)
    id: str | None = None


def load_transcript_text(path: str | Path) -> str:
    """Read a single transcript from a plain-text file."""

    file_path = Path(path)
    if not file_path.exists():
        raise TranscriptDatasetError(f"Transcript file does not exist: {file_path}")
    text = file_path.read_text(encoding="utf-8")
    if not text.strip():
        raise TranscriptDatasetError(f"Transcript file is empty: {file_path}")
    return text


def load_transcripts_jsonl(path: str | Path, *, limit: int | None = None) -> list[TranscriptInput]:
    """Load transcripts from a JSONL file.

    Each non-empty line must be an object with a ``transcript`` string and may
    carry an ``id``. Ids must be unique.
    """

    if limit is not None and limit <= 0:
        raise ValueError(f"limit must be positive when provided, got {limit}.")

    file_path = Path(path)
    if not file_path.exists():
        raise TranscriptDatasetError(f"Transcript file does not exist: {file_path}")

    items: list[TranscriptInput] = []
    seen_ids: set[str] = set()

    with file_path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            stripped = line.strip()
            if not stripped:
                continue

            try:
                payload = json.loads(stripped)
            except json.JSONDecodeError as exc:
                raise TranscriptDatasetError(
                    f"Invalid JSON on line {line_number} of {file_path}: {exc.msg}"
                ) from exc

            if not isinstance(payload, dict):
                raise TranscriptDatasetError(
                    f"Expected object on line {line_number} of {file_path}, "
                    f"got {type(payload).__name__}."
                )

            try:
                item = TranscriptInput.model_validate(payload)
            except ValidationError as exc:
                raise TranscriptDatasetError(
                    f"Transcript validation failed on line {line_number} of {file_path}: {exc}"
                ) from exc

            if item.id is not None:
                if item.id in seen_ids:
                    raise TranscriptDatasetError(
                        f"Duplicate id '{item.id}' found on line {line_number} of {file_path}."
                    )
                seen_ids.add(item.id)
            items.append(item)

            if limit is not None and len(items) >= limit:
                break

    if not items:
        raise TranscriptDatasetError(f"No transcripts found in file: {file_path}")
    return items
