"""I/O utilities for reading transcripts and writing results."""

from callsight.io.load import (
    TranscriptDatasetError,
    TranscriptInput,
    load_transcript_text,
    load_transcripts_jsonl,
)
from callsight.io.save import ensure_directory, save_json, save_jsonl

__all__ = [
    "TranscriptDatasetError",
    "TranscriptInput",
    "ensure_directory",
    "load_transcript_text",
    "load_transcripts_jsonl",
    "save_json",
    "save_jsonl",
]
