"""Tests for transcript loading utilities."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from callsight.io import TranscriptDatasetError, load_transcript_text, load_transcripts_jsonl


def _write_jsonl(path: Path, rows: list) -> Path:
    path.write_text(
        "\n".join(row if isinstance(row, str) else json.dumps(row) for row in rows),
        encoding="utf-8",
    )
    return path


class TestLoadTranscriptText:
    def test_reads_file(self, tmp_path: Path):
        path = tmp_path / "call.txt"
        path.write_text("Customer: hello\nAgent: hi\n", encoding="utf-8")
        assert load_transcript_text(path) == "Customer: hello\nAgent: hi\n"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(TranscriptDatasetError, match="does not exist"):
            load_transcript_text(tmp_path / "missing.txt")

    def test_blank_file(self, tmp_path: Path):
        path = tmp_path / "blank.txt"
        path.write_text("  \n", encoding="utf-8")
        with pytest.raises(TranscriptDatasetError, match="empty"):
            load_transcript_text(path)


class TestLoadTranscriptsJsonl:
    def test_loads_rows_and_skips_blank_lines(self, tmp_path: Path):
        path = _write_jsonl(
            tmp_path / "batch.jsonl",
            [{"id": "c1", "transcript": "first call"}, "", {"transcript": "second call"}],
        )
        items = load_transcripts_jsonl(path)
        assert [(item.id, item.transcript) for item in items] == [
            ("c1", "first call"),
            (None, "second call"),
        ]

    def test_limit_stops_early(self, tmp_path: Path):
        path = _write_jsonl(
            tmp_path / "batch.jsonl",
            [{"transcript": "one"}, {"transcript": "two"}, "{not valid json}"],
        )
        assert len(load_transcripts_jsonl(path, limit=2)) == 2

    def test_rejects_non_positive_limit(self, tmp_path: Path):
        with pytest.raises(ValueError, match="limit"):
            load_transcripts_jsonl(tmp_path / "batch.jsonl", limit=0)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(TranscriptDatasetError, match="does not exist"):
            load_transcripts_jsonl(tmp_path / "missing.jsonl")

    def test_invalid_json(self, tmp_path: Path):
        path = _write_jsonl(tmp_path / "broken.jsonl", ["{not valid json}"])
        with pytest.raises(TranscriptDatasetError, match="Invalid JSON"):
            load_transcripts_jsonl(path)

    def test_non_object_line(self, tmp_path: Path):
        path = _write_jsonl(tmp_path / "list.jsonl", ["[]"])
        with pytest.raises(TranscriptDatasetError, match="Expected object"):
            load_transcripts_jsonl(path)

    def test_missing_transcript_field(self, tmp_path: Path):
        path = _write_jsonl(tmp_path / "bad.jsonl", [{"id": "c1", "text": "wrong key"}])
        with pytest.raises(TranscriptDatasetError, match="validation failed"):
            load_transcripts_jsonl(path)

    def test_duplicate_ids(self, tmp_path: Path):
        path = _write_jsonl(
            tmp_path / "dupes.jsonl",
            [{"id": "c1", "transcript": "a"}, {"id": "c1", "transcript": "b"}],
        )
        with pytest.raises(TranscriptDatasetError, match="Duplicate id"):
            load_transcripts_jsonl(path)

    def test_empty_file(self, tmp_path: Path):
        path = _write_jsonl(tmp_path / "empty.jsonl", ["", ""])
        with pytest.raises(TranscriptDatasetError, match="No transcripts"):
            load_transcripts_jsonl(path)
