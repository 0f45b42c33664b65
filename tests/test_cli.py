"""Tests for CLI parser options and command error handling."""

import json

import pytest

from callsight import cli
from callsight.cli import _EtaProgressPrinter, _format_duration, build_parser
from callsight.config import Settings
from callsight.errors import BadRequest
from callsight.pipeline import ConfigurationError


def test_analyze_parser_accepts_text_and_flags():
    args = build_parser().parse_args(
        ["analyze", "--text", "hello there", "--model", "gpt-4o", "--no-store", "--no-related"]
    )
    assert args.command == "analyze"
    assert args.text == "hello there"
    assert args.model == "gpt-4o"
    assert args.no_store is True
    assert args.no_related is True
    assert args.batch is None


def test_analyze_parser_accepts_batch_with_limit_and_output():
    args = build_parser().parse_args(
        ["analyze", "--batch", "calls.jsonl", "--limit", "5", "--output", "out.jsonl"]
    )
    assert args.batch == "calls.jsonl"
    assert args.limit == 5
    assert args.output == "out.jsonl"


def test_analyze_parser_requires_exactly_one_source():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["analyze"])
    with pytest.raises(SystemExit):
        build_parser().parse_args(["analyze", "--text", "a", "--file", "b.txt"])


def test_compare_models_parser_collects_providers():
    args = build_parser().parse_args(
        ["compare-models", "--file", "call.txt", "--provider", "openai", "--provider", "groq"]
    )
    assert args.command == "compare-models"
    assert args.file == "call.txt"
    assert args.provider == ["openai", "groq"]


def test_cluster_intents_parser_defaults_to_config_values():
    args = build_parser().parse_args(["cluster-intents"])
    assert args.threshold is None
    assert args.limit is None

    args = build_parser().parse_args(["cluster-intents", "--threshold", "0.7", "--limit", "200"])
    assert args.threshold == 0.7
    assert args.limit == 200


def test_product_analytics_parser_accepts_filters():
    args = build_parser().parse_args(
        [
            "product-analytics",
            "--product",
            "Air Runner 2",
            "--intent",
            "Return shoes",
            "--success-category",
            "Unsuccessful",
        ]
    )
    assert args.product == "Air Runner 2"
    assert args.intent == "Return shoes"
    assert args.success_category == "Unsuccessful"


def test_log_level_is_case_insensitive():
    args = build_parser().parse_args(["--log-level", "debug", "info"])
    assert args.log_level == "DEBUG"


def test_format_duration():
    assert _format_duration(65) == "01:05"
    assert _format_duration(3725) == "01:02:05"
    assert _format_duration(float("inf")) == "--:--"


def test_eta_progress_printer_skips_duplicates(capsys):
    printer = _EtaProgressPrinter("analyze", min_interval_seconds=0.0)
    printer(1, 10)
    printer(1, 10)
    printer(4, 10)

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 2
    assert "analyze: 1/10 (10%)" in lines[0]
    assert "analyze: 4/10 (40%)" in lines[1]


class _RaisingAnalyzer:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def analyze(self, transcript, model_id=None, *, store=True):
        raise self.exc


def _run_main(monkeypatch, tmp_path, argv):
    monkeypatch.setattr(
        "sys.argv",
        ["callsight", "--config", str(tmp_path / "missing.yaml"), *argv],
    )
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return excinfo.value.code


def test_request_errors_print_json_and_exit_1(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(
        cli,
        "build_analyzer",
        lambda settings, **kwargs: _RaisingAnalyzer(BadRequest("Transcript too short.")),
    )

    code = _run_main(monkeypatch, tmp_path, ["analyze", "--text", "hi"])

    assert code == cli.EXIT_REQUEST_ERROR
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"errorKind": "BadRequest", "message": "Transcript too short.", "details": {}}


def test_configuration_errors_exit_2(monkeypatch, tmp_path, capsys):
    def _missing_key(settings, **kwargs):
        raise ConfigurationError("No API key configured for provider 'openai'.")

    monkeypatch.setattr(cli, "build_analyzer", _missing_key)

    code = _run_main(monkeypatch, tmp_path, ["analyze", "--text", "a long enough call"])

    assert code == cli.EXIT_CONFIG_ERROR
    assert json.loads(capsys.readouterr().out)["errorKind"] == "ConfigurationError"


def test_missing_transcript_file_is_a_bad_request(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(
        cli,
        "build_analyzer",
        lambda settings, **kwargs: _RaisingAnalyzer(AssertionError("not reached")),
    )

    code = _run_main(monkeypatch, tmp_path, ["analyze", "--file", str(tmp_path / "nope.txt")])

    assert code == cli.EXIT_REQUEST_ERROR
    assert json.loads(capsys.readouterr().out)["errorKind"] == "BadRequest"


class _FakeClosableClient:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class _FakeReport:
    def to_dict(self) -> dict:
        return {"totalCalls": 0}


def test_cluster_intents_closes_clients_even_when_clustering_fails(monkeypatch):
    index_client = _FakeClosableClient()
    embedding_client = _FakeClosableClient()
    monkeypatch.setattr(cli, "build_vector_index_client", lambda settings: index_client)
    monkeypatch.setattr(cli, "build_embedding_client", lambda settings: embedding_client)

    def _failing_cluster(*args, **kwargs):
        raise BadRequest("Index is empty.")

    monkeypatch.setattr(cli, "cluster_intents", _failing_cluster)

    with pytest.raises(BadRequest):
        cli.cmd_cluster_intents(Settings(), build_parser().parse_args(["cluster-intents"]))

    assert index_client.closed
    assert embedding_client.closed


def test_product_analytics_closes_index_client(monkeypatch, capsys):
    index_client = _FakeClosableClient()
    monkeypatch.setattr(cli, "build_vector_index_client", lambda settings: index_client)
    monkeypatch.setattr(cli, "product_analytics", lambda *args, **kwargs: _FakeReport())

    cli.cmd_product_analytics(Settings(), build_parser().parse_args(["product-analytics"]))

    assert index_client.closed
    assert json.loads(capsys.readouterr().out) == {"totalCalls": 0}
