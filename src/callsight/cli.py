"""CLI entrypoint for callsight."""

import argparse
import json
import logging
import sys
import time
from contextlib import closing
from pathlib import Path

from pydantic import ValidationError

from callsight import __version__
from callsight.config import ModelRegistry, Settings
from callsight.errors import CallsightError
from callsight.io import (
    TranscriptDatasetError,
    load_transcript_text,
    load_transcripts_jsonl,
    save_json,
    save_jsonl,
)
from callsight.pipeline import (
    ConfigurationError,
    build_analyzer,
    build_embedding_client,
    build_vector_index_client,
    cluster_intents,
    compare_models,
    product_analytics,
)

EXIT_REQUEST_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _format_duration(seconds: float) -> str:
    if seconds < 0 or not (seconds < float("inf")):
        return "--:--"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class _EtaProgressPrinter:
    """Print throttled progress updates with elapsed time and ETA."""

    def __init__(self, label: str, *, min_interval_seconds: float = 2.0) -> None:
        self._label = label
        self._started_at = time.perf_counter()
        self._last_print_at = 0.0
        self._last_done = -1
        self._min_interval_seconds = min_interval_seconds

    def __call__(self, done: int, total: int) -> None:
        capped_total = max(total, 1)
        capped_done = max(0, min(done, capped_total))
        now = time.perf_counter()
        should_print = (
            capped_done == 1
            or capped_done >= capped_total
            or (now - self._last_print_at) >= self._min_interval_seconds
        )
        if not should_print or capped_done == self._last_done:
            return

        elapsed = max(0.0, now - self._started_at)
        eta = float("inf")
        if capped_done > 0 and elapsed > 0:
            eta = (capped_total - capped_done) / (capped_done / elapsed)
        print(
            f"    {self._label}: {capped_done}/{capped_total} "
            f"({capped_done / capped_total:.0%}) "
            f"| elapsed {_format_duration(elapsed)} | ETA {_format_duration(eta)}",
            file=sys.stderr,
        )
        self._last_print_at = now
        self._last_done = capped_done


def _add_transcript_source(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", type=str, help="Transcript text")
    source.add_argument("--file", type=str, help="Path to a plain-text transcript")


def _add_output(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the JSON result to this path instead of stdout.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callsight",
        description="Call transcript analysis and intent clustering",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to YAML config file (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("info", help="Show current configuration")

    analyze_parser = sub.add_parser("analyze", help="Analyze one transcript or a JSONL batch")
    source = analyze_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", type=str, help="Transcript text")
    source.add_argument("--file", type=str, help="Path to a plain-text transcript")
    source.add_argument(
        "--batch",
        type=str,
        help="Path to a JSONL file with one {\"transcript\": ...} object per line",
    )
    analyze_parser.add_argument("--model", type=str, default=None, help="Model id to use")
    analyze_parser.add_argument(
        "--no-store",
        action="store_true",
        help="Do not write analyzed calls to the vector index.",
    )
    analyze_parser.add_argument(
        "--no-related",
        action="store_true",
        help="Skip related-document search against the products index.",
    )
    analyze_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Analyze at most this many batch lines.",
    )
    _add_output(analyze_parser)

    compare_parser = sub.add_parser(
        "compare-models",
        help="Analyze one transcript with every registered model and report consensus",
    )
    _add_transcript_source(compare_parser)
    compare_parser.add_argument(
        "--provider",
        action="append",
        default=None,
        help="Restrict to this provider (repeatable).",
    )
    _add_output(compare_parser)

    cluster_parser = sub.add_parser("cluster-intents", help="Cluster stored call intents")
    cluster_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Cosine similarity threshold in (0, 1) (default: config cluster_threshold)",
    )
    cluster_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum stored calls to scan (default: config cluster_limit)",
    )
    _add_output(cluster_parser)

    products_parser = sub.add_parser(
        "product-analytics",
        help="Aggregate stored calls per mentioned product",
    )
    products_parser.add_argument("--product", type=str, default=None, help="Only this product")
    products_parser.add_argument("--intent", type=str, default=None, help="Filter by intent")
    products_parser.add_argument(
        "--success-category",
        type=str,
        default=None,
        help="Filter by success category",
    )
    products_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum stored calls to scan (default: config product_analytics_limit)",
    )
    _add_output(products_parser)

    return parser


def _print_json(payload: dict | list[dict]) -> None:
    """Pretty-print JSON payload."""

    print(json.dumps(payload, indent=2, ensure_ascii=True))


def _emit(payload: dict | list[dict], output: str | None) -> None:
    if output:
        path = save_json(output, payload)
        print(f"Wrote {path}")
        return
    _print_json(payload)


def _read_transcript(args: argparse.Namespace) -> str:
    if args.file:
        return load_transcript_text(args.file)
    return args.text


def cmd_info(settings: Settings) -> None:
    registry = ModelRegistry.from_settings(settings)

    print(f"callsight v{__version__}")
    print(f"  Default model:    {registry.default_model_id}")
    for provider in registry.providers():
        model_ids = ", ".join(spec.model_id for spec in registry.models_for([provider]))
        print(f"  Provider {provider}: {model_ids}")
    print(f"  OpenAI base URL:  {settings.resolved_base_url('openai') or '(default OpenAI)'}")
    print(f"  OpenAI key set:   {bool(settings.openai_api_key.strip())}")
    print(f"  OpenAI temp:      {settings.openai_temperature}")
    print(f"  Client retries:   {settings.client_max_retries}")
    print(f"  Backoff seconds:  {settings.client_backoff_seconds}")
    print(f"  Analysis concurrency: {settings.analysis_max_concurrency}")
    print(f"  Embedding provider: {settings.embedding_provider}")
    print(f"  Embedding model:  {settings.embedding_model}")
    print(f"  Vector index URL: {settings.vector_index_control_url}")
    print(f"  Vector key set:   {bool(settings.vector_index_api_key.strip())}")
    print(f"  Calls index:      {settings.calls_index_name}")
    print(f"  Calls namespace:  {settings.calls_namespace or '(default)'}")
    print(f"  Products index:   {settings.products_index_name or '(disabled)'}")
    print(f"  Related top-k:    {settings.related_top_k}")
    print(f"  Cluster threshold: {settings.cluster_threshold}")
    print(f"  Cluster limit:    {settings.cluster_limit}")
    print(f"  Cluster timeout:  {settings.cluster_timeout_seconds}s")
    print(f"  Cluster max intents: {settings.cluster_max_intents}")
    print(f"  Output dir:       {settings.output_dir}")


def cmd_analyze(settings: Settings, args: argparse.Namespace) -> None:
    with build_analyzer(
        settings,
        with_storage=not args.no_store,
        with_related_search=not args.no_related,
    ) as analyzer:
        if not args.batch:
            record = analyzer.analyze(_read_transcript(args), args.model, store=not args.no_store)
            _emit(record.to_payload(), args.output)
            return

        items = load_transcripts_jsonl(args.batch, limit=args.limit)
        print(f"Analyzing {len(items)} transcripts...", file=sys.stderr)
        rows = analyzer.analyze_many(
            [item.transcript for item in items],
            args.model,
            store=not args.no_store,
            progress_callback=_EtaProgressPrinter("analyze"),
        )
    for item, row in zip(items, rows, strict=True):
        if item.id is not None:
            row["id"] = item.id

    failed = sum(1 for row in rows if not row["ok"])
    if args.output:
        path = save_jsonl(args.output, rows)
        print(f"Wrote {len(rows)} rows to {path} ({failed} failed).")
    else:
        for row in rows:
            print(json.dumps(row, ensure_ascii=True))
    if failed:
        sys.exit(EXIT_REQUEST_ERROR)


def cmd_compare_models(settings: Settings, args: argparse.Namespace) -> None:
    transcript = _read_transcript(args)
    with build_analyzer(settings, with_storage=False) as analyzer:
        report = compare_models(
            analyzer,
            transcript,
            providers=args.provider,
            max_concurrency=settings.analysis_max_concurrency,
        )
    _emit(report.to_dict(), args.output)


def cmd_cluster_intents(settings: Settings, args: argparse.Namespace) -> None:
    threshold = args.threshold if args.threshold is not None else settings.cluster_threshold
    with (
        closing(build_vector_index_client(settings)) as index_client,
        closing(build_embedding_client(settings)) as embedding_client,
    ):
        report = cluster_intents(
            index_client,
            embedding_client,
            index_name=settings.calls_index_name,
            namespace=settings.namespace_or_none(settings.calls_namespace),
            threshold=threshold,
            limit=args.limit if args.limit is not None else settings.cluster_limit,
            timeout_seconds=settings.cluster_timeout_seconds,
            max_intents=settings.cluster_max_intents,
        )
    _emit(report.to_dict(), args.output)


def cmd_product_analytics(settings: Settings, args: argparse.Namespace) -> None:
    limit = args.limit if args.limit is not None else settings.product_analytics_limit
    with closing(build_vector_index_client(settings)) as index_client:
        report = product_analytics(
            index_client,
            index_name=settings.calls_index_name,
            namespace=settings.namespace_or_none(settings.calls_namespace),
            limit=limit,
            product=args.product,
            intent=args.intent,
            success_category=args.success_category,
        )
    _emit(report.to_dict(), args.output)


def _fail(payload: dict, exit_code: int) -> None:
    _print_json(payload)
    sys.exit(exit_code)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_yaml(Path(args.config))
    except (ValidationError, OSError, ValueError) as exc:
        _fail(
            {"errorKind": "ConfigurationError", "message": str(exc), "details": {}},
            EXIT_CONFIG_ERROR,
        )

    commands = {
        "analyze": cmd_analyze,
        "compare-models": cmd_compare_models,
        "cluster-intents": cmd_cluster_intents,
        "product-analytics": cmd_product_analytics,
    }
    if args.command == "info":
        cmd_info(settings)
        return
    if args.command not in commands:
        parser.print_help()
        sys.exit(0)

    try:
        commands[args.command](settings, args)
    except ConfigurationError as exc:
        _fail(
            {"errorKind": "ConfigurationError", "message": str(exc), "details": {}},
            EXIT_CONFIG_ERROR,
        )
    except CallsightError as exc:
        _fail(exc.to_dict(), EXIT_REQUEST_ERROR)
    except TranscriptDatasetError as exc:
        _fail(
            {"errorKind": "BadRequest", "message": str(exc), "details": {}},
            EXIT_REQUEST_ERROR,
        )


if __name__ == "__main__":
    main()
