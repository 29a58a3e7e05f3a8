"""
Command-line interface for preparing training datasets from support exports.

Usage:
    dataprep process --input <file> --config <pipeline.yaml> [options]
    dataprep scan --input <file> --columns body subject
    dataprep test-pattern --input <file> --columns body --pattern "TCK-\\d+" --replacement "[TICKET]"
    dataprep filter-summary --input <file> --config <pipeline.yaml>
    dataprep preview --input <file> --config <pipeline.yaml> --output-format qa_pairs_jsonl
    dataprep suggest --input <file>
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from dataprep.core.config import PipelineConfigLoader, validate_pipeline_config
from dataprep.core.errors import NotFoundError, PipelineError
from dataprep.core.filters import get_filter_summary
from dataprep.core.mapping import suggest_mappings
from dataprep.core.models import DataSource, OutputFormat, PipelineConfig, RunStatus
from dataprep.core.pii import scan_for_pii, test_custom_pattern
from dataprep.ingest import FileReader, ParsedSource
from dataprep.ingest.readers import SUPPORTED_FORMATS
from dataprep.observability.logger import get_logger
from dataprep.observability.metrics import start_metrics_server
from dataprep.processing import ProcessingOrchestrator, preview_output, run_to_completion
from dataprep.storage.base import PipelineStore
from dataprep.storage.memory import InMemoryPipelineStore
from dataprep.storage.postgres import PostgresPipelineStore

logger = get_logger(__name__)

FORMAT_CHOICES = [fmt.value for fmt in OutputFormat]


def _read_input(args) -> ParsedSource:
    return FileReader(delimiter=args.delimiter).read(args.input, args.format)


def _load_config(path: str | None, columns: list[str]) -> PipelineConfig:
    if not path:
        return PipelineConfig()
    config = PipelineConfigLoader(path).load()
    validate_pipeline_config(config, columns)
    return config


def _emit(payload: Any, output: str | None = None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logger.info(f"Report written to {output}")
    else:
        print(text)


def _open_store(kind: str) -> PipelineStore:
    if kind == "postgres":
        return PostgresPipelineStore.from_env()
    return InMemoryPipelineStore()


def _register_source(store: PipelineStore, source_id: str, name: str, parsed: ParsedSource) -> None:
    # A persistent store may already hold the source from an earlier invocation
    try:
        store.get_source(source_id)
    except NotFoundError:
        store.add_source(DataSource(source_id=source_id, name=name, columns=parsed.columns), parsed.records)
    else:
        store.replace_records(source_id, parsed.records, parsed.columns)


def process_command(args) -> int:
    """
    Run the full pipeline over a file and write the artifact.

    Args:
        args: Command-line arguments

    Returns:
        Exit code
    """
    logger.info(f"Starting processing for source: {args.source}")
    logger.info(f"Input file: {args.input}")

    parsed = _read_input(args)
    config = _load_config(args.config, parsed.columns)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    store = _open_store(args.store)
    try:
        _register_source(store, args.source, Path(args.input).name, parsed)
        store.save_config(args.source, config)

        with ProcessingOrchestrator(store, max_workers=1, batch_size=args.batch_size) as orchestrator:
            run = run_to_completion(orchestrator, args.source, args.output_format, started_by=args.actor)

        if run.status != RunStatus.COMPLETED:
            logger.error(f"Processing {run.status.value}: {run.error_message or 'no output produced'}")
            return 1

        artifact = store.get_artifact_for_run(run.run_id)
    finally:
        store.close()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / artifact.filename

    if args.dry_run:
        logger.info("DRY RUN: artifact was not written to disk")
    else:
        output_path.write_bytes(artifact.content)

    logger.info("=" * 60)
    logger.info("PROCESSING COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Source rows: {parsed.row_count}")
    logger.info(f"Records after filtering: {run.total_count}")
    logger.info(f"Records processed: {run.processed_count}")
    logger.info(f"Output units ({artifact.format.value}): {artifact.record_count}")
    logger.info(f"Output size: {artifact.file_size} bytes")
    if not args.dry_run:
        logger.info(f"Output file: {output_path}")
    logger.info("=" * 60)
    return 0


def scan_command(args) -> int:
    """Report PII found in the given columns."""
    parsed = _read_input(args)
    config = _load_config(args.config, parsed.columns)
    columns = args.columns or config.deidentification.columns_to_scan or parsed.columns
    result = scan_for_pii(parsed.records, columns, config.deidentification.rules)
    _emit(result.model_dump(mode="json"), args.output)
    return 0


def test_pattern_command(args) -> int:
    """Dry-run a custom pattern; exits non-zero when the pattern is invalid."""
    parsed = _read_input(args)
    columns = args.columns or parsed.columns
    result = test_custom_pattern(parsed.records, columns, args.pattern, args.replacement, sample_limit=args.sample_limit)
    _emit(result.model_dump(mode="json"), args.output)
    return 0 if result.valid else 2


def filter_summary_command(args) -> int:
    """Report how many records each filter rule would remove."""
    parsed = _read_input(args)
    config = _load_config(args.config, parsed.columns)
    summary = get_filter_summary(parsed.records, config.filters)
    _emit(summary.model_dump(by_alias=True, mode="json"), args.output)
    return 0


def preview_command(args) -> int:
    """Show the first output units the configuration would produce."""
    parsed = _read_input(args)
    config = _load_config(args.config, parsed.columns)
    preview = preview_output(parsed.records, config, args.output_format, limit=args.limit)
    _emit(preview.model_dump(mode="json"), args.output)
    return 0


def suggest_command(args) -> int:
    """Suggest target fields for the file's columns."""
    parsed = _read_input(args)
    _emit([s.model_dump(by_alias=True) for s in suggest_mappings(parsed.columns)], args.output)
    return 0


COMMANDS = {
    "process": process_command,
    "scan": scan_command,
    "test-pattern": test_pattern_command,
    "filter-summary": filter_summary_command,
    "preview": preview_command,
    "suggest": suggest_command,
}


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--input",
        required=True,
        help="Path to input file"
    )
    parser.add_argument(
        "--format",
        default=None,
        choices=list(SUPPORTED_FORMATS),
        help="Input file format (default: file extension)"
    )
    parser.add_argument(
        "--delimiter",
        default=",",
        help="CSV field delimiter (default: ,)"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the JSON report to this file instead of stdout"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataprep",
        description="Prepare de-identified training datasets from customer-support exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Produce conversational JSONL from a CSV export
  dataprep process --input data/tickets.csv --config config/pipeline.yaml \\
      --output-format conversational_jsonl --output-dir out/

  # Find PII in two columns
  dataprep scan --input data/tickets.csv --columns subject body

  # Try a custom pattern before adding it as a rule
  dataprep test-pattern --input data/tickets.csv --columns body \\
      --pattern "TCK-[0-9]{6}" --replacement "[TICKET]"

  # See what the quality filter would remove
  dataprep filter-summary --input data/tickets.csv --config config/pipeline.yaml
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Process command
    process_parser = subparsers.add_parser("process", help="Run the pipeline and write an output file")
    _add_input_arguments(process_parser)
    process_parser.add_argument(
        "--config",
        default=None,
        help="Path to pipeline configuration YAML file"
    )
    process_parser.add_argument(
        "--source",
        default="cli",
        help="Source ID recorded on the run (default: cli)"
    )
    process_parser.add_argument(
        "--output-format",
        default=OutputFormat.CONVERSATIONAL_JSONL.value,
        choices=FORMAT_CHOICES,
        help="Output format (default: conversational_jsonl)"
    )
    process_parser.add_argument(
        "--output-dir",
        default="output",
        help="Directory for the output file (default: output)"
    )
    process_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Records per progress update (default: env PROCESSING_BATCH_SIZE or 100)"
    )
    process_parser.add_argument(
        "--actor",
        default=None,
        help="Who started the run, recorded in the audit trail"
    )
    process_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while processing"
    )
    process_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Process without writing the output file"
    )
    process_parser.add_argument(
        "--store",
        default="memory",
        choices=["memory", "postgres"],
        help="Where sources, runs and artifacts are kept; postgres reads DB_* env vars (default: memory)"
    )

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="Report PII in a file")
    _add_input_arguments(scan_parser)
    scan_parser.add_argument(
        "--columns",
        nargs="+",
        default=None,
        help="Columns to scan (default: columnsToScan from --config, else all columns)"
    )
    scan_parser.add_argument(
        "--config",
        default=None,
        help="Pipeline configuration whose enabled custom rules are included"
    )

    # Test-pattern command
    pattern_parser = subparsers.add_parser("test-pattern", help="Dry-run a custom de-identification pattern")
    _add_input_arguments(pattern_parser)
    pattern_parser.add_argument(
        "--pattern",
        required=True,
        help="Regular expression to test"
    )
    pattern_parser.add_argument(
        "--replacement",
        default="[REDACTED]",
        help="Replacement text (default: [REDACTED])"
    )
    pattern_parser.add_argument(
        "--columns",
        nargs="+",
        default=None,
        help="Columns to test against (default: all columns)"
    )
    pattern_parser.add_argument(
        "--sample-limit",
        type=int,
        default=1000,
        help="Rows to test against (default: 1000)"
    )

    # Filter-summary command
    filter_parser = subparsers.add_parser("filter-summary", help="Report per-rule filter exclusions")
    _add_input_arguments(filter_parser)
    filter_parser.add_argument(
        "--config",
        required=True,
        help="Path to pipeline configuration YAML file"
    )

    # Preview command
    preview_parser = subparsers.add_parser("preview", help="Preview output on a sample")
    _add_input_arguments(preview_parser)
    preview_parser.add_argument(
        "--config",
        default=None,
        help="Path to pipeline configuration YAML file"
    )
    preview_parser.add_argument(
        "--output-format",
        default=OutputFormat.CONVERSATIONAL_JSONL.value,
        choices=FORMAT_CHOICES,
        help="Output format (default: conversational_jsonl)"
    )
    preview_parser.add_argument(
        "--limit",
        type=int,
        default=5,
        help="Records to preview (default: 5)"
    )

    # Suggest command
    suggest_parser = subparsers.add_parser("suggest", help="Suggest field mappings for a file's columns")
    _add_input_arguments(suggest_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except PipelineError as e:
        logger.error(f"{e.message}" + (f" ({e.details})" if e.details else ""))
        return 1
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
