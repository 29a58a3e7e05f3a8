"""
Prometheus metrics collection for dataset-prep-pipeline

Instruments processing runs, filter exclusions and PII replacements so a
deployment can watch throughput and data-quality drift.
"""
import os
from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# RUN METRICS
# =======================

runs_started_total = Counter(
    name="dataprep_runs_started_total",
    documentation="Total number of processing runs started",
    labelnames=["output_format"],
    registry=REGISTRY,
)

runs_finished_total = Counter(
    name="dataprep_runs_finished_total",
    documentation="Total number of processing runs that reached a terminal state",
    labelnames=["output_format", "status"],  # status: completed, failed, cancelled
    registry=REGISTRY,
)

active_runs = Gauge(
    name="dataprep_active_runs",
    documentation="Number of runs currently executing in this process",
    registry=REGISTRY,
)

run_duration_seconds = Histogram(
    name="dataprep_run_duration_seconds",
    documentation="Wall-clock duration of processing runs in seconds",
    labelnames=["output_format", "status"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

records_processed_total = Counter(
    name="dataprep_records_processed_total",
    documentation="Total number of records mapped and de-identified",
    registry=REGISTRY,
)

# =======================
# DATA QUALITY METRICS
# =======================

records_excluded_total = Counter(
    name="dataprep_records_excluded_total",
    documentation="Records removed by each quality filter rule",
    labelnames=["rule"],
    registry=REGISTRY,
)

pii_replacements_total = Counter(
    name="dataprep_pii_replacements_total",
    documentation="PII spans replaced during de-identification",
    labelnames=["entity_type"],
    registry=REGISTRY,
)

custom_patterns_skipped_total = Counter(
    name="dataprep_custom_patterns_skipped_total",
    documentation="Custom de-identification rules skipped because their pattern failed to compile",
    registry=REGISTRY,
)

# =======================
# OUTPUT METRICS
# =======================

artifact_size_bytes = Histogram(
    name="dataprep_artifact_size_bytes",
    documentation="Size of produced output artifacts in bytes",
    labelnames=["output_format"],
    buckets=[1_000, 10_000, 100_000, 1_000_000, 10_000_000, 100_000_000],
    registry=REGISTRY,
)

artifact_units_total = Counter(
    name="dataprep_artifact_units_total",
    documentation="Emitted output units (conversations, QA pairs or records)",
    labelnames=["output_format"],
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

errors_total = Counter(
    name="dataprep_errors_total",
    documentation="Total number of errors",
    labelnames=["error_type", "component"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for the Prometheus exposition format"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: the HTTP server is only needed when the endpoint is enabled
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """Observe a value in a histogram metric"""
    histogram.labels(**labels).observe(value)


# =======================
# PIPELINE HELPERS
# =======================

def record_filter_breakdown(by_rule: dict[str, int]) -> None:
    """
    Record how many records each filter rule excluded.

    Args:
        by_rule: Rule name to excluded count, as reported by the quality filter
    """
    for rule, excluded in by_rule.items():
        if excluded > 0:
            increment_counter(records_excluded_total, excluded, rule=rule)


def record_pii_replacements(counts: dict[str, int]) -> None:
    """Count replaced PII spans by entity type."""
    for entity_type, count in counts.items():
        if count > 0:
            increment_counter(pii_replacements_total, count, entity_type=entity_type)


def record_run_finished(
    output_format: str,
    status: str,
    duration_seconds: float,
    artifact_size: int | None = None,
    record_count: int | None = None,
) -> None:
    """
    Record the terminal state of a processing run.

    Args:
        output_format: Output format of the run
        status: Terminal status (completed, failed, cancelled)
        duration_seconds: Run duration in seconds
        artifact_size: Size of the produced artifact in bytes (completed runs)
        record_count: Units emitted into the artifact (completed runs)
    """
    increment_counter(runs_finished_total, 1, output_format=output_format, status=status)
    observe_histogram(run_duration_seconds, duration_seconds, output_format=output_format, status=status)

    if artifact_size is not None:
        observe_histogram(artifact_size_bytes, artifact_size, output_format=output_format)
    if record_count:
        increment_counter(artifact_units_total, record_count, output_format=output_format)
