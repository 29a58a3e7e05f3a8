"""
Processing orchestrator.

Starts runs against a PipelineStore, executes them on a thread pool and
drives the run state machine:

    pending -> processing -> completed | failed | cancelled

At most one run per source is non-terminal at any time; the store enforces
this when the run is created. A run that does not complete leaves no
artifact behind.
"""

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Any

from dataprep.core.errors import BadRequestError
from dataprep.core.models import (
    ACTIVE_RUN_STATUSES,
    AuditEvent,
    OutputArtifact,
    OutputFormat,
    ProcessingRun,
    RunStatus,
)
from dataprep.core.output import build_filename, preview_artifact
from dataprep.core.output.formatter import resolve_format
from dataprep.observability.logger import get_logger, log_operation
from dataprep.observability.metrics import (
    active_runs,
    errors_total,
    increment_counter,
    record_filter_breakdown,
    record_pii_replacements,
    record_run_finished,
    records_processed_total,
    runs_started_total,
)
from dataprep.storage.base import PipelineStore

from .cancellation import CancellationToken, RunCancelled
from .pipeline import OutputPreview, TransformPipeline, default_batch_size, preview_output

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 4


class ProcessingOrchestrator:
    """
    Runs the transformation pipeline for sources held in a store.

    Attributes:
        store: Persistence for sources, configuration, runs, artifacts and audit events
        batch_size: Records per progress update and cancellation check
    """

    def __init__(
        self,
        store: PipelineStore,
        max_workers: int | None = None,
        batch_size: int | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Pipeline store
            max_workers: Concurrent runs (defaults to env var PROCESSING_MAX_WORKERS)
            batch_size: Progress/cancellation granularity (defaults to env var PROCESSING_BATCH_SIZE)
        """
        self.store = store
        self.batch_size = batch_size or default_batch_size()
        workers = max_workers or int(os.getenv("PROCESSING_MAX_WORKERS", str(DEFAULT_MAX_WORKERS)))
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dataprep-run")
        self._lock = threading.Lock()
        self._tokens: dict[int, CancellationToken] = {}
        self._futures: dict[int, Future] = {}

    # =======================
    # RUN LIFECYCLE
    # =======================

    def start_run(
        self,
        source_id: str,
        output_format: OutputFormat | str,
        started_by: str | None = None,
    ) -> ProcessingRun:
        """
        Start processing a source in the background.

        The live configuration is snapshotted into the run, so later edits do
        not affect it.

        Args:
            source_id: Source to process
            output_format: Requested output encoding
            started_by: Actor recorded on the run and in the audit trail

        Returns:
            The run, already in processing status

        Raises:
            NotFoundError: If the source does not exist
            BadRequestError: If the format is unsupported or the source is not ready
            ConflictError: If the source already has an active run
        """
        fmt = resolve_format(output_format)
        source = self.store.get_source(source_id)
        if source.status != "ready":
            raise BadRequestError("Source is not ready for processing", details=f"status={source.status}")

        snapshot = self.store.get_config(source_id).snapshot()
        run = self.store.create_run(
            ProcessingRun(
                source_id=source_id,
                output_format=fmt,
                config_snapshot=snapshot,
                started_by=started_by,
            )
        )

        token = CancellationToken()
        with self._lock:
            self._tokens[run.run_id] = token

        self._audit(run, "processing_started", actor=started_by, output_format=fmt.value)
        increment_counter(runs_started_total, 1, output_format=fmt.value)

        processing = self.store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.PROCESSING)
        if processing is None:
            # Cancelled between creation and hand-off
            with self._lock:
                self._tokens.pop(run.run_id, None)
            return self.store.get_run(run.run_id)

        logger.info(
            "Processing run started",
            extra={"run_id": run.run_id, "source_id": source_id, "output_format": fmt.value},
        )

        future = self._executor.submit(self._execute, processing, token)
        with self._lock:
            self._futures[run.run_id] = future
        future.add_done_callback(lambda _: self._forget(run.run_id))
        return processing

    def cancel_run(self, run_id: int, actor: str | None = None) -> ProcessingRun:
        """
        Cancel a pending or processing run.

        The background task stops at its next batch boundary and produces no artifact.

        Raises:
            NotFoundError: If the run does not exist
            BadRequestError: If the run is already terminal
        """
        cancelled = self.store.transition_run(
            run_id,
            ACTIVE_RUN_STATUSES,
            RunStatus.CANCELLED,
            completed_at=datetime.now(timezone.utc),
        )
        if cancelled is None:
            raise BadRequestError("Cannot cancel a run that is not in progress", details=f"run_id={run_id}")

        with self._lock:
            token = self._tokens.get(run_id)
        if token:
            token.cancel()

        self._audit(cancelled, "processing_cancelled", actor=actor)
        record_run_finished(
            cancelled.output_format.value,
            RunStatus.CANCELLED.value,
            self._elapsed(cancelled),
        )
        logger.info("Processing run cancelled", extra={"run_id": run_id, "source_id": cancelled.source_id})
        return cancelled

    def get_run(self, run_id: int) -> ProcessingRun:
        return self.store.get_run(run_id)

    def list_runs(self, source_id: str) -> list[ProcessingRun]:
        self.store.get_source(source_id)
        return self.store.list_runs(source_id)

    def wait_for_run(self, run_id: int, timeout: float | None = None) -> ProcessingRun:
        """
        Block until the run's background task finishes, then return the run.

        Raises:
            TimeoutError: If the task is still running after `timeout` seconds
        """
        with self._lock:
            future = self._futures.get(run_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError as e:
                raise TimeoutError(f"Run {run_id} did not finish within {timeout} seconds") from e
            self._forget(run_id)
        return self.store.get_run(run_id)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel active runs when not waiting, then stop the worker pool."""
        if not wait:
            with self._lock:
                tokens = list(self._tokens.values())
            for token in tokens:
                token.cancel()
        self._executor.shutdown(wait=wait)

    # =======================
    # EXECUTION
    # =======================

    def _forget(self, run_id: int) -> None:
        with self._lock:
            self._futures.pop(run_id, None)

    def _execute(self, run: ProcessingRun, token: CancellationToken) -> None:
        run_id = run.run_id
        fmt = run.output_format
        active_runs.inc()
        try:
            with log_operation("Processing run", logger=logger, run_id=run_id, source_id=run.source_id):
                self._process(run, token)
        except RunCancelled:
            logger.info("Processing run stopped after cancellation", extra={"run_id": run_id})
        except Exception as e:
            self._fail(run, e)
        finally:
            active_runs.dec()
            with self._lock:
                self._tokens.pop(run_id, None)
            logger.debug(f"Run {run_id} ({fmt.value}) released")

    def _process(self, run: ProcessingRun, token: CancellationToken) -> None:
        records = self.store.get_records(run.source_id)
        pipeline = TransformPipeline(run.config_snapshot, batch_size=self.batch_size)

        def on_filtered(total: int) -> None:
            self.store.update_progress(run.run_id, 0, total_count=total)

        def on_progress(processed: int, total: int) -> None:
            self.store.update_progress(run.run_id, processed)

        result = pipeline.run(
            records,
            run.output_format,
            token=token,
            on_filtered=on_filtered,
            on_progress=on_progress,
        )

        record_filter_breakdown(result.filter_summary.filter_breakdown.by_rule)
        record_pii_replacements(result.replacement_counts)
        increment_counter(records_processed_total, result.processed_count)

        created_at = datetime.now(timezone.utc)
        artifact = OutputArtifact(
            run_id=run.run_id,
            source_id=run.source_id,
            filename=build_filename(run.run_id, run.output_format, created_at),
            format=run.output_format,
            record_count=result.output.record_count,
            content=result.output.content,
            created_at=created_at,
        )

        stored = self.store.complete_run(run.run_id, artifact, result.processed_count)
        if stored is None:
            raise RunCancelled()

        completed = self.store.get_run(run.run_id)
        self._audit(
            completed,
            "processing_completed",
            actor=run.started_by,
            record_count=stored.record_count,
            output_format=run.output_format.value,
            filename=stored.filename,
        )
        record_run_finished(
            run.output_format.value,
            RunStatus.COMPLETED.value,
            self._elapsed(completed),
            artifact_size=stored.file_size,
            record_count=stored.record_count,
        )
        logger.info(
            "Processing run completed",
            extra={
                "run_id": run.run_id,
                "source_id": run.source_id,
                "processed_count": result.processed_count,
                "record_count": stored.record_count,
                "file_size": stored.file_size,
            },
        )

    def _fail(self, run: ProcessingRun, error: Exception) -> None:
        message = str(error) or error.__class__.__name__
        failed = self.store.transition_run(
            run.run_id,
            ACTIVE_RUN_STATUSES,
            RunStatus.FAILED,
            error_message=message,
            completed_at=datetime.now(timezone.utc),
        )
        increment_counter(errors_total, 1, error_type=error.__class__.__name__, component="orchestrator")
        logger.error(
            f"Processing run failed: {message}",
            extra={"run_id": run.run_id, "source_id": run.source_id},
            exc_info=True,
        )
        if failed is None:
            return

        self._audit(failed, "processing_failed", actor=run.started_by, error=message)
        record_run_finished(run.output_format.value, RunStatus.FAILED.value, self._elapsed(failed))

    # =======================
    # ARTIFACTS AND PREVIEWS
    # =======================

    def get_artifact(self, artifact_id: int) -> OutputArtifact:
        return self.store.get_artifact(artifact_id)

    def list_artifacts(self, source_id: str) -> list[OutputArtifact]:
        self.store.get_source(source_id)
        return self.store.list_artifacts(source_id)

    def delete_artifact(self, artifact_id: int, actor: str | None = None) -> OutputArtifact:
        """Delete an artifact independently of its run and audit the deletion."""
        artifact = self.store.delete_artifact(artifact_id)
        self.store.record_event(
            AuditEvent(
                source_id=artifact.source_id,
                action="output_deleted",
                run_id=artifact.run_id,
                actor=actor,
                details={"artifact_id": artifact_id, "filename": artifact.filename},
            )
        )
        return artifact

    def preview_artifact(self, artifact_id: int, limit: int = 10) -> list[Any]:
        return preview_artifact(self.store.get_artifact(artifact_id), limit)

    def preview_output(self, source_id: str, output_format: OutputFormat | str, limit: int = 5) -> OutputPreview:
        """Preview the live configuration's output on the first 2 * limit rows of a source."""
        config = self.store.get_config(source_id)
        records = self.store.get_records(source_id, limit=limit * 2)
        return preview_output(records, config, output_format, limit)

    # =======================
    # HELPERS
    # =======================

    def _audit(self, run: ProcessingRun, action: str, actor: str | None = None, **details: Any) -> None:
        self.store.record_event(
            AuditEvent(
                source_id=run.source_id,
                action=action,
                run_id=run.run_id,
                actor=actor,
                details={"run_id": run.run_id, **details},
            )
        )

    @staticmethod
    def _elapsed(run: ProcessingRun) -> float:
        end = run.completed_at or datetime.now(timezone.utc)
        started = run.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return max((end - started).total_seconds(), 0.0)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False


def run_to_completion(
    orchestrator: ProcessingOrchestrator,
    source_id: str,
    output_format: OutputFormat | str,
    started_by: str | None = None,
    timeout: float | None = None,
) -> ProcessingRun:
    """Start a run and block until it reaches a terminal state."""
    started = time.monotonic()
    run = orchestrator.start_run(source_id, output_format, started_by=started_by)
    finished = orchestrator.wait_for_run(run.run_id, timeout=timeout)
    logger.debug(f"Run {run.run_id} finished in {time.monotonic() - started:.3f}s with status {finished.status.value}")
    return finished
