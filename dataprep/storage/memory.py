"""
Thread-safe in-memory pipeline store.

Used by the CLI and tests. A single re-entrant lock serializes every
operation, which makes run creation and state transitions atomic.
"""

import itertools
import threading
from collections.abc import Collection, Sequence
from datetime import datetime, timezone
from typing import Any

from dataprep.core.errors import ConflictError, NotFoundError
from dataprep.core.models import (
    ACTIVE_RUN_STATUSES,
    AuditEvent,
    DataSource,
    OutputArtifact,
    PipelineConfig,
    ProcessingRun,
    RunStatus,
    SourceRecord,
)

from .base import PipelineStore


class InMemoryPipelineStore(PipelineStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._sources: dict[str, DataSource] = {}
        self._records: dict[str, list[SourceRecord]] = {}
        self._configs: dict[str, PipelineConfig] = {}
        self._runs: dict[int, ProcessingRun] = {}
        self._artifacts: dict[int, OutputArtifact] = {}
        self._events: list[AuditEvent] = []
        self._run_ids = itertools.count(1)
        self._artifact_ids = itertools.count(1)
        self._event_ids = itertools.count(1)

    def _has_active_run(self, source_id: str) -> bool:
        return any(run.source_id == source_id and run.status in ACTIVE_RUN_STATUSES for run in self._runs.values())

    def _require_source(self, source_id: str) -> DataSource:
        source = self._sources.get(source_id)
        if source is None:
            raise NotFoundError("Source", details=f"source_id={source_id}")
        return source

    # Sources

    def add_source(self, source: DataSource, records: Sequence[SourceRecord]) -> DataSource:
        with self._lock:
            if source.source_id in self._sources:
                raise ConflictError(f"Source '{source.source_id}' already exists")
            ordered = sorted(records, key=lambda r: r.row_index)
            stored = source.model_copy(update={"row_count": len(ordered)})
            self._sources[source.source_id] = stored
            self._records[source.source_id] = ordered
            return stored

    def get_source(self, source_id: str) -> DataSource:
        with self._lock:
            return self._require_source(source_id)

    def list_sources(self) -> list[DataSource]:
        with self._lock:
            return list(self._sources.values())

    def replace_records(self, source_id: str, records: Sequence[SourceRecord], columns: Sequence[str]) -> DataSource:
        with self._lock:
            source = self._require_source(source_id)
            if self._has_active_run(source_id):
                raise ConflictError("Cannot replace source data while processing is in progress")
            ordered = sorted(records, key=lambda r: r.row_index)
            updated = source.model_copy(update={"row_count": len(ordered), "columns": list(columns)})
            self._sources[source_id] = updated
            self._records[source_id] = ordered
            return updated

    def get_records(self, source_id: str, limit: int | None = None) -> list[SourceRecord]:
        with self._lock:
            self._require_source(source_id)
            records = self._records.get(source_id, [])
            return list(records if limit is None else records[:limit])

    # Configuration

    def save_config(self, source_id: str, config: PipelineConfig) -> None:
        with self._lock:
            self._require_source(source_id)
            self._configs[source_id] = config.model_copy(deep=True)

    def get_config(self, source_id: str) -> PipelineConfig:
        with self._lock:
            self._require_source(source_id)
            config = self._configs.get(source_id)
            return config.model_copy(deep=True) if config else PipelineConfig()

    # Runs

    def create_run(self, run: ProcessingRun) -> ProcessingRun:
        with self._lock:
            self._require_source(run.source_id)
            if self._has_active_run(run.source_id):
                raise ConflictError("Processing is already in progress")
            stored = run.model_copy(update={"run_id": next(self._run_ids)})
            self._runs[stored.run_id] = stored
            return stored

    def get_run(self, run_id: int) -> ProcessingRun:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise NotFoundError("Processing run", details=f"run_id={run_id}")
            return run

    def list_runs(self, source_id: str) -> list[ProcessingRun]:
        with self._lock:
            runs = [run for run in self._runs.values() if run.source_id == source_id]
            return sorted(runs, key=lambda r: (r.started_at, r.run_id), reverse=True)

    def transition_run(
        self,
        run_id: int,
        expected: Collection[RunStatus],
        new_status: RunStatus,
        **fields: Any,
    ) -> ProcessingRun | None:
        with self._lock:
            run = self.get_run(run_id)
            if run.status not in expected:
                return None
            updated = run.model_copy(update={"status": new_status, **fields})
            self._runs[run_id] = updated
            return updated

    def update_progress(self, run_id: int, processed_count: int, total_count: int | None = None) -> None:
        with self._lock:
            run = self.get_run(run_id)
            if run.status not in ACTIVE_RUN_STATUSES:
                return
            update: dict[str, Any] = {"processed_count": max(run.processed_count, processed_count)}
            if total_count is not None:
                update["total_count"] = total_count
            self._runs[run_id] = run.model_copy(update=update)

    def complete_run(self, run_id: int, artifact: OutputArtifact, processed_count: int) -> OutputArtifact | None:
        with self._lock:
            completed = self.transition_run(
                run_id,
                {RunStatus.PROCESSING},
                RunStatus.COMPLETED,
                processed_count=processed_count,
                completed_at=datetime.now(timezone.utc),
            )
            if completed is None:
                return None
            stored = artifact.model_copy(update={"artifact_id": next(self._artifact_ids)})
            self._artifacts[stored.artifact_id] = stored
            return stored

    # Artifacts

    def get_artifact(self, artifact_id: int) -> OutputArtifact:
        with self._lock:
            artifact = self._artifacts.get(artifact_id)
            if artifact is None:
                raise NotFoundError("Output", details=f"artifact_id={artifact_id}")
            return artifact

    def get_artifact_for_run(self, run_id: int) -> OutputArtifact | None:
        with self._lock:
            return next((a for a in self._artifacts.values() if a.run_id == run_id), None)

    def list_artifacts(self, source_id: str) -> list[OutputArtifact]:
        with self._lock:
            artifacts = [a for a in self._artifacts.values() if a.source_id == source_id]
            return sorted(artifacts, key=lambda a: (a.created_at, a.artifact_id), reverse=True)

    def delete_artifact(self, artifact_id: int) -> OutputArtifact:
        with self._lock:
            artifact = self.get_artifact(artifact_id)
            del self._artifacts[artifact_id]
            return artifact

    # Audit

    def record_event(self, event: AuditEvent) -> AuditEvent:
        with self._lock:
            stored = event.model_copy(update={"event_id": next(self._event_ids)})
            self._events.append(stored)
            return stored

    def list_events(self, source_id: str | None = None) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if source_id is None or e.source_id == source_id]
