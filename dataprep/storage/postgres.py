"""
PostgreSQL-backed pipeline store.

Schema lives in docker/init-db.sql. The per-source run lock is enforced
twice: a partial unique index allows at most one pending/processing run per
source, and run creation locks the source row with SELECT ... FOR UPDATE so
the active-run check and the insert happen under the same lock.
"""

from collections.abc import Collection, Sequence
from datetime import datetime, timezone
from typing import Any

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

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
from dataprep.observability.logger import get_logger

from .base import PipelineStore
from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

_ACTIVE = [status.value for status in ACTIVE_RUN_STATUSES]

# Columns transition_run may set besides status
_RUN_UPDATABLE = frozenset({"processed_count", "total_count", "error_message", "completed_at"})


def _config_json(config: PipelineConfig) -> Jsonb:
    return Jsonb(config.model_dump(mode="json", by_alias=True))


def _run_from_row(row: dict[str, Any]) -> ProcessingRun:
    return ProcessingRun.model_validate(row)


class PostgresPipelineStore(PipelineStore):
    """
    PipelineStore over a psycopg3 connection pool.

    Attributes:
        pool: Open DatabaseConnectionPool
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    @classmethod
    def from_env(cls) -> "PostgresPipelineStore":
        """Open a pool from DB_* environment variables."""
        pool = DatabaseConnectionPool()
        pool.open()
        return cls(pool)

    def close(self) -> None:
        self.pool.close()

    # =======================
    # SOURCES
    # =======================

    def _insert_records(self, cur: psycopg.Cursor, source_id: str, records: Sequence[SourceRecord]) -> None:
        if not records:
            return
        cur.executemany(
            "INSERT INTO source_record (source_id, row_index, data) VALUES (%s, %s, %s)",
            [(source_id, record.row_index, Jsonb(record.data)) for record in records],
        )

    def add_source(self, source: DataSource, records: Sequence[SourceRecord]) -> DataSource:
        try:
            with self.pool.transaction() as cur:
                cur.execute(
                    """
                    INSERT INTO data_source (source_id, name, status, columns, row_count, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        source.source_id,
                        source.name,
                        source.status,
                        Jsonb(list(source.columns)),
                        len(records),
                        source.created_at,
                    ),
                )
                row = cur.fetchone()
                self._insert_records(cur, source.source_id, records)
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(f"Source '{source.source_id}' already exists") from e

        logger.debug(f"Inserted source {source.source_id} with {len(records)} records")
        return DataSource.model_validate(row)

    def get_source(self, source_id: str) -> DataSource:
        rows = self.pool.execute_query("SELECT * FROM data_source WHERE source_id = %s", (source_id,))
        if not rows:
            raise NotFoundError("Source", details=f"source_id={source_id}")
        return DataSource.model_validate(rows[0])

    def list_sources(self) -> list[DataSource]:
        rows = self.pool.execute_query("SELECT * FROM data_source ORDER BY created_at, source_id")
        return [DataSource.model_validate(row) for row in rows]

    def replace_records(self, source_id: str, records: Sequence[SourceRecord], columns: Sequence[str]) -> DataSource:
        with self.pool.transaction() as cur:
            cur.execute("SELECT source_id FROM data_source WHERE source_id = %s FOR UPDATE", (source_id,))
            if cur.fetchone() is None:
                raise NotFoundError("Source", details=f"source_id={source_id}")

            cur.execute(
                "SELECT 1 FROM processing_run WHERE source_id = %s AND status = ANY(%s)",
                (source_id, _ACTIVE),
            )
            if cur.fetchone() is not None:
                raise ConflictError("Cannot replace source data while processing is in progress")

            cur.execute("DELETE FROM source_record WHERE source_id = %s", (source_id,))
            self._insert_records(cur, source_id, records)
            cur.execute(
                "UPDATE data_source SET columns = %s, row_count = %s WHERE source_id = %s RETURNING *",
                (Jsonb(list(columns)), len(records), source_id),
            )
            row = cur.fetchone()
        return DataSource.model_validate(row)

    def get_records(self, source_id: str, limit: int | None = None) -> list[SourceRecord]:
        self.get_source(source_id)
        query = "SELECT row_index, data FROM source_record WHERE source_id = %s ORDER BY row_index"
        params: tuple = (source_id,)
        if limit is not None:
            query += " LIMIT %s"
            params = (source_id, limit)
        rows = self.pool.execute_query(query, params)
        return [SourceRecord(row_index=row["row_index"], data=row["data"]) for row in rows]

    # =======================
    # CONFIGURATION
    # =======================

    def save_config(self, source_id: str, config: PipelineConfig) -> None:
        self.get_source(source_id)
        self.pool.execute_command(
            """
            INSERT INTO pipeline_config (source_id, config, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (source_id) DO UPDATE SET config = EXCLUDED.config, updated_at = NOW()
            """,
            (source_id, _config_json(config)),
        )

    def get_config(self, source_id: str) -> PipelineConfig:
        self.get_source(source_id)
        rows = self.pool.execute_query("SELECT config FROM pipeline_config WHERE source_id = %s", (source_id,))
        if not rows:
            return PipelineConfig()
        return PipelineConfig.model_validate(rows[0]["config"])

    # =======================
    # PROCESSING RUNS
    # =======================

    def create_run(self, run: ProcessingRun) -> ProcessingRun:
        try:
            with self.pool.transaction() as cur:
                cur.execute("SELECT source_id FROM data_source WHERE source_id = %s FOR UPDATE", (run.source_id,))
                if cur.fetchone() is None:
                    raise NotFoundError("Source", details=f"source_id={run.source_id}")

                cur.execute(
                    "SELECT run_id FROM processing_run WHERE source_id = %s AND status = ANY(%s)",
                    (run.source_id, _ACTIVE),
                )
                if cur.fetchone() is not None:
                    raise ConflictError("Processing is already in progress")

                cur.execute(
                    """
                    INSERT INTO processing_run (
                        source_id, status, output_format, config_snapshot,
                        processed_count, total_count, started_by, started_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        run.source_id,
                        run.status.value,
                        run.output_format.value,
                        _config_json(run.config_snapshot),
                        run.processed_count,
                        run.total_count,
                        run.started_by,
                        run.started_at,
                    ),
                )
                row = cur.fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError("Processing is already in progress") from e

        return _run_from_row(row)

    def get_run(self, run_id: int) -> ProcessingRun:
        rows = self.pool.execute_query("SELECT * FROM processing_run WHERE run_id = %s", (run_id,))
        if not rows:
            raise NotFoundError("Processing run", details=f"run_id={run_id}")
        return _run_from_row(rows[0])

    def list_runs(self, source_id: str) -> list[ProcessingRun]:
        rows = self.pool.execute_query(
            "SELECT * FROM processing_run WHERE source_id = %s ORDER BY started_at DESC, run_id DESC",
            (source_id,),
        )
        return [_run_from_row(row) for row in rows]

    def _transition(
        self,
        cur: psycopg.Cursor,
        run_id: int,
        expected: Collection[RunStatus],
        new_status: RunStatus,
        fields: dict[str, Any],
    ) -> dict[str, Any] | None:
        unknown = set(fields) - _RUN_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update run columns: {sorted(unknown)}")

        assignments = [sql.SQL("status = {}").format(sql.Placeholder("new_status"))]
        assignments.extend(
            sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name)) for name in fields
        )
        query = sql.SQL(
            "UPDATE processing_run SET {} WHERE run_id = %(run_id)s AND status = ANY(%(expected)s) RETURNING *"
        ).format(sql.SQL(", ").join(assignments))

        cur.execute(
            query,
            {
                **fields,
                "new_status": RunStatus(new_status).value,
                "run_id": run_id,
                "expected": [RunStatus(status).value for status in expected],
            },
        )
        return cur.fetchone()

    def transition_run(
        self,
        run_id: int,
        expected: Collection[RunStatus],
        new_status: RunStatus,
        **fields: Any,
    ) -> ProcessingRun | None:
        with self.pool.transaction() as cur:
            row = self._transition(cur, run_id, expected, new_status, fields)

        if row is None:
            self.get_run(run_id)
            return None
        return _run_from_row(row)

    def update_progress(self, run_id: int, processed_count: int, total_count: int | None = None) -> None:
        self.pool.execute_command(
            """
            UPDATE processing_run
            SET processed_count = GREATEST(processed_count, %s),
                total_count = COALESCE(%s, total_count)
            WHERE run_id = %s AND status = ANY(%s)
            """,
            (processed_count, total_count, run_id, _ACTIVE),
        )

    def complete_run(self, run_id: int, artifact: OutputArtifact, processed_count: int) -> OutputArtifact | None:
        with self.pool.transaction() as cur:
            completed = self._transition(
                cur,
                run_id,
                {RunStatus.PROCESSING},
                RunStatus.COMPLETED,
                {"processed_count": processed_count, "completed_at": datetime.now(timezone.utc)},
            )
            if completed is None:
                return None

            cur.execute(
                """
                INSERT INTO output_artifact (
                    run_id, source_id, filename, format, file_size, record_count, content, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    artifact.run_id,
                    artifact.source_id,
                    artifact.filename,
                    artifact.format.value,
                    artifact.file_size,
                    artifact.record_count,
                    artifact.content,
                    artifact.created_at,
                ),
            )
            row = cur.fetchone()
        return OutputArtifact.model_validate(row)

    # =======================
    # ARTIFACTS
    # =======================

    def get_artifact(self, artifact_id: int) -> OutputArtifact:
        rows = self.pool.execute_query("SELECT * FROM output_artifact WHERE artifact_id = %s", (artifact_id,))
        if not rows:
            raise NotFoundError("Output", details=f"artifact_id={artifact_id}")
        return OutputArtifact.model_validate(rows[0])

    def get_artifact_for_run(self, run_id: int) -> OutputArtifact | None:
        rows = self.pool.execute_query("SELECT * FROM output_artifact WHERE run_id = %s", (run_id,))
        return OutputArtifact.model_validate(rows[0]) if rows else None

    def list_artifacts(self, source_id: str) -> list[OutputArtifact]:
        rows = self.pool.execute_query(
            "SELECT * FROM output_artifact WHERE source_id = %s ORDER BY created_at DESC, artifact_id DESC",
            (source_id,),
        )
        return [OutputArtifact.model_validate(row) for row in rows]

    def delete_artifact(self, artifact_id: int) -> OutputArtifact:
        rows = self.pool.execute_query(
            "DELETE FROM output_artifact WHERE artifact_id = %s RETURNING *",
            (artifact_id,),
        )
        if not rows:
            raise NotFoundError("Output", details=f"artifact_id={artifact_id}")
        return OutputArtifact.model_validate(rows[0])

    # =======================
    # AUDIT
    # =======================

    def record_event(self, event: AuditEvent) -> AuditEvent:
        rows = self.pool.execute_query(
            """
            INSERT INTO audit_event (source_id, action, run_id, actor, details, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (event.source_id, event.action, event.run_id, event.actor, Jsonb(event.details), event.created_at),
        )
        return AuditEvent.model_validate(rows[0])

    def list_events(self, source_id: str | None = None) -> list[AuditEvent]:
        if source_id is None:
            rows = self.pool.execute_query("SELECT * FROM audit_event ORDER BY event_id")
        else:
            rows = self.pool.execute_query(
                "SELECT * FROM audit_event WHERE source_id = %s ORDER BY event_id",
                (source_id,),
            )
        return [AuditEvent.model_validate(row) for row in rows]
