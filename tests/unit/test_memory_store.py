"""
Unit tests for the in-memory pipeline store.
"""

import threading

import pytest

from dataprep.core.errors import ConflictError, NotFoundError
from dataprep.core.models import (
    AuditEvent,
    DataSource,
    OutputArtifact,
    OutputFormat,
    PipelineConfig,
    ProcessingRun,
    RunStatus,
    SourceRecord,
)
from dataprep.core.config import PipelineConfigBuilder


def _run(source_id="zendesk", fmt=OutputFormat.RAW_JSON):
    return ProcessingRun(source_id=source_id, output_format=fmt)


def _artifact(run):
    return OutputArtifact(
        run_id=run.run_id,
        source_id=run.source_id,
        filename=f"output-{run.run_id}.json",
        format=run.output_format,
        record_count=1,
        content=b"[]",
    )


class TestSources:
    """Tests for source and record storage"""

    def test_add_and_get_source(self, memory_store, support_source):
        """Test a source is stored with its row count"""
        assert support_source.row_count == 5
        assert memory_store.get_source("zendesk").columns[0] == "ticket_id"
        assert [s.source_id for s in memory_store.list_sources()] == ["zendesk"]

    def test_duplicate_source(self, memory_store, support_source, support_records):
        """Test re-adding the same source id conflicts"""
        with pytest.raises(ConflictError):
            memory_store.add_source(DataSource(source_id="zendesk"), support_records)

    def test_missing_source(self, memory_store):
        """Test unknown sources raise NotFoundError"""
        with pytest.raises(NotFoundError):
            memory_store.get_source("ghost")
        with pytest.raises(NotFoundError):
            memory_store.get_records("ghost")

    def test_get_records_ordered_and_limited(self, memory_store):
        """Test rows come back ordered by row_index"""
        records = [SourceRecord(row_index=i, data={"n": i}) for i in (2, 0, 1)]
        memory_store.add_source(DataSource(source_id="s"), records)

        assert [r.row_index for r in memory_store.get_records("s")] == [0, 1, 2]
        assert len(memory_store.get_records("s", limit=2)) == 2

    def test_replace_records_refused_during_active_run(self, memory_store, support_source):
        """Test rows cannot change while a run is pending or processing"""
        run = memory_store.create_run(_run())

        with pytest.raises(ConflictError):
            memory_store.replace_records("zendesk", [], [])

        memory_store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.CANCELLED)
        updated = memory_store.replace_records("zendesk", [SourceRecord(row_index=0, data={"a": 1})], ["a"])
        assert updated.row_count == 1
        assert updated.columns == ["a"]


class TestConfig:
    """Tests for live configuration storage"""

    def test_default_config_is_empty(self, memory_store, support_source):
        """Test a source without saved configuration gets an empty one"""
        assert memory_store.get_config("zendesk") == PipelineConfig()

    def test_saved_config_is_copied(self, memory_store, support_source):
        """Test later edits to the caller's object do not leak into the store"""
        config = PipelineConfigBuilder().map("body", "content").build()
        memory_store.save_config("zendesk", config)
        config.mappings.clear()

        assert len(memory_store.get_config("zendesk").mappings) == 1


class TestRuns:
    """Tests for run lifecycle storage"""

    def test_second_active_run_conflicts(self, memory_store, support_source):
        """Test only one non-terminal run per source"""
        memory_store.create_run(_run())

        with pytest.raises(ConflictError):
            memory_store.create_run(_run())

    def test_concurrent_create_allows_one(self, memory_store, support_source):
        """Test racing creators cannot both win"""
        results = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                results.append(memory_store.create_run(_run()))
            except ConflictError:
                results.append(None)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len([r for r in results if r is not None]) == 1

    def test_transition_is_compare_and_swap(self, memory_store, support_source):
        """Test a transition from an unexpected status is refused"""
        run = memory_store.create_run(_run())

        assert memory_store.transition_run(run.run_id, {RunStatus.PROCESSING}, RunStatus.COMPLETED) is None
        moved = memory_store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.PROCESSING)
        assert moved.status == RunStatus.PROCESSING

    def test_progress_is_monotonic_and_ignored_when_terminal(self, memory_store, support_source):
        """Test processed_count never decreases and terminal runs are frozen"""
        run = memory_store.create_run(_run())
        memory_store.update_progress(run.run_id, 0, total_count=10)
        memory_store.update_progress(run.run_id, 6)
        memory_store.update_progress(run.run_id, 4)

        current = memory_store.get_run(run.run_id)
        assert (current.processed_count, current.total_count) == (6, 10)

        memory_store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.FAILED)
        memory_store.update_progress(run.run_id, 9)
        assert memory_store.get_run(run.run_id).processed_count == 6

    def test_complete_run_requires_processing(self, memory_store, support_source):
        """Test completion stores the artifact only for a processing run"""
        run = memory_store.create_run(_run())

        assert memory_store.complete_run(run.run_id, _artifact(run), 5) is None
        assert memory_store.list_artifacts("zendesk") == []

        memory_store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.PROCESSING)
        stored = memory_store.complete_run(run.run_id, _artifact(run), 5)

        assert stored.artifact_id is not None
        completed = memory_store.get_run(run.run_id)
        assert completed.status == RunStatus.COMPLETED
        assert completed.processed_count == 5
        assert completed.completed_at is not None
        assert memory_store.get_artifact_for_run(run.run_id) == stored

    def test_list_runs_newest_first(self, memory_store, support_source):
        """Test runs are listed newest first"""
        first = memory_store.create_run(_run())
        memory_store.transition_run(first.run_id, {RunStatus.PENDING}, RunStatus.CANCELLED)
        second = memory_store.create_run(_run())

        assert [r.run_id for r in memory_store.list_runs("zendesk")] == [second.run_id, first.run_id]

    def test_unknown_run(self, memory_store):
        """Test unknown runs raise NotFoundError"""
        with pytest.raises(NotFoundError):
            memory_store.get_run(99)


class TestArtifactsAndAudit:
    """Tests for artifact deletion and audit events"""

    def test_delete_artifact(self, memory_store, support_source):
        """Test artifacts can be deleted independently of their run"""
        run = memory_store.create_run(_run())
        memory_store.transition_run(run.run_id, {RunStatus.PENDING}, RunStatus.PROCESSING)
        stored = memory_store.complete_run(run.run_id, _artifact(run), 1)

        deleted = memory_store.delete_artifact(stored.artifact_id)

        assert deleted.artifact_id == stored.artifact_id
        assert memory_store.get_run(run.run_id).status == RunStatus.COMPLETED
        with pytest.raises(NotFoundError):
            memory_store.get_artifact(stored.artifact_id)

    def test_events_filtered_by_source(self, memory_store):
        """Test audit events keep insertion order and filter by source"""
        memory_store.record_event(AuditEvent(source_id="a", action="processing_started"))
        memory_store.record_event(AuditEvent(source_id="b", action="processing_started"))
        memory_store.record_event(AuditEvent(source_id="a", action="processing_completed"))

        assert [e.action for e in memory_store.list_events("a")] == ["processing_started", "processing_completed"]
        assert len(memory_store.list_events()) == 3
        assert memory_store.list_events()[0].event_id == 1
