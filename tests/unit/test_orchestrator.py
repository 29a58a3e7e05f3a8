"""
Unit tests for the processing orchestrator and the run state machine.
"""

import json
import threading

import pytest

from dataprep.core.config import PipelineConfigBuilder
from dataprep.core.errors import BadRequestError, ConflictError, NotFoundError
from dataprep.core.models import DataSource, RunStatus
from dataprep.processing import ProcessingOrchestrator, run_to_completion
from dataprep.storage.memory import InMemoryPipelineStore


WAIT_SECONDS = 10


class BlockingStore(InMemoryPipelineStore):
    """Store whose get_records parks the worker until the test releases it."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_records(self, source_id, limit=None):
        self.entered.set()
        self.release.wait(WAIT_SECONDS)
        return super().get_records(source_id, limit)


class FailingStore(InMemoryPipelineStore):
    def get_records(self, source_id, limit=None):
        raise RuntimeError("disk on fire")


def _config():
    return (
        PipelineConfigBuilder()
        .map("ticket_id", "conversation_id")
        .map("author", "role")
        .map("body", "content")
        .with_default_rules()
        .min_content_length(5)
        .build()
    )


def _register(store, records, source_id="zendesk", status="ready"):
    store.add_source(
        DataSource(source_id=source_id, status=status, columns=["ticket_id", "author", "body", "status", "created_at"]),
        records,
    )
    store.save_config(source_id, _config())


@pytest.fixture
def orchestrator(memory_store, support_records):
    _register(memory_store, support_records)
    orch = ProcessingOrchestrator(memory_store, max_workers=2, batch_size=2)
    yield orch
    orch.shutdown(wait=True)


@pytest.fixture
def blocking(support_records):
    store = BlockingStore()
    _register(store, support_records)
    orch = ProcessingOrchestrator(store, max_workers=2, batch_size=2)
    yield store, orch
    store.release.set()
    orch.shutdown(wait=True)


class TestHappyPath:
    """Tests for runs that complete"""

    def test_run_completes_with_artifact(self, orchestrator, memory_store):
        """Test a completed run has counts, an artifact and audit events"""
        run = run_to_completion(orchestrator, "zendesk", "conversational_jsonl", started_by="alice", timeout=WAIT_SECONDS)

        assert run.status == RunStatus.COMPLETED
        assert run.total_count == 4
        assert run.processed_count == 4
        assert run.completed_at is not None
        assert run.error_message is None

        artifacts = orchestrator.list_artifacts("zendesk")
        assert len(artifacts) == 1
        artifact = artifacts[0]
        assert artifact.run_id == run.run_id
        assert artifact.record_count == 2
        assert artifact.filename.startswith(f"output-{run.run_id}-")
        assert artifact.filename.endswith(".jsonl")
        assert artifact.file_size == len(artifact.content)

        events = memory_store.list_events("zendesk")
        assert [e.action for e in events] == ["processing_started", "processing_completed"]
        assert events[0].actor == "alice"
        assert events[1].details["record_count"] == 2

    def test_artifact_preview(self, orchestrator):
        """Test stored output can be previewed"""
        run = run_to_completion(orchestrator, "zendesk", "raw_json", timeout=WAIT_SECONDS)
        artifact = orchestrator.list_artifacts("zendesk")[0]

        preview = orchestrator.preview_artifact(artifact.artifact_id, limit=1)

        assert preview == [{"conversation_id": "7", "role": "customer", "content": "Hi, my name is [PERSON_1]. Email [EMAIL]"}]
        assert orchestrator.get_run(run.run_id).status == RunStatus.COMPLETED

    def test_sequential_runs_allowed(self, orchestrator):
        """Test a new run can start once the previous one is terminal"""
        first = run_to_completion(orchestrator, "zendesk", "raw_json", timeout=WAIT_SECONDS)
        second = run_to_completion(orchestrator, "zendesk", "qa_pairs_jsonl", timeout=WAIT_SECONDS)

        assert first.run_id != second.run_id
        assert [r.run_id for r in orchestrator.list_runs("zendesk")] == [second.run_id, first.run_id]
        assert len(orchestrator.list_artifacts("zendesk")) == 2

    def test_finished_runs_release_their_futures(self, orchestrator):
        """Test a long-lived orchestrator does not keep finished tasks around"""
        for _ in range(5):
            run_to_completion(orchestrator, "zendesk", "raw_json", timeout=WAIT_SECONDS)

        assert orchestrator._futures == {}
        assert orchestrator._tokens == {}

    def test_delete_artifact_is_audited(self, orchestrator, memory_store):
        """Test deleting output keeps the run and records an audit event"""
        run = run_to_completion(orchestrator, "zendesk", "raw_json", timeout=WAIT_SECONDS)
        artifact = orchestrator.list_artifacts("zendesk")[0]

        orchestrator.delete_artifact(artifact.artifact_id, actor="bob")

        assert orchestrator.list_artifacts("zendesk") == []
        assert orchestrator.get_run(run.run_id).status == RunStatus.COMPLETED
        last = memory_store.list_events("zendesk")[-1]
        assert last.action == "output_deleted"
        assert last.actor == "bob"
        with pytest.raises(NotFoundError):
            orchestrator.get_artifact(artifact.artifact_id)

    def test_preview_output_uses_live_config(self, orchestrator):
        """Test previews run the live configuration on a sample"""
        preview = orchestrator.preview_output("zendesk", "qa_pairs_jsonl", limit=2)

        assert preview.record_count == 1
        assert preview.preview[0]["answer"] == "Thanks [PERSON_1], we will call [PHONE] shortly."


class TestStartValidation:
    """Tests for start_run preconditions"""

    def test_unknown_source(self, orchestrator):
        """Test starting a run for a missing source"""
        with pytest.raises(NotFoundError):
            orchestrator.start_run("ghost", "raw_json")

    def test_unsupported_format(self, orchestrator, memory_store):
        """Test an unknown format is rejected and no run is created"""
        with pytest.raises(BadRequestError):
            orchestrator.start_run("zendesk", "parquet")

        assert memory_store.list_runs("zendesk") == []

    def test_source_not_ready(self, orchestrator, memory_store, support_records):
        """Test only ready sources can be processed"""
        _register(memory_store, support_records, source_id="parsing", status="processing")

        with pytest.raises(BadRequestError, match="not ready"):
            orchestrator.start_run("parsing", "raw_json")


class TestConcurrencyAndCancellation:
    """Tests for the one-active-run rule, snapshots and cancellation"""

    def test_second_run_conflicts(self, blocking):
        """Test a source cannot have two active runs"""
        store, orch = blocking
        run = orch.start_run("zendesk", "raw_json")
        assert store.entered.wait(WAIT_SECONDS)

        with pytest.raises(ConflictError):
            orch.start_run("zendesk", "raw_json")

        store.release.set()
        assert orch.wait_for_run(run.run_id, timeout=WAIT_SECONDS).status == RunStatus.COMPLETED

    def test_config_edits_do_not_affect_running_run(self, blocking):
        """Test a run uses the configuration captured when it started"""
        store, orch = blocking
        run = orch.start_run("zendesk", "raw_json")
        assert store.entered.wait(WAIT_SECONDS)

        store.save_config("zendesk", PipelineConfigBuilder().map("body", "text").build())
        store.release.set()
        orch.wait_for_run(run.run_id, timeout=WAIT_SECONDS)

        artifact = store.get_artifact_for_run(run.run_id)
        records = json.loads(artifact.content)
        assert set(records[0]) == {"conversation_id", "role", "content"}

    def test_cancel_leaves_no_artifact(self, blocking):
        """Test a cancelled run stays cancelled and produces nothing"""
        store, orch = blocking
        run = orch.start_run("zendesk", "conversational_jsonl", started_by="alice")
        assert store.entered.wait(WAIT_SECONDS)

        cancelled = orch.cancel_run(run.run_id, actor="alice")
        assert cancelled.status == RunStatus.CANCELLED
        assert cancelled.completed_at is not None

        store.release.set()
        finished = orch.wait_for_run(run.run_id, timeout=WAIT_SECONDS)

        assert finished.status == RunStatus.CANCELLED
        assert store.get_artifact_for_run(run.run_id) is None
        actions = [e.action for e in store.list_events("zendesk")]
        assert actions == ["processing_started", "processing_cancelled"]

    def test_cancel_terminal_run_rejected(self, orchestrator):
        """Test cancelling a completed run is a BadRequestError"""
        run = run_to_completion(orchestrator, "zendesk", "raw_json", timeout=WAIT_SECONDS)

        with pytest.raises(BadRequestError):
            orchestrator.cancel_run(run.run_id)

    def test_cancel_unknown_run(self, orchestrator):
        """Test cancelling a missing run"""
        with pytest.raises(NotFoundError):
            orchestrator.cancel_run(404)

    def test_new_run_after_cancel(self, blocking):
        """Test cancelling frees the source for a new run"""
        store, orch = blocking
        run = orch.start_run("zendesk", "raw_json")
        assert store.entered.wait(WAIT_SECONDS)
        orch.cancel_run(run.run_id)

        store.release.set()
        orch.wait_for_run(run.run_id, timeout=WAIT_SECONDS)
        second = run_to_completion(orch, "zendesk", "raw_json", timeout=WAIT_SECONDS)

        assert second.status == RunStatus.COMPLETED

    def test_wait_timeout(self, blocking):
        """Test wait_for_run raises TimeoutError while the run is parked"""
        store, orch = blocking
        run = orch.start_run("zendesk", "raw_json")
        assert store.entered.wait(WAIT_SECONDS)

        with pytest.raises(TimeoutError):
            orch.wait_for_run(run.run_id, timeout=0.05)


class TestFailure:
    """Tests for runs that fail"""

    def test_failure_is_captured(self, support_records):
        """Test an exception inside the run marks it failed with its message"""
        store = FailingStore()
        _register(store, support_records)

        with ProcessingOrchestrator(store, max_workers=1) as orch:
            run = run_to_completion(orch, "zendesk", "raw_json", started_by="alice", timeout=WAIT_SECONDS)

        assert run.status == RunStatus.FAILED
        assert run.error_message == "disk on fire"
        assert run.completed_at is not None
        assert store.list_artifacts("zendesk") == []

        events = store.list_events("zendesk")
        assert [e.action for e in events] == ["processing_started", "processing_failed"]
        assert events[-1].details["error"] == "disk on fire"
