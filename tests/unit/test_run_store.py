"""Unit tests for the run stores (JSON file and SQLite share one contract)."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from draft_orchestrator.orchestrator.workflow.errors import RunConflictError, RunNotFoundError
from draft_orchestrator.orchestrator.workflow.state_machine import PipelineKind, RunStatus
from draft_orchestrator.state import (
    Document,
    JsonDocumentStore,
    JsonRunStore,
    SQLiteRunStore,
    WorkflowRun,
    open_run_store,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(params=["json", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "json":
        return JsonRunStore(tmp_path / "runs.json")
    return SQLiteRunStore(tmp_path / "runs.db")


def _run(
    run_id: str,
    *,
    document_id: str = "doc-1",
    kind: PipelineKind = PipelineKind.GUIDED,
    status: RunStatus = RunStatus.SUSPENDED,
    owner_id: str = "user-1",
    created_at: datetime = NOW,
) -> WorkflowRun:
    return WorkflowRun(
        id=run_id,
        owner_id=owner_id,
        document_id=document_id,
        pipeline_kind=kind,
        status=status,
        current_step_id="generate-outline",
        step_state={"initialInput": {"topic": "Sleep"}, "outputs": {}},
        resume_payload={"outline": {"sections": []}},
        created_at=created_at,
        updated_at=created_at,
        expires_at=created_at + timedelta(minutes=30),
    )


def test_create_and_get_roundtrip(store) -> None:
    store.create(_run("r1"))
    loaded = store.get("r1")
    assert loaded == _run("r1")
    assert store.get("missing") is None


def test_only_one_active_run_per_document_and_kind(store) -> None:
    store.create(_run("r1"))
    with pytest.raises(RunConflictError):
        store.create(_run("r2"))

    store.create(_run("r3", kind=PipelineKind.COACHING))
    store.create(_run("r4", document_id="doc-2"))
    store.create(_run("r5", status=RunStatus.COMPLETED))


def test_update_is_compare_and_set(store) -> None:
    created = store.create(_run("r1"))
    running = created.model_copy(update={"status": RunStatus.RUNNING, "resume_payload": None})

    stored = store.update(running, expected_version=0)
    assert stored.version == 1
    assert store.get("r1").status == RunStatus.RUNNING

    with pytest.raises(RunConflictError):
        store.update(running, expected_version=0)


def test_terminal_run_rejects_writes(store) -> None:
    created = store.create(_run("r1", status=RunStatus.RUNNING))
    done = store.update(
        created.model_copy(update={"status": RunStatus.COMPLETED, "result": {"x": 1}}),
        expected_version=0,
    )
    assert done.version == 1

    with pytest.raises(RunConflictError):
        store.update(done.model_copy(update={"status": RunStatus.RUNNING}), expected_version=1)
    assert store.get("r1").status == RunStatus.COMPLETED


def test_update_missing_run(store) -> None:
    with pytest.raises(RunNotFoundError):
        store.update(_run("ghost"), expected_version=0)


def test_terminal_run_frees_the_active_slot(store) -> None:
    created = store.create(_run("r1", status=RunStatus.RUNNING))
    store.update(created.model_copy(update={"status": RunStatus.FAILED}), expected_version=0)

    store.create(_run("r2"))
    active = store.find_active("doc-1", PipelineKind.GUIDED)
    assert active is not None
    assert active.id == "r2"


def test_find_active_and_list_by_owner(store) -> None:
    store.create(_run("r1", created_at=NOW))
    store.create(_run("r2", kind=PipelineKind.COACHING, created_at=NOW + timedelta(minutes=1)))
    store.create(_run("r3", document_id="doc-9", owner_id="user-2"))

    assert store.find_active("doc-1", PipelineKind.GUIDED).id == "r1"
    assert store.find_active("doc-1").id == "r2"
    assert store.find_active("doc-404") is None
    assert [r.id for r in store.list_by_owner("user-1")] == ["r2", "r1"]


def test_delete_expired_ignores_status(store) -> None:
    old = NOW - timedelta(hours=2)
    store.create(_run("old-suspended", created_at=old))
    store.create(_run("old-done", document_id="doc-2", status=RunStatus.COMPLETED, created_at=old))
    store.create(_run("fresh", document_id="doc-3"))

    assert store.delete_expired(now=NOW) == 2
    assert store.get("old-suspended") is None
    assert store.get("old-done") is None
    assert store.get("fresh") is not None


def test_delete(store) -> None:
    store.create(_run("r1"))
    assert store.delete("r1") is True
    assert store.delete("r1") is False


def test_open_run_store_selects_backend(tmp_path: Path) -> None:
    sqlite_store = open_run_store(f"sqlite:///{(tmp_path / 'a' / 'runs.db').as_posix()}")
    assert isinstance(sqlite_store, SQLiteRunStore)
    assert sqlite_store.db_path == tmp_path / "a" / "runs.db"

    json_store = open_run_store(f"json:///{(tmp_path / 'runs.json').as_posix()}")
    assert isinstance(json_store, JsonRunStore)

    with pytest.raises(ValueError):
        open_run_store("postgres://localhost/db")


def test_deleting_a_document_removes_its_runs(tmp_path: Path) -> None:
    runs = SQLiteRunStore(tmp_path / "runs.db")
    documents = JsonDocumentStore(tmp_path / "documents.json")
    documents.save_document(Document(id="doc-1", owner_id="user-1"))
    documents.save_document(Document(id="doc-2", owner_id="user-1"))
    runs.create(_run("r1"))
    runs.create(_run("r2", status=RunStatus.COMPLETED))
    runs.create(_run("r3", document_id="doc-2"))

    assert documents.delete_document("doc-1", runs=runs) is True
    assert documents.get_document("doc-1") is None
    assert [r.id for r in runs.list_by_owner("user-1")] == ["r3"]
    assert documents.delete_document("doc-1", runs=runs) is False


def test_json_store_instances_share_one_file_safely(tmp_path: Path) -> None:
    path = tmp_path / "runs.json"
    api_store = JsonRunStore(path)
    cli_store = JsonRunStore(path)
    created = threading.Event()

    def create_from_cli() -> None:
        cli_store.create(_run("b", document_id="doc-2"))
        created.set()

    # While one instance is mid-write, the other waits for the file lock.
    with api_store._locked():
        worker = threading.Thread(target=create_from_cli)
        worker.start()
        assert not created.wait(timeout=0.2)
        api_store._save_unlocked(api_store._load_unlocked() + [_run("a")])
    worker.join(timeout=5)

    assert created.is_set()
    assert sorted(r.id for r in api_store.list_by_owner("user-1")) == ["a", "b"]

    # The single-active-run rule holds across instances too.
    with pytest.raises(RunConflictError):
        cli_store.create(_run("c"))
