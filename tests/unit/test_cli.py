from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import Mock

import pytest

from draft_orchestrator import cli
from draft_orchestrator.orchestrator.workflow.engine import WorkflowEngine


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AGENT_STATE_PATH", str(tmp_path / "agent_state"))
    monkeypatch.delenv("ORCHESTRATOR_RUN_STORE_URL", raising=False)
    monkeypatch.delenv("ORCHESTRATOR_RUN_TTL_MINUTES", raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


@pytest.fixture
def patched_engine(monkeypatch: pytest.MonkeyPatch, engine: WorkflowEngine) -> WorkflowEngine:
    monkeypatch.setattr(cli, "WorkflowEngine", Mock(from_settings=Mock(return_value=engine)))
    return engine


def test_start_and_resume(patched_engine, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["start", "--owner", "user-1", "--document", "doc-1", "--topic", "Sleep"])
    assert code == 0
    started = json.loads(capsys.readouterr().out)
    assert started["status"] == "suspended"
    assert started["stepId"] == "generate-outline"

    code = cli.main(
        [
            "resume",
            "--owner",
            "user-1",
            "--document",
            "doc-1",
            "--kind",
            "guided",
            "--step",
            "generate-outline",
            "--data",
            '{"approved": true}',
        ]
    )
    assert code == 0
    assert json.loads(capsys.readouterr().out)["stepId"] == "find-sources"


def test_show_lists_runs(
    patched_engine, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    run_id = patched_engine.start(
        owner_id="user-1",
        pipeline_kind="guided",
        initial_input={"topic": "Sleep"},
        document_id="doc-1",
    ).run_id
    # `show` opens the configured store directly.
    monkeypatch.setenv(
        "ORCHESTRATOR_RUN_STORE_URL", f"sqlite:///{patched_engine.store.db_path.as_posix()}"
    )

    assert cli.main(["show", "--run-id", run_id]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert [r["id"] for r in shown] == [run_id]

    assert cli.main(["show", "--owner", "user-1"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 1


def test_workflow_errors_exit_1(patched_engine, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["start", "--owner", "user-1", "--document", "doc-other", "--topic", "Sleep"])
    assert code == 1
    assert "not_found: Document not found" in capsys.readouterr().err


def test_invalid_resume_data_exit_2(patched_engine, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(
        ["resume", "--owner", "user-1", "--run-id", "r1", "--step", "x", "--data", "[1]"]
    )
    assert code == 2
    assert "--data must be a JSON object" in capsys.readouterr().err


def test_show_missing_run(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["show", "--run-id", "missing"]) == 1
    assert "not found" in capsys.readouterr().err


def test_sweep(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["sweep"]) == 0
    assert capsys.readouterr().out.strip() == "Deleted 0 expired run(s)"


def test_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_RUN_TTL_MINUTES", "0")
    assert cli.main(["sweep"]) == 2
