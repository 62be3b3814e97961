"""Unit tests for run statuses, transitions and the serialised step state."""

from __future__ import annotations

import pytest

from draft_orchestrator.orchestrator.workflow.state_machine import (
    IllegalTransitionError,
    PipelineKind,
    RunStatus,
    StepState,
    is_terminal,
    transition,
)


@pytest.mark.parametrize(
    ("current", "to"),
    [
        (RunStatus.SUSPENDED, RunStatus.COMPLETED),
        (RunStatus.SUSPENDED, RunStatus.SUSPENDED),
        (RunStatus.COMPLETED, RunStatus.RUNNING),
        (RunStatus.FAILED, RunStatus.RUNNING),
    ],
)
def test_transition_rejects_illegal_transitions(current: RunStatus, to: RunStatus) -> None:
    with pytest.raises(IllegalTransitionError):
        transition(current=current, to=to)


def test_transition_allows_the_run_lifecycle() -> None:
    assert transition(current=RunStatus.RUNNING, to=RunStatus.RUNNING) == RunStatus.RUNNING
    assert transition(current=RunStatus.RUNNING, to=RunStatus.SUSPENDED) == RunStatus.SUSPENDED
    assert transition(current=RunStatus.SUSPENDED, to=RunStatus.RUNNING) == RunStatus.RUNNING
    assert transition(current=RunStatus.RUNNING, to=RunStatus.FAILED) == RunStatus.FAILED


def test_terminal_statuses() -> None:
    assert is_terminal(RunStatus.COMPLETED)
    assert is_terminal(RunStatus.FAILED)
    assert not is_terminal(RunStatus.SUSPENDED)


def test_pipeline_kind_accepts_legacy_names() -> None:
    assert PipelineKind("draft_guided") is PipelineKind.GUIDED
    assert PipelineKind("draft_handsoff") is PipelineKind.AUTONOMOUS
    assert PipelineKind("learn") is PipelineKind.COACHING
    with pytest.raises(ValueError):
        PipelineKind("freestyle")


def test_step_state_json_roundtrip() -> None:
    state = StepState(initial_input={"topic": "Sleep"}).with_pending({"outline": {}})
    assert state.to_json() == {
        "initialInput": {"topic": "Sleep"},
        "outputs": {},
        "pending": {"outline": {}},
    }
    assert StepState.from_json(state.to_json()) == state


def test_with_output_clears_pending() -> None:
    state = StepState(initial_input={"topic": "Sleep"}).with_pending({"draft": 1})
    advanced = state.with_output("generate-outline", {"topic": "Sleep"})
    assert advanced.pending is None
    assert advanced.outputs == {"generate-outline": {"topic": "Sleep"}}
    assert "pending" not in advanced.to_json()


def test_from_json_tolerates_missing_keys() -> None:
    state = StepState.from_json({"outputs": "not a dict"})
    assert state.initial_input == {}
    assert state.outputs == {}
    assert state.pending is None
