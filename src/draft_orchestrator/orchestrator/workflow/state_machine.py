from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PipelineKind(str, Enum):
    GUIDED = "guided"
    AUTONOMOUS = "autonomous"
    COACHING = "coaching"

    @classmethod
    def _missing_(cls, value: object) -> PipelineKind | None:
        # Names used by earlier clients.
        aliases = {
            "draft_guided": cls.GUIDED,
            "draft_handsoff": cls.AUTONOMOUS,
            "learn": cls.COACHING,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


class RunStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.RUNNING, RunStatus.SUSPENDED})

# running -> running is the per-step checkpoint while a pipeline advances.
ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.RUNNING: {
        RunStatus.RUNNING,
        RunStatus.SUSPENDED,
        RunStatus.COMPLETED,
        RunStatus.FAILED,
    },
    RunStatus.SUSPENDED: {RunStatus.RUNNING},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: RunStatus, to: RunStatus) -> RunStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def is_terminal(status: RunStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)


@dataclass(frozen=True, slots=True)
class StepState:
    """Everything the next step invocation needs, in serialisable form.

    ``outputs`` holds the output of each completed step keyed by step id. ``pending``
    is the output a gated step generated before suspending; approving the gate
    without an override promotes it instead of regenerating.
    """

    initial_input: dict[str, object]
    outputs: dict[str, dict[str, object]] = field(default_factory=dict)
    pending: dict[str, object] | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "initialInput": self.initial_input,
            "outputs": self.outputs,
        }
        if self.pending is not None:
            out["pending"] = self.pending
        return out

    @staticmethod
    def from_json(obj: dict[str, object]) -> StepState:
        initial = obj.get("initialInput")
        outputs = obj.get("outputs")
        pending = obj.get("pending")
        return StepState(
            initial_input=initial if isinstance(initial, dict) else {},
            outputs=(
                {k: v for k, v in outputs.items() if isinstance(v, dict)}
                if isinstance(outputs, dict)
                else {}
            ),
            pending=pending if isinstance(pending, dict) else None,
        )

    def with_pending(self, pending: dict[str, object]) -> StepState:
        return StepState(initial_input=self.initial_input, outputs=self.outputs, pending=pending)

    def with_output(self, step_id: str, output: dict[str, object]) -> StepState:
        outputs = dict(self.outputs)
        outputs[step_id] = output
        return StepState(initial_input=self.initial_input, outputs=outputs, pending=None)


# Pipeline state as returned by the engine. Exactly one of these describes where a
# run stands after an invocation; nothing is kept in memory between requests.


@dataclass(frozen=True, slots=True)
class Running:
    step_id: str | None
    state: StepState


@dataclass(frozen=True, slots=True)
class Suspended:
    step_id: str
    state: StepState
    resume_payload: dict[str, object]


@dataclass(frozen=True, slots=True)
class Completed:
    result: dict[str, object]


@dataclass(frozen=True, slots=True)
class Failed:
    error: str


PipelineState = Running | Suspended | Completed | Failed
