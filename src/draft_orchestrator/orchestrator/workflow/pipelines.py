"""Pipeline definitions built from the shared step implementations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError

from . import drafting
from .coaching import CoachingProgress, coaching_stages
from .errors import WorkflowValidationError
from .state_machine import PipelineKind, StepState
from .steps import PipelineStep, dump, gate, passthrough


@dataclass(frozen=True, slots=True)
class Pipeline:
    kind: PipelineKind
    steps: tuple[PipelineStep, ...]
    input_model: type[BaseModel]

    @property
    def first_step_id(self) -> str:
        return self.steps[0].id

    def index_of(self, step_id: str) -> int:
        for i, step in enumerate(self.steps):
            if step.id == step_id:
                return i
        raise WorkflowValidationError(
            f"Step '{step_id}' is not part of the {self.kind.value} pipeline"
        )

    def validate_input(self, initial_input: object) -> dict[str, object]:
        """Validate and normalise the initial input; raises on bad input."""

        try:
            model = self.input_model.model_validate(initial_input)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = ".".join(str(part) for part in first.get("loc", ()))
            msg = first.get("msg", "invalid value")
            raise WorkflowValidationError(
                f"Invalid initial input: {loc}: {msg}" if loc else f"Invalid initial input: {msg}"
            ) from e
        return dump(model)

    def input_for(self, index: int, state: StepState) -> dict[str, object]:
        """Input of step ``index``: the initial input or the previous step's output."""

        if index == 0:
            return state.initial_input
        previous = self.steps[index - 1].id
        try:
            return state.outputs[previous]
        except KeyError as e:
            raise WorkflowValidationError(
                f"Step '{self.steps[index].id}' has no recorded input from '{previous}'"
            ) from e


def guided_pipeline() -> Pipeline:
    return Pipeline(
        kind=PipelineKind.GUIDED,
        steps=(
            gate(drafting.OUTLINE_STEP),
            gate(drafting.SOURCES_STEP),
            gate(drafting.SECTIONS_STEP),
            passthrough(drafting.COMBINE_STEP),
        ),
        input_model=drafting.TopicInput,
    )


def autonomous_pipeline() -> Pipeline:
    return Pipeline(
        kind=PipelineKind.AUTONOMOUS,
        steps=(
            passthrough(drafting.OUTLINE_STEP),
            passthrough(drafting.SOURCES_STEP),
            passthrough(drafting.SECTIONS_STEP),
            passthrough(drafting.COMBINE_STEP),
        ),
        input_model=drafting.TopicInput,
    )


def coaching_pipeline() -> Pipeline:
    return Pipeline(
        kind=PipelineKind.COACHING,
        steps=tuple(gate(stage) for stage in coaching_stages()),
        input_model=CoachingProgress,
    )


def default_pipelines() -> Mapping[PipelineKind, Pipeline]:
    return {
        PipelineKind.GUIDED: guided_pipeline(),
        PipelineKind.AUTONOMOUS: autonomous_pipeline(),
        PipelineKind.COACHING: coaching_pipeline(),
    }
