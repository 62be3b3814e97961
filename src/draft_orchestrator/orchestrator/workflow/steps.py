"""Step contract and the wrappers that turn step logic into pipeline steps.

A step's logic is written once, as a free function over typed input/output
models. Pipelines never call that function directly; they call a
:class:`PipelineStep` produced by one of two higher-order wrappers:

- :func:`gate` runs the logic, then suspends with a payload for a human decision.
  An approving resume short-circuits to the supplied override (or the output
  generated before suspending) without calling any collaborator.
- :func:`passthrough` runs the logic and returns its output directly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from draft_orchestrator.llm.provider import LLMProvider
from draft_orchestrator.search.client import SourceRecord, SourceSearch

from .errors import WorkflowValidationError

logger = logging.getLogger(__name__)


class StepModel(BaseModel):
    """Base for step schemas: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def dump(model: BaseModel) -> dict[str, object]:
    return model.model_dump(mode="json", by_alias=True)


class StepContext:
    """Collaborators available to one step execution.

    Calls are counted so the engine can report usage only for executions that
    actually reached the generation service.
    """

    def __init__(
        self,
        *,
        llm: LLMProvider,
        search: SourceSearch,
        run_id: str,
        document_id: str,
    ) -> None:
        self._llm = llm
        self._search = search
        self.run_id = run_id
        self.document_id = document_id
        self.generation_calls = 0
        self.search_calls = 0

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        self.generation_calls += 1
        return self._llm.generate(prompt, system=system)

    def search(self, query: str) -> list[SourceRecord]:
        self.search_calls += 1
        return self._search.search(query)


@dataclass(frozen=True, slots=True)
class StepOutput:
    output: dict[str, object]


@dataclass(frozen=True, slots=True)
class StepSuspension:
    payload: dict[str, object]
    pending: dict[str, object]


StepOutcome = StepOutput | StepSuspension


def _approved_flag(resume: BaseModel) -> bool:
    return bool(getattr(resume, "approved", False))


@dataclass(frozen=True, slots=True)
class StepDefinition:
    """Declared contract of a step.

    ``approve`` receives ``(inputs, pending_output_or_None, resume)`` and returns the
    approved output, or ``None`` when there is nothing to promote (the step then
    runs again).
    """

    id: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    run: Callable[[Any, StepContext], BaseModel]
    resume_model: type[BaseModel] | None = None
    suspend_payload: Callable[[Any], dict[str, object]] | None = None
    approve: Callable[[Any, Any, Any], BaseModel | None] | None = None
    is_approved: Callable[[Any], bool] = _approved_flag


@dataclass(frozen=True, slots=True)
class PipelineStep:
    id: str
    gated: bool
    resume_model: type[BaseModel] | None
    execute: Callable[..., StepOutcome]

    def parse_resume(self, data: dict[str, object] | None) -> BaseModel:
        if self.resume_model is None:
            raise WorkflowValidationError(f"Step '{self.id}' does not accept resume data")
        try:
            return self.resume_model.model_validate(data or {})
        except ValidationError as e:
            raise WorkflowValidationError(
                f"Invalid resume data for step '{self.id}': {_first_error(e)}"
            ) from e


def _first_error(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return "invalid value"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = str(first.get("msg", "invalid value"))
    return f"{loc}: {msg}" if loc else msg


def gate(definition: StepDefinition) -> PipelineStep:
    if (
        definition.resume_model is None
        or definition.suspend_payload is None
        or definition.approve is None
    ):
        raise ValueError(f"Step '{definition.id}' cannot be gated without a resume contract")

    suspend_payload = definition.suspend_payload
    approve = definition.approve

    def execute(
        input_data: dict[str, object],
        ctx: StepContext,
        *,
        resume: BaseModel | None = None,
        pending: dict[str, object] | None = None,
    ) -> StepOutcome:
        inputs = definition.input_model.model_validate(input_data)

        if resume is not None and definition.is_approved(resume):
            previous = (
                definition.output_model.model_validate(pending) if pending is not None else None
            )
            approved = approve(inputs, previous, resume)
            if approved is not None:
                logger.debug("Gate approved", extra={"step_id": definition.id})
                return StepOutput(output=dump(approved))
            logger.info(
                "Gate approved with nothing to promote; regenerating",
                extra={"step_id": definition.id},
            )

        output = definition.run(inputs, ctx)
        return StepSuspension(payload=suspend_payload(output), pending=dump(output))

    return PipelineStep(
        id=definition.id,
        gated=True,
        resume_model=definition.resume_model,
        execute=execute,
    )


def passthrough(definition: StepDefinition) -> PipelineStep:
    def execute(
        input_data: dict[str, object],
        ctx: StepContext,
        *,
        resume: BaseModel | None = None,
        pending: dict[str, object] | None = None,
    ) -> StepOutcome:
        inputs = definition.input_model.model_validate(input_data)
        return StepOutput(output=dump(definition.run(inputs, ctx)))

    return PipelineStep(id=definition.id, gated=False, resume_model=None, execute=execute)
