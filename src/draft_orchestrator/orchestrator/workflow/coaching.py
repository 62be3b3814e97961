"""Coaching stages.

The coach never writes for the student; each stage produces a short guiding
message and waits until the student marks the stage complete.
"""

from __future__ import annotations

from pydantic import Field

from . import prompts
from .steps import StepContext, StepDefinition, StepModel

COACHING_STAGES: tuple[str, ...] = ("understand", "literature", "outline", "drafting", "feedback")
FEEDBACK_STAGE = "feedback"


class CoachingProgress(StepModel):
    topic: str = Field(min_length=1, max_length=500)
    stage_summaries: dict[str, str] = Field(default_factory=dict)
    last_stage: str | None = None
    coach_message: str = ""
    complete: bool = False


class CoachingResume(StepModel):
    stage_complete: bool
    summary: str | None = None


def _stage_runner(stage: str, *, final: bool):
    def run(inputs: CoachingProgress, ctx: StepContext) -> CoachingProgress:
        if stage == FEEDBACK_STAGE:
            message = prompts.FEEDBACK_STAGE_MESSAGE
        else:
            message = ctx.generate(
                prompts.coaching_prompt(stage, inputs.topic), system=prompts.COACH_SYSTEM
            ).strip()
        return inputs.model_copy(
            update={"last_stage": stage, "coach_message": message, "complete": final}
        )

    return run


def _stage_approver(stage: str):
    def approve(
        inputs: CoachingProgress, pending: CoachingProgress | None, resume: CoachingResume
    ) -> CoachingProgress | None:
        if pending is None:
            return None
        summaries = dict(pending.stage_summaries)
        if resume.summary:
            summaries[stage] = resume.summary
        return pending.model_copy(update={"stage_summaries": summaries})

    return approve


def coaching_stage(stage: str, *, final: bool = False) -> StepDefinition:
    if stage not in COACHING_STAGES:
        raise ValueError(f"Unknown coaching stage: {stage}")
    return StepDefinition(
        id=stage,
        input_model=CoachingProgress,
        output_model=CoachingProgress,
        run=_stage_runner(stage, final=final),
        resume_model=CoachingResume,
        suspend_payload=lambda out: {"stage": stage, "coachMessage": out.coach_message},
        approve=_stage_approver(stage),
        is_approved=lambda resume: bool(resume.stage_complete),
    )


def coaching_stages() -> list[StepDefinition]:
    last = len(COACHING_STAGES) - 1
    return [coaching_stage(stage, final=i == last) for i, stage in enumerate(COACHING_STAGES)]
