"""Caller-side workflow controller.

Tracks what an editor UI needs to render: a status, the step number in the
five-step progress indicator, and the artifacts produced so far. Each server
response only carries the artifact of the step it is about, so responses are
merged into local state rather than replacing it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from draft_orchestrator.orchestrator.workflow.coaching import COACHING_STAGES
from draft_orchestrator.orchestrator.workflow.drafting import (
    COMBINE_DRAFT,
    FIND_SOURCES,
    GENERATE_OUTLINE,
    WRITE_SECTIONS,
)

from .transport import TransportError, WorkflowTransport

logger = logging.getLogger(__name__)


class ControllerStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RESUMING = "resuming"
    AWAITING_OUTLINE_APPROVAL = "awaiting-outline-approval"
    AWAITING_SOURCE_APPROVAL = "awaiting-source-approval"
    AWAITING_DRAFT_REVIEW = "awaiting-draft-review"
    AWAITING_STAGE_COMPLETION = "awaiting-stage-completion"
    COMPLETED = "completed"
    FAILED = "failed"


# Step 1 is the topic form; the pipeline steps follow it.
STEP_NUMBERS: dict[str, int] = {
    GENERATE_OUTLINE: 2,
    FIND_SOURCES: 3,
    WRITE_SECTIONS: 4,
    COMBINE_DRAFT: 5,
}
FINAL_STEP_NUMBER = 5

_AWAITING: dict[str, ControllerStatus] = {
    GENERATE_OUTLINE: ControllerStatus.AWAITING_OUTLINE_APPROVAL,
    FIND_SOURCES: ControllerStatus.AWAITING_SOURCE_APPROVAL,
    WRITE_SECTIONS: ControllerStatus.AWAITING_DRAFT_REVIEW,
}


@dataclass
class DraftArtifacts:
    outline: dict[str, Any] | None = None
    sources_by_section: dict[str, Any] | None = None
    section_drafts: list[Any] | None = None
    coaching_stage: str | None = None
    coach_message: str | None = None
    complete_draft: str | None = None


class WorkflowController:
    def __init__(
        self,
        transport: WorkflowTransport,
        *,
        document_id: str,
        pipeline_kind: str = "guided",
    ) -> None:
        self._transport = transport
        self.document_id = document_id
        self.pipeline_kind = pipeline_kind
        self.reset()

    def reset(self) -> None:
        """Discard all local state (server-side runs are left alone)."""

        self.status = ControllerStatus.IDLE
        self.current_step = 1
        self.suspended_step: str | None = None
        self.run_id: str | None = None
        self.error: str | None = None
        self.artifacts = DraftArtifacts()

    # ------------------------------------------------------------------
    # Requests

    def start(self, topic: str) -> ControllerStatus:
        return self._send(
            ControllerStatus.STARTING,
            lambda: self._transport.start(
                pipeline_kind=self.pipeline_kind,
                initial_input={"topic": topic},
                document_id=self.document_id,
            ),
        )

    def resume(self, resume_data: dict[str, object]) -> ControllerStatus:
        if self.suspended_step is None:
            self.error = "Nothing to resume"
            return self.status
        step_id = self.suspended_step
        status = self._send(
            ControllerStatus.RESUMING,
            lambda: self._transport.resume(
                step_id=step_id,
                resume_data=resume_data,
                run_id=self.run_id,
                document_id=None if self.run_id else self.document_id,
            ),
        )
        if self.error is None:
            self._merge_overrides(resume_data)
        return status

    def approve(self, **overrides: object) -> ControllerStatus:
        flag = "stageComplete" if self.suspended_step in COACHING_STAGES else "approved"
        return self.resume({flag: True, **overrides})

    def reject(self) -> ControllerStatus:
        flag = "stageComplete" if self.suspended_step in COACHING_STAGES else "approved"
        return self.resume({flag: False})

    def restore(self) -> ControllerStatus:
        """Pick up the active run for the document, e.g. after a page reload."""

        try:
            body = self._transport.active_run(
                document_id=self.document_id, pipeline_kind=self.pipeline_kind
            )
        except TransportError as e:
            self.error = str(e)
            return self.status
        run = body.get("run") if body.get("active") else None
        if not isinstance(run, dict):
            return self.status

        self.run_id = run.get("runId")
        outputs = (run.get("stepState") or {}).get("outputs") or {}
        if GENERATE_OUTLINE in outputs:
            self.artifacts.outline = outputs[GENERATE_OUTLINE].get("outline")
        if FIND_SOURCES in outputs:
            self.artifacts.sources_by_section = outputs[FIND_SOURCES].get("sourcesBySection")
        if WRITE_SECTIONS in outputs:
            self.artifacts.section_drafts = outputs[WRITE_SECTIONS].get("sectionDrafts")

        if run.get("status") == "suspended" and run.get("currentStepId"):
            self._apply_suspension(run["currentStepId"], run.get("resumePayload") or {})
        return self.status

    # ------------------------------------------------------------------
    # Response handling

    def _send(self, pending: ControllerStatus, call: Any) -> ControllerStatus:
        previous = self.status
        self.status = pending
        self.error = None
        try:
            response = call()
        except TransportError as e:
            logger.warning("Workflow request failed", extra={"reason": e.reason})
            self.status = previous
            self.error = str(e)
            return self.status
        self._apply(response)
        return self.status

    def _apply(self, response: dict[str, Any]) -> None:
        self.run_id = response.get("runId", self.run_id)
        status = response.get("status")

        if status == "suspended":
            self._apply_suspension(response.get("stepId", ""), response.get("payload") or {})
        elif status == "completed":
            self.suspended_step = None
            result = response.get("result") or {}
            if "completeDraft" in result:
                self.artifacts.complete_draft = result["completeDraft"]
                self.current_step = FINAL_STEP_NUMBER
            elif "coachMessage" in result:
                self.artifacts.coach_message = result["coachMessage"]
            self.status = ControllerStatus.COMPLETED
        elif status == "failed":
            self.suspended_step = None
            self.error = response.get("error") or "The workflow failed"
            self.status = ControllerStatus.FAILED
        else:
            self.error = f"Unexpected workflow status: {status}"
            self.status = ControllerStatus.FAILED

    def _apply_suspension(self, step_id: str, payload: dict[str, Any]) -> None:
        self.suspended_step = step_id
        if step_id in STEP_NUMBERS:
            self.current_step = STEP_NUMBERS[step_id]

        if step_id == GENERATE_OUTLINE:
            self.artifacts.outline = payload.get("outline", self.artifacts.outline)
        elif step_id == FIND_SOURCES:
            self.artifacts.sources_by_section = payload.get(
                "sourcesBySection", self.artifacts.sources_by_section
            )
        elif step_id == WRITE_SECTIONS:
            self.artifacts.section_drafts = payload.get(
                "sectionDrafts", self.artifacts.section_drafts
            )
        elif step_id in COACHING_STAGES:
            self.artifacts.coaching_stage = payload.get("stage", step_id)
            self.artifacts.coach_message = payload.get("coachMessage")

        if step_id in COACHING_STAGES:
            self.status = ControllerStatus.AWAITING_STAGE_COMPLETION
        elif step_id in _AWAITING:
            self.status = _AWAITING[step_id]
        else:
            self.error = f"Unknown workflow step: {step_id}"
            self.status = ControllerStatus.FAILED

    def _merge_overrides(self, resume_data: dict[str, object]) -> None:
        # Approved edits become the local artifact.
        if resume_data.get("approved") is not True:
            return
        outline = resume_data.get("editedOutline")
        if isinstance(outline, dict):
            self.artifacts.outline = outline
        sources = resume_data.get("approvedSources")
        if isinstance(sources, dict):
            self.artifacts.sources_by_section = sources
        drafts = resume_data.get("editedDrafts")
        if isinstance(drafts, list):
            self.artifacts.section_drafts = drafts
