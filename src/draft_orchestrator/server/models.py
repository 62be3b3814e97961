"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from draft_orchestrator.state.run_store import WorkflowRun


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartWorkflowRequest(ApiModel):
    pipeline_kind: str = Field(min_length=1)
    initial_input: dict[str, object]
    document_id: str = Field(min_length=1)


class ResumeWorkflowRequest(ApiModel):
    run_id: str | None = None
    document_id: str | None = None
    pipeline_kind: str | None = None
    step_id: str = Field(min_length=1)
    resume_data: dict[str, object] | None = None


class ApiWorkflowRun(ApiModel):
    run_id: str
    document_id: str
    pipeline_kind: str
    status: str
    current_step_id: str | None = None

    step_state: dict[str, object] = Field(default_factory=dict)
    resume_payload: dict[str, object] | None = None
    result: dict[str, object] | None = None
    error: str | None = None

    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    @staticmethod
    def from_run(run: WorkflowRun) -> ApiWorkflowRun:
        return ApiWorkflowRun(
            run_id=run.id,
            document_id=run.document_id,
            pipeline_kind=run.pipeline_kind.value,
            status=run.status.value,
            current_step_id=run.current_step_id,
            step_state=run.step_state,
            resume_payload=run.resume_payload,
            result=run.result,
            error=run.error,
            created_at=run.created_at,
            updated_at=run.updated_at,
            expires_at=run.expires_at,
        )
