"""Workflow REST API.

All routes are mounted under `/api`. The caller is identified by the
`X-User-Id` header set by the authenticating proxy in front of this service.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from draft_orchestrator.orchestrator.workflow.engine import WorkflowEngine
from draft_orchestrator.server.models import (
    ApiWorkflowRun,
    ResumeWorkflowRequest,
    StartWorkflowRequest,
)
from draft_orchestrator.state.run_store import WorkflowRun

router = APIRouter()


def _engine(request: Request) -> WorkflowEngine:
    engine = getattr(request.app.state, "engine", None)
    if not isinstance(engine, WorkflowEngine):
        raise HTTPException(status_code=500, detail="Workflow engine not configured")
    return engine


def _owner(request: Request) -> str:
    owner = (request.headers.get("x-user-id") or "").strip()
    if not owner:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return owner


def _api_run(run: WorkflowRun) -> dict[str, object]:
    return ApiWorkflowRun.from_run(run).model_dump(mode="json", by_alias=True)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/workflows/start")
def start_workflow(req: StartWorkflowRequest, request: Request) -> dict[str, object]:
    owner_id = _owner(request)
    response = _engine(request).start(
        owner_id=owner_id,
        pipeline_kind=req.pipeline_kind,
        initial_input=req.initial_input,
        document_id=req.document_id,
    )
    return response.to_json()


@router.post("/workflows/resume")
def resume_workflow(req: ResumeWorkflowRequest, request: Request) -> dict[str, object]:
    owner_id = _owner(request)
    response = _engine(request).resume(
        owner_id=owner_id,
        step_id=req.step_id,
        resume_data=req.resume_data,
        run_id=req.run_id,
        document_id=req.document_id,
        pipeline_kind=req.pipeline_kind,
    )
    return response.to_json()


@router.get("/workflows/by-document/{document_id}")
def get_active_workflow(
    document_id: str,
    request: Request,
    pipeline_kind: str | None = Query(default=None, alias="pipelineKind"),
) -> dict[str, object]:
    owner_id = _owner(request)
    run = _engine(request).get_active_run(
        owner_id=owner_id, document_id=document_id, pipeline_kind=pipeline_kind
    )
    if run is None:
        return {"active": False}
    return {"active": True, "run": _api_run(run)}


@router.get("/workflows/{run_id}")
def get_workflow(run_id: str, request: Request) -> dict[str, object]:
    owner_id = _owner(request)
    run = _engine(request).get_run(owner_id=owner_id, run_id=run_id)
    return _api_run(run)
