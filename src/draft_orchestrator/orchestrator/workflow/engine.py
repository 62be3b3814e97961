"""Workflow engine.

The engine is a synchronous control loop over a persisted run record:

- ``start`` creates a run and executes from the first step.
- ``resume`` claims a suspended run and executes from the step it stopped at.

Each invocation advances until a gated step suspends or the pipeline reaches a
terminal state, writing a checkpoint after every step. Nothing is kept in
memory between invocations, so a suspended run survives restarts.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel

from draft_orchestrator.orchestrator.config import DEFAULT_MAX_PAYLOAD_BYTES
from draft_orchestrator.state.run_store import RunStore, WorkflowRun, utc_now

from .errors import (
    PayloadTooLargeError,
    PersistenceError,
    RunConflictError,
    RunNotFoundError,
    WorkflowError,
    WorkflowValidationError,
)
from .pipelines import Pipeline, default_pipelines
from .state_machine import (
    Completed,
    Failed,
    PipelineKind,
    PipelineState,
    Running,
    RunStatus,
    StepState,
    Suspended,
    transition,
)
from .steps import StepContext, StepSuspension
from .usage import LoggingUsageRecorder, UsageRecorder

if TYPE_CHECKING:
    from draft_orchestrator.llm.provider import LLMProvider
    from draft_orchestrator.orchestrator.config import OrchestratorSettings
    from draft_orchestrator.search.client import SourceSearch
    from draft_orchestrator.state.document_store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WorkflowResponse:
    run_id: str
    status: RunStatus
    step_id: str | None = None
    payload: dict[str, object] | None = None
    result: dict[str, object] | None = None
    error: str | None = None

    @staticmethod
    def from_state(run_id: str, state: PipelineState) -> WorkflowResponse:
        match state:
            case Suspended(step_id=step_id, resume_payload=payload):
                return WorkflowResponse(
                    run_id=run_id, status=RunStatus.SUSPENDED, step_id=step_id, payload=payload
                )
            case Completed(result=result):
                return WorkflowResponse(run_id=run_id, status=RunStatus.COMPLETED, result=result)
            case Failed(error=error):
                return WorkflowResponse(run_id=run_id, status=RunStatus.FAILED, error=error)
            case Running(step_id=step_id):
                return WorkflowResponse(run_id=run_id, status=RunStatus.RUNNING, step_id=step_id)
        raise TypeError(f"Unknown pipeline state: {state!r}")

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"runId": self.run_id, "status": self.status.value}
        if self.step_id is not None:
            out["stepId"] = self.step_id
        if self.payload is not None:
            out["payload"] = self.payload
        if self.result is not None:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = self.error
        return out


def payload_size(value: object) -> int:
    """Size in bytes of ``value`` as compact UTF-8 JSON."""

    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    encoded = json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return len(encoded.encode("utf-8"))


class WorkflowEngine:
    def __init__(
        self,
        *,
        store: RunStore,
        documents: DocumentStore,
        llm: LLMProvider,
        search: SourceSearch,
        pipelines: Mapping[PipelineKind, Pipeline] | None = None,
        usage: UsageRecorder | None = None,
        ttl: timedelta = timedelta(minutes=30),
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
        refresh_ttl_on_resume: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._documents = documents
        self._llm = llm
        self._search = search
        self._pipelines = dict(pipelines) if pipelines is not None else dict(default_pipelines())
        self._usage = usage or LoggingUsageRecorder()
        self._ttl = ttl
        self._max_payload_bytes = max_payload_bytes
        self._refresh_ttl_on_resume = refresh_ttl_on_resume
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: OrchestratorSettings,
        *,
        llm: LLMProvider | None = None,
        search: SourceSearch | None = None,
        usage: UsageRecorder | None = None,
    ) -> WorkflowEngine:
        from draft_orchestrator.llm.factory import LLMFactory
        from draft_orchestrator.search.client import HttpSourceSearch
        from draft_orchestrator.state import JsonDocumentStore, open_run_store

        return cls(
            store=open_run_store(settings.resolved_run_store_url),
            documents=JsonDocumentStore(settings.documents_state_file),
            llm=llm or LLMFactory.create(settings.llm),
            search=search
            or HttpSourceSearch(
                base_url=settings.search_base_url,
                timeout_seconds=settings.search_timeout_seconds,
            ),
            usage=usage,
            ttl=settings.run_ttl,
            max_payload_bytes=settings.max_payload_bytes,
            refresh_ttl_on_resume=settings.refresh_ttl_on_resume,
        )

    @property
    def store(self) -> RunStore:
        return self._store

    # ------------------------------------------------------------------
    # Public operations

    def start(
        self,
        *,
        owner_id: str,
        pipeline_kind: PipelineKind | str,
        initial_input: object,
        document_id: str,
    ) -> WorkflowResponse:
        pipeline = self._pipeline(pipeline_kind)
        self._require_document(owner_id, document_id)
        self._guard_size("initialInput", initial_input)
        normalised = pipeline.validate_input(initial_input)

        now = self._clock()
        existing = self._store.find_active(document_id, pipeline.kind)
        if existing is not None:
            if not existing.is_expired(now):
                raise RunConflictError(
                    "A workflow is already in progress for this document; resume or wait for it to finish"
                )
            # Expired but not yet swept; it no longer blocks a new run.
            logger.info(
                "Reclaiming expired run",
                extra={"run_id": existing.id, "document_id": document_id},
            )
            self._store.delete(existing.id)

        run = WorkflowRun(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            document_id=document_id,
            pipeline_kind=pipeline.kind,
            status=RunStatus.RUNNING,
            current_step_id=None,
            step_state=StepState(initial_input=normalised).to_json(),
            created_at=now,
            updated_at=now,
            expires_at=now + self._ttl,
            version=0,
        )
        try:
            self._store.create(run)
        except WorkflowError:
            raise
        except Exception as e:
            logger.exception("Failed to create workflow run", extra={"document_id": document_id})
            raise PersistenceError("The workflow could not be saved; please retry") from e

        logger.info(
            "Workflow started",
            extra={
                "run_id": run.id,
                "document_id": document_id,
                "pipeline_kind": pipeline.kind.value,
            },
        )
        return self._advance(run, pipeline, start_index=0, resume=None)

    def resume(
        self,
        *,
        owner_id: str,
        step_id: str,
        resume_data: dict[str, object] | None,
        run_id: str | None = None,
        document_id: str | None = None,
        pipeline_kind: PipelineKind | str | None = None,
    ) -> WorkflowResponse:
        run = self._locate(
            owner_id=owner_id,
            run_id=run_id,
            document_id=document_id,
            pipeline_kind=pipeline_kind,
        )

        if run.status != RunStatus.SUSPENDED:
            raise RunConflictError(
                f"This workflow is {run.status.value} and cannot be resumed"
            )
        if step_id != run.current_step_id:
            raise WorkflowValidationError(
                f"Step '{step_id}' does not match the current step '{run.current_step_id}'"
            )
        self._guard_size("resumeData", resume_data)

        pipeline = self._pipeline(run.pipeline_kind)
        index = pipeline.index_of(step_id)
        resume = pipeline.steps[index].parse_resume(resume_data)

        now = self._clock()
        claimed = run.model_copy(
            update={
                "status": transition(current=run.status, to=RunStatus.RUNNING),
                "resume_payload": None,
                "updated_at": now,
                "expires_at": now + self._ttl if self._refresh_ttl_on_resume else run.expires_at,
            }
        )
        claimed = self._write(claimed, expected_version=run.version)

        logger.info("Workflow resumed", extra={"run_id": run.id, "step_id": step_id})
        return self._advance(claimed, pipeline, start_index=index, resume=resume)

    def get_active_run(
        self,
        *,
        owner_id: str,
        document_id: str,
        pipeline_kind: PipelineKind | str | None = None,
    ) -> WorkflowRun | None:
        kind = self._parse_kind(pipeline_kind) if pipeline_kind is not None else None
        self._require_document(owner_id, document_id)
        run = self._store.find_active(document_id, kind)
        if run is None or run.owner_id != owner_id or run.is_expired(self._clock()):
            return None
        return run

    def get_run(self, *, owner_id: str, run_id: str) -> WorkflowRun:
        run = self._store.get(run_id)
        if run is None or run.owner_id != owner_id or run.is_expired(self._clock()):
            raise RunNotFoundError("Workflow not found")
        return run

    # ------------------------------------------------------------------
    # Control loop

    def _advance(
        self,
        run: WorkflowRun,
        pipeline: Pipeline,
        *,
        start_index: int,
        resume: BaseModel | None,
    ) -> WorkflowResponse:
        state = StepState.from_json(run.step_state)
        index = start_index

        while index < len(pipeline.steps):
            step = pipeline.steps[index]
            step_resume = resume if index == start_index else None
            ctx = StepContext(
                llm=self._llm,
                search=self._search,
                run_id=run.id,
                document_id=run.document_id,
            )
            try:
                outcome = step.execute(
                    pipeline.input_for(index, state),
                    ctx,
                    resume=step_resume,
                    pending=state.pending if step_resume is not None else None,
                )
            except Exception as e:
                logger.exception(
                    "Workflow step failed", extra={"run_id": run.id, "step_id": step.id}
                )
                # Calls made before the failure are still billed.
                self._record_usage(run, step.id, ctx)
                return self._fail(run, step.id, f"Step '{step.id}' failed: {e}")

            self._record_usage(run, step.id, ctx)

            if isinstance(outcome, StepSuspension):
                next_state: PipelineState = Suspended(
                    step_id=step.id,
                    state=state.with_pending(outcome.pending),
                    resume_payload=outcome.payload,
                )
            else:
                state = state.with_output(step.id, outcome.output)
                if index == len(pipeline.steps) - 1:
                    next_state = Completed(result=outcome.output)
                else:
                    next_state = Running(step_id=step.id, state=state)

            try:
                run = self._checkpoint(run, next_state, step_id=step.id)
            except PayloadTooLargeError as e:
                logger.warning(
                    "Step state exceeds the payload ceiling",
                    extra={"run_id": run.id, "step_id": step.id, "size": e.size},
                )
                return self._fail(run, step.id, str(e))

            if not isinstance(next_state, Running):
                logger.info(
                    "Workflow checkpoint",
                    extra={"run_id": run.id, "step_id": step.id, "status": run.status.value},
                )
                return WorkflowResponse.from_state(run.id, next_state)
            index += 1

        # A pipeline always ends in Completed on its last step.
        raise WorkflowError(f"Pipeline {pipeline.kind.value} ended without a result")

    def _fail(self, run: WorkflowRun, step_id: str, message: str) -> WorkflowResponse:
        failed = Failed(error=message)
        self._checkpoint(run, failed, step_id=step_id)
        return WorkflowResponse.from_state(run.id, failed)

    def _checkpoint(
        self, run: WorkflowRun, state: PipelineState, *, step_id: str
    ) -> WorkflowRun:
        now = self._clock()
        update: dict[str, object] = {"current_step_id": step_id, "updated_at": now}
        match state:
            case Running(state=step_state):
                update |= {
                    "status": RunStatus.RUNNING,
                    "step_state": step_state.to_json(),
                    "resume_payload": None,
                }
            case Suspended(state=step_state, resume_payload=payload):
                update |= {
                    "status": RunStatus.SUSPENDED,
                    "step_state": step_state.to_json(),
                    "resume_payload": payload,
                }
            case Completed(result=result):
                update |= {"status": RunStatus.COMPLETED, "result": result, "resume_payload": None}
            case Failed(error=error):
                update |= {"status": RunStatus.FAILED, "error": error, "resume_payload": None}

        transition(current=run.status, to=update["status"])  # type: ignore[arg-type]
        updated = run.model_copy(update=update)

        if updated.status != RunStatus.FAILED:
            self._guard_size("stepState", updated.step_state)
            self._guard_size("resumePayload", updated.resume_payload)
            self._guard_size("result", updated.result)

        try:
            return self._write(updated, expected_version=run.version)
        except PersistenceError:
            if updated.status != RunStatus.FAILED:
                self._try_mark_failed(run, "Progress could not be saved")
            raise

    def _write(self, run: WorkflowRun, *, expected_version: int) -> WorkflowRun:
        try:
            return self._store.update(run, expected_version=expected_version)
        except WorkflowError:
            raise
        except Exception as e:
            logger.exception("Failed to persist workflow run", extra={"run_id": run.id})
            raise PersistenceError("Progress could not be saved; please retry") from e

    def _try_mark_failed(self, run: WorkflowRun, message: str) -> None:
        failed = run.model_copy(
            update={
                "status": RunStatus.FAILED,
                "error": message,
                "resume_payload": None,
                "updated_at": self._clock(),
            }
        )
        try:
            self._store.update(failed, expected_version=run.version)
        except Exception:
            # The run stays in its last saved state until it expires.
            logger.warning(
                "Could not mark run as failed", extra={"run_id": run.id}, exc_info=True
            )

    # ------------------------------------------------------------------
    # Helpers

    def _record_usage(self, run: WorkflowRun, step_id: str, ctx: StepContext) -> None:
        if ctx.generation_calls == 0 and ctx.search_calls == 0:
            return
        self._usage.record(
            owner_id=run.owner_id,
            run_id=run.id,
            step_id=step_id,
            generation_calls=ctx.generation_calls,
            search_calls=ctx.search_calls,
        )

    def _locate(
        self,
        *,
        owner_id: str,
        run_id: str | None,
        document_id: str | None,
        pipeline_kind: PipelineKind | str | None,
    ) -> WorkflowRun:
        if run_id:
            run = self._store.get(run_id)
            if run is not None and document_id and run.document_id != document_id:
                run = None
        elif document_id:
            kind = self._parse_kind(pipeline_kind) if pipeline_kind is not None else None
            self._require_document(owner_id, document_id)
            run = self._store.find_active(document_id, kind)
        else:
            raise WorkflowValidationError("Either runId or documentId is required")

        if run is None or run.owner_id != owner_id:
            raise RunNotFoundError("Workflow not found")
        self._require_document(owner_id, run.document_id)
        if run.is_expired(self._clock()):
            raise RunNotFoundError("This workflow has expired; start a new one")
        return run

    def _require_document(self, owner_id: str, document_id: str) -> None:
        document = self._documents.get_document(document_id)
        if document is None or document.owner_id != owner_id:
            raise RunNotFoundError("Document not found")

    def _parse_kind(self, value: PipelineKind | str) -> PipelineKind:
        try:
            return PipelineKind(value)
        except ValueError as e:
            raise WorkflowValidationError(f"Unknown pipeline kind: {value}") from e

    def _pipeline(self, value: PipelineKind | str) -> Pipeline:
        kind = self._parse_kind(value)
        try:
            return self._pipelines[kind]
        except KeyError as e:
            raise WorkflowValidationError(f"Pipeline {kind.value} is not available") from e

    def _guard_size(self, field: str, value: object) -> None:
        if value is None:
            return
        size = payload_size(value)
        if size > self._max_payload_bytes:
            raise PayloadTooLargeError(field=field, size=size, limit=self._max_payload_bytes)
