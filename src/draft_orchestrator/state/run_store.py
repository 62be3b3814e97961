"""Run record model, the store contract, and the JSON-file store.

The JSON store keeps every run in one file under the agent state directory.
Every read-modify-write holds an exclusive `flock` on a sidecar `.lock` file,
so the API process and the CLI can share one file. It is meant for local use
and tests; the SQLite store is the default backend.
"""

from __future__ import annotations

import fcntl
import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from draft_orchestrator.orchestrator.workflow.errors import RunConflictError, RunNotFoundError
from draft_orchestrator.orchestrator.workflow.state_machine import (
    ACTIVE_STATUSES,
    PipelineKind,
    RunStatus,
    is_terminal,
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class WorkflowRun(BaseModel):
    id: str
    owner_id: str
    document_id: str
    pipeline_kind: PipelineKind
    status: RunStatus
    current_step_id: str | None = None

    step_state: dict[str, object] = Field(default_factory=dict)
    resume_payload: dict[str, object] | None = None
    result: dict[str, object] | None = None
    error: str | None = None

    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class RunStore(Protocol):
    """Durable storage of run records.

    Implementations enforce two rules at write time: at most one active run per
    (document, pipeline kind), and compare-and-set on ``version`` for updates.
    """

    def create(self, run: WorkflowRun) -> WorkflowRun: ...

    def get(self, run_id: str) -> WorkflowRun | None: ...

    def find_active(
        self, document_id: str, pipeline_kind: PipelineKind | None = None
    ) -> WorkflowRun | None: ...

    def list_by_owner(self, owner_id: str) -> list[WorkflowRun]: ...

    def update(self, run: WorkflowRun, *, expected_version: int) -> WorkflowRun: ...

    def delete(self, run_id: str) -> bool: ...

    def delete_expired(self, *, now: datetime) -> int: ...


@dataclass
class JsonRunStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        with self._lock, open(lock_path, "a", encoding="utf-8") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def _load_unlocked(self) -> list[WorkflowRun]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(raw, list):
            return []
        return [WorkflowRun.model_validate(item) for item in raw]

    def _save_unlocked(self, runs: list[WorkflowRun]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in runs]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    def create(self, run: WorkflowRun) -> WorkflowRun:
        with self._locked():
            runs = self._load_unlocked()
            for existing in runs:
                if existing.id == run.id:
                    raise RunConflictError(f"Run {run.id} already exists")
                if (
                    run.is_active
                    and existing.is_active
                    and existing.document_id == run.document_id
                    and existing.pipeline_kind == run.pipeline_kind
                ):
                    raise RunConflictError(
                        "A workflow is already in progress for this document"
                    )
            runs.append(run)
            self._save_unlocked(runs)
            return run

    def get(self, run_id: str) -> WorkflowRun | None:
        with self._locked():
            for run in self._load_unlocked():
                if run.id == run_id:
                    return run
            return None

    def find_active(
        self, document_id: str, pipeline_kind: PipelineKind | None = None
    ) -> WorkflowRun | None:
        with self._locked():
            candidates = [
                r
                for r in self._load_unlocked()
                if r.document_id == document_id
                and r.is_active
                and (pipeline_kind is None or r.pipeline_kind == pipeline_kind)
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.updated_at)

    def list_by_owner(self, owner_id: str) -> list[WorkflowRun]:
        with self._locked():
            runs = [r for r in self._load_unlocked() if r.owner_id == owner_id]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    def update(self, run: WorkflowRun, *, expected_version: int) -> WorkflowRun:
        with self._locked():
            runs = self._load_unlocked()
            for idx, existing in enumerate(runs):
                if existing.id != run.id:
                    continue
                if is_terminal(existing.status):
                    raise RunConflictError(f"Run {run.id} is already {existing.status.value}")
                if existing.version != expected_version:
                    raise RunConflictError(f"Run {run.id} was modified concurrently")
                stored = run.model_copy(update={"version": expected_version + 1})
                runs[idx] = stored
                self._save_unlocked(runs)
                return stored
            raise RunNotFoundError(f"Run {run.id} not found")

    def delete(self, run_id: str) -> bool:
        with self._locked():
            runs = self._load_unlocked()
            kept = [r for r in runs if r.id != run_id]
            if len(kept) == len(runs):
                return False
            self._save_unlocked(kept)
            return True

    def delete_expired(self, *, now: datetime) -> int:
        with self._locked():
            runs = self._load_unlocked()
            kept = [r for r in runs if not r.is_expired(now)]
            removed = len(runs) - len(kept)
            if removed:
                self._save_unlocked(kept)
            return removed
