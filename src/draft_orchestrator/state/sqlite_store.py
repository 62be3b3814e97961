"""SQLite implementation of the run store."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from draft_orchestrator.orchestrator.workflow.errors import RunConflictError, RunNotFoundError
from draft_orchestrator.orchestrator.workflow.state_machine import PipelineKind, RunStatus

from .run_store import WorkflowRun

_COLUMNS = (
    "id, owner_id, document_id, pipeline_kind, status, current_step_id, step_state, "
    "resume_payload, result, error, created_at, updated_at, expires_at, version"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workflow_runs (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        document_id TEXT NOT NULL,
        pipeline_kind TEXT NOT NULL,
        status TEXT NOT NULL,
        current_step_id TEXT,
        step_state TEXT NOT NULL,
        resume_payload TEXT,
        result TEXT,
        error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_runs_document_status ON workflow_runs (document_id, status)",
    "CREATE INDEX IF NOT EXISTS ix_runs_expires_at ON workflow_runs (expires_at)",
    "CREATE INDEX IF NOT EXISTS ix_runs_owner ON workflow_runs (owner_id)",
    # One active run per document and pipeline kind, enforced by the database.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_runs_active
    ON workflow_runs (document_id, pipeline_kind)
    WHERE status IN ('running', 'suspended')
    """,
)


def _ts(value: datetime) -> str:
    # Fixed-width UTC text so that string comparison orders timestamps.
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _json_or_none(value: dict[str, object] | None) -> str | None:
    return None if value is None else json.dumps(value, ensure_ascii=False)


class SQLiteRunStore:
    """Persist run records in a single SQLite table.

    A connection is opened per operation so the store can be shared between the
    request threads and the sweeper thread.
    """

    def __init__(self, db_path: str | Path, *, timeout_seconds: float = 10.0) -> None:
        self.db_path = Path(db_path)
        self._timeout = timeout_seconds
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Connection and schema
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.db_path, timeout=self._timeout)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> WorkflowRun:
        return WorkflowRun(
            id=row["id"],
            owner_id=row["owner_id"],
            document_id=row["document_id"],
            pipeline_kind=PipelineKind(row["pipeline_kind"]),
            status=RunStatus(row["status"]),
            current_step_id=row["current_step_id"],
            step_state=json.loads(row["step_state"]),
            resume_payload=json.loads(row["resume_payload"]) if row["resume_payload"] else None,
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            version=row["version"],
        )

    def _fetchone(self, query: str, *params: Any) -> WorkflowRun | None:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_run(row) if row else None

    def _fetchall(self, query: str, *params: Any) -> list[WorkflowRun]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_run(r) for r in rows]

    # ------------------------------------------------------------------
    # Store API
    def create(self, run: WorkflowRun) -> WorkflowRun:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO workflow_runs ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        run.id,
                        run.owner_id,
                        run.document_id,
                        run.pipeline_kind.value,
                        run.status.value,
                        run.current_step_id,
                        json.dumps(run.step_state, ensure_ascii=False),
                        _json_or_none(run.resume_payload),
                        _json_or_none(run.result),
                        run.error,
                        _ts(run.created_at),
                        _ts(run.updated_at),
                        _ts(run.expires_at),
                        run.version,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise RunConflictError("A workflow is already in progress for this document") from e
        return run

    def get(self, run_id: str) -> WorkflowRun | None:
        return self._fetchone(f"SELECT {_COLUMNS} FROM workflow_runs WHERE id = ?", run_id)

    def find_active(
        self, document_id: str, pipeline_kind: PipelineKind | None = None
    ) -> WorkflowRun | None:
        query = (
            f"SELECT {_COLUMNS} FROM workflow_runs "
            "WHERE document_id = ? AND status IN ('running', 'suspended')"
        )
        params: list[Any] = [document_id]
        if pipeline_kind is not None:
            query += " AND pipeline_kind = ?"
            params.append(pipeline_kind.value)
        query += " ORDER BY updated_at DESC LIMIT 1"
        return self._fetchone(query, *params)

    def list_by_owner(self, owner_id: str) -> list[WorkflowRun]:
        return self._fetchall(
            f"SELECT {_COLUMNS} FROM workflow_runs WHERE owner_id = ? ORDER BY created_at DESC",
            owner_id,
        )

    def update(self, run: WorkflowRun, *, expected_version: int) -> WorkflowRun:
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE workflow_runs
                    SET status = ?, current_step_id = ?, step_state = ?, resume_payload = ?,
                        result = ?, error = ?, updated_at = ?, expires_at = ?,
                        version = version + 1
                    WHERE id = ? AND version = ? AND status NOT IN ('completed', 'failed')
                    """,
                    (
                        run.status.value,
                        run.current_step_id,
                        json.dumps(run.step_state, ensure_ascii=False),
                        _json_or_none(run.resume_payload),
                        _json_or_none(run.result),
                        run.error,
                        _ts(run.updated_at),
                        _ts(run.expires_at),
                        run.id,
                        expected_version,
                    ),
                )
                updated = cur.rowcount
        except sqlite3.IntegrityError as e:
            raise RunConflictError("A workflow is already in progress for this document") from e

        if updated == 1:
            return run.model_copy(update={"version": expected_version + 1})

        current = self.get(run.id)
        if current is None:
            raise RunNotFoundError(f"Run {run.id} not found")
        if current.status in (RunStatus.COMPLETED, RunStatus.FAILED):
            raise RunConflictError(f"Run {run.id} is already {current.status.value}")
        raise RunConflictError(f"Run {run.id} was modified concurrently")

    def delete(self, run_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM workflow_runs WHERE id = ?", (run_id,))
            return cur.rowcount > 0

    def delete_expired(self, *, now: datetime) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM workflow_runs WHERE expires_at < ?", (_ts(now),))
            return cur.rowcount
