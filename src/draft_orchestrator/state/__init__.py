"""Persistence for run records and document ownership."""

from __future__ import annotations

from pathlib import Path

from .document_store import Document, DocumentStore, JsonDocumentStore
from .run_store import JsonRunStore, RunStore, WorkflowRun
from .sqlite_store import SQLiteRunStore

__all__ = [
    "Document",
    "DocumentStore",
    "JsonDocumentStore",
    "JsonRunStore",
    "RunStore",
    "SQLiteRunStore",
    "WorkflowRun",
    "open_run_store",
]


def open_run_store(url: str) -> RunStore:
    """Open the run store selected by ``url``.

    ``sqlite:///relative/runs.db`` and ``sqlite:////absolute/runs.db`` select the
    SQLite store; ``json:///...`` selects the JSON-file store.
    """

    if url.startswith("sqlite:///"):
        return SQLiteRunStore(Path(url.removeprefix("sqlite:///")))
    if url.startswith("json:///"):
        return JsonRunStore(Path(url.removeprefix("json:///")))
    raise ValueError(f"Unsupported run store backend: {url}")
