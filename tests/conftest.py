"""Test configuration and fixtures."""

from __future__ import annotations

import re
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest

from draft_orchestrator.llm.provider import LLMProvider
from draft_orchestrator.orchestrator.workflow.engine import WorkflowEngine
from draft_orchestrator.search.client import SourceRecord
from draft_orchestrator.state import Document, JsonDocumentStore, SQLiteRunStore

OWNER = "user-1"
OTHER_OWNER = "user-2"

OUTLINE_JSON = """```json
{"sections": [
  {"title": "Introduction", "subsections": ["Background"]},
  {"title": "Methods", "subsections": ["Design"]}
]}
```"""

_SECTION_RE = re.compile(r'"([^"]+)" section')


class FakeLLM(LLMProvider):
    """Deterministic provider that answers by prompt type and records every call."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.outline_text = OUTLINE_JSON
        self.fail_on: str | None = None

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        self.calls.append(prompt)
        if self.fail_on and prompt.startswith(self.fail_on):
            raise TimeoutError("generation timed out")
        if prompt.startswith("Generate a structured outline"):
            return self.outline_text
        match = _SECTION_RE.search(prompt)
        title = match.group(1) if match else "unknown"
        if prompt.startswith("Generate search queries"):
            return f'["{title} a", "{title} b"]'
        if prompt.startswith("Write the"):
            return f"Text for {title} citing [1] and [2]."
        return "What aspect of this topic interests you most?"


class FakeSearch:
    """Two hits per query; the second hit is shared across every query."""

    def __init__(self) -> None:
        self.queries: list[str] = []
        self.fail_on: str | None = None
        self.gate: threading.Event | None = None

    def search(self, query: str) -> list[SourceRecord]:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.queries.append(query)
        if self.fail_on and self.fail_on in query:
            raise ConnectionError("search service unavailable")
        return [
            SourceRecord(external_id=f"{query}-1", title=f"Paper on {query}", year=2020),
            SourceRecord(external_id="shared", title="Shared review", doi="10.1000/shared"),
        ]


class MutableClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def documents(tmp_path: Path) -> JsonDocumentStore:
    """Document store with two documents for OWNER and one for OTHER_OWNER."""
    store = JsonDocumentStore(tmp_path / "agent_state" / "documents.json")
    store.save_document(Document(id="doc-1", owner_id=OWNER, title="Sleep"))
    store.save_document(Document(id="doc-2", owner_id=OWNER, title="Memory"))
    store.save_document(Document(id="doc-other", owner_id=OTHER_OWNER, title="Theirs"))
    return store


@pytest.fixture
def run_store(tmp_path: Path) -> SQLiteRunStore:
    return SQLiteRunStore(tmp_path / "agent_state" / "workflow_runs.db")


@pytest.fixture
def usage() -> Mock:
    return Mock()


@pytest.fixture
def engine(
    run_store: SQLiteRunStore,
    documents: JsonDocumentStore,
    fake_llm: FakeLLM,
    fake_search: FakeSearch,
    usage: Mock,
    clock: MutableClock,
) -> WorkflowEngine:
    return WorkflowEngine(
        store=run_store,
        documents=documents,
        llm=fake_llm,
        search=fake_search,
        usage=usage,
        clock=clock,
    )
