"""Document ownership records.

The editor owns documents; the engine only needs to know who owns which one.
Records are read from a JSON file under the agent state directory.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from draft_orchestrator.state.run_store import RunStore


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: str
    title: str = Field(default="")


class DocumentStore(Protocol):
    def get_document(self, document_id: str) -> Document | None: ...


@dataclass
class JsonDocumentStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[Document]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(raw, list):
            return []
        return [Document.model_validate(item) for item in raw if isinstance(item, dict)]

    def _save_unlocked(self, documents: list[Document]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [d.model_dump(mode="json", by_alias=True) for d in documents]
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def get_document(self, document_id: str) -> Document | None:
        with self._lock:
            for document in self._load_unlocked():
                if document.id == document_id:
                    return document
            return None

    def save_document(self, document: Document) -> Document:
        with self._lock:
            documents = [d for d in self._load_unlocked() if d.id != document.id]
            documents.append(document)
            self._save_unlocked(documents)
            return document

    def delete_document(self, document_id: str, *, runs: RunStore | None = None) -> bool:
        """Remove a document record, along with its workflow runs when ``runs`` is given."""

        with self._lock:
            documents = self._load_unlocked()
            remaining = [d for d in documents if d.id != document_id]
            if len(remaining) == len(documents):
                return False
            owner_id = next(d.owner_id for d in documents if d.id == document_id)
            self._save_unlocked(remaining)

        if runs is not None:
            for run in runs.list_by_owner(owner_id):
                if run.document_id == document_id:
                    runs.delete(run.id)
        return True
