"""Source discovery collaborator.

The engine only needs ``search(query) -> list[SourceRecord]``. The HTTP client
talks to the aggregate search endpoint (which fans out to the bibliographic
databases and already de-duplicates across them).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class SourceRecord(BaseModel):
    """A candidate source as returned by the search service."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    external_id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    year: int | None = None
    journal: str | None = None
    abstract: str | None = None
    doi: str | None = None
    url: str | None = None

    def dedupe_key(self) -> str:
        if self.doi and self.doi.strip():
            return "doi:" + self.doi.strip().lower()
        return "id:" + self.external_id.strip()


class SourceSearch(Protocol):
    def search(self, query: str) -> list[SourceRecord]: ...


class SearchServiceError(RuntimeError):
    pass


class HttpSourceSearch:
    """``requests`` client for ``POST {base_url}/api/search``."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("Search base URL is required")
        self._url = base_url.rstrip("/") + "/api/search"
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Accept": "application/json", "User-Agent": "draft-orchestrator"}
        )

    def search(self, query: str) -> list[SourceRecord]:
        try:
            resp = self._session.post(
                self._url, json={"query": query, "page": 1}, timeout=self._timeout
            )
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise SearchServiceError(f"Search request failed: {e}") from e

        raw = data.get("results") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            return []

        records: list[SourceRecord] = []
        for item in raw:
            try:
                records.append(SourceRecord.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed search result", extra={"query": query})
        return records

    def close(self) -> None:
        self._session.close()
