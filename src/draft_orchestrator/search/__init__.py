"""Source discovery collaborator."""

from draft_orchestrator.search.client import (
    HttpSourceSearch,
    SearchServiceError,
    SourceRecord,
    SourceSearch,
)

__all__ = [
    "HttpSourceSearch",
    "SearchServiceError",
    "SourceRecord",
    "SourceSearch",
]
