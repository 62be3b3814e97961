"""HTTP transport used by the client controller."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """A workflow request failed; ``reason`` mirrors the server's error code."""

    def __init__(self, message: str, *, status_code: int | None = None, reason: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class WorkflowTransport(Protocol):
    def start(
        self, *, pipeline_kind: str, initial_input: dict[str, object], document_id: str
    ) -> dict[str, Any]: ...

    def resume(
        self,
        *,
        step_id: str,
        resume_data: dict[str, object],
        run_id: str | None = None,
        document_id: str | None = None,
    ) -> dict[str, Any]: ...

    def active_run(self, *, document_id: str, pipeline_kind: str | None = None) -> dict[str, Any]: ...


class HttpWorkflowTransport:
    """``requests`` client for the ``/api/workflows`` endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        user_id: str,
        timeout_seconds: float = 300.0,
        session: requests.Session | None = None,
    ) -> None:
        if not user_id.strip():
            raise ValueError("user_id is required")
        self._base = base_url.rstrip("/") + "/api/workflows"
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json", "X-User-Id": user_id})

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = self._base + path
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"Could not reach the workflow service: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            detail = body.get("detail") if isinstance(body, dict) else None
            reason = body.get("reason", "") if isinstance(body, dict) else ""
            logger.debug(
                "Workflow request rejected",
                extra={"url": url, "status_code": resp.status_code, "reason": reason},
            )
            raise TransportError(
                str(detail or f"Request failed with status {resp.status_code}"),
                status_code=resp.status_code,
                reason=str(reason or ""),
            )
        if not isinstance(body, dict):
            raise TransportError("Unexpected response from the workflow service")
        return body

    def start(
        self, *, pipeline_kind: str, initial_input: dict[str, object], document_id: str
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            "/start",
            json={
                "pipelineKind": pipeline_kind,
                "initialInput": initial_input,
                "documentId": document_id,
            },
        )

    def resume(
        self,
        *,
        step_id: str,
        resume_data: dict[str, object],
        run_id: str | None = None,
        document_id: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, object] = {"stepId": step_id, "resumeData": resume_data}
        if run_id:
            body["runId"] = run_id
        if document_id:
            body["documentId"] = document_id
        return self._request("POST", "/resume", json=body)

    def active_run(self, *, document_id: str, pipeline_kind: str | None = None) -> dict[str, Any]:
        params = {"pipelineKind": pipeline_kind} if pipeline_kind else None
        return self._request("GET", f"/by-document/{document_id}", params=params)

    def close(self) -> None:
        self._session.close()
