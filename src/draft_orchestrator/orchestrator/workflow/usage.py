"""Usage accounting hook.

Billing lives outside this package. The engine reports each step execution that
reached a collaborator; approvals that short-circuit report nothing.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class UsageRecorder(Protocol):
    def record(
        self,
        *,
        owner_id: str,
        run_id: str,
        step_id: str,
        generation_calls: int,
        search_calls: int,
    ) -> None: ...


class LoggingUsageRecorder:
    """Default recorder: emits one structured log line per billable step."""

    def record(
        self,
        *,
        owner_id: str,
        run_id: str,
        step_id: str,
        generation_calls: int,
        search_calls: int,
    ) -> None:
        logger.info(
            "Step usage",
            extra={
                "owner_id": owner_id,
                "run_id": run_id,
                "step_id": step_id,
                "generation_calls": generation_calls,
                "search_calls": search_calls,
            },
        )
