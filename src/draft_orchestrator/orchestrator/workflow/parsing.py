"""Defensive extraction of structured data from generated text.

Providers are asked for JSON but routinely wrap it in markdown code fences, add
prose around it, or return something else entirely. Callers always supply a
fallback so a bad completion never stops a pipeline.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_CITATION_RE = re.compile(r"\[(\d+)\]")

ModelT = TypeVar("ModelT", bound=BaseModel)


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced block, or the stripped text."""

    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json(text: str) -> object | None:
    """Parse JSON from a completion; ``None`` when nothing parses."""

    candidate = strip_code_fence(text or "")
    if not candidate:
        return None
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def parse_model(text: str, model: type[ModelT], *, fallback: ModelT) -> ModelT:
    raw = extract_json(text)
    if raw is None:
        logger.warning(
            "Completion is not valid JSON; using fallback", extra={"model": model.__name__}
        )
        return fallback
    try:
        return model.model_validate(raw)
    except ValidationError:
        logger.warning(
            "Completion does not match the expected shape; using fallback",
            extra={"model": model.__name__},
        )
        return fallback


def parse_string_list(text: str, *, fallback: list[str]) -> list[str]:
    raw = extract_json(text)
    if not isinstance(raw, list):
        return list(fallback)
    items = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    return items or list(fallback)


def citation_indices(text: str) -> list[int]:
    """Distinct ``[n]`` citation markers in order of first appearance."""

    seen: list[int] = []
    for match in _CITATION_RE.finditer(text):
        value = int(match.group(1))
        if value > 0 and value not in seen:
            seen.append(value)
    return seen
