"""LLM package initialization."""

from draft_orchestrator.llm.factory import LLMFactory
from draft_orchestrator.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
