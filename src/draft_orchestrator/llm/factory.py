"""Factory for creating LLM providers."""

import logging

from draft_orchestrator.llm.openai_provider import OpenAIProvider
from draft_orchestrator.llm.provider import LLMProvider
from draft_orchestrator.orchestrator.config import LLMSettings

logger = logging.getLogger(__name__)


class LLMFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create(settings: LLMSettings) -> LLMProvider:
        """Create an LLM provider based on settings.

        Raises:
            ValueError: If the provider type is not supported.
        """
        logger.info("Creating LLM provider", extra={"provider": settings.provider})

        if settings.provider == "openai":
            return OpenAIProvider(settings)
        raise ValueError(f"Unsupported LLM provider: {settings.provider}")
