"""Abstract base class for text-generation providers."""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """Text-generation collaborator used by workflow steps.

    Implementations may return malformed or non-JSON text; steps are expected to
    parse defensively. Timeouts are the provider's responsibility and surface as
    exceptions.
    """

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate a completion for a single prompt.

        Args:
            prompt: The user prompt.
            system: Optional system instructions.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional provider-specific parameters.

        Returns:
            Generated text.
        """
        pass
