"""OpenAI-compatible chat completion provider."""

import logging
from typing import Any

from openai import OpenAI

from draft_orchestrator.llm.provider import LLMProvider
from draft_orchestrator.orchestrator.config import LLMSettings

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Provider for the OpenAI API or any endpoint speaking the same protocol."""

    def __init__(self, settings: LLMSettings, client: OpenAI | None = None) -> None:
        """Initialize the provider.

        Args:
            settings: LLM settings.
            client: Pre-built client (tests inject a mock here).

        Raises:
            ValueError: If no API key is configured and no client is given.
        """
        if client is None and not settings.api_key:
            raise ValueError("ORCHESTRATOR_LLM_API_KEY is required for the openai provider")

        self.settings = settings
        self.client = client or OpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url or None,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
        )
        self.model = settings.model
        self.temperature = settings.temperature

        logger.info("OpenAI provider initialized", extra={"model": self.model})

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        temp = temperature if temperature is not None else self.temperature

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.debug("Generating completion", extra={"prompt_chars": len(prompt)})

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            max_tokens=max_tokens,
            temperature=temp,
            **kwargs,
        )

        content = response.choices[0].message.content or ""
        logger.debug("Generated completion", extra={"chars": len(content)})
        return content
