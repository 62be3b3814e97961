"""Configuration for the workflow engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Settings classes are plain pydantic-settings models so tests can construct them
directly with keyword arguments.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_PAYLOAD_BYTES = 2 * 1024 * 1024


class LLMSettings(BaseSettings):
    """Settings for the text-generation provider."""

    provider: Literal["openai"] = Field(
        default="openai",
        description="LLM provider to use",
    )
    api_key: str | None = Field(
        default=None,
        description="API key for the provider",
    )
    model: str = Field(
        default="gpt-4o-mini",
        description="Model identifier",
    )
    base_url: str | None = Field(
        default=None,
        description="Override for OpenAI-compatible endpoints",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Per-request timeout; a timed-out step fails its run",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Client-side retries for transient provider errors",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )


class OrchestratorSettings(BaseSettings):
    """Settings for the workflow engine.

    Environment variables:
    - LOG_LEVEL                            (optional)
    - AGENT_STATE_PATH                     (optional)
    - ORCHESTRATOR_RUN_STORE_URL           (optional, sqlite:///... or json:///...)
    - ORCHESTRATOR_RUN_TTL_MINUTES         (optional)
    - ORCHESTRATOR_MAX_PAYLOAD_BYTES       (optional)
    - ORCHESTRATOR_REFRESH_TTL_ON_RESUME   (optional)
    - ORCHESTRATOR_SEARCH_BASE_URL         (optional)
    - ORCHESTRATOR_DOCUMENTS_FILE          (optional)
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    agent_state_path: Path = Field(
        default=Path("agent_state"),
        validation_alias="AGENT_STATE_PATH",
        description="Directory where local state is persisted",
    )

    run_store_url: str = Field(
        default="",
        validation_alias="ORCHESTRATOR_RUN_STORE_URL",
        description=(
            "Run record backend. 'sqlite:///path/runs.db' or 'json:///path/runs.json'. "
            "Defaults to a SQLite database under AGENT_STATE_PATH."
        ),
    )

    run_ttl_minutes: int = Field(
        default=30,
        validation_alias="ORCHESTRATOR_RUN_TTL_MINUTES",
        ge=1,
        le=24 * 60,
        description="Lifetime of a run record, counted from creation",
    )

    refresh_ttl_on_resume: bool = Field(
        default=False,
        validation_alias="ORCHESTRATOR_REFRESH_TTL_ON_RESUME",
        description=(
            "If true, every successful resume pushes expires_at forward by the TTL. "
            "Off by default: a run expires a fixed time after it was created."
        ),
    )

    max_payload_bytes: int = Field(
        default=DEFAULT_MAX_PAYLOAD_BYTES,
        validation_alias="ORCHESTRATOR_MAX_PAYLOAD_BYTES",
        gt=0,
        description="Ceiling for serialized step state, resume payloads and request bodies",
    )

    search_base_url: str = Field(
        default="http://localhost:3000",
        validation_alias="ORCHESTRATOR_SEARCH_BASE_URL",
        description="Base URL of the source search service",
    )
    search_timeout_seconds: float = Field(
        default=20.0,
        validation_alias="ORCHESTRATOR_SEARCH_TIMEOUT_SECONDS",
        gt=0,
    )

    documents_file: Path | None = Field(
        default=None,
        validation_alias="ORCHESTRATOR_DOCUMENTS_FILE",
        description="JSON file with document ownership records (defaults under AGENT_STATE_PATH)",
    )

    llm: LLMSettings = Field(
        default_factory=LLMSettings,
        description="Text-generation provider settings",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def run_ttl(self) -> timedelta:
        return timedelta(minutes=self.run_ttl_minutes)

    @property
    def resolved_run_store_url(self) -> str:
        if self.run_store_url.strip():
            return self.run_store_url.strip()
        return f"sqlite:///{(self.agent_state_path / 'workflow_runs.db').as_posix()}"

    @property
    def documents_state_file(self) -> Path:
        """Path where document ownership records are read from."""

        return self.documents_file or self.agent_state_path / "documents.json"
