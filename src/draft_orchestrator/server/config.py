"""Configuration for the REST server.

Engine settings (stores, TTL, providers) live in
:class:`draft_orchestrator.orchestrator.config.OrchestratorSettings`; this class
only covers what the HTTP process itself needs.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API process."""

    sweeper_enabled: bool = Field(
        default=True,
        validation_alias="ORCHESTRATOR_SWEEPER_ENABLED",
        description="If true, a background thread deletes expired runs on a fixed schedule.",
    )
    sweep_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        validation_alias="ORCHESTRATOR_SWEEP_INTERVAL_SECONDS",
        description="Interval (seconds) between sweeps of expired runs.",
    )

    # Dev-friendly CORS for the editor front end. Override via ORCHESTRATOR_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="ORCHESTRATOR_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
