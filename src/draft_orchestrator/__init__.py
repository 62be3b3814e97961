"""Draft Orchestrator.

Resumable multi-step drafting workflows:
- guided, autonomous and coaching pipelines over shared step logic
- run records persisted after every step (SQLite or JSON file)
- a FastAPI surface, a CLI, and a client-side controller
"""

__version__ = "0.1.0"

from draft_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]
