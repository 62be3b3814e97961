"""Orchestration layer: settings, logging and the workflow engine."""
