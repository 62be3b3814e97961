"""Resumable workflow engine: steps, pipelines, run lifecycle."""
