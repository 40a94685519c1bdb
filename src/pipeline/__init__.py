# src/pipeline/__init__.py — v1
"""Pipeline execution: runner, job executor, run records."""
