# src/cache/__init__.py — v1
"""Artifact cache stores and workspace artifact helpers."""
