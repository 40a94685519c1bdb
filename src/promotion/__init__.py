# src/promotion/__init__.py — v1
"""Promotion engine."""
