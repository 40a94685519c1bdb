# src/definitions/__init__.py — v1
"""Pipeline definition loading."""
