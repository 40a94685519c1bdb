# src/secrets/__init__.py — v1
"""Secret bundle stores."""
