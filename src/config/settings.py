# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings. Every
variable is read with the CONVEYOR_ prefix, e.g. CONVEYOR_CACHE_BACKEND.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from environment and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="CONVEYOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Definitions ===
    definitions_dir: Path = Path(".conveyor")

    # === Execution ===
    workspace_root: Path = Path("~/.conveyor/workspaces")
    workspace_cleanup: bool = True
    # Host variables passed through to jobs; nothing else leaks in
    env_passthrough: str = "PATH,HOME"
    stop_grace_seconds: float = 5.0
    redaction_mask: str = "***"

    # === Cache ===
    cache_backend: Literal["memory", "json", "sqlite", "redis"] = "json"
    cache_root: Path = Path("~/.conveyor/cache")
    cache_redis_url: str = ""

    # === Secrets ===
    secrets_backend: Literal["memory", "dotenv"] = "dotenv"
    secrets_dir: Path = Path("~/.conveyor/secrets")

    # === Reports ===
    report_dir: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("stop_grace_seconds")
    @classmethod
    def validate_stop_grace(cls, v: float) -> float:
        if v < 0:
            raise ValueError("stop_grace_seconds must be >= 0")
        return v

    @field_validator("redaction_mask")
    @classmethod
    def validate_mask(cls, v: str) -> str:
        if not v:
            raise ValueError("redaction_mask must not be empty")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def env_passthrough_list(self) -> list[str]:
        """Parse comma-separated pass-through variable names."""
        return [v.strip() for v in self.env_passthrough.split(",") if v.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
