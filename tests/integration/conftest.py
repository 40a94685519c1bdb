# tests/integration/conftest.py — v8
"""Shared fixtures for integration tests on real backends.

Every test gets its own project tree under tmp_path:
- definitions/  YAML pipeline definitions
- secrets/      dotenv secret bundles
- cache/        json or sqlite artifact cache
- workspaces/   per-pipeline job workspaces
- reports/      JSON run reports
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

from conveyor.config.settings import Settings, load_settings


@dataclass
class Project:
    root: Path

    @property
    def definitions(self) -> Path:
        return self.root / "definitions"

    @property
    def secrets(self) -> Path:
        return self.root / "secrets"

    @property
    def reports(self) -> Path:
        return self.root / "reports"

    def add_definition(self, filename: str, text: str) -> None:
        self.definitions.mkdir(parents=True, exist_ok=True)
        (self.definitions / filename).write_text(textwrap.dedent(text), encoding="utf-8")

    def add_bundle(self, name: str, **variables: str) -> None:
        self.secrets.mkdir(parents=True, exist_ok=True)
        lines = [f"{k}='{v}'" for k, v in variables.items()]
        (self.secrets / f"{name}.env").write_text("\n".join(lines) + "\n", encoding="utf-8")

    def settings(self, **overrides: object) -> Settings:
        values: dict[str, object] = {
            "_env_file": None,
            "definitions_dir": self.definitions,
            "secrets_backend": "dotenv",
            "secrets_dir": self.secrets,
            "cache_backend": "json",
            "cache_root": self.root / "cache",
            "workspace_root": self.root / "workspaces",
            "report_dir": self.reports,
            "stop_grace_seconds": 1.0,
        }
        values.update(overrides)
        return load_settings(**values)


@pytest.fixture
def project(tmp_path: Path) -> Project:
    return Project(root=tmp_path)
