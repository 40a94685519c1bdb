# src/definitions/loader.py — v1
"""Pipeline definition loading and catalog validation.

One YAML file holds one pipeline definition. A catalog is the set of
definitions promotions may refer to; it is validated as a whole before
anything runs:
  - every promotion target names a definition in the catalog
  - automatic promotions never form a cycle (that would loop forever)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import networkx as nx
import yaml
from pydantic import ValidationError

from conveyor.core.models import PipelineDefinition, TriggerMode

logger = logging.getLogger(__name__)

DEFINITION_SUFFIXES = (".yml", ".yaml")


class DefinitionError(Exception):
    """Raised for malformed definitions or an inconsistent catalog."""


def parse_definition(data: Any, source: str = "<memory>") -> PipelineDefinition:
    """Validate a decoded YAML document as a PipelineDefinition.

    Raises:
        DefinitionError: If the document is not a valid definition.
    """
    if not isinstance(data, Mapping):
        raise DefinitionError(f"{source}: a pipeline definition must be a mapping")
    try:
        return PipelineDefinition.model_validate(dict(data))
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise DefinitionError(f"{source}: {details}") from e


def load_definition(path: Path | str) -> PipelineDefinition:
    """Read and validate a single definition file."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise DefinitionError(f"{path}: cannot read definition: {e}") from e
    except yaml.YAMLError as e:
        raise DefinitionError(f"{path}: invalid YAML: {e}") from e
    return parse_definition(data, source=str(path))


class DefinitionCatalog:
    """Validated, read-only set of pipeline definitions keyed by name."""

    def __init__(self, definitions: Iterable[PipelineDefinition]) -> None:
        self._definitions: dict[str, PipelineDefinition] = {}
        for definition in definitions:
            if definition.name in self._definitions:
                raise DefinitionError(f"duplicate pipeline definition '{definition.name}'")
            self._definitions[definition.name] = definition
        self._validate()

    @classmethod
    def from_directory(cls, directory: Path | str) -> DefinitionCatalog:
        """Load every ``*.yml``/``*.yaml`` file in directory (not recursive)."""
        root = Path(directory).expanduser()
        if not root.is_dir():
            raise DefinitionError(f"definitions directory not found: {root}")
        files = sorted(p for p in root.iterdir() if p.suffix in DEFINITION_SUFFIXES and p.is_file())
        if not files:
            raise DefinitionError(f"no pipeline definitions in {root}")
        catalog = cls(load_definition(p) for p in files)
        logger.info("Loaded %d pipeline definitions from %s", len(catalog), root)
        return catalog

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    @property
    def names(self) -> list[str]:
        return sorted(self._definitions)

    def get(self, name: str) -> PipelineDefinition:
        """Return a definition by name.

        Raises:
            DefinitionError: If no definition has that name.
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise DefinitionError(f"unknown pipeline definition '{name}'")
        return definition

    def promotion_graph(self, mode: TriggerMode | None = None) -> nx.DiGraph:
        """Directed graph source -> target of promotions, optionally one mode only."""
        graph = nx.DiGraph()
        graph.add_nodes_from(self._definitions)
        for definition in self._definitions.values():
            for rule in definition.promotions:
                if mode is None or rule.mode == mode:
                    graph.add_edge(definition.name, rule.pipeline, promotion=rule.name)
        return graph

    def _validate(self) -> None:
        errors: list[str] = []
        for definition in self._definitions.values():
            for rule in definition.promotions:
                if rule.pipeline not in self._definitions:
                    errors.append(
                        f"'{definition.name}' promotion '{rule.name}' targets "
                        f"unknown pipeline '{rule.pipeline}'"
                    )
        if errors:
            raise DefinitionError("; ".join(errors))

        auto_graph = self.promotion_graph(TriggerMode.AUTO)
        try:
            cycle = nx.find_cycle(auto_graph)
        except nx.NetworkXNoCycle:
            return
        path = " -> ".join([edge[0] for edge in cycle] + [cycle[-1][1]])
        raise DefinitionError(f"automatic promotions form a cycle: {path}")
