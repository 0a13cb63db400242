"""Loader for template and seed data files (JSON or YAML)."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Union

import yaml
from pydantic import ValidationError

from ..domain.models import Collection
from ..domain.templates import CollectionTemplate, TemplateRegistry
from ..utils.logging import get_logger


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


@dataclass
class SeedBundle:
    """Sample collections tagged with the seed version they belong to."""

    version: int
    collections: List[Collection] = field(default_factory=list)


class ConfigLoader:
    """Loads template and seed definitions from files."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def _read(self, file_path: Union[str, Path]) -> Any:
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if file_path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f)
                if file_path.suffix.lower() == '.json':
                    return json.load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read {file_path}: {e}")

        raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")

    def load_templates(self, file_path: Union[str, Path]) -> List[CollectionTemplate]:
        """Load collection templates from a JSON or YAML file.

        The file holds either a list of templates or a mapping with a
        ``templates`` list.

        Args:
            file_path: Path to the templates file

        Returns:
            Validated templates

        Raises:
            ConfigurationError: If the file cannot be read or validated
        """
        data = self._read(file_path)
        if isinstance(data, dict):
            data = data.get("templates")
        if not isinstance(data, list):
            raise ConfigurationError(f"Expected a list of templates in {file_path}")

        try:
            templates = [CollectionTemplate.model_validate(entry) for entry in data]
        except ValidationError as e:
            raise ConfigurationError(f"Invalid template definition: {e}")

        self.logger.info("Templates loaded", file_path=str(file_path), count=len(templates))
        return templates

    def extend_registry(self, registry: TemplateRegistry, file_path: Union[str, Path]) -> TemplateRegistry:
        """Register every template from a file, replacing built-ins with the same id."""
        for template in self.load_templates(file_path):
            registry.register(template)
        return registry

    def load_seed_bundle(self, file_path: Union[str, Path]) -> SeedBundle:
        """Load sample collections from a ``{version, collections}`` file.

        Raises:
            ConfigurationError: If the file cannot be read or validated
        """
        data = self._read(file_path)
        if not isinstance(data, dict) or "version" not in data:
            raise ConfigurationError(f"Seed file must define a version: {file_path}")

        try:
            bundle = SeedBundle(
                version=int(data["version"]),
                collections=[Collection.model_validate(entry) for entry in data.get("collections") or []]
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid seed data: {e}")

        self.logger.info(
            "Seed collections loaded",
            file_path=str(file_path),
            version=bundle.version,
            count=len(bundle.collections)
        )
        return bundle
