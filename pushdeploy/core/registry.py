"""Project registry loaded from the projects JSON file."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pushdeploy.core.exceptions import ConfigurationError
from pushdeploy.models.project import ProjectConfig
from pushdeploy.utils.logging import get_logger

logger = get_logger(__name__)


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """json object hook that refuses repeated keys instead of keeping the last."""
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ConfigurationError(f"Duplicate key in projects file: {key}")
        result[key] = value
    return result


class ProjectRegistry:
    """Maps repository names to project configurations.

    Lookups are exact and case-sensitive. The configuration shape on disk is
    ``{name: {branch, ...commands, ...urls}}``; the key doubles as the name.
    """

    def __init__(self, projects: list[ProjectConfig] | None = None):
        self._projects: dict[str, ProjectConfig] = {}
        for project in projects or []:
            if project.name in self._projects:
                raise ConfigurationError(f"Duplicate project name: {project.name}")
            self._projects[project.name] = project

    @classmethod
    def load(cls, path: Path | str) -> "ProjectRegistry":
        """Read the projects file. A missing file is an empty registry."""
        path = Path(path)
        if not path.exists():
            logger.warning("registry.config_missing", path=str(path))
            return cls()

        try:
            raw = json.loads(
                path.read_text(encoding="utf-8"),
                object_pairs_hook=_reject_duplicate_keys,
            )
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON: {e}", str(path)) from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read file: {e}", str(path)) from e

        if not isinstance(raw, dict):
            raise ConfigurationError("Top level must be an object", str(path))

        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> "ProjectRegistry":
        """Build a registry from an already-parsed ``{name: config}`` mapping."""
        projects = []
        for name, data in raw.items():
            if not isinstance(data, dict):
                raise ConfigurationError(f"Project '{name}' must be an object")
            try:
                projects.append(ProjectConfig(**{**data, "name": name}))
            except ValidationError as e:
                raise ConfigurationError(f"Project '{name}' is invalid: {e}") from e

        logger.debug("registry.loaded", projects=[p.name for p in projects])
        return cls(projects)

    def resolve(self, repository_name: str | None) -> ProjectConfig | None:
        """Find the project for a repository name, or None when unconfigured."""
        if not repository_name:
            return None
        return self._projects.get(repository_name)

    def list_available(self) -> list[str]:
        """All configured project names, in configuration order."""
        return list(self._projects.keys())

    def all(self) -> list[ProjectConfig]:
        return list(self._projects.values())

    def __len__(self) -> int:
        return len(self._projects)
