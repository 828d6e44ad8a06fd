"""Unit tests for the project registry."""

import json
from pathlib import Path

import pytest

from pushdeploy.core.exceptions import ConfigurationError
from pushdeploy.core.registry import ProjectRegistry
from pushdeploy.models.project import ProjectConfig


class TestProjectRegistry:
    """Tests for ProjectRegistry."""

    @pytest.fixture
    def registry(self) -> ProjectRegistry:
        return ProjectRegistry.from_mapping(
            {
                "demo": {"branch": "main", "repository": "acme/demo"},
                "api": {"branch": "production"},
            }
        )

    def test_resolve_exact_name(self, registry: ProjectRegistry):
        project = registry.resolve("demo")

        assert project is not None
        assert project.name == "demo"
        assert project.branch == "main"

    def test_resolve_is_case_sensitive(self, registry: ProjectRegistry):
        assert registry.resolve("Demo") is None

    def test_resolve_unknown(self, registry: ProjectRegistry):
        assert registry.resolve("missing") is None
        assert registry.resolve(None) is None

    def test_list_available_keeps_order(self, registry: ProjectRegistry):
        assert registry.list_available() == ["demo", "api"]
        assert len(registry) == 2

    def test_defaults_applied(self, registry: ProjectRegistry):
        project = registry.resolve("api")

        assert project.revision_command == "git rev-parse HEAD"
        assert project.deploy_commands == []
        assert project.target_ref == "refs/heads/production"

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError):
            ProjectRegistry([ProjectConfig(name="demo"), ProjectConfig(name="demo")])

    def test_load_file(self, tmp_path: Path):
        path = tmp_path / "projects.json"
        path.write_text(json.dumps({"demo": {"branch": "main"}}), encoding="utf-8")

        registry = ProjectRegistry.load(path)

        assert registry.list_available() == ["demo"]

    def test_load_missing_file_is_empty(self, tmp_path: Path):
        registry = ProjectRegistry.load(tmp_path / "nope.json")

        assert len(registry) == 0
        assert registry.list_available() == []

    def test_load_duplicate_keys_rejected(self, tmp_path: Path):
        """Repeated keys in the JSON file are an error, not last-one-wins."""
        path = tmp_path / "projects.json"
        path.write_text(
            '{"demo": {"branch": "main"}, "demo": {"branch": "dev"}}', encoding="utf-8"
        )

        with pytest.raises(ConfigurationError, match="Duplicate"):
            ProjectRegistry.load(path)

    def test_load_invalid_json(self, tmp_path: Path):
        path = tmp_path / "projects.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            ProjectRegistry.load(path)

    def test_load_non_object(self, tmp_path: Path):
        path = tmp_path / "projects.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ProjectRegistry.load(path)

    def test_invalid_project_entry(self):
        with pytest.raises(ConfigurationError, match="demo"):
            ProjectRegistry.from_mapping({"demo": {"deploy_commands": "not-a-list"}})


class TestProjectConfig:
    """Tests for ProjectConfig helpers."""

    def test_commit_url(self):
        project = ProjectConfig(name="demo", repository="acme/demo")

        assert project.commit_url("abc123") == "https://github.com/acme/demo/commit/abc123"
        assert project.commit_url(None) is None

    def test_logs_url_falls_back_to_actions(self):
        assert (
            ProjectConfig(name="demo", repository="acme/demo").resolved_logs_url
            == "https://github.com/acme/demo/actions"
        )
        assert (
            ProjectConfig(name="demo", logs_url="https://logs.local").resolved_logs_url
            == "https://logs.local"
        )
        assert ProjectConfig(name="demo").resolved_logs_url is None

    def test_frozen(self):
        project = ProjectConfig(name="demo")

        with pytest.raises(Exception):
            project.branch = "dev"
