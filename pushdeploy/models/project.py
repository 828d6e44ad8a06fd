"""Project configuration models."""

from pydantic import BaseModel, ConfigDict, Field


class ProjectConfig(BaseModel):
    """One deployable unit, keyed by repository name.

    Immutable for the lifetime of a request; the registry reloads it from
    disk for every webhook.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    branch: str = "main"

    # Commands, each an opaque shell invocation
    validate_commands: list[str] = Field(default_factory=list)
    test_commands: list[str] = Field(default_factory=list)
    build_commands: list[str] = Field(default_factory=list)
    staging_commands: list[str] = Field(default_factory=list)
    deploy_commands: list[str] = Field(default_factory=list)
    revision_command: str = "git rev-parse HEAD"
    rollback_command: str | None = None
    restart_command: str | None = None
    working_directory: str | None = None

    # URLs
    repository: str | None = None
    health_check_url: str | None = None
    production_url: str | None = None
    staging_url: str | None = None
    logs_url: str | None = None

    # Pre-production checks
    required_env: list[str] = Field(default_factory=list)
    dependency_urls: list[str] = Field(default_factory=list)

    @property
    def target_ref(self) -> str:
        """Fully qualified ref pushes must match to deploy."""
        return f"refs/heads/{self.branch}"

    def commit_url(self, commit: str | None) -> str | None:
        """Link to a commit on GitHub, if the repository is known."""
        if not self.repository or not commit:
            return None
        return f"https://github.com/{self.repository}/commit/{commit}"

    @property
    def resolved_logs_url(self) -> str | None:
        """Explicit logs URL, else the repository's Actions page."""
        if self.logs_url:
            return self.logs_url
        if self.repository:
            return f"https://github.com/{self.repository}/actions"
        return None


class ProjectSummary(BaseModel):
    """API view of a configured project."""

    name: str
    branch: str
    repository: str | None = None
    production_url: str | None = None
    health_check_url: str | None = None

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "ProjectSummary":
        """Create summary from project config."""
        return cls(
            name=config.name,
            branch=config.branch,
            repository=config.repository,
            production_url=config.production_url,
            health_check_url=config.health_check_url,
        )
