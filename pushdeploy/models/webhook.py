"""Inbound webhook payload models."""

from pydantic import BaseModel, ConfigDict


class GitUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    email: str | None = None
    username: str | None = None


class HeadCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    message: str | None = None
    url: str | None = None
    author: GitUser | None = None


class Repository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    full_name: str | None = None


class PushEvent(BaseModel):
    """The subset of a push event the gateway reads."""

    model_config = ConfigDict(extra="ignore")

    ref: str
    after: str | None = None
    repository: Repository
    head_commit: HeadCommit | None = None

    @property
    def repository_name(self) -> str | None:
        """Short repository name; projects are keyed by it."""
        if self.repository.name:
            return self.repository.name
        if self.repository.full_name:
            return self.repository.full_name.rsplit("/", 1)[-1] or None
        return None

    @property
    def branch(self) -> str:
        return self.ref.removeprefix("refs/heads/")

    @property
    def commit(self) -> str | None:
        if self.head_commit:
            return self.head_commit.id
        return self.after
