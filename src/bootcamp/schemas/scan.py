from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bootcamp.schemas.repo_facts import StackInfo

Focus = Literal["onboarding", "architecture", "contributing", "all"]
Audience = Literal["new-hire", "oss-contributor", "internal-dev"]


class _ScanModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RepoInfo(_ScanModel):
    owner: str
    repo: str
    url: str
    branch: str
    full_name: str

    @classmethod
    def local(cls, repo_path: Path, *, branch: str = "", url: str | None = None) -> RepoInfo:
        """Describe a local checkout that has no known remote."""
        resolved = repo_path.resolve()
        owner = resolved.parent.name or "local"
        return cls(
            owner=owner,
            repo=resolved.name,
            url=url or resolved.as_uri(),
            branch=branch,
            full_name=f"{owner}/{resolved.name}",
        )


class FileEntry(_ScanModel):
    path: str
    size: int = Field(default=0, ge=0)
    is_directory: bool = False


class DetectedCommand(_ScanModel):
    name: str
    command: str
    source: str
    description: str | None = None


class ScanResult(_ScanModel):
    """Deterministic scan output produced ahead of the agent run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    files: list[FileEntry] = Field(default_factory=list)
    stack: StackInfo | None = None
    commands: list[DetectedCommand] = Field(default_factory=list)
    readme: str | None = None
    contributing: str | None = None

    def file_paths(self, limit: int) -> list[str]:
        return [entry.path for entry in self.files if not entry.is_directory][:limit]


class AnalysisOptions(_ScanModel):
    fast: bool = False
    verbose: bool = False
    model: str | None = None
    focus: Focus = "all"
    audience: Audience = "oss-contributor"
    repo_prompts: Path | None = None
