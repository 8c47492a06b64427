from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

Confidence = Literal["high", "medium", "low"]
EntrypointType = Literal["main", "binary", "server", "cli", "web", "library"]
TaskDifficulty = Literal["beginner", "intermediate", "advanced"]
TaskCategory = Literal["bug-fix", "test", "docs", "refactor", "feature"]


class _CamelModel(BaseModel):
    """Accepts the camelCase keys the model emits and snake_case from Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StackInfo(_CamelModel):
    languages: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)
    build_system: str = ""
    package_manager: str | None = None
    has_docker: bool = False
    has_ci: bool = False


class Command(_CamelModel):
    name: str
    command: str
    source: str
    description: str | None = None


class CommonError(_CamelModel):
    error: str
    fix: str


class Quickstart(_CamelModel):
    prerequisites: list[str] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    commands: list[Command] = Field(default_factory=list)
    common_errors: list[CommonError] | None = None
    sources: list[str] | None = None


class DirectoryInfo(_CamelModel):
    path: str
    purpose: str
    key_files: list[str] | None = None


class Entrypoint(_CamelModel):
    path: str
    type: EntrypointType
    description: str | None = None


class Structure(_CamelModel):
    key_dirs: list[DirectoryInfo] = Field(default_factory=list)
    entrypoints: list[Entrypoint] = Field(default_factory=list)
    test_dirs: list[str] = Field(default_factory=list)
    docs_dirs: list[str] = Field(default_factory=list)
    sources: list[str] | None = None


class CiWorkflow(_CamelModel):
    name: str
    file: str
    triggers: list[str] = Field(default_factory=list)
    main_steps: list[str] = Field(default_factory=list)


class CiInfo(_CamelModel):
    workflows: list[CiWorkflow] = Field(default_factory=list)
    main_checks: list[str] = Field(default_factory=list)
    sources: list[str] | None = None


class ContribInfo(_CamelModel):
    how_to_add_feature: list[str] = Field(default_factory=list)
    how_to_add_test: list[str] = Field(default_factory=list)
    code_style: str | None = None
    sources: list[str] | None = None


class Component(_CamelModel):
    name: str
    description: str
    directory: str


class KeyAbstraction(_CamelModel):
    name: str
    description: str


class CodeExample(_CamelModel):
    title: str
    file: str
    code: str
    explanation: str


class Architecture(_CamelModel):
    overview: str = ""
    components: list[Component] = Field(default_factory=list)
    data_flow: str | None = None
    key_abstractions: list[KeyAbstraction] | None = None
    code_examples: list[CodeExample] | None = None
    sources: list[str] | None = None


class FirstTask(_CamelModel):
    title: str
    description: str
    difficulty: TaskDifficulty
    category: TaskCategory
    files: list[str] = Field(default_factory=list)
    why: str


class Incident(_CamelModel):
    name: str
    check: str


class Runbook(_CamelModel):
    applicable: bool | None = None
    deploy_steps: list[str] | None = None
    observability: list[str] | None = None
    incidents: list[Incident] | None = None
    sources: list[str] | None = None


class RepoFacts(_CamelModel):
    """Validated structured description of a repository."""

    repo_name: str
    purpose: str
    description: str
    confidence: Confidence | None = None
    sources: list[str] | None = None
    stack: StackInfo
    quickstart: Quickstart
    structure: Structure
    ci: CiInfo
    contrib: ContribInfo
    architecture: Architecture
    first_tasks: list[FirstTask] = Field(default_factory=list)
    runbook: Runbook | None = None


@dataclass(frozen=True)
class ValidationResult:
    success: bool
    data: RepoFacts | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


_MISSING_MESSAGE = "Field required"


def _format_error(error: Any) -> str:
    location = ".".join(str(part) for part in error["loc"]) or "(root)"
    return f"{location}: {error['msg']}"


def _quality_warnings(facts: RepoFacts) -> list[str]:
    warnings: list[str] = []
    if len(facts.first_tasks) < 5:
        warnings.append(f"Only {len(facts.first_tasks)} first tasks (recommend 8-10)")
    if len(facts.structure.key_dirs) < 2:
        warnings.append("Few key directories documented")
    if len(facts.architecture.components) < 2:
        warnings.append("Few architecture components documented")
    if not facts.quickstart.commands:
        warnings.append("No commands documented")
    return warnings


def validate_repo_facts(value: object) -> ValidationResult:
    """Validate a parsed JSON value against the RepoFacts contract.

    Schema failures are returned, never raised: the retry loop feeds the error
    strings back to the model.
    """
    try:
        facts = RepoFacts.model_validate(value)
    except ValidationError as exc:
        return ValidationResult(
            success=False,
            errors=[_format_error(error) for error in exc.errors()],
        )
    return ValidationResult(success=True, data=facts, warnings=_quality_warnings(facts))


def summarize_missing_fields(errors: list[str]) -> str:
    missing = [error.split(":", 1)[0] for error in errors if _MISSING_MESSAGE in error]
    if missing:
        return f"missing: {', '.join(missing)}"
    return "; ".join(errors[:3])
