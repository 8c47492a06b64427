"""Public schema exports for the Bootcamp SDK."""

from bootcamp.schemas.events import (
    FinalMessageEvent,
    MessageDeltaEvent,
    ReasoningDeltaEvent,
    SessionEvent,
    ToolCallEvent,
)
from bootcamp.schemas.repo_facts import (
    RepoFacts,
    StackInfo,
    ValidationResult,
    summarize_missing_fields,
    validate_repo_facts,
)
from bootcamp.schemas.scan import (
    AnalysisOptions,
    Audience,
    DetectedCommand,
    FileEntry,
    Focus,
    RepoInfo,
    ScanResult,
)

__all__ = [
    "AnalysisOptions",
    "Audience",
    "DetectedCommand",
    "FileEntry",
    "FinalMessageEvent",
    "Focus",
    "MessageDeltaEvent",
    "ReasoningDeltaEvent",
    "RepoFacts",
    "RepoInfo",
    "ScanResult",
    "SessionEvent",
    "StackInfo",
    "ToolCallEvent",
    "ValidationResult",
    "summarize_missing_fields",
    "validate_repo_facts",
]
