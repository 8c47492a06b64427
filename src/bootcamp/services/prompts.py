from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from bootcamp.schemas.repo_facts import StackInfo
from bootcamp.schemas.scan import AnalysisOptions, RepoInfo, ScanResult

logger = logging.getLogger(__name__)

CUSTOM_PROMPT_FILENAME = ".bootcamp-prompts.md"
CUSTOM_PROMPT_MAX_CHARS = 8000

_PROMPT_FILE_LIMIT = 50

SYSTEM_PROMPT = """You are an expert software architect and technical writer.
Your job is to analyze codebases and produce comprehensive onboarding documentation.

## Tools:
- `read_file(path, max_lines)`: read contents of any file
- `list_files(path, pattern, recursive, max_results)`: list files and directories
- `search(pattern, path, file_pattern, max_results)`: search for patterns in code using ripgrep
- `get_repo_metadata()`: get repository statistics

## Efficiency:
1. Make ONE batch of tool calls to gather key info (README, manifest, entry point, one source file).
2. Make at most 2-3 additional targeted tool calls if needed.
3. Then IMMEDIATELY produce your JSON output.
4. Do NOT exhaustively read every file - sample intelligently.

## Rules:
- Limit yourself to 10-15 total tool calls.
- Prioritize: README > manifest/config > main entry point > 1-2 source files.
- Always return valid JSON as the final output."""

FAST_SYSTEM_PROMPT = """You are an expert software architect and technical writer.
Your job is to analyze codebases and produce comprehensive onboarding documentation.

Key repository files are provided inline. Work only from the provided content.
Always return valid JSON as the final output."""

REPO_FACTS_TEMPLATE = """```json
{
  "repoName": "<owner/name>",
  "purpose": "one-line description",
  "description": "2-3 sentence description",
  "sources": ["README.md"],
  "confidence": "high|medium|low",
  "stack": {
    "languages": [],
    "frameworks": [],
    "buildSystem": "",
    "packageManager": "",
    "hasDocker": false,
    "hasCi": true
  },
  "quickstart": {
    "prerequisites": [],
    "steps": [],
    "commands": [{"name": "", "command": "", "source": ""}],
    "commonErrors": [{"error": "", "fix": ""}],
    "sources": []
  },
  "structure": {
    "keyDirs": [{"path": "", "purpose": "", "keyFiles": []}],
    "entrypoints": [{"path": "", "type": "main|cli|server|library", "description": ""}],
    "testDirs": [],
    "docsDirs": [],
    "sources": []
  },
  "ci": {
    "workflows": [{"name": "", "file": "", "triggers": [], "mainSteps": []}],
    "mainChecks": [],
    "sources": []
  },
  "contrib": {
    "howToAddFeature": [],
    "howToAddTest": [],
    "codeStyle": "",
    "sources": []
  },
  "architecture": {
    "overview": "",
    "components": [{"name": "", "description": "", "directory": ""}],
    "dataFlow": "",
    "keyAbstractions": [{"name": "", "description": ""}],
    "codeExamples": [{"title": "", "file": "", "code": "", "explanation": ""}],
    "sources": []
  },
  "firstTasks": [
    {
      "title": "",
      "description": "",
      "difficulty": "beginner|intermediate|advanced",
      "category": "test|docs|refactor|feature|bug-fix",
      "files": [],
      "why": ""
    }
  ],
  "runbook": {
    "applicable": true,
    "deploySteps": [],
    "observability": [],
    "incidents": [{"name": "", "check": ""}],
    "sources": []
  }
}
```"""


def load_custom_prompt(repo_path: Path, override_path: Path | None = None) -> str | None:
    """Read repository-specific prompt instructions.

    Missing, unreadable or blank files are ignored; content beyond the
    character budget is dropped.
    """
    candidate = override_path or (repo_path / CUSTOM_PROMPT_FILENAME)
    try:
        text = candidate.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    text = text.strip()
    if not text:
        return None
    if len(text) > CUSTOM_PROMPT_MAX_CHARS:
        logger.debug("Custom prompt %s truncated to %d chars", candidate, CUSTOM_PROMPT_MAX_CHARS)
        text = text[:CUSTOM_PROMPT_MAX_CHARS]
    return text


def with_custom_prompt(prompt: str, custom_prompt: str | None) -> str:
    if not custom_prompt:
        return prompt
    return f"{prompt}\n\n## Repository-Specific Instructions\n{custom_prompt}"


def _join_or(values: Sequence[str], fallback: str) -> str:
    return ", ".join(values) or fallback


def _context_section(repo_info: RepoInfo, scan_result: ScanResult, *, file_limit: int) -> str:
    stack = scan_result.stack or StackInfo()
    file_list = "\n".join(scan_result.file_paths(file_limit))
    command_list = "\n".join(f"- {c.name}: {c.command}" for c in scan_result.commands)
    return f"""## Repository
- Name: {repo_info.full_name}
- URL: {repo_info.url}
- Branch: {repo_info.branch}

## Pre-detected Information
Languages: {_join_or(stack.languages, "Unknown")}
Frameworks: {_join_or(stack.frameworks, "None detected")}
Build System: {stack.build_system or "Unknown"}
Has CI: {str(stack.has_ci).lower()}
Has Docker: {str(stack.has_docker).lower()}

## File Tree Preview (first {file_limit} files)
{file_list}

## Detected Commands
{command_list or "None detected"}"""


def _output_requirements(repo_info: RepoInfo, options: AnalysisOptions) -> str:
    template = REPO_FACTS_TEMPLATE.replace("<owner/name>", repo_info.full_name)
    return f"""Return a JSON object with this exact structure.
Include "sources" arrays citing which files informed each section:

{template}

Focus: {options.focus}
Target audience: {options.audience}

Provide at least 8-10 first tasks of varying difficulty. Be specific about file paths.
Set runbook.applicable = false for libraries/tools that aren't deployed as services.
Include 2-4 codeExamples showing key patterns/usage (short snippets of 5-15 lines)."""


def build_analysis_prompt(
    repo_info: RepoInfo,
    scan_result: ScanResult,
    options: AnalysisOptions,
    *,
    custom_prompt: str | None = None,
) -> str:
    prompt = f"""Analyze this GitHub repository and produce a comprehensive onboarding kit.

{_context_section(repo_info, scan_result, file_limit=_PROMPT_FILE_LIMIT)}

---

## Your Task

**Step 1: Quick Exploration** (max 10-15 tool calls total)
- Read README and the package manifest (package.json/pyproject.toml/Cargo.toml)
- Glance at the main entry point
- Optionally check 1-2 source files if architecture is unclear

**Step 2: Produce Output Immediately**

{_output_requirements(repo_info, options)}

REMEMBER: Limit tool calls. After reading key files, produce output immediately."""
    return with_custom_prompt(prompt, custom_prompt)


def build_fast_prompt(
    repo_info: RepoInfo,
    scan_result: ScanResult,
    options: AnalysisOptions,
    *,
    inline_files: str,
    file_limit: int,
    custom_prompt: str | None = None,
) -> str:
    prompt = f"""Analyze this GitHub repository and produce a comprehensive onboarding kit.

{_context_section(repo_info, scan_result, file_limit=file_limit)}

## Key Files
{inline_files or "No key files found."}

---

## Your Task

Using ONLY the information above, produce the JSON output in a single reply.

{_output_requirements(repo_info, options)}"""
    return with_custom_prompt(prompt, custom_prompt)
