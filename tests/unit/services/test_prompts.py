from __future__ import annotations

from pathlib import Path

from bootcamp.schemas.repo_facts import StackInfo
from bootcamp.schemas.scan import (
    AnalysisOptions,
    DetectedCommand,
    FileEntry,
    RepoInfo,
    ScanResult,
)
from bootcamp.services.prompts import (
    CUSTOM_PROMPT_FILENAME,
    CUSTOM_PROMPT_MAX_CHARS,
    FAST_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_analysis_prompt,
    build_fast_prompt,
    load_custom_prompt,
)

_REPO = RepoInfo(
    owner="acme",
    repo="widgets",
    url="https://github.com/acme/widgets",
    branch="main",
    full_name="acme/widgets",
)


def _scan(file_count: int = 3) -> ScanResult:
    return ScanResult(
        files=[FileEntry(path=f"src/file_{index}.py") for index in range(file_count)],
        stack=StackInfo(languages=["Python"], frameworks=["Typer"], has_ci=True),
        commands=[DetectedCommand(name="test", command="pytest", source="Makefile")],
    )


def test_custom_prompt_is_read_from_repository_root(tmp_path: Path) -> None:
    (tmp_path / CUSTOM_PROMPT_FILENAME).write_text("  Focus on plugins.\n", encoding="utf-8")

    assert load_custom_prompt(tmp_path) == "Focus on plugins."


def test_custom_prompt_override_path_wins(tmp_path: Path) -> None:
    (tmp_path / CUSTOM_PROMPT_FILENAME).write_text("repo file", encoding="utf-8")
    override = tmp_path / "other.md"
    override.write_text("override file", encoding="utf-8")

    assert load_custom_prompt(tmp_path, override) == "override file"


def test_custom_prompt_missing_or_blank_is_ignored(tmp_path: Path) -> None:
    assert load_custom_prompt(tmp_path) is None

    (tmp_path / CUSTOM_PROMPT_FILENAME).write_text("\n\n   ", encoding="utf-8")

    assert load_custom_prompt(tmp_path) is None


def test_custom_prompt_is_capped(tmp_path: Path) -> None:
    (tmp_path / CUSTOM_PROMPT_FILENAME).write_text("x" * 9000, encoding="utf-8")

    custom = load_custom_prompt(tmp_path)

    assert custom is not None
    assert len(custom) == CUSTOM_PROMPT_MAX_CHARS


def test_analysis_prompt_includes_context_and_options() -> None:
    options = AnalysisOptions(focus="architecture", audience="new-hire")

    prompt = build_analysis_prompt(_REPO, _scan(), options)

    assert "- Name: acme/widgets" in prompt
    assert "Languages: Python" in prompt
    assert "Frameworks: Typer" in prompt
    assert "Has CI: true" in prompt
    assert "src/file_2.py" in prompt
    assert "- test: pytest" in prompt
    assert "Focus: architecture" in prompt
    assert "Target audience: new-hire" in prompt
    assert '"repoName": "acme/widgets"' in prompt
    assert "Repository-Specific Instructions" not in prompt


def test_analysis_prompt_limits_file_tree_and_appends_custom_prompt() -> None:
    prompt = build_analysis_prompt(
        _REPO, _scan(80), AnalysisOptions(), custom_prompt="Mention the CLI."
    )

    assert "## File Tree Preview (first 50 files)" in prompt
    assert "src/file_49.py" in prompt
    assert "src/file_50.py" not in prompt
    assert prompt.endswith("## Repository-Specific Instructions\nMention the CLI.")


def test_fast_prompt_inlines_files_and_uses_smaller_tree() -> None:
    prompt = build_fast_prompt(
        _REPO,
        _scan(40),
        AnalysisOptions(fast=True),
        inline_files="### README.md\n```\n# Widgets\n```",
        file_limit=30,
    )

    assert "## File Tree Preview (first 30 files)" in prompt
    assert "src/file_30.py" not in prompt
    assert "### README.md" in prompt
    assert "single reply" in prompt


def test_fast_prompt_without_inline_files_says_so() -> None:
    prompt = build_fast_prompt(
        _REPO, ScanResult(), AnalysisOptions(fast=True), inline_files="", file_limit=30
    )

    assert "No key files found." in prompt
    assert "Detected Commands\nNone detected" in prompt


def test_fast_system_prompt_does_not_mention_tools() -> None:
    assert "read_file" in SYSTEM_PROMPT
    for tool_name in ("read_file", "list_files", "search", "get_repo_metadata"):
        assert tool_name not in FAST_SYSTEM_PROMPT
