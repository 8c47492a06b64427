from __future__ import annotations

from pathlib import Path

from conftest import valid_repo_facts

from bootcamp.schemas.repo_facts import (
    RepoFacts,
    StackInfo,
    summarize_missing_fields,
    validate_repo_facts,
)
from bootcamp.schemas.scan import RepoInfo, ScanResult


def test_validate_accepts_complete_payload() -> None:
    result = validate_repo_facts(valid_repo_facts())

    assert result.success is True
    assert isinstance(result.data, RepoFacts)
    assert result.data.repo_name == "acme/widgets"
    assert result.data.stack.build_system == "setuptools"
    assert result.errors == []
    assert result.warnings == []


def test_validate_reports_missing_fields_with_paths() -> None:
    payload = valid_repo_facts()
    del payload["purpose"]
    del payload["stack"]["languages"]
    payload["stack"]["hasDocker"] = "not-a-bool"

    result = validate_repo_facts(payload)

    assert result.success is False
    assert result.data is None
    assert "purpose: Field required" in result.errors
    assert any(error.startswith("stack.hasDocker:") for error in result.errors)


def test_validate_rejects_non_object_at_root() -> None:
    result = validate_repo_facts(["not", "an", "object"])

    assert result.success is False
    assert result.errors[0].startswith("(root):")


def test_validate_rejects_unknown_task_difficulty() -> None:
    payload = valid_repo_facts()
    payload["firstTasks"][0]["difficulty"] = "expert"

    result = validate_repo_facts(payload)

    assert result.success is False
    assert any(error.startswith("firstTasks.0.difficulty") for error in result.errors)


def test_quality_warnings_do_not_fail_validation() -> None:
    payload = valid_repo_facts(firstTasks=[])
    payload["quickstart"]["commands"] = []
    payload["structure"]["keyDirs"] = []
    payload["architecture"]["components"] = []

    result = validate_repo_facts(payload)

    assert result.success is True
    assert result.warnings == [
        "Only 0 first tasks (recommend 8-10)",
        "Few key directories documented",
        "Few architecture components documented",
        "No commands documented",
    ]


def test_repo_facts_dump_uses_camel_case_aliases() -> None:
    facts = RepoFacts.model_validate(valid_repo_facts())

    dumped = facts.model_dump(by_alias=True, exclude_none=True)

    assert "repoName" in dumped
    assert "firstTasks" in dumped
    assert dumped["stack"]["buildSystem"] == "setuptools"


def test_summarize_missing_fields_prefers_required_fields() -> None:
    summary = summarize_missing_fields(
        [
            "purpose: Field required",
            "stack.hasCi: Input should be a valid boolean",
            "ci: Field required",
        ]
    )

    assert summary == "missing: purpose, ci"


def test_summarize_missing_fields_falls_back_to_first_errors() -> None:
    summary = summarize_missing_fields(["a: bad", "b: bad", "c: bad", "d: bad"])

    assert summary == "a: bad; b: bad; c: bad"


def test_scan_result_accepts_camel_case_and_ignores_unknown_keys() -> None:
    scan = ScanResult.model_validate(
        {
            "files": [
                {"path": "src", "size": 0, "isDirectory": True},
                {"path": "src/app.py", "size": 12},
            ],
            "stack": {"languages": ["Python"], "hasCi": True},
            "commands": [{"name": "test", "command": "pytest", "source": "Makefile"}],
            "generatedBy": "scanner",
        }
    )

    assert scan.file_paths(10) == ["src/app.py"]
    assert scan.stack == StackInfo(languages=["Python"], has_ci=True)
    assert scan.commands[0].command == "pytest"


def test_repo_info_local_uses_directory_names(tmp_path: Path) -> None:
    repo = tmp_path / "acme" / "widgets"
    repo.mkdir(parents=True)

    info = RepoInfo.local(repo, branch="main")

    assert info.owner == "acme"
    assert info.repo == "widgets"
    assert info.full_name == "acme/widgets"
    assert info.url.startswith("file://")
    assert info.branch == "main"
