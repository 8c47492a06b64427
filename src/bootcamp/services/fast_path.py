from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

PER_FILE_BYTE_CAP = 4000
TOTAL_BYTE_CAP = 12000
FAST_FILE_TREE_LIMIT = 30

README_CANDIDATES: tuple[str, ...] = ("README.md", "readme.md", "README.rst", "README")
MANIFEST_CANDIDATES: tuple[str, ...] = (
    "package.json",
    "pyproject.toml",
    "Cargo.toml",
    "go.mod",
    "requirements.txt",
    "pom.xml",
    "build.gradle",
)
ENTRYPOINT_CANDIDATES: tuple[str, ...] = (
    "src/index.ts",
    "src/main.ts",
    "src/index.js",
    "index.js",
    "main.py",
    "app.py",
    "src/main.py",
    "manage.py",
    "src/main.rs",
    "src/lib.rs",
    "main.go",
    "cmd/main.go",
)


@dataclass(frozen=True)
class InlineFile:
    path: str
    content: str
    truncated: bool


def _read_capped(path: Path, cap: int) -> tuple[str, int, bool] | None:
    try:
        with path.open("rb") as handle:
            data = handle.read(cap + 1)
    except OSError:
        return None
    kept = data[:cap]
    return kept.decode("utf-8", errors="replace"), len(kept), len(data) > cap


def _first_existing(repo_path: Path, candidates: tuple[str, ...]) -> str | None:
    for candidate in candidates:
        if (repo_path / candidate).is_file():
            return candidate
    return None


def collect_inline_files(
    repo_path: Path,
    *,
    per_file_cap: int = PER_FILE_BYTE_CAP,
    total_cap: int = TOTAL_BYTE_CAP,
) -> list[InlineFile]:
    """Read the handful of files fast mode inlines into its single prompt."""
    candidates: list[str] = []
    readme = _first_existing(repo_path, README_CANDIDATES)
    if readme is not None:
        candidates.append(readme)
    candidates.extend(name for name in MANIFEST_CANDIDATES if (repo_path / name).is_file())
    entrypoint = _first_existing(repo_path, ENTRYPOINT_CANDIDATES)
    if entrypoint is not None:
        candidates.append(entrypoint)

    collected: list[InlineFile] = []
    remaining = total_cap
    for relative_path in candidates:
        if remaining <= 0:
            break
        cap = min(per_file_cap, remaining)
        read = _read_capped(repo_path / relative_path, cap)
        if read is None:
            continue
        content, size, truncated = read
        if not content.strip():
            continue
        collected.append(InlineFile(path=relative_path, content=content, truncated=truncated))
        remaining -= size
    return collected


def render_inline_files(files: list[InlineFile]) -> str:
    sections: list[str] = []
    for inline in files:
        marker = "\n... (truncated)" if inline.truncated else ""
        sections.append(f"### {inline.path}\n```\n{inline.content}{marker}\n```")
    return "\n\n".join(sections)
