from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from agents import function_tool

from bootcamp.schemas.scan import FileEntry

logger = logging.getLogger(__name__)

NOISE_DIRECTORIES = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        "out",
        ".next",
        "__pycache__",
        ".venv",
        "venv",
        "vendor",
        ".idea",
        ".vscode",
        "coverage",
        ".nyc_output",
        "target",
        ".gradle",
    }
)

_SEARCH_TIMEOUT_SECONDS = 30.0
_GIT_TIMEOUT_SECONDS = 10.0
_RESULT_PREVIEW_LIMIT = 100

ToolResultType = Literal["success", "failure"]


@dataclass(frozen=True)
class ToolResult:
    text: str
    result_type: ToolResultType = "success"

    @property
    def ok(self) -> bool:
        return self.result_type == "success"

    def render(self) -> str:
        """Text handed back to the model."""
        if self.ok:
            return self.text
        return json.dumps({"error": self.text})


@dataclass(frozen=True)
class ToolContext:
    """Sandbox for one analysis call: a repository root plus observers."""

    repo_path: Path
    verbose: bool = False
    on_tool_call: Callable[[str, dict[str, Any]], None] | None = None
    on_tool_result: Callable[[str, str], None] | None = None


class _SandboxViolation(ValueError):
    pass


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    translated = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{translated}$")


def _extension(name: str) -> str:
    if "." not in name:
        return "no-ext"
    return name.rsplit(".", 1)[1] or "no-ext"


def list_repository_files(root: Path, *, max_files: int = 200) -> list[FileEntry]:
    """Plain file listing (no stack heuristics) used when no scan is supplied."""
    root = root.resolve()
    entries: list[FileEntry] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in NOISE_DIRECTORIES)
        for filename in sorted(filenames):
            if len(entries) >= max_files:
                return entries
            full_path = Path(current) / filename
            try:
                size = full_path.stat().st_size
            except OSError:
                size = 0
            entries.append(FileEntry(path=full_path.relative_to(root).as_posix(), size=size))
    return entries


class RepoToolDispatcher:
    """Read-only repository inspection tools exposed to the analysis agent."""

    TOOL_NAMES: tuple[str, ...] = ("read_file", "list_files", "search", "get_repo_metadata")

    def __init__(self, context: ToolContext) -> None:
        self._context = context
        self._root = context.repo_path.resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative_path: str) -> Path:
        target = (self._root / relative_path).resolve()
        if not target.is_relative_to(self._root):
            raise _SandboxViolation(f"Path {relative_path!r} is outside the repository")
        return target

    def _relative(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    def _link_inside(self, link: Path) -> bool:
        try:
            return link.resolve().is_relative_to(self._root)
        except (OSError, RuntimeError):
            return False

    async def _invoke(
        self,
        name: str,
        args: dict[str, Any],
        handler: Callable[[], Awaitable[ToolResult]],
    ) -> ToolResult:
        if self._context.on_tool_call is not None:
            self._context.on_tool_call(name, args)
        started = time.perf_counter()
        result: ToolResult | None = None
        try:
            result = await handler()
        except _SandboxViolation as exc:
            result = ToolResult(text=str(exc), result_type="failure")
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            result = ToolResult(text=f"Error running {name}: {exc}", result_type="failure")
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug("Tool %s finished in %.1fms", name, elapsed_ms)
            summary = result.text if result is not None else f"{name} aborted"
            if self._context.on_tool_result is not None:
                self._context.on_tool_result(name, summary[:_RESULT_PREVIEW_LIMIT])
        return result

    async def read_file(self, path: str, max_lines: int = 500) -> ToolResult:
        async def _handler() -> ToolResult:
            target = self._resolve(path)
            try:
                content = target.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                return ToolResult(
                    text=f"Error reading file {path}: {exc.strerror or exc}",
                    result_type="failure",
                )
            lines = content.split("\n")
            limit = max(1, max_lines)
            shown = "\n".join(lines[:limit])
            if len(lines) > limit:
                shown += f"\n\n... (truncated, showing {limit} of {len(lines)} lines)"
            return ToolResult(text=shown)

        return await self._invoke("read_file", {"path": path}, _handler)

    async def list_files(
        self,
        path: str = "",
        pattern: str | None = None,
        recursive: bool = False,
        max_results: int = 100,
    ) -> ToolResult:
        async def _handler() -> ToolResult:
            start = self._resolve(path)
            if not start.is_dir():
                return ToolResult(
                    text=f"Error listing files in {path or '.'}: not a directory",
                    result_type="failure",
                )
            matcher = _glob_to_regex(pattern) if pattern else None
            limit = max(1, max_results)
            results: list[str] = []

            def _scan(directory: Path) -> None:
                for entry in sorted(directory.iterdir(), key=lambda item: item.name):
                    if len(results) >= limit:
                        return
                    is_link = entry.is_symlink()
                    if is_link and not self._link_inside(entry):
                        continue
                    is_dir = entry.is_dir()
                    if is_dir and entry.name in NOISE_DIRECTORIES:
                        continue
                    if matcher is None or matcher.match(entry.name):
                        prefix = "[dir]  " if is_dir else "[file] "
                        results.append(f"{prefix}{self._relative(entry)}")
                    if is_dir and recursive and not is_link:
                        _scan(entry)

            try:
                _scan(start)
            except OSError as exc:
                return ToolResult(
                    text=f"Error listing files in {path or '.'}: {exc.strerror or exc}",
                    result_type="failure",
                )
            if not results:
                return ToolResult(text="No files found matching criteria")
            return ToolResult(text="\n".join(results))

        return await self._invoke(
            "list_files",
            {"path": path, "pattern": pattern, "recursive": recursive},
            _handler,
        )

    async def search(
        self,
        pattern: str,
        path: str = "",
        file_pattern: str | None = None,
        max_results: int = 50,
    ) -> ToolResult:
        async def _handler() -> ToolResult:
            target = self._resolve(path)
            limit = max(1, max_results)
            args = ["--line-number", "--no-heading", "--max-count", str(limit)]
            if file_pattern:
                args.extend(["--glob", file_pattern])
            args.extend(["--", pattern, str(target)])

            try:
                process = await asyncio.create_subprocess_exec(
                    "rg",
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError:
                return ToolResult(
                    text="Error searching: ripgrep (rg) is not installed",
                    result_type="failure",
                )

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=_SEARCH_TIMEOUT_SECONDS
                )
            except TimeoutError:
                process.kill()
                await process.wait()
                return ToolResult(
                    text=f"Error searching: timed out after {_SEARCH_TIMEOUT_SECONDS:g}s",
                    result_type="failure",
                )

            # ripgrep exits with 1 when nothing matched
            if process.returncode == 1:
                return ToolResult(text=f"No matches found for pattern: {pattern}")
            if process.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                return ToolResult(text=f"Error searching: {message}", result_type="failure")

            root_prefix = f"{self._root}{os.sep}"
            lines = [
                line.replace(root_prefix, "", 1)
                for line in stdout.decode("utf-8", errors="replace").splitlines()
                if line
            ][:limit]
            if not lines:
                return ToolResult(text=f"No matches found for pattern: {pattern}")
            return ToolResult(text="\n".join(lines))

        return await self._invoke(
            "search",
            {"pattern": pattern, "path": path, "filePattern": file_pattern},
            _handler,
        )

    async def get_repo_metadata(self) -> ToolResult:
        async def _handler() -> ToolResult:
            extension_counts: Counter[str] = Counter()
            total_files = 0
            total_size = 0
            for current, dirnames, filenames in os.walk(self._root):
                dirnames[:] = [d for d in dirnames if d not in NOISE_DIRECTORIES]
                for filename in filenames:
                    total_files += 1
                    extension_counts[_extension(filename)] += 1
                    try:
                        total_size += (Path(current) / filename).stat().st_size
                    except OSError:
                        continue

            top_extensions = "\n".join(
                f"  .{ext}: {count}" for ext, count in extension_counts.most_common(10)
            )
            git_info = await self._git_summary()
            text = (
                "Repository Statistics:\n"
                f"Total files: {total_files}\n"
                f"Total size: {total_size / 1024 / 1024:.2f} MB\n\n"
                f"File types:\n{top_extensions}\n\n"
                f"{git_info}"
            )
            return ToolResult(text=text)

        return await self._invoke("get_repo_metadata", {}, _handler)

    async def _git(self, *args: str) -> str:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=self._root,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _stderr = await asyncio.wait_for(
            process.communicate(), timeout=_GIT_TIMEOUT_SECONDS
        )
        if process.returncode != 0:
            raise RuntimeError(f"git {' '.join(args)} exited with {process.returncode}")
        return stdout.decode("utf-8", errors="replace").strip()

    async def _git_summary(self) -> str:
        try:
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
            commits = await self._git("rev-list", "--count", "HEAD")
            remotes = await self._git("remote", "-v")
        except (OSError, RuntimeError, TimeoutError) as exc:
            logger.debug("Git probe failed for %s: %s", self._root, exc)
            return "Git info not available"
        return f"Branch: {branch}\nCommits: {commits}\nRemotes:\n{remotes}"

    def function_tools(self) -> list[Any]:
        """Wrap the dispatcher methods as openai-agents function tools.

        Tools are async so the SDK runs them on the event loop, which keeps the
        observer callbacks (and the stats they mutate) single-threaded.
        """
        dispatcher = self

        @function_tool(name_override="read_file")
        async def read_file(path: str, max_lines: int = 500) -> str:
            """Read the contents of a file from the repository.

            Use this to examine source code, configuration files, and documentation.

            Args:
                path: Path relative to the repository root (e.g. 'src/index.ts', 'package.json').
                max_lines: Maximum number of lines to return.
            """
            return (await dispatcher.read_file(path, max_lines=max_lines)).render()

        @function_tool(name_override="list_files")
        async def list_files(
            path: str = "",
            pattern: str | None = None,
            recursive: bool = False,
            max_results: int = 100,
        ) -> str:
            """List files and directories in a path to explore the repository structure.

            Args:
                path: Path relative to the repository root (empty for the root).
                pattern: Optional glob to filter entry names (e.g. '*.ts', '*.py').
                recursive: Whether to list files recursively.
                max_results: Maximum number of entries to return.
            """
            result = await dispatcher.list_files(
                path, pattern=pattern, recursive=recursive, max_results=max_results
            )
            return result.render()

        @function_tool(name_override="search")
        async def search(
            pattern: str,
            path: str = "",
            file_pattern: str | None = None,
            max_results: int = 50,
        ) -> str:
            """Search repository files for a pattern using ripgrep.

            Use this to find specific code patterns, function definitions, imports, etc.

            Args:
                pattern: Search pattern (regex supported).
                path: Path to search in (empty for the entire repository).
                file_pattern: Glob to filter files (e.g. '*.ts', '*.py').
                max_results: Maximum number of matching lines to return.
            """
            result = await dispatcher.search(
                pattern, path=path, file_pattern=file_pattern, max_results=max_results
            )
            return result.render()

        @function_tool(name_override="get_repo_metadata")
        async def get_repo_metadata() -> str:
            """Get repository statistics: file counts, size, file types and git info."""
            return (await dispatcher.get_repo_metadata()).render()

        return [read_file, list_files, search, get_repo_metadata]
