from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bootcamp.errors import AnalysisValidationError, BootcampError, FastAnalysisError
from bootcamp.schemas.repo_facts import RepoFacts, StackInfo, ValidationResult, validate_repo_facts
from bootcamp.schemas.scan import AnalysisOptions, RepoInfo, ScanResult
from bootcamp.services.analysis_stats import AnalysisStats
from bootcamp.services.fast_path import (
    FAST_FILE_TREE_LIMIT,
    collect_inline_files,
    render_inline_files,
)
from bootcamp.services.model_fallback import (
    DEFAULT_MODEL_CANDIDATES,
    create_session_with_fallback,
    resolve_model_candidates,
)
from bootcamp.services.prompts import (
    FAST_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_analysis_prompt,
    build_fast_prompt,
    load_custom_prompt,
)
from bootcamp.services.repo_tools import RepoToolDispatcher, ToolContext
from bootcamp.services.response_extractor import extract_json_payload
from bootcamp.services.retry_controller import MAX_RETRIES, RetryController, RetryState
from bootcamp.services.session import Session, SessionFactory
from bootcamp.services.stream_multiplexer import StreamingMultiplexer

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_SECONDS = 600.0
RETRY_TIMEOUT_SECONDS = 120.0
FAST_TIMEOUT_SECONDS = 180.0

_RESPONSE_PREVIEW_LIMIT = 1000
_TOOL_ARGS_PREVIEW_LIMIT = 100


@dataclass(frozen=True)
class AnalysisResult:
    facts: RepoFacts
    stats: AnalysisStats


def _stdout_echo(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def merge_stack(scanned: StackInfo, produced: StackInfo) -> StackInfo:
    """Combine the model's stack with the deterministic scan.

    Frameworks are unioned (case-insensitive, scanned entries first); every other
    field takes the scanned value.
    """
    frameworks: list[str] = []
    seen: set[str] = set()
    for framework in [*scanned.frameworks, *produced.frameworks]:
        key = framework.strip().casefold()
        if not key or key in seen:
            continue
        seen.add(key)
        frameworks.append(framework)
    return scanned.model_copy(update={"frameworks": frameworks}, deep=True)


def evaluate_response(text: str) -> ValidationResult:
    extraction = extract_json_payload(text)
    if not extraction.ok:
        return ValidationResult(success=False, errors=[extraction.error or "Invalid response"])
    return validate_repo_facts(extraction.payload)


class RepoAgentOrchestrator:
    """Drives the analysis agent from scan result to validated RepoFacts."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        model_candidates: Sequence[str] | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._model_candidates = list(model_candidates) if model_candidates else None
        self._echo = echo or _stdout_echo

    def _candidates(self, options: AnalysisOptions) -> list[str]:
        defaults = self._model_candidates or DEFAULT_MODEL_CANDIDATES
        return resolve_model_candidates(options.model, defaults=defaults)

    def _verbose_echo(self, options: AnalysisOptions, text: str) -> None:
        if options.verbose:
            self._echo(text)

    def build_tool_context(
        self,
        repo_path: Path,
        *,
        stats: AnalysisStats,
        options: AnalysisOptions,
        on_progress: Callable[[str], None] | None = None,
    ) -> ToolContext:
        def _on_tool_call(name: str, args: dict[str, Any]) -> None:
            args_preview = json.dumps(args, default=str)[:_TOOL_ARGS_PREVIEW_LIMIT]
            stats.record_tool_call(name, args_preview)
            if options.verbose:
                self._echo(f"\n[Tool Call] {name} {args_preview}\n")
            elif on_progress is not None:
                on_progress(f"Tool: {name}")

        def _on_tool_result(name: str, summary: str) -> None:
            self._verbose_echo(options, f"[Tool Result] {name}: {summary}\n")

        return ToolContext(
            repo_path=repo_path,
            verbose=options.verbose,
            on_tool_call=_on_tool_call,
            on_tool_result=_on_tool_result,
        )

    async def analyze(
        self,
        *,
        repo_path: Path,
        repo_info: RepoInfo,
        scan_result: ScanResult,
        options: AnalysisOptions | None = None,
        on_progress: Callable[[str], None] | None = None,
        stats: AnalysisStats | None = None,
    ) -> AnalysisResult:
        """Run the analysis agent and return validated facts plus run stats.

        ``stats`` may be supplied by the caller to observe partial counters when
        the call fails; errors derived from ``BootcampError`` also carry it.
        """
        options = options or AnalysisOptions()
        stats = stats or AnalysisStats()
        custom_prompt = load_custom_prompt(repo_path, options.repo_prompts)
        try:
            if options.fast:
                facts = await self._analyze_fast(
                    repo_path=repo_path,
                    repo_info=repo_info,
                    scan_result=scan_result,
                    options=options,
                    stats=stats,
                    custom_prompt=custom_prompt,
                    on_progress=on_progress,
                )
            else:
                facts = await self._analyze_with_tools(
                    repo_path=repo_path,
                    repo_info=repo_info,
                    scan_result=scan_result,
                    options=options,
                    stats=stats,
                    custom_prompt=custom_prompt,
                    on_progress=on_progress,
                )
        except BootcampError as exc:
            if exc.stats is None:
                exc.stats = stats
            raise
        finally:
            stats.finish()

        for line in stats.summary_lines():
            self._verbose_echo(options, f"\n{line}")
        self._verbose_echo(options, "\n")

        if scan_result.stack is not None:
            facts = facts.model_copy(
                update={"stack": merge_stack(scan_result.stack, facts.stack)}
            )
        return AnalysisResult(facts=facts, stats=stats)

    async def _open_session(
        self,
        *,
        system_prompt: str,
        tools: Sequence[Any] | None,
        options: AnalysisOptions,
        stats: AnalysisStats,
    ) -> Session:
        selection = await create_session_with_fallback(
            self._session_factory,
            system_prompt=system_prompt,
            tools=tools,
            candidates=self._candidates(options),
            on_attempt=lambda model: self._verbose_echo(options, f"Trying model: {model}\n"),
        )
        stats.model = selection.model
        return selection.session

    def _multiplexer(
        self,
        session: Session,
        stats: AnalysisStats,
        options: AnalysisOptions,
        on_progress: Callable[[str], None] | None,
    ) -> StreamingMultiplexer:
        return StreamingMultiplexer(
            session.subscribe(),
            stats,
            verbose=options.verbose,
            echo=self._echo,
            on_progress=on_progress,
        )

    def _log_warnings(self, options: AnalysisOptions, result: ValidationResult) -> None:
        for warning in result.warnings:
            logger.debug("RepoFacts quality warning: %s", warning)
            self._verbose_echo(options, f"[Warning] {warning}\n")

    async def _analyze_with_tools(
        self,
        *,
        repo_path: Path,
        repo_info: RepoInfo,
        scan_result: ScanResult,
        options: AnalysisOptions,
        stats: AnalysisStats,
        custom_prompt: str | None,
        on_progress: Callable[[str], None] | None,
    ) -> RepoFacts:
        context = self.build_tool_context(
            repo_path, stats=stats, options=options, on_progress=on_progress
        )
        tools = RepoToolDispatcher(context).function_tools()
        session = await self._open_session(
            system_prompt=SYSTEM_PROMPT, tools=tools, options=options, stats=stats
        )
        multiplexer: StreamingMultiplexer | None = None
        try:
            self._verbose_echo(options, f"\nUsing model: {stats.model}\n")
            tool_names = ", ".join(RepoToolDispatcher.TOOL_NAMES)
            self._verbose_echo(options, f"Tools available: {tool_names}\n")
            multiplexer = self._multiplexer(session, stats, options, on_progress)
            prompt = build_analysis_prompt(
                repo_info, scan_result, options, custom_prompt=custom_prompt
            )
            response = await multiplexer.run_turn(
                session, prompt, timeout=ANALYSIS_TIMEOUT_SECONDS
            )
            logger.debug("Initial response length: %d", len(response))

            controller = RetryController()
            result = evaluate_response(response)
            while controller.record(result) in (RetryState.RETRY_1, RetryState.RETRY_2):
                retry_prompt = controller.retry_prompt(result.errors, custom_prompt=custom_prompt)
                logger.warning(
                    "RepoFacts validation failed (retry %d): %s",
                    controller.retries,
                    "; ".join(result.errors[:3]),
                )
                if on_progress is not None:
                    on_progress(f"Retrying ({controller.retries}/{MAX_RETRIES})")
                response = await multiplexer.run_turn(
                    session, retry_prompt, timeout=RETRY_TIMEOUT_SECONDS
                )
                result = evaluate_response(response)

            if controller.state is RetryState.FAILED or result.data is None:
                raise AnalysisValidationError(
                    result.errors, response[:_RESPONSE_PREVIEW_LIMIT]
                )
            self._log_warnings(options, result)
            return result.data
        finally:
            if multiplexer is not None:
                stats.finish(response_length=len(multiplexer.response))
            await session.close()

    async def _analyze_fast(
        self,
        *,
        repo_path: Path,
        repo_info: RepoInfo,
        scan_result: ScanResult,
        options: AnalysisOptions,
        stats: AnalysisStats,
        custom_prompt: str | None,
        on_progress: Callable[[str], None] | None,
    ) -> RepoFacts:
        inline_files = collect_inline_files(repo_path)
        prompt = build_fast_prompt(
            repo_info,
            scan_result,
            options,
            inline_files=render_inline_files(inline_files),
            file_limit=FAST_FILE_TREE_LIMIT,
            custom_prompt=custom_prompt,
        )
        session = await self._open_session(
            system_prompt=FAST_SYSTEM_PROMPT, tools=None, options=options, stats=stats
        )
        multiplexer: StreamingMultiplexer | None = None
        try:
            self._verbose_echo(options, f"\nUsing model: {stats.model}\n")
            multiplexer = self._multiplexer(session, stats, options, on_progress)
            try:
                response = await multiplexer.run_turn(session, prompt, timeout=FAST_TIMEOUT_SECONDS)
            except Exception as exc:
                raise FastAnalysisError(f"Fast analysis failed: {exc}") from exc

            result = evaluate_response(response)
            if result.data is None:
                raise FastAnalysisError(f"Fast analysis failed: {'; '.join(result.errors[:5])}")
            self._log_warnings(options, result)
            return result.data
        finally:
            if multiplexer is not None:
                stats.finish(response_length=len(multiplexer.response))
            await session.close()
