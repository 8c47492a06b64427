from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from pathlib import Path
from typing import Any, TypeVar, cast

from agents import set_default_openai_api

from bootcamp.errors import (
    AnalysisValidationError,
    BootcampConfigurationError,
    BootcampError,
    FastAnalysisError,
    NoAvailableModelsError,
    SessionError,
    SessionTimeoutError,
)
from bootcamp.schemas.scan import AnalysisOptions, RepoInfo, ScanResult
from bootcamp.services.agents_backend import AgentsSessionFactory, OpenAIApi, ReasoningEffort
from bootcamp.services.analysis_stats import AnalysisStats
from bootcamp.services.model_fallback import DEFAULT_MODEL_CANDIDATES, resolve_model_candidates
from bootcamp.services.repo_agent_orchestrator import AnalysisResult, RepoAgentOrchestrator
from bootcamp.services.repo_tools import list_repository_files
from bootcamp.services.session import SessionFactory

__all__ = [
    "AnalysisResult",
    "AnalysisValidationError",
    "Bootcamp",
    "BootcampConfigurationError",
    "BootcampError",
    "FastAnalysisError",
    "NoAvailableModelsError",
    "SessionError",
    "SessionTimeoutError",
]

_OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
_AZURE_OPENAI_API_KEY_ENV = "AZURE_OPENAI_API_KEY"
_OPENAI_BASE_URL_ENV = "OPENAI_BASE_URL"
_AZURE_OPENAI_BASE_URL_ENV = "AZURE_OPENAI_BASE_URL"
_AZURE_OPENAI_ENDPOINT_ENV = "AZURE_OPENAI_ENDPOINT"
_OPENAI_API_MODE_ENV = "BOOTCAMP_OPENAI_API"
_MODEL_ENV = "BOOTCAMP_MODEL"
_REASONING_EFFORT_ENV = "BOOTCAMP_REASONING_EFFORT"
_SUPPORTED_OPENAI_APIS = frozenset({"responses", "chat_completions"})
_SUPPORTED_REASONING_EFFORTS = frozenset({"none", "low", "medium", "high", "xhigh"})
_DEFAULT_REASONING_EFFORT: ReasoningEffort = "medium"
_DEFAULT_MAX_FILES = 200

T = TypeVar("T")


def _run_awaitable(factory: Callable[[], Awaitable[T]]) -> T:
    """Run an awaitable factory from sync code.

    If an event loop is already running in the current thread (e.g., Jupyter),
    the coroutine is executed in a dedicated thread via asyncio.run.
    """

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(cast(Coroutine[Any, Any, T], factory()))

    result: dict[str, T] = {}
    error: dict[str, BaseException] = {}

    def _target() -> None:
        try:
            result["value"] = asyncio.run(cast(Coroutine[Any, Any, T], factory()))
        except BaseException as exc:  # pragma: no cover
            error["exc"] = exc

    if not loop.is_running():  # pragma: no cover
        return loop.run_until_complete(factory())

    thread = threading.Thread(target=_target, daemon=True)
    thread.start()
    thread.join()

    if "exc" in error:
        raise error["exc"]

    if "value" not in result:  # pragma: no cover
        raise RuntimeError("Async execution failed without an exception")

    return result["value"]


def _read_non_empty_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _resolve_openai_api_key(explicit_key: str | None) -> str | None:
    if explicit_key is not None:
        return explicit_key.strip() or None
    return _read_non_empty_env(_OPENAI_API_KEY_ENV, _AZURE_OPENAI_API_KEY_ENV)


def _azure_endpoint_to_base_url(endpoint: str) -> str:
    normalized = endpoint.strip().rstrip("/")
    if normalized.endswith("/openai/v1"):
        return normalized + "/"
    if normalized.endswith("/openai"):
        return normalized + "/v1/"
    return normalized + "/openai/v1/"


def _resolve_openai_base_url(explicit_base_url: str | None) -> str | None:
    if explicit_base_url is not None:
        return explicit_base_url.strip() or None

    configured_base_url = _read_non_empty_env(_OPENAI_BASE_URL_ENV, _AZURE_OPENAI_BASE_URL_ENV)
    if configured_base_url:
        return configured_base_url

    azure_endpoint = _read_non_empty_env(_AZURE_OPENAI_ENDPOINT_ENV)
    if azure_endpoint:
        return _azure_endpoint_to_base_url(azure_endpoint)

    return None


def _normalize_openai_api(value: str) -> OpenAIApi:
    normalized = value.strip().lower()
    if normalized not in _SUPPORTED_OPENAI_APIS:
        supported = ", ".join(sorted(_SUPPORTED_OPENAI_APIS))
        raise BootcampConfigurationError(
            f"Invalid OpenAI API mode {value!r}. Use one of: {supported}."
        )
    return cast(OpenAIApi, normalized)


def _normalize_reasoning_effort(value: str) -> ReasoningEffort:
    normalized = value.strip().lower()
    if normalized not in _SUPPORTED_REASONING_EFFORTS:
        supported = ", ".join(sorted(_SUPPORTED_REASONING_EFFORTS))
        raise BootcampConfigurationError(
            f"Invalid reasoning effort {value!r}. Use one of: {supported}."
        )
    return cast(ReasoningEffort, normalized)


class Bootcamp:
    """Bootcamp SDK facade.

    Wraps ``RepoAgentOrchestrator`` with environment-based OpenAI configuration
    and exposes:

    - ``analyze``: repository checkout -> validated ``RepoFacts`` + ``AnalysisStats``
    - ``model_candidates``: the model order the fallback selector will try

    Parameters
    ----------
    openai_api_key:
        If provided, sets ``OPENAI_API_KEY`` for the process (used by ``openai-agents``).
        If omitted, the SDK will read it from the environment.
        ``AZURE_OPENAI_API_KEY`` is also accepted as an alias.
    openai_base_url:
        Optional OpenAI-compatible base URL override. ``AZURE_OPENAI_ENDPOINT`` is
        normalized to its ``/openai/v1/`` form when no base URL is configured.
    openai_api:
        Optional API shape override (`responses` or `chat_completions`). Falls
        back to ``BOOTCAMP_OPENAI_API`` and then to `responses`.
    model:
        Optional model tried before the default candidates. Sets ``BOOTCAMP_MODEL``.
    reasoning_effort:
        Reasoning effort for reasoning models. Falls back to
        ``BOOTCAMP_REASONING_EFFORT``; ``none`` disables reasoning settings.
    session_factory:
        Optional custom backend. When given, no OpenAI configuration is required.
    """

    def __init__(
        self,
        openai_api_key: str | None = None,
        *,
        openai_base_url: str | None = None,
        openai_api: OpenAIApi | None = None,
        model: str | None = None,
        reasoning_effort: ReasoningEffort | None = None,
        probe_models: bool = True,
        model_candidates: Sequence[str] | None = None,
        session_factory: SessionFactory | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        resolved_api_key = _resolve_openai_api_key(openai_api_key)
        if resolved_api_key is not None:
            os.environ[_OPENAI_API_KEY_ENV] = resolved_api_key

        resolved_base_url = _resolve_openai_base_url(openai_base_url)
        if resolved_base_url is not None:
            os.environ[_OPENAI_BASE_URL_ENV] = resolved_base_url

        if model is not None:
            os.environ[_MODEL_ENV] = model

        resolved_api_mode: OpenAIApi | None
        if openai_api is not None:
            resolved_api_mode = _normalize_openai_api(openai_api)
        else:
            env_mode = _read_non_empty_env(_OPENAI_API_MODE_ENV)
            resolved_api_mode = _normalize_openai_api(env_mode) if env_mode is not None else None

        if resolved_api_mode is not None:
            set_default_openai_api(resolved_api_mode)

        if reasoning_effort is not None:
            resolved_effort = _normalize_reasoning_effort(reasoning_effort)
        else:
            env_effort = _read_non_empty_env(_REASONING_EFFORT_ENV)
            resolved_effort = (
                _normalize_reasoning_effort(env_effort)
                if env_effort is not None
                else _DEFAULT_REASONING_EFFORT
            )

        self._owns_backend = session_factory is None
        self._model_candidates = tuple(model_candidates or DEFAULT_MODEL_CANDIDATES)
        self._session_factory: SessionFactory = session_factory or AgentsSessionFactory(
            api=resolved_api_mode or "responses",
            reasoning_effort=resolved_effort,
            probe_models=probe_models,
        )
        self._orchestrator = RepoAgentOrchestrator(
            session_factory=self._session_factory,
            model_candidates=self._model_candidates,
            echo=echo,
        )

    @property
    def session_factory(self) -> SessionFactory:
        return self._session_factory

    @property
    def orchestrator(self) -> RepoAgentOrchestrator:
        return self._orchestrator

    def model_candidates(self, override: str | None = None) -> list[str]:
        return resolve_model_candidates(override, defaults=self._model_candidates)

    def _ensure_openai_key(self) -> None:
        resolved_api_key = _resolve_openai_api_key(None)
        if resolved_api_key:
            os.environ[_OPENAI_API_KEY_ENV] = resolved_api_key
            return
        raise BootcampConfigurationError(
            "Missing OpenAI API key. Provide Bootcamp(openai_api_key=...) or set "
            "OPENAI_API_KEY / AZURE_OPENAI_API_KEY."
        )

    async def aanalyze(
        self,
        repo_path: str | Path,
        *,
        repo_info: RepoInfo | None = None,
        scan_result: ScanResult | None = None,
        options: AnalysisOptions | None = None,
        max_files: int = _DEFAULT_MAX_FILES,
        on_progress: Callable[[str], None] | None = None,
        stats: AnalysisStats | None = None,
    ) -> AnalysisResult:
        """Analyze a local checkout and return validated facts plus run stats.

        Without ``scan_result`` a plain file listing of the checkout is used.
        """

        path = Path(repo_path)
        if not path.is_dir():
            raise BootcampConfigurationError(f"Repository path {str(path)!r} is not a directory")
        if self._owns_backend:
            self._ensure_openai_key()

        if scan_result is None:
            scan_result = ScanResult(files=list_repository_files(path, max_files=max_files))
        return await self._orchestrator.analyze(
            repo_path=path,
            repo_info=repo_info or RepoInfo.local(path),
            scan_result=scan_result,
            options=options or AnalysisOptions(),
            on_progress=on_progress,
            stats=stats,
        )

    def analyze(
        self,
        repo_path: str | Path,
        *,
        repo_info: RepoInfo | None = None,
        scan_result: ScanResult | None = None,
        options: AnalysisOptions | None = None,
        max_files: int = _DEFAULT_MAX_FILES,
        on_progress: Callable[[str], None] | None = None,
        stats: AnalysisStats | None = None,
    ) -> AnalysisResult:
        """Synchronous wrapper around ``aanalyze``."""

        return _run_awaitable(
            lambda: self.aanalyze(
                repo_path,
                repo_info=repo_info,
                scan_result=scan_result,
                options=options,
                max_files=max_files,
                on_progress=on_progress,
                stats=stats,
            )
        )
