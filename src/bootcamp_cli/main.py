from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any, get_args

import typer
from openai import OpenAIError
from pydantic import ValidationError

from bootcamp import AnalysisStats, Bootcamp, BootcampError
from bootcamp.schemas.repo_facts import validate_repo_facts
from bootcamp.schemas.scan import AnalysisOptions, Audience, Focus, RepoInfo, ScanResult
from bootcamp.services.agents_backend import OpenAIApi
from bootcamp.services.model_fallback import resolve_model_candidates

app = typer.Typer(add_completion=False, help="Bootcamp CLI: onboarding facts for a repository.")


def _require_api_key(provided: str | None) -> str:
    if provided and provided.strip():
        return provided.strip()
    for name in ("OPENAI_API_KEY", "AZURE_OPENAI_API_KEY"):
        env = os.getenv(name, "").strip()
        if env:
            return env
    raise typer.BadParameter(
        "Missing OpenAI API key. Provide --openai-api-key or set OPENAI_API_KEY."
    )


def _choice(flag: str, value: str, allowed: Any) -> Any:
    choices = get_args(allowed)
    if value not in choices:
        raise typer.BadParameter(f"{flag} must be one of: {', '.join(choices)}.")
    return value


def _print_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_raw(text: str) -> None:
    typer.echo(text, nl=False)


def _progress_printer() -> Callable[[str], None]:
    last: str | None = None

    def _on_progress(message: str) -> None:
        nonlocal last
        if message == last:
            return
        last = message
        typer.echo(f"... {message}", err=True)

    return _on_progress


def _repo_info(
    repo_path: Path, *, name: str | None, url: str | None, branch: str
) -> RepoInfo:
    if not name:
        return RepoInfo.local(repo_path, branch=branch, url=url)
    owner, _, repo = name.partition("/")
    if not repo:
        raise typer.BadParameter("--name must look like owner/repo.")
    return RepoInfo(
        owner=owner,
        repo=repo,
        url=url or f"https://github.com/{owner}/{repo}",
        branch=branch,
        full_name=f"{owner}/{repo}",
    )


def _load_scan(scan_file: Path) -> ScanResult:
    try:
        return ScanResult.model_validate_json(scan_file.read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid scan file {scan_file}: {exc}") from exc


def _echo_stats(stats: AnalysisStats) -> None:
    for line in stats.summary_lines():
        typer.echo(line, err=True)


@app.command()
def analyze(
    repo_path: Annotated[
        Path,
        typer.Argument(
            exists=True, file_okay=False, dir_okay=True, help="Local repository checkout."
        ),
    ],
    scan_file: Annotated[
        Path | None,
        typer.Option(
            "--scan",
            exists=True,
            readable=True,
            dir_okay=False,
            help="Pre-computed scan result (JSON). Defaults to a plain file listing.",
        ),
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", help="Repository name as owner/repo.")
    ] = None,
    url: Annotated[str | None, typer.Option("--url", help="Repository URL.")] = None,
    branch: Annotated[str, typer.Option("--branch", help="Branch being analyzed.")] = "",
    fast: Annotated[
        bool, typer.Option("--fast", help="Single turn with inlined key files, no tools.")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Stream model output and tool calls.")
    ] = False,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Model tried before the default candidates."),
    ] = None,
    focus: Annotated[
        str, typer.Option("--focus", help="onboarding|architecture|contributing|all")
    ] = "all",
    audience: Annotated[
        str, typer.Option("--audience", help="new-hire|oss-contributor|internal-dev")
    ] = "oss-contributor",
    repo_prompts: Annotated[
        Path | None,
        typer.Option(
            "--repo-prompts",
            exists=True,
            readable=True,
            dir_okay=False,
            help="Custom prompt file (defaults to .bootcamp-prompts.md in the repo).",
        ),
    ] = None,
    max_files: Annotated[
        int, typer.Option("--max-files", min=1, help="File listing size without --scan.")
    ] = 200,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write repo_facts JSON here.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Emit JSON output.")] = False,
    show_stats: Annotated[bool, typer.Option("--stats", help="Print run statistics.")] = False,
    openai_api_key: Annotated[
        str | None,
        typer.Option("--openai-api-key", envvar="OPENAI_API_KEY", help="OpenAI API key."),
    ] = None,
    openai_base_url: Annotated[
        str | None,
        typer.Option("--openai-base-url", help="OpenAI-compatible base URL."),
    ] = None,
    openai_api: Annotated[
        str | None,
        typer.Option("--openai-api", help="responses|chat_completions"),
    ] = None,
) -> None:
    """Run the analysis agent against a repository and produce repo facts."""

    _configure_logging(verbose)
    key = _require_api_key(openai_api_key)
    scan_result = _load_scan(scan_file) if scan_file is not None else None
    repo_info = _repo_info(repo_path, name=name, url=url, branch=branch)
    options = AnalysisOptions(
        fast=fast,
        verbose=verbose,
        model=model,
        focus=_choice("--focus", focus, Focus),
        audience=_choice("--audience", audience, Audience),
        repo_prompts=repo_prompts,
    )

    client = Bootcamp(
        openai_api_key=key,
        openai_base_url=openai_base_url,
        openai_api=_choice("--openai-api", openai_api, OpenAIApi) if openai_api else None,
        echo=_echo_raw,
    )
    stats = AnalysisStats()
    try:
        result = client.analyze(
            repo_path,
            repo_info=repo_info,
            scan_result=scan_result,
            options=options,
            max_files=max_files,
            on_progress=None if verbose else _progress_printer(),
            stats=stats,
        )
    except (BootcampError, OpenAIError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        if show_stats:
            _echo_stats(stats)
        raise typer.Exit(code=1) from exc

    facts_json = result.facts.model_dump(mode="json", by_alias=True, exclude_none=True)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(facts_json, indent=2) + "\n", encoding="utf-8")
        typer.echo(f"Wrote {output}", err=True)
    if show_stats:
        _echo_stats(result.stats)

    if json_output:
        _print_json(facts_json)
        return

    facts = result.facts
    typer.echo(f"{facts.repo_name}: {facts.purpose}")
    typer.echo(f"Model: {result.stats.model}")
    typer.echo(f"Languages: {', '.join(facts.stack.languages) or '(unknown)'}")
    typer.echo(f"Frameworks: {', '.join(facts.stack.frameworks) or '(none)'}")
    typer.echo(f"First tasks: {len(facts.first_tasks)}")
    for task in facts.first_tasks:
        typer.echo(f"  - [{task.difficulty}] {task.title}")


@app.command()
def validate(
    facts_file: Annotated[
        Path,
        typer.Argument(exists=True, readable=True, dir_okay=False, help="repo_facts JSON file."),
    ],
) -> None:
    """Validate an existing repo_facts JSON document."""

    try:
        payload = json.loads(facts_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        typer.echo(f"Invalid JSON: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    result = validate_repo_facts(payload)
    for warning in result.warnings:
        typer.echo(f"Warning: {warning}")
    if not result.success:
        for error in result.errors:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Valid")


@app.command()
def models(
    model: Annotated[
        str | None,
        typer.Option("--model", help="Model tried before the default candidates."),
    ] = None,
) -> None:
    """Print the model candidates in the order they will be tried."""

    for candidate in resolve_model_candidates(model):
        typer.echo(candidate)


if __name__ == "__main__":
    app()
