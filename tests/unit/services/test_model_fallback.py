from __future__ import annotations

import pytest
from conftest import FakeSessionFactory

from bootcamp.errors import NoAvailableModelsError
from bootcamp.services.model_fallback import (
    DEFAULT_MODEL_CANDIDATES,
    create_session_with_fallback,
    is_model_unavailable_error,
    resolve_model_candidates,
)


def test_resolve_candidates_puts_override_first_without_duplicates() -> None:
    assert resolve_model_candidates("gpt-5-mini") == ["gpt-5-mini", "gpt-5.2", "gpt-5.1"]


def test_resolve_candidates_reads_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOOTCAMP_MODEL", " custom-model ")

    assert resolve_model_candidates() == ["custom-model", *DEFAULT_MODEL_CANDIDATES]


def test_explicit_override_beats_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOOTCAMP_MODEL", "env-model")

    assert resolve_model_candidates("arg-model", defaults=["a"]) == ["arg-model", "a"]


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("The model `gpt-x` does not exist", True),
        ("Requested deployment is not available", True),
        ("Incorrect API key provided", False),
        ("Connection reset by peer", False),
    ],
)
def test_is_model_unavailable_error(message: str, expected: bool) -> None:
    assert is_model_unavailable_error(RuntimeError(message)) is expected


@pytest.mark.asyncio
async def test_falls_back_past_unavailable_models() -> None:
    factory = FakeSessionFactory(unavailable={"opus", "sonnet-a"})
    attempted_callbacks: list[str] = []

    selection = await create_session_with_fallback(
        factory,
        system_prompt="system",
        candidates=["opus", "sonnet-a", "sonnet-b"],
        on_attempt=attempted_callbacks.append,
    )

    assert selection.model == "sonnet-b"
    assert selection.attempted == ["opus", "sonnet-a", "sonnet-b"]
    assert factory.attempts == ["opus", "sonnet-a", "sonnet-b"]
    assert attempted_callbacks == factory.attempts
    assert factory.configs[-1].system_prompt == "system"


@pytest.mark.asyncio
async def test_raises_when_every_candidate_is_unavailable() -> None:
    factory = FakeSessionFactory(unavailable={"a", "b", "c"})

    with pytest.raises(NoAvailableModelsError, match="Tried: a, b, c") as info:
        await create_session_with_fallback(factory, system_prompt="s", candidates=["a", "b", "c"])

    assert info.value.attempted == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_non_availability_error_stops_after_one_attempt() -> None:
    factory = FakeSessionFactory(create_error=PermissionError("Incorrect API key provided"))

    with pytest.raises(PermissionError):
        await create_session_with_fallback(factory, system_prompt="s", candidates=["a", "b"])

    assert factory.attempts == ["a"]


@pytest.mark.asyncio
async def test_passes_tools_and_streaming_flag_to_factory() -> None:
    factory = FakeSessionFactory()
    tools = [object()]

    await create_session_with_fallback(
        factory, system_prompt="s", candidates=["a"], tools=tools, streaming=False
    )

    assert factory.configs[0].tools == tools
    assert factory.configs[0].streaming is False
