from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from bootcamp.schemas.events import (
    FinalMessageEvent,
    MessageDeltaEvent,
    ReasoningDeltaEvent,
    SessionEvent,
    ToolCallEvent,
)
from bootcamp.services.session import BaseSession, SessionConfig


def valid_repo_facts(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "repoName": "acme/widgets",
        "purpose": "Widget toolkit",
        "description": "A toolkit for building widgets.",
        "stack": {
            "languages": ["Python"],
            "frameworks": ["FastAPI"],
            "buildSystem": "setuptools",
            "packageManager": "pip",
            "hasDocker": False,
            "hasCi": False,
        },
        "quickstart": {
            "prerequisites": ["Python 3.12"],
            "steps": ["pip install -e ."],
            "commands": [{"name": "test", "command": "pytest", "source": "pyproject.toml"}],
        },
        "structure": {
            "keyDirs": [
                {"path": "src", "purpose": "Library code"},
                {"path": "tests", "purpose": "Test suite"},
            ],
            "entrypoints": [{"path": "src/main.py", "type": "cli"}],
            "testDirs": ["tests"],
            "docsDirs": [],
        },
        "ci": {"workflows": [], "mainChecks": []},
        "contrib": {"howToAddFeature": ["Add a module"], "howToAddTest": ["Add a test"]},
        "architecture": {
            "overview": "Layered toolkit",
            "components": [
                {"name": "core", "description": "Core logic", "directory": "src/core"},
                {"name": "cli", "description": "Command line", "directory": "src/cli"},
            ],
        },
        "firstTasks": [
            {
                "title": f"Task {index}",
                "description": "Do a thing",
                "difficulty": "beginner",
                "category": "docs",
                "files": ["README.md"],
                "why": "Learn the layout",
            }
            for index in range(5)
        ],
    }
    payload.update(overrides)
    return payload


def valid_repo_facts_json(**overrides: Any) -> str:
    return json.dumps(valid_repo_facts(**overrides))


class ScriptedSession(BaseSession):
    """Replays one scripted turn per ``send_and_wait`` call.

    A turn is either a list of events to publish or an exception to raise.
    """

    def __init__(self, turns: Sequence[list[SessionEvent] | BaseException]) -> None:
        super().__init__()
        self._turns = list(turns)
        self.prompts: list[str] = []
        self.close_calls = 0

    async def _run_turn(self, prompt: str) -> None:
        self.prompts.append(prompt)
        if not self._turns:
            raise AssertionError("No scripted turn left")
        turn = self._turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        for event in turn:
            await self.publish(event)

    async def _release(self) -> None:
        self.close_calls += 1


def text_turn(text: str, *, chunk_size: int = 40) -> list[SessionEvent]:
    return [
        MessageDeltaEvent(content=text[index : index + chunk_size])
        for index in range(0, len(text), chunk_size)
    ]


@dataclass
class FakeSessionFactory:
    """Records creation attempts; models in ``unavailable`` fail like the SDK does."""

    turns: list[list[SessionEvent] | BaseException] = field(default_factory=list)
    unavailable: set[str] = field(default_factory=set)
    create_error: BaseException | None = None
    attempts: list[str] = field(default_factory=list)
    configs: list[SessionConfig] = field(default_factory=list)
    sessions: list[ScriptedSession] = field(default_factory=list)

    async def create_session(self, config: SessionConfig) -> ScriptedSession:
        self.attempts.append(config.model)
        self.configs.append(config)
        if self.create_error is not None:
            raise self.create_error
        if config.model in self.unavailable:
            raise RuntimeError(f"The model `{config.model}` does not exist")
        session = ScriptedSession(self.turns)
        self.sessions.append(session)
        return session


@pytest.fixture
def all_event_kinds() -> list[SessionEvent]:
    return [
        ReasoningDeltaEvent(content="hmm"),
        ToolCallEvent(name="read_file", arguments='{"path": "README.md"}'),
        MessageDeltaEvent(content="hello"),
        FinalMessageEvent(content="hello"),
    ]


@pytest.fixture(autouse=True)
def _clear_model_override(monkeypatch: pytest.MonkeyPatch) -> None:
    # Bootcamp(model=...) writes os.environ directly.
    monkeypatch.setenv("BOOTCAMP_MODEL", "")
    monkeypatch.delenv("BOOTCAMP_MODEL")
