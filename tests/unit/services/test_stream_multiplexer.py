from __future__ import annotations

import asyncio

import pytest
from conftest import ScriptedSession

from bootcamp.errors import SessionError, SessionTimeoutError
from bootcamp.schemas.events import (
    FinalMessageEvent,
    MessageDeltaEvent,
    ReasoningDeltaEvent,
    SessionEvent,
    ToolCallEvent,
)
from bootcamp.services.analysis_stats import AnalysisStats
from bootcamp.services.session import BaseSession
from bootcamp.services.stream_multiplexer import THINKING_PROGRESS, StreamingMultiplexer


class _SlowSession(BaseSession):
    async def _run_turn(self, prompt: str) -> None:
        await self.publish(MessageDeltaEvent(content='{"repoName": "partial'))
        await asyncio.sleep(10)


def _multiplexer(
    session: BaseSession,
    stats: AnalysisStats,
    *,
    verbose: bool = False,
    echoed: list[str] | None = None,
    progress: list[str] | None = None,
) -> StreamingMultiplexer:
    return StreamingMultiplexer(
        session.subscribe(),
        stats,
        verbose=verbose,
        echo=echoed.append if echoed is not None else None,
        on_progress=progress.append if progress is not None else None,
    )


@pytest.mark.asyncio
async def test_counts_every_event_kind_and_prefers_deltas(
    all_event_kinds: list[SessionEvent],
) -> None:
    session = ScriptedSession([all_event_kinds])
    stats = AnalysisStats()
    multiplexer = _multiplexer(session, stats)

    response = await multiplexer.run_turn(session, "analyze", timeout=5)

    assert response == "hello"
    assert stats.total_events == 4
    assert stats.send_attempts == 1
    assert session.prompts == ["analyze"]


@pytest.mark.asyncio
async def test_final_message_is_used_when_no_deltas_arrive() -> None:
    session = ScriptedSession([[FinalMessageEvent(content='{"repoName": "a/b"}')]])
    stats = AnalysisStats()

    response = await _multiplexer(session, stats).run_turn(session, "go", timeout=5)

    assert response == '{"repoName": "a/b"}'


@pytest.mark.asyncio
async def test_buffer_is_reset_between_turns() -> None:
    session = ScriptedSession(
        [[MessageDeltaEvent(content="first")], [MessageDeltaEvent(content="second")]]
    )
    stats = AnalysisStats()
    multiplexer = _multiplexer(session, stats)

    assert await multiplexer.run_turn(session, "one", timeout=5) == "first"
    assert await multiplexer.run_turn(session, "two", timeout=5) == "second"
    assert stats.send_attempts == 2


@pytest.mark.asyncio
async def test_verbose_mode_echoes_deltas_reasoning_and_tool_calls() -> None:
    session = ScriptedSession(
        [
            [
                ReasoningDeltaEvent(content="checking manifest"),
                ToolCallEvent(name="read_file"),
                MessageDeltaEvent(content="{}"),
            ]
        ]
    )
    echoed: list[str] = []
    progress: list[str] = []

    await _multiplexer(
        session, AnalysisStats(), verbose=True, echoed=echoed, progress=progress
    ).run_turn(session, "go", timeout=5)

    assert echoed == ["checking manifest", "\n[SDK Tool Call] read_file\n", "{}"]
    assert progress == []


@pytest.mark.asyncio
async def test_quiet_mode_reports_thinking_progress_only() -> None:
    session = ScriptedSession([[ReasoningDeltaEvent(content="secret thoughts")]])
    echoed: list[str] = []
    progress: list[str] = []

    await _multiplexer(
        session, AnalysisStats(), echoed=echoed, progress=progress
    ).run_turn(session, "go", timeout=5)

    assert echoed == []
    assert progress == [THINKING_PROGRESS]


@pytest.mark.asyncio
async def test_timeout_raises_and_releases_the_consumer() -> None:
    session = _SlowSession()
    stats = AnalysisStats()

    with pytest.raises(SessionTimeoutError, match="within 0.05s"):
        await _multiplexer(session, stats).run_turn(session, "go", timeout=0.05)

    assert stats.total_events == 1


@pytest.mark.asyncio
async def test_backend_errors_propagate_after_draining() -> None:
    session = ScriptedSession([ConnectionError("reset")])
    stats = AnalysisStats()

    with pytest.raises(ConnectionError):
        await _multiplexer(session, stats).run_turn(session, "go", timeout=5)

    assert stats.send_attempts == 1


@pytest.mark.asyncio
async def test_send_on_closed_session_fails_without_hanging() -> None:
    session = ScriptedSession([[MessageDeltaEvent(content="never")]])
    multiplexer = _multiplexer(session, AnalysisStats())
    await session.close()

    with pytest.raises(SessionError, match="closed session"):
        await multiplexer.run_turn(session, "go", timeout=5)

    assert session.prompts == []


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    session = ScriptedSession([])

    await session.close()
    await session.close()

    assert session.closed
    assert session.close_calls == 1


def test_second_subscriber_is_rejected() -> None:
    session = ScriptedSession([])
    session.subscribe()

    with pytest.raises(SessionError, match="already has a subscriber"):
        session.subscribe()


@pytest.mark.asyncio
async def test_failing_progress_callback_cancels_a_backlogged_send() -> None:
    backlog = [ReasoningDeltaEvent(content=f"step {index}") for index in range(400)]
    session = ScriptedSession([backlog, [MessageDeltaEvent(content="next")]])

    def _broken_progress(message: str) -> None:
        raise ValueError(f"progress display failed: {message}")

    multiplexer = StreamingMultiplexer(
        session.subscribe(), AnalysisStats(), on_progress=_broken_progress
    )

    with pytest.raises(ValueError, match="progress display failed"):
        await asyncio.wait_for(multiplexer.run_turn(session, "go", timeout=30), timeout=5)

    assert await multiplexer.run_turn(session, "again", timeout=5) == "next"
