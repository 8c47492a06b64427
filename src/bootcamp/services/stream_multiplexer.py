from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from bootcamp.schemas.events import (
    FinalMessageEvent,
    MessageDeltaEvent,
    ReasoningDeltaEvent,
    SessionEvent,
    ToolCallEvent,
)
from bootcamp.services.analysis_stats import AnalysisStats
from bootcamp.services.session import EventChannel, Session

logger = logging.getLogger(__name__)

THINKING_PROGRESS = "thinking..."


class StreamingMultiplexer:
    """Reduces a session's event stream into response text plus stats."""

    def __init__(
        self,
        channel: EventChannel,
        stats: AnalysisStats,
        *,
        verbose: bool = False,
        echo: Callable[[str], None] | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._channel = channel
        self._stats = stats
        self._verbose = verbose
        self._echo = echo
        self._on_progress = on_progress
        self._chunks: list[str] = []
        self._has_delta = False

    @property
    def response(self) -> str:
        return "".join(self._chunks)

    def reset(self) -> None:
        self._chunks = []
        self._has_delta = False

    def _write(self, text: str) -> None:
        if self._verbose and self._echo is not None:
            self._echo(text)

    def handle(self, event: SessionEvent) -> None:
        self._stats.total_events += 1

        if isinstance(event, MessageDeltaEvent):
            if event.content:
                self._chunks.append(event.content)
                self._has_delta = True
                self._write(event.content)
        elif isinstance(event, ReasoningDeltaEvent):
            if self._verbose:
                self._write(event.content)
            elif self._on_progress is not None:
                self._on_progress(THINKING_PROGRESS)
        elif isinstance(event, ToolCallEvent):
            logger.debug("Backend tool call %s %s", event.name, event.arguments)
            self._write(f"\n[SDK Tool Call] {event.name}\n")
        elif isinstance(event, FinalMessageEvent):
            # Some backends only send the terminal message, without deltas.
            if event.content and not self._has_delta:
                self._chunks = [event.content]
        else:
            logger.debug("Ignoring unrecognized session event: %r", event)

    async def _drain(self) -> None:
        async for event in self._channel.turn_events():
            self.handle(event)

    async def run_turn(self, session: Session, prompt: str, *, timeout: float) -> str:
        """Send one prompt and return the text accumulated for that turn.

        On a send failure the partial buffer is discarded: the error propagates
        once the channel has been drained up to the end-of-turn marker. If event
        handling fails, the send is cancelled and the handler's error propagates.
        """
        self.reset()
        self._stats.send_attempts += 1
        consumer = asyncio.create_task(self._drain())
        sender = asyncio.create_task(session.send_and_wait(prompt, timeout=timeout))
        try:
            await asyncio.wait({consumer, sender}, return_when=asyncio.FIRST_EXCEPTION)
            if consumer.done() and consumer.exception() is not None:
                sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)
                self._channel.discard()
                logger.debug("Event handling failed; cancelled the pending send")
            await consumer
            await sender
        finally:
            pending = [task for task in (consumer, sender) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                self._channel.discard()
        return self.response
