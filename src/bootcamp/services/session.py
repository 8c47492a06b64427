from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from bootcamp.errors import SessionError, SessionTimeoutError
from bootcamp.schemas.events import SessionEvent

_DEFAULT_CHANNEL_SIZE = 256


class _TurnEnd:
    pass


_TURN_END = _TurnEnd()


class EventChannel:
    """Bounded single-consumer queue of session events.

    Producers block when the consumer falls behind. Each turn is terminated by an
    end marker that never waits for a free slot.
    """

    def __init__(self, *, maxsize: int = _DEFAULT_CHANNEL_SIZE) -> None:
        self._queue: asyncio.Queue[SessionEvent | _TurnEnd] = asyncio.Queue()
        self._slots = asyncio.Semaphore(maxsize)

    async def publish(self, event: SessionEvent) -> None:
        await self._slots.acquire()
        self._queue.put_nowait(event)

    def end_turn(self) -> None:
        self._queue.put_nowait(_TURN_END)

    def discard(self) -> None:
        """Drop everything queued, releasing any blocked producer."""
        while not self._queue.empty():
            if not isinstance(self._queue.get_nowait(), _TurnEnd):
                self._slots.release()

    async def turn_events(self) -> AsyncIterator[SessionEvent]:
        while True:
            item = await self._queue.get()
            if isinstance(item, _TurnEnd):
                return
            self._slots.release()
            yield item


@dataclass(frozen=True)
class SessionConfig:
    model: str
    system_prompt: str
    tools: Sequence[Any] | None = None
    streaming: bool = True


class Session(Protocol):
    def subscribe(self) -> EventChannel: ...

    async def send_and_wait(self, prompt: str, *, timeout: float) -> None: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    async def create_session(self, config: SessionConfig) -> Session: ...


class BaseSession:
    """Shared plumbing for backend sessions.

    Subclasses implement ``_run_turn`` (publish events while the backend works)
    and ``_release`` (tear down the backend connection).
    """

    def __init__(self, *, channel_size: int = _DEFAULT_CHANNEL_SIZE) -> None:
        self._channel = EventChannel(maxsize=channel_size)
        self._subscribed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> EventChannel:
        if self._subscribed:
            raise SessionError("Session already has a subscriber")
        self._subscribed = True
        return self._channel

    async def publish(self, event: SessionEvent) -> None:
        await self._channel.publish(event)

    async def send_and_wait(self, prompt: str, *, timeout: float) -> None:
        try:
            if self._closed:
                raise SessionError("Cannot send on a closed session")
            async with asyncio.timeout(timeout):
                await self._run_turn(prompt)
        except TimeoutError as exc:
            raise SessionTimeoutError(timeout) from exc
        finally:
            self._channel.end_turn()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._release()

    async def _run_turn(self, prompt: str) -> None:
        raise NotImplementedError

    async def _release(self) -> None:
        return None
