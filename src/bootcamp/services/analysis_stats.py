from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

_ARGS_PREVIEW_LIMIT = 100


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class ToolCallRecord:
    name: str
    args: str
    duration_ms: float | None = None


@dataclass
class AnalysisStats:
    """Counters for one analysis call.

    Only the multiplexer and the tool observers write to this object, and both
    run on the orchestrator's event loop.
    """

    model: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    total_events: int = 0
    response_length: int = 0
    send_attempts: int = 0
    started_at: datetime = field(default_factory=_now)
    ended_at: datetime | None = None

    def record_tool_call(self, name: str, args: str) -> ToolCallRecord:
        record = ToolCallRecord(name=name, args=args[:_ARGS_PREVIEW_LIMIT])
        self.tool_calls.append(record)
        return record

    def finish(self, *, response_length: int | None = None) -> None:
        if self.ended_at is not None:
            return
        if response_length is not None:
            self.response_length = response_length
        self.ended_at = _now()

    @property
    def duration_seconds(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def summary_lines(self) -> list[str]:
        duration = self.duration_seconds
        lines = [
            f"[Stats] Model: {self.model or 'unknown'}",
            f"[Stats] Events: {self.total_events}, Tool calls: {len(self.tool_calls)}",
            f"[Stats] Send attempts: {self.send_attempts}",
            f"[Stats] Response length: {self.response_length}",
        ]
        if duration is not None:
            lines.append(f"[Stats] Duration: {duration:.1f}s")
        return lines
