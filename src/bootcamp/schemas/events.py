from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageDeltaEvent(BaseModel):
    """Incremental fragment of the assistant's answer text."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["message_delta"] = "message_delta"
    content: str


class ReasoningDeltaEvent(BaseModel):
    """Incremental fragment of the model's reasoning summary."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["reasoning_delta"] = "reasoning_delta"
    content: str


class ToolCallEvent(BaseModel):
    """Emitted by the backend when the model requests a tool."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["tool_call"] = "tool_call"
    name: str
    arguments: str = Field(default="", max_length=100)


class FinalMessageEvent(BaseModel):
    """Complete assistant message for the turn."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["final_message"] = "final_message"
    content: str


# Union type for all session events
SessionEvent = Annotated[
    MessageDeltaEvent | ReasoningDeltaEvent | ToolCallEvent | FinalMessageEvent,
    Field(discriminator="kind"),
]
