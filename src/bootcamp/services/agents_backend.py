from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from agents import (
    Agent,
    ItemHelpers,
    OpenAIChatCompletionsModel,
    OpenAIResponsesModel,
    Runner,
)
from agents.model_settings import ModelSettings
from openai import AsyncOpenAI
from openai.types.shared import Reasoning

from bootcamp.schemas.events import (
    FinalMessageEvent,
    MessageDeltaEvent,
    ReasoningDeltaEvent,
    SessionEvent,
    ToolCallEvent,
)
from bootcamp.services.session import BaseSession, SessionConfig

logger = logging.getLogger(__name__)

OpenAIApi = Literal["chat_completions", "responses"]
ReasoningEffort = Literal["none", "low", "medium", "high", "xhigh"]

_DEFAULT_MAX_TURNS = 40
_TOOL_ARGS_PREVIEW_LIMIT = 100

_TEXT_DELTA_TYPES = frozenset({"response.output_text.delta"})
_REASONING_DELTA_TYPES = frozenset(
    {"response.reasoning_summary_text.delta", "response.reasoning_text.delta"}
)


def translate_stream_event(event: Any) -> SessionEvent | None:
    """Map an openai-agents stream event onto the session event union.

    Returns ``None`` for SDK events the orchestration does not consume.
    """
    if event.type == "raw_response_event":
        data_type = getattr(event.data, "type", "")
        if data_type in _TEXT_DELTA_TYPES:
            return MessageDeltaEvent(content=event.data.delta)
        if data_type in _REASONING_DELTA_TYPES:
            return ReasoningDeltaEvent(content=event.data.delta)
        return None

    if event.type == "run_item_stream_event":
        item = event.item
        if item.type == "tool_call_item":
            raw_item = item.raw_item
            arguments = str(getattr(raw_item, "arguments", "") or "")
            return ToolCallEvent(
                name=getattr(raw_item, "name", "unknown"),
                arguments=arguments[:_TOOL_ARGS_PREVIEW_LIMIT],
            )
        if item.type == "message_output_item":
            return FinalMessageEvent(content=ItemHelpers.text_message_output(item))
    return None


class AgentsSession(BaseSession):
    """One multi-turn conversation run through the OpenAI Agents SDK."""

    def __init__(
        self,
        *,
        agent: Agent,
        client: AsyncOpenAI,
        streaming: bool = True,
        max_turns: int = _DEFAULT_MAX_TURNS,
    ) -> None:
        super().__init__()
        self._agent = agent
        self._client = client
        self._streaming = streaming
        self._max_turns = max_turns
        self._history: list[Any] = []

    def _turn_input(self, prompt: str) -> str | list[Any]:
        if not self._history:
            return prompt
        return [*self._history, {"role": "user", "content": prompt}]

    async def _run_turn(self, prompt: str) -> None:
        turn_input = self._turn_input(prompt)
        if not self._streaming:
            result = await Runner.run(self._agent, input=turn_input, max_turns=self._max_turns)
            output = str(result.final_output) if result.final_output else ""
            await self.publish(FinalMessageEvent(content=output))
            self._history = result.to_input_list()
            return

        streamed = Runner.run_streamed(self._agent, input=turn_input, max_turns=self._max_turns)
        async for event in streamed.stream_events():
            translated = translate_stream_event(event)
            if translated is None:
                logger.debug("Skipping SDK stream event %s", getattr(event, "type", event))
                continue
            await self.publish(translated)
        self._history = streamed.to_input_list()

    async def _release(self) -> None:
        await self._client.close()


class AgentsSessionFactory:
    """Creates ``AgentsSession`` objects, one OpenAI client per session.

    With ``probe_models`` enabled the model is looked up before the agent is
    built, so an unknown model fails at creation time (and the fallback
    selector can move on) instead of mid-conversation.
    """

    def __init__(
        self,
        *,
        api: OpenAIApi = "responses",
        reasoning_effort: ReasoningEffort | None = "medium",
        probe_models: bool = True,
        max_turns: int = _DEFAULT_MAX_TURNS,
        client_factory: Callable[[], AsyncOpenAI] = AsyncOpenAI,
    ) -> None:
        self._api = api
        self._reasoning_effort = reasoning_effort
        self._probe_models = probe_models
        self._max_turns = max_turns
        self._client_factory = client_factory

    def _model_settings(self) -> ModelSettings:
        if self._reasoning_effort is None or self._reasoning_effort == "none":
            return ModelSettings()
        return ModelSettings(reasoning=Reasoning(effort=self._reasoning_effort, summary="concise"))

    async def create_session(self, config: SessionConfig) -> AgentsSession:
        client = self._client_factory()
        try:
            if self._probe_models:
                await client.models.retrieve(config.model)
        except Exception:
            await client.close()
            raise

        if self._api == "chat_completions":
            model: Any = OpenAIChatCompletionsModel(model=config.model, openai_client=client)
        else:
            model = OpenAIResponsesModel(model=config.model, openai_client=client)

        agent: Agent = Agent(
            name="bootcamp_analyst",
            instructions=config.system_prompt,
            tools=list(config.tools or []),
            model=model,
            model_settings=self._model_settings(),
        )
        return AgentsSession(
            agent=agent,
            client=client,
            streaming=config.streaming,
            max_turns=self._max_turns,
        )
