from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from bootcamp.errors import NoAvailableModelsError
from bootcamp.services.session import Session, SessionConfig, SessionFactory

logger = logging.getLogger(__name__)

DEFAULT_MODEL_CANDIDATES: tuple[str, ...] = ("gpt-5.2", "gpt-5.1", "gpt-5-mini")

_MODEL_OVERRIDE_ENV = "BOOTCAMP_MODEL"


@dataclass(frozen=True)
class SessionSelection:
    session: Session
    model: str
    attempted: list[str]


def resolve_model_candidates(
    override: str | None = None,
    *,
    defaults: Sequence[str] = DEFAULT_MODEL_CANDIDATES,
) -> list[str]:
    """Return the ordered candidate list, with the caller override tried first."""
    preferred = (override or os.getenv(_MODEL_OVERRIDE_ENV, "")).strip()
    candidates: list[str] = []
    for model in (preferred, *defaults):
        if model and model not in candidates:
            candidates.append(model)
    return candidates


def is_model_unavailable_error(error: BaseException) -> bool:
    message = str(error).lower()
    return "model" in message or "not available" in message


async def create_session_with_fallback(
    factory: SessionFactory,
    *,
    system_prompt: str,
    candidates: Sequence[str],
    tools: Sequence[Any] | None = None,
    streaming: bool = True,
    on_attempt: Callable[[str], None] | None = None,
) -> SessionSelection:
    """Open a session with the first candidate model the backend accepts.

    Only "model unavailable" errors move on to the next candidate; anything else
    (auth, network, bad request) is raised immediately.
    """
    attempted: list[str] = []
    for model in candidates:
        attempted.append(model)
        if on_attempt is not None:
            on_attempt(model)
        try:
            session = await factory.create_session(
                SessionConfig(
                    model=model,
                    system_prompt=system_prompt,
                    tools=tools,
                    streaming=streaming,
                )
            )
        except Exception as exc:
            if not is_model_unavailable_error(exc):
                raise
            logger.warning("Model %s unavailable, trying next candidate: %s", model, exc)
            continue
        logger.info("Opened backend session with model %s", model)
        return SessionSelection(session=session, model=model, attempted=attempted)

    raise NoAvailableModelsError(attempted)
