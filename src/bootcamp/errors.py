from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bootcamp.services.analysis_stats import AnalysisStats


class BootcampError(RuntimeError):
    """Base error for the Bootcamp SDK.

    ``stats`` is attached by the orchestrator when an analysis call fails.
    """

    stats: AnalysisStats | None = None


class BootcampConfigurationError(BootcampError):
    """Raised when the SDK is misconfigured (e.g., missing API key)."""


class NoAvailableModelsError(BootcampError):
    """Raised when every candidate model refused to open a session."""

    def __init__(self, attempted: list[str]) -> None:
        self.attempted = list(attempted)
        super().__init__(f"No available models. Tried: {', '.join(self.attempted)}")


class SessionError(BootcampError):
    """Raised when the backend session seam is misused."""


class SessionTimeoutError(SessionError):
    """Raised when a send does not finish within its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Backend did not finish the turn within {timeout:g}s")


class AnalysisValidationError(BootcampError):
    """Raised when the response still fails validation after every retry."""

    def __init__(self, errors: list[str], response_preview: str) -> None:
        self.errors = list(errors)
        self.response_preview = response_preview
        detail = "; ".join(self.errors[:5]) if self.errors else "unknown validation error"
        super().__init__(f"Failed to parse repo facts from backend response: {detail}")


class FastAnalysisError(BootcampError):
    """Raised for any fast-mode failure after the session has been opened."""
