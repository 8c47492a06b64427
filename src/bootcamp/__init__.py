"""Bootcamp Python SDK."""

from .client import (
    AnalysisResult,
    AnalysisValidationError,
    Bootcamp,
    BootcampConfigurationError,
    BootcampError,
    FastAnalysisError,
    NoAvailableModelsError,
    SessionError,
    SessionTimeoutError,
)
from .services.analysis_stats import AnalysisStats

__all__ = [
    "AnalysisResult",
    "AnalysisStats",
    "AnalysisValidationError",
    "Bootcamp",
    "BootcampConfigurationError",
    "BootcampError",
    "FastAnalysisError",
    "NoAvailableModelsError",
    "SessionError",
    "SessionTimeoutError",
]
