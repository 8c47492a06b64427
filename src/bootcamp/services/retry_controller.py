from __future__ import annotations

import enum

from bootcamp.schemas.repo_facts import ValidationResult, summarize_missing_fields
from bootcamp.services.prompts import with_custom_prompt

MAX_RETRIES = 2

REQUIRED_FIELD_CONTRACT = """- repoName (string)
- purpose (string)
- description (string)
- stack: { languages: [], frameworks: [], buildSystem: "", packageManager: null,
    hasDocker: false, hasCi: false }
- quickstart: { prerequisites: [], steps: [], commands: [] }
- structure: { keyDirs: [], entrypoints: [], testDirs: [], docsDirs: [] }
- ci: { workflows: [], mainChecks: [] }
- contrib: { howToAddFeature: [], howToAddTest: [] }
- architecture: { overview: "", components: [] }
- firstTasks: [{ title, description, difficulty, category, files, why }]"""


class RetryState(enum.StrEnum):
    INITIAL = "initial"
    RETRY_1 = "retry_1"
    RETRY_2 = "retry_2"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_RETRY_STATES = (RetryState.RETRY_1, RetryState.RETRY_2)
_TERMINAL_STATES = frozenset({RetryState.SUCCEEDED, RetryState.FAILED})


class RetryController:
    """Escalating retry loop for schema validation failures.

    ``INITIAL -> {SUCCEEDED | RETRY_1} -> {SUCCEEDED | RETRY_2} -> {SUCCEEDED | FAILED}``
    """

    def __init__(self, *, max_retries: int = MAX_RETRIES) -> None:
        if not 0 <= max_retries <= len(_RETRY_STATES):
            raise ValueError(f"max_retries must be between 0 and {len(_RETRY_STATES)}")
        self._max_retries = max_retries
        self._state = RetryState.INITIAL
        self._retries = 0

    @property
    def state(self) -> RetryState:
        return self._state

    @property
    def retries(self) -> int:
        return self._retries

    @property
    def is_terminal(self) -> bool:
        return self._state in _TERMINAL_STATES

    def record(self, result: ValidationResult) -> RetryState:
        """Apply the outcome of the latest attempt and return the new state."""
        if self.is_terminal:
            raise RuntimeError(f"Retry controller already finished in state {self._state}")
        if result.success:
            self._state = RetryState.SUCCEEDED
        elif self._retries >= self._max_retries:
            self._state = RetryState.FAILED
        else:
            self._state = _RETRY_STATES[self._retries]
            self._retries += 1
        return self._state

    def retry_prompt(self, errors: list[str], *, custom_prompt: str | None = None) -> str:
        if self._state is RetryState.RETRY_1:
            summary = summarize_missing_fields(errors) if errors else "Invalid JSON structure"
            prompt = f"""Your previous response had validation issues: {summary}

Please return ONLY a valid JSON object with the complete repo analysis structure.
Make sure all required fields are present: repoName, purpose, description, stack, quickstart, \
structure, ci, contrib, architecture, firstTasks.
No markdown, no explanations, just the JSON object starting with {{ and ending with }}."""
        elif self._state is RetryState.RETRY_2:
            prompt = (
                "Return ONLY valid JSON. Start with { and end with }. "
                f"Include these required fields:\n{REQUIRED_FIELD_CONTRACT}"
            )
        else:
            raise RuntimeError(f"No retry prompt for state {self._state}")
        return with_custom_prompt(prompt, custom_prompt)
