from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_ERROR = "Empty response received from backend"
NO_JSON_ERROR = "Could not find valid JSON in response"

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
# Greedy object span containing a required field name.
_ANCHORED_OBJECT_RE = re.compile(r'\{[\s\S]*"repoName"[\s\S]*\}')


@dataclass(frozen=True)
class ExtractionResult:
    payload: object | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _try_parse(text: str, *, stage: str) -> tuple[bool, object | None]:
    try:
        return True, json.loads(text)
    except json.JSONDecodeError as exc:
        logger.debug("JSON parse failed at %s stage: %s", stage, exc)
        return False, None


def extract_json_payload(text: str) -> ExtractionResult:
    """Recover a JSON document from free-form model output.

    Tries, in order: a ```json fenced block, the object span around ``"repoName"``,
    then the whole text.
    """
    if not text or not text.strip():
        return ExtractionResult(error=EMPTY_RESPONSE_ERROR)

    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        parsed, payload = _try_parse(fenced.group(1), stage="fenced")
        if parsed:
            return ExtractionResult(payload=payload)

    anchored = _ANCHORED_OBJECT_RE.search(text)
    if anchored:
        parsed, payload = _try_parse(anchored.group(0), stage="anchored")
        if parsed:
            return ExtractionResult(payload=payload)

    parsed, payload = _try_parse(text, stage="raw")
    if parsed:
        return ExtractionResult(payload=payload)
    return ExtractionResult(error=NO_JSON_ERROR)
