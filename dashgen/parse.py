from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class StructuredOutputError(ValueError):
    """Raised when model output contains no usable JSON object."""


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Return the first JSON object found in ``text``.

    Models often wrap the object in markdown fences or a sentence of prose,
    so fenced blocks are tried first and then every ``{`` in the text.
    """

    if not text or not text.strip():
        raise StructuredOutputError("empty response")

    candidates = [match.group(1) for match in _FENCE_PATTERN.finditer(text)]
    candidates.append(text)
    decoder = json.JSONDecoder()
    for candidate in candidates:
        stripped = candidate.strip()
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        for match in re.finditer(r"\{", stripped):
            try:
                parsed, _ = decoder.raw_decode(stripped, match.start())
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    logger.debug("No JSON object in model output: %s", text[:200])
    raise StructuredOutputError("no JSON object found in response")
