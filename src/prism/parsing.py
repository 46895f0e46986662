"""Tolerant JSON extraction from generative-backend text.

Model output is untrusted: it may be wrapped in markdown fences, preceded
by prose, or carry trailing commas. None of the helpers here raise.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?\s*```\s*$")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence."""
    text = (text or "").strip()
    if text.startswith("```"):
        text = _FENCE_OPEN_RE.sub("", text, count=1)
        text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def extract_json_object(text: str) -> str | None:
    """Return the span from the first ``{`` to the last ``}``, if any."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket."""
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def safe_parse_json(text: str | None) -> dict[str, Any] | None:
    """Parse the first JSON object embedded in ``text``.

    Returns:
        The parsed object, or None when no object can be recovered.
    """
    if not text:
        return None
    candidate = extract_json_object(strip_code_fences(text))
    if candidate is None:
        return None
    for trial in (candidate, remove_trailing_commas(candidate)):
        try:
            parsed = json.loads(trial)
        except (ValueError, RecursionError):
            continue
        if isinstance(parsed, dict):
            return parsed
        return None
    logger.debug("Could not parse JSON object from model text: %.120s", text)
    return None
