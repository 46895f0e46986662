"""Answer and chart generation over the bounded payload.

Two requesters share the generative backend:

- ExplanationRequester: natural-language answer grounded only in the
  supplied data. Falls back to a fixed sentence if the backend fails or
  returns nothing, so the stream can still finish with ``done``.
- VisualizationRequester (visual mode only): a ChartSpec JSON object, or
  ``{}`` when no chart is meaningful. Anything unparseable yields None.

Usage:
    explainer = ExplanationRequester(backend)
    answer = await explainer.explain(question, intent, payload)
"""

import json
import logging
from typing import Any

from prism.models import CHART_TYPES, ClassifiedIntent, GenerativeBackend, ModelVariant
from prism.parsing import safe_parse_json
from prism.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = "Sorry, I could not generate an answer."

EXPLAIN_RULES = (
    "You are the analytics assistant of an interview-preparation platform. "
    "You answer questions about candidates using ONLY the data supplied below.\n\n"
    "RULES:\n"
    "1. Answer only from the supplied data. Never invent names, scores, dates or facts.\n"
    "2. If something the question needs is missing, say which kind of data is missing "
    "(for example: no interview results, no course progress) instead of guessing.\n"
    "3. Entries listed under \"unavailable\" could not be loaded; mention them if relevant.\n"
    "4. Keep it to 2-4 sentences unless the question explicitly asks for detail.\n"
    "5. Be friendly and conversational. Do not mention databases, queries, JSON or code."
)

VIZ_RULES = (
    "You are a data visualization assistant. Given the user's question and the data "
    "below, produce a JSON spec for the single chart that best visualizes the answer.\n\n"
    "Respond ONLY with a valid JSON object: no explanation, no markdown, no code block. "
    "If no chart is meaningful, return {}.\n\n"
    f"Allowed types: {', '.join(sorted(CHART_TYPES))}.\n"
    "Format example:\n"
    '{"type": "bar", "x": "name", "y": "score", "title": "Average score by candidate", '
    '"description": "Mean interview score per candidate.", '
    '"data": [{"name": "A", "score": 71}, {"name": "B", "score": 64}]}'
)


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=1, default=str, ensure_ascii=False)


class ExplanationRequester:
    """Ask the backend for a grounded natural-language answer.

    Args:
        backend: Generative backend exposing ``ask(prompt, variant)``
        schema_cache: Optional data dictionary included in the prompt
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        schema_cache: SchemaCache | None = None,
    ) -> None:
        self.backend = backend
        self.schema_cache = schema_cache

    def build_prompt(self, question: str, intent: ClassifiedIntent, payload: Any) -> str:
        sections = [EXPLAIN_RULES]
        if self.schema_cache is not None:
            dictionary = self.schema_cache.format_for_prompt()
            if dictionary:
                sections.append(f"Data dictionary:\n{dictionary}")
        sections.append(f'User question: "{question}"')
        sections.append(f"Understood intent: {json.dumps(intent.to_dict())}")
        sections.append(f"Data:\n{_dump(payload)}")
        sections.append("Answer:")
        return "\n\n".join(sections)

    async def explain(
        self,
        question: str,
        intent: ClassifiedIntent,
        payload: Any,
        model: ModelVariant | str | None = None,
    ) -> str:
        """Generate the answer text; never raises for backend failures."""
        try:
            answer = await self.backend.ask(self.build_prompt(question, intent, payload), model)
        except Exception as e:
            logger.warning("Explanation call failed: %s", e)
            return FALLBACK_ANSWER
        answer = (answer or "").strip()
        if not answer:
            logger.warning("Explanation call returned empty text")
            return FALLBACK_ANSWER
        return answer


def validate_chart_spec(spec: dict[str, Any]) -> dict[str, Any] | None:
    """Return ``spec`` if it is ``{}`` or a well-formed ChartSpec, else None."""
    if not spec:
        return {}
    chart_type = spec.get("type")
    if not isinstance(chart_type, str) or chart_type.lower() not in CHART_TYPES:
        return None
    data = spec.get("data", [])
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        return None
    cleaned: dict[str, Any] = {"type": chart_type.lower(), "data": data}
    for key in ("x", "y", "title", "description"):
        value = spec.get(key)
        if isinstance(value, str) and value:
            cleaned[key] = value
    return cleaned


class VisualizationRequester:
    """Ask the backend for an optional chart specification.

    Args:
        backend: Generative backend exposing ``ask(prompt, variant)``
    """

    def __init__(self, backend: GenerativeBackend) -> None:
        self.backend = backend

    def build_prompt(self, question: str, payload: Any) -> str:
        return (
            f"{VIZ_RULES}\n\n"
            f'User question: "{question}"\n'
            f"Data:\n{_dump(payload)}\n\n"
            "Visualization:"
        )

    async def suggest(
        self,
        question: str,
        payload: Any,
        model: ModelVariant | str | None = None,
    ) -> dict[str, Any] | None:
        """Chart spec, ``{}`` for "no chart", or None when unusable."""
        try:
            raw = await self.backend.ask(self.build_prompt(question, payload), model)
        except Exception as e:
            logger.warning("Visualization call failed: %s", e)
            return None
        parsed = safe_parse_json(raw)
        if parsed is None:
            logger.info("Visualization reply was not a JSON object")
            return None
        spec = validate_chart_spec(parsed)
        if spec is None:
            logger.info("Discarding malformed chart spec: %.200s", raw)
        return spec
