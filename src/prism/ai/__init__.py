"""Generative-backend requesters for PRISM answers and charts."""

from prism.ai.explainer import (
    FALLBACK_ANSWER,
    ExplanationRequester,
    VisualizationRequester,
    validate_chart_spec,
)

__all__ = [
    "FALLBACK_ANSWER",
    "ExplanationRequester",
    "VisualizationRequester",
    "validate_chart_spec",
]
