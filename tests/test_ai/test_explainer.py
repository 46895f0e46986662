"""Tests for answer and chart-spec generation."""

import json

import pytest

from conftest import ScriptedBackend
from prism.ai.explainer import (
    FALLBACK_ANSWER,
    ExplanationRequester,
    VisualizationRequester,
    validate_chart_spec,
)
from prism.models import ClassifiedIntent, Intent

INTENT = ClassifiedIntent(intent=Intent.SUBJECT_PERFORMANCE, subject_name="Jane Doe")
PAYLOAD = {"profiles": [{"subject": {"name": "Jane Doe"}, "results": [{"overallScore": 82}]}]}


class TestExplanationRequester:

    @pytest.mark.asyncio
    async def test_returns_stripped_answer(self):
        backend = ScriptedBackend(answer="  Jane scored 82 overall.\n")

        answer = await ExplanationRequester(backend).explain("How is Jane?", INTENT, PAYLOAD)

        assert answer == "Jane scored 82 overall."

    @pytest.mark.asyncio
    async def test_backend_failure_falls_back(self):
        backend = ScriptedBackend(answer=RuntimeError("503"))

        answer = await ExplanationRequester(backend).explain("How is Jane?", INTENT, PAYLOAD)

        assert answer == FALLBACK_ANSWER

    @pytest.mark.asyncio
    async def test_empty_reply_falls_back(self):
        backend = ScriptedBackend(answer="   ")

        answer = await ExplanationRequester(backend).explain("How is Jane?", INTENT, PAYLOAD)

        assert answer == FALLBACK_ANSWER

    def test_prompt_carries_question_intent_and_data(self):
        prompt = ExplanationRequester(ScriptedBackend()).build_prompt("How is Jane?", INTENT, PAYLOAD)

        assert 'User question: "How is Jane?"' in prompt
        assert json.dumps(INTENT.to_dict()) in prompt
        assert '"overallScore": 82' in prompt
        assert "ONLY the data supplied" in prompt
        assert ScriptedBackend.kind(prompt) == "answer"


class TestValidateChartSpec:

    def test_empty_means_no_chart(self):
        assert validate_chart_spec({}) == {}

    def test_well_formed(self):
        spec = validate_chart_spec({
            "type": "Bar",
            "x": "name",
            "y": "score",
            "title": "Scores",
            "data": [{"name": "Jane", "score": 82}],
            "extra": "dropped",
        })

        assert spec == {
            "type": "bar",
            "x": "name",
            "y": "score",
            "title": "Scores",
            "data": [{"name": "Jane", "score": 82}],
        }

    def test_unknown_type(self):
        assert validate_chart_spec({"type": "radar", "data": []}) is None

    def test_bad_data(self):
        assert validate_chart_spec({"type": "line", "data": "1,2,3"}) is None
        assert validate_chart_spec({"type": "line", "data": [1, 2]}) is None


class TestVisualizationRequester:

    @pytest.mark.asyncio
    async def test_parses_fenced_spec(self):
        backend = ScriptedBackend(
            viz='```json\n{"type": "pie", "data": [{"label": "a", "value": 1}]}\n```'
        )

        spec = await VisualizationRequester(backend).suggest("Split?", PAYLOAD)

        assert spec == {"type": "pie", "data": [{"label": "a", "value": 1}]}

    @pytest.mark.asyncio
    async def test_no_chart(self):
        spec = await VisualizationRequester(ScriptedBackend(viz="{}")).suggest("Hi?", PAYLOAD)

        assert spec == {}

    @pytest.mark.asyncio
    async def test_unparseable_is_none(self):
        spec = await VisualizationRequester(ScriptedBackend(viz="a bar chart")).suggest("Hi?", PAYLOAD)

        assert spec is None

    @pytest.mark.asyncio
    async def test_backend_failure_is_none(self):
        backend = ScriptedBackend(viz=TimeoutError("slow"))

        assert await VisualizationRequester(backend).suggest("Hi?", PAYLOAD) is None

    def test_prompt_is_routed_as_viz(self):
        prompt = VisualizationRequester(ScriptedBackend()).build_prompt("q", PAYLOAD)

        assert ScriptedBackend.kind(prompt) == "viz"
