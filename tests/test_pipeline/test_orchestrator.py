"""Tests for AskPipeline: end-to-end stage streaming.

Runs the real classifier → resolver → aggregator → hydrator → sanitizer →
explainer chain against the in-memory document store and a scripted
backend, and checks the emitted event sequence and what reached the
backend.
"""

import pytest

from conftest import MemoryDocumentStore, ScriptedBackend, sample_data
from prism.models import ClassifiedIntent, Intent, ModelVariant
from prism.pipeline.orchestrator import (
    INTERNAL_ERROR,
    NO_QUESTION,
    AskPipeline,
    not_found_answer,
)

PROGRESS = ["understanding", "fetching", "explaining"]


async def collect(pipeline, question, **kwargs):
    return [event.to_dict() async for event in pipeline.run(question, **kwargs)]


def stages(events):
    return [e["stage"] for e in events]


class TestSubjectQuestions:

    @pytest.mark.asyncio
    async def test_full_stage_sequence(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "subject-performance", "subjectName": "Jane Doe"}',
            answer="Jane averages 82 overall, strongest in communication.",
        )

        events = await collect(AskPipeline(backend, store), "How is Jane Doe performing?")

        assert stages(events) == PROGRESS + ["done"]
        assert events[0]["message"] == "Understanding question…"
        assert events[-1] == {
            "stage": "done",
            "answer": "Jane averages 82 overall, strongest in communication.",
        }

    @pytest.mark.asyncio
    async def test_payload_is_hydrated_and_sanitized(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "history", "subjectName": "Jane Doe"}',
        )

        await collect(AskPipeline(backend, store), "Show Jane Doe's interview history")

        (prompt,) = backend.prompts_of("answer")
        assert "Explain database indexing." in prompt
        assert "Backend Engineer" in prompt
        assert "$2b$10$hash" not in prompt
        assert "$oid" not in prompt

    @pytest.mark.asyncio
    async def test_resume_blobs_never_reach_backend(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "subject-profile", "subjectName": "Priya Shah"}',
        )

        events = await collect(AskPipeline(backend, store), "Tell me about Priya Shah")

        assert stages(events) == PROGRESS + ["done"]
        (prompt,) = backend.prompts_of("answer")
        assert "P. Shah" in prompt
        assert "very long text" not in prompt
        assert "files.example.com" not in prompt

    @pytest.mark.asyncio
    async def test_unknown_subject_gets_deterministic_answer(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "recommendation", "subjectName": "Zed Nobody", '
                     '"freeformCriteria": "backend role"}',
        )

        events = await collect(AskPipeline(backend, store), "Is Zed Nobody ready for a backend role?")

        assert stages(events) == PROGRESS + ["done"]
        assert events[-1]["answer"] == not_found_answer(
            ClassifiedIntent(intent=Intent.RECOMMENDATION, subject_name="Zed Nobody")
        )
        assert '"Zed Nobody" could not be found' in events[-1]["answer"]
        assert backend.prompts_of("answer") == []

    @pytest.mark.asyncio
    async def test_partial_fetch_failure_still_answers(self, store):
        store.failing.add("jrsattempts")
        backend = ScriptedBackend(
            classify='{"intent": "subject-performance", "subjectName": "Jane Doe"}',
        )

        events = await collect(AskPipeline(backend, store), "How is Jane Doe doing?")

        assert stages(events) == PROGRESS + ["done"]
        (prompt,) = backend.prompts_of("answer")
        assert '"unavailable"' in prompt
        assert "attempts: API request failed: 503" in prompt


class TestRankingQuestions:

    @pytest.mark.asyncio
    async def test_leaderboard_for_out_of_domain_question(self, store):
        backend = ScriptedBackend(classify='{"intent": "leaderboard"}')

        events = await collect(AskPipeline(backend, store), "What were my top selling items last month?")

        assert stages(events) == PROGRESS + ["done"]
        assert events[-1]["answer"]
        (prompt,) = backend.prompts_of("answer")
        assert '"leaderboard"' in prompt
        assert "Jane Doe" in prompt

    @pytest.mark.asyncio
    async def test_recommendation_pool_with_criteria(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "recommendation", "freeformCriteria": "backend, SQL", "topK": 2}',
        )
        pipeline = AskPipeline(backend, store)

        payload, found = await pipeline.gather(await pipeline.classifier.classify("Best 2 for backend?"))

        assert found
        assert payload["criteria"] == "backend, SQL"
        assert [c["name"] for c in payload["candidates"]] == ["Jane Doe", "P. Shah"]

    @pytest.mark.asyncio
    async def test_default_top_k_applies(self, store):
        pipeline = AskPipeline(ScriptedBackend(), store, default_top_k=1)

        payload, _ = await pipeline.gather(ClassifiedIntent(intent=Intent.LEADERBOARD))

        assert len(payload["leaderboard"]) == 1

    @pytest.mark.asyncio
    async def test_generic_question_without_subject(self, store):
        pipeline = AskPipeline(ScriptedBackend(), store)

        payload, found = await pipeline.gather(ClassifiedIntent())

        assert found
        assert payload == {"note": "No specific candidate was named.", "collections": []}
        assert store.calls == []


class TestVisualMode:

    @pytest.mark.asyncio
    async def test_chart_spec_included(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "leaderboard"}',
            viz='{"type": "bar", "x": "name", "y": "score", "data": [{"name": "Jane Doe", "score": 82}]}',
        )

        events = await collect(AskPipeline(backend, store), "Top candidates?", visual_mode=True)

        assert events[-1]["vizSpec"]["type"] == "bar"
        assert len(backend.prompts_of("viz")) == 1

    @pytest.mark.asyncio
    async def test_unusable_chart_is_null(self, store):
        backend = ScriptedBackend(classify='{"intent": "leaderboard"}', viz="no chart today")

        events = await collect(AskPipeline(backend, store), "Top candidates?", visual_mode=True)

        assert events[-1]["stage"] == "done"
        assert events[-1]["vizSpec"] is None

    @pytest.mark.asyncio
    async def test_no_viz_call_outside_visual_mode(self, store):
        backend = ScriptedBackend(classify='{"intent": "leaderboard"}')

        events = await collect(AskPipeline(backend, store), "Top candidates?")

        assert "vizSpec" not in events[-1]
        assert backend.prompts_of("viz") == []


class TestFailures:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", [None, "", "   "])
    async def test_empty_question(self, store, backend, question):
        events = await collect(AskPipeline(backend, store), question)

        assert events == [{"stage": "error", "error": NO_QUESTION}]
        assert backend.prompts == []
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_store_outage_becomes_error_event(self, store):
        store.failing.add("users")
        backend = ScriptedBackend(
            classify='{"intent": "subject-profile", "subjectName": "Jane Doe"}',
        )

        events = await collect(AskPipeline(backend, store), "Who is Jane Doe?")

        assert stages(events) == ["understanding", "fetching", "error"]
        assert events[-1]["error"] == INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_classifier_failure_degrades_to_generic(self, store):
        backend = ScriptedBackend(classify=RuntimeError("quota"), answer="General overview.")

        events = await collect(AskPipeline(backend, store), "Anything interesting?")

        assert stages(events) == PROGRESS + ["done"]
        assert events[-1]["answer"] == "General overview."

    @pytest.mark.asyncio
    async def test_explanation_failure_uses_fallback(self, store):
        backend = ScriptedBackend(classify='{"intent": "leaderboard"}', answer=RuntimeError("503"))

        events = await collect(AskPipeline(backend, store), "Top candidates?")

        assert events[-1] == {"stage": "done", "answer": "Sorry, I could not generate an answer."}

    @pytest.mark.asyncio
    async def test_disconnect_stops_before_fetching(self, store):
        backend = ScriptedBackend(
            classify='{"intent": "subject-profile", "subjectName": "Jane Doe"}',
        )

        async def gone():
            return True

        events = await collect(AskPipeline(backend, store), "Who is Jane Doe?", is_disconnected=gone)

        assert stages(events) == ["understanding"]
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_disconnect_after_answer_ends_without_done(self, store):
        backend = ScriptedBackend(classify='{"intent": "leaderboard"}')
        checks = []

        async def gone_on_third_check():
            checks.append(True)
            return len(checks) >= 3

        events = await collect(
            AskPipeline(backend, store), "Top candidates?",
            visual_mode=True, is_disconnected=gone_on_third_check,
        )

        assert stages(events) == PROGRESS
        assert len(backend.prompts_of("answer")) == 1
        assert backend.prompts_of("viz") == []


@pytest.mark.asyncio
async def test_model_variant_reaches_every_call(store):
    backend = ScriptedBackend(classify='{"intent": "leaderboard"}')

    await collect(AskPipeline(backend, store), "Top candidates?", visual_mode=True, model="pro")

    assert [variant for _, _, variant in backend.prompts] == [ModelVariant.PRO] * 3


def test_bound_payload_applies_cap():
    pipeline = AskPipeline(ScriptedBackend(), MemoryDocumentStore(sample_data()), array_cap=2)

    bounded = pipeline.bound_payload({"rows": [{"password": "x", "n": i} for i in range(10)]})

    assert bounded == {"rows": [{"n": 0}, {"n": 1}]}
