"""Orchestrator: question in, staged stream events out.

    understanding  classify the question
    fetching       resolve subjects → aggregate → hydrate → sanitize/bound
    explaining     answer (+ chart spec in visual mode)
    done | error

Each stage event is yielded on entry, before the slow call it announces,
so callers see progress as it happens. Any uncaught failure becomes one
``error`` event and ends the stream. Callers that disconnect stop the run
between stages without further store or backend calls.

Usage:
    async with open_pipeline() as pipeline:
        async for event in pipeline.run("How is Jane Doe doing?"):
            print(event.to_line(), end="")
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from prism.ai.explainer import ExplanationRequester, VisualizationRequester
from prism.clients.document_store import DocumentStoreClient
from prism.clients.gemini import GeminiClient
from prism.config import settings
from prism.engine.aggregator import DataAggregator
from prism.engine.classifier import IntentClassifier
from prism.engine.hydrator import CrossReferenceHydrator
from prism.engine.resolver import EntityResolver
from prism.engine.sanitizer import fit_to_budget, sanitize
from prism.models import (
    ClassifiedIntent,
    DocumentStore,
    GenerativeBackend,
    Intent,
    ModelVariant,
    Stage,
    StreamEvent,
)
from prism.pipeline.emitter import ProgressEmitter
from prism.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

NO_QUESTION = "No question provided."
INTERNAL_ERROR = "Internal server error."


def not_found_answer(intent: ClassifiedIntent) -> str:
    """Deterministic answer for a named subject with no matching record."""
    label = intent.subject_name or intent.subject_identifier
    return (
        f'A candidate matching "{label}" could not be found in the records, '
        "so I can't answer this without guessing. Please check the spelling "
        "or try their email address."
    )


class AskPipeline:
    """Conversational analytics pipeline over the candidate data.

    Args:
        backend: Generative backend exposing ``ask(prompt, variant)``
        store: Document store exposing ``query(collection, pipeline)``
        schema_cache: Optional schema snapshot used in prompts
        max_hits: Maximum subjects resolved per question
        array_cap: Maximum items per list in the payload
        max_payload_chars: JSON size budget for the payload
        default_top_k: Ranking size when the question gives none
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        store: DocumentStore,
        schema_cache: SchemaCache | None = None,
        max_hits: int = 10,
        array_cap: int = 40,
        max_payload_chars: int = 60_000,
        default_top_k: int = 5,
    ) -> None:
        self.schema_cache = schema_cache
        self.classifier = IntentClassifier(backend, schema_cache=schema_cache)
        self.resolver = EntityResolver(store, max_hits=max_hits)
        self.aggregator = DataAggregator(store)
        self.hydrator = CrossReferenceHydrator(store)
        self.explainer = ExplanationRequester(backend, schema_cache=schema_cache)
        self.visualizer = VisualizationRequester(backend)
        self.array_cap = array_cap
        self.max_payload_chars = max_payload_chars
        self.default_top_k = default_top_k

    async def gather(self, intent: ClassifiedIntent) -> tuple[dict[str, Any], bool]:
        """Collect the data payload for a classified question.

        Returns:
            (raw payload, subject_found). ``subject_found`` is False only
            when the question named a subject that could not be resolved.
        """
        subjects = await self.resolver.resolve(intent)
        if intent.names_subject and not subjects:
            return {}, False

        top_k = intent.top_k or self.default_top_k
        if subjects:
            profiles = await self.aggregator.build_profiles(subjects)
            profiles = await self.hydrator.hydrate(profiles)
            return {"profiles": [p.to_dict() for p in profiles]}, True

        if intent.intent is Intent.LEADERBOARD:
            return {"leaderboard": await self.aggregator.build_leaderboard(top_k)}, True

        if intent.intent is Intent.RECOMMENDATION:
            payload: dict[str, Any] = {
                "candidates": await self.aggregator.build_candidate_pool(top_k),
                "ranking": "0.4 x overall + 0.3 x technical + 0.3 x communication (normalized)",
            }
            if intent.freeform_criteria:
                payload["criteria"] = intent.freeform_criteria
            return payload, True

        overview = self.schema_cache.collection_overview() if self.schema_cache else []
        return {"note": "No specific candidate was named.", "collections": overview}, True

    def bound_payload(self, payload: dict[str, Any]) -> Any:
        """Sanitize, then bound to the array cap and payload budget."""
        return fit_to_budget(sanitize(payload), self.max_payload_chars, self.array_cap)

    async def run(
        self,
        question: str | None,
        visual_mode: bool = False,
        model: ModelVariant | str | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run the pipeline, yielding one event per stage transition."""
        emitter = ProgressEmitter()
        question = (question or "").strip()
        if not question:
            yield emitter.error(NO_QUESTION)
            return

        variant = ModelVariant.coerce(model)

        async def stopped() -> bool:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Client disconnected after %s; stopping", emitter.state.value)
                return True
            return False

        try:
            yield emitter.advance(Stage.UNDERSTANDING, "Understanding question…")
            intent = await self.classifier.classify(question, variant)
            if await stopped():
                return

            yield emitter.advance(Stage.FETCHING, "Gathering records…")
            payload, subject_found = await self.gather(intent)
            if await stopped():
                return

            yield emitter.advance(Stage.EXPLAINING, "Writing answer…")
            if not subject_found:
                yield emitter.done(not_found_answer(intent), None, include_viz=visual_mode)
                return

            bounded = self.bound_payload(payload)
            answer = await self.explainer.explain(question, intent, bounded, variant)
            if await stopped():
                return

            viz_spec = None
            if visual_mode:
                viz_spec = await self.visualizer.suggest(question, bounded, variant)

            yield emitter.done(answer, viz_spec, include_viz=visual_mode)

        except Exception:
            logger.exception("Pipeline failed during %s", emitter.state.value if emitter.state else "start")
            if not emitter.finished:
                yield emitter.error(INTERNAL_ERROR)


def build_schema_cache() -> SchemaCache | None:
    if not settings.schema_path:
        return None
    cache = SchemaCache(settings.schema_path, ttl_seconds=settings.schema_ttl_seconds)
    cache.load()
    return cache


@asynccontextmanager
async def open_pipeline() -> AsyncIterator[AskPipeline]:
    """Build a pipeline from settings with live backend and store clients."""
    backend = GeminiClient(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        models={
            ModelVariant.FLASH: settings.gemini_flash_model,
            ModelVariant.PRO: settings.gemini_pro_model,
        },
        rate_limit=settings.llm_rate_limit,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
    store = DocumentStoreClient(
        base_url=settings.store_base_url,
        api_key=settings.store_api_key,
        rate_limit=settings.store_rate_limit,
        timeout=settings.store_timeout,
        max_retries=settings.store_max_retries,
    )
    async with backend, store:
        yield AskPipeline(
            backend=backend,
            store=store,
            schema_cache=build_schema_cache(),
            max_hits=settings.max_hits,
            array_cap=settings.array_cap,
            max_payload_chars=settings.max_payload_chars,
            default_top_k=settings.default_top_k,
        )
