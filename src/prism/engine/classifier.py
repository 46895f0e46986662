"""Intent classification for incoming questions.

One backend call turns a free-text question into a ClassifiedIntent.
The prompt enumerates the fixed intent set together with priority-ordered
disambiguation rules; first matching rule wins:

    1. recommendation       "best" / "most suitable" + a role description
    2. subject-performance  named candidate + score / performance wording
    3. history              named candidate + logs / interview / practice wording
    4. progress             course / progress / completion wording
    5. leaderboard          "top" / "highest" / ranking wording
    6. subject-profile      named candidate alone
    7. generic              anything else

The model reply is untrusted text and goes through the safe parser; any
failure degrades to the generic intent instead of raising.
"""

import logging

from prism.models import ClassifiedIntent, GenerativeBackend, Intent, ModelVariant
from prism.parsing import safe_parse_json
from prism.schema_cache import SchemaCache

logger = logging.getLogger(__name__)

_INTENT_LIST = ", ".join(f'"{intent.value}"' for intent in Intent)

CLASSIFIER_PROMPT = (
    "You classify questions asked about candidates on an interview-preparation "
    "platform (users, mock interview attempts, interview results, practice "
    "history, course progress, resumes).\n\n"
    f"Allowed intents: {_INTENT_LIST}.\n\n"
    "RULES (apply in order, first match wins):\n"
    '1. Asks for the "best", "most suitable" or "right" candidates for a role or '
    'skill description -> "recommendation".\n'
    "2. Names a candidate and asks about scores, performance, strengths or "
    'weaknesses -> "subject-performance".\n'
    "3. Names a candidate and asks about logs, interviews taken, attempts or "
    'practice sessions -> "history".\n'
    '4. Asks about courses, progress or completion -> "progress".\n'
    '5. Asks for "top", "highest", "most" or a ranking -> "leaderboard".\n'
    '6. Names a candidate without any of the above -> "subject-profile".\n'
    '7. Otherwise -> "generic".\n\n'
    "Extract when present: subjectName (person's name as written), "
    "subjectIdentifier (email or phone number), freeformCriteria (role, skills "
    "or other requirements), topK (integer count requested).\n\n"
    "Respond ONLY with a JSON object, no markdown, for example:\n"
    '{"intent": "subject-performance", "subjectName": "Jane Doe"}\n'
)


class IntentClassifier:
    """Classify questions into the fixed intent set.

    Args:
        backend: Generative backend exposing ``ask(prompt, variant)``
        schema_cache: Optional schema snapshot appended to the prompt
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        schema_cache: SchemaCache | None = None,
    ) -> None:
        self.backend = backend
        self.schema_cache = schema_cache

    def build_prompt(self, question: str) -> str:
        prompt = CLASSIFIER_PROMPT
        if self.schema_cache is not None:
            dictionary = self.schema_cache.format_for_prompt()
            if dictionary:
                prompt += f"\nAvailable collections:\n{dictionary}\n"
        return f'{prompt}\nQuestion: "{question}"\n\nJSON:'

    async def classify(
        self,
        question: str,
        model: ModelVariant | str | None = None,
    ) -> ClassifiedIntent:
        """Classify a question.

        Returns:
            ClassifiedIntent; ``Intent.GENERIC`` with no slots whenever the
            backend fails or its reply cannot be parsed.
        """
        try:
            raw = await self.backend.ask(self.build_prompt(question), model)
        except Exception as e:
            logger.warning("Intent classification call failed: %s", e)
            return ClassifiedIntent()

        parsed = safe_parse_json(raw)
        if parsed is None:
            logger.info("Unparseable classifier reply, falling back to generic")
            return ClassifiedIntent()

        intent = ClassifiedIntent.from_dict(parsed)
        logger.info("Classified question as %s %s", intent.intent.value, intent.to_dict())
        return intent
