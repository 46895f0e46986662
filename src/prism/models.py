"""Request-scoped domain types for the PRISM pipeline.

All of these are created per question and discarded once the terminal
stream event has been emitted.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

MAX_TOP_K = 50


class Intent(Enum):
    """Fixed set of question intents, in classifier priority order."""

    RECOMMENDATION = "recommendation"
    SUBJECT_PERFORMANCE = "subject-performance"
    HISTORY = "history"
    PROGRESS = "progress"
    LEADERBOARD = "leaderboard"
    SUBJECT_PROFILE = "subject-profile"
    GENERIC = "generic"

    @classmethod
    def coerce(cls, value: Any) -> "Intent":
        """Map untrusted text onto the enum; anything unknown is GENERIC."""
        if isinstance(value, Intent):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.GENERIC


class ModelVariant(Enum):
    """Generative backend variants selectable per request."""

    FLASH = "flash"
    PRO = "pro"

    @classmethod
    def coerce(cls, value: Any) -> "ModelVariant":
        if isinstance(value, ModelVariant):
            return value
        if isinstance(value, str) and value.strip().lower() == "pro":
            return cls.PRO
        return cls.FLASH


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_top_k(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        top_k = int(value)
    except (TypeError, ValueError):
        return None
    if top_k < 1:
        return None
    return min(top_k, MAX_TOP_K)


@dataclass
class ClassifiedIntent:
    """Classifier output: the intent plus optional extracted slots."""

    intent: Intent = Intent.GENERIC
    subject_name: str | None = None
    subject_identifier: str | None = None
    freeform_criteria: str | None = None
    top_k: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ClassifiedIntent":
        """Normalize an untrusted dict (camelCase or snake_case keys)."""
        if not isinstance(data, dict):
            return cls()

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            intent=Intent.coerce(pick("intent")),
            subject_name=_clean_str(pick("subjectName", "subject_name", "candidateName")),
            subject_identifier=_clean_str(
                pick("subjectIdentifier", "subject_identifier", "candidateEmail")
            ),
            freeform_criteria=_clean_str(pick("freeformCriteria", "freeform_criteria")),
            top_k=_clean_top_k(pick("topK", "top_k")),
        )

    @property
    def names_subject(self) -> bool:
        """Whether the question referred to a specific subject."""
        return bool(self.subject_name or self.subject_identifier)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"intent": self.intent.value}
        if self.subject_name:
            data["subjectName"] = self.subject_name
        if self.subject_identifier:
            data["subjectIdentifier"] = self.subject_identifier
        if self.freeform_criteria:
            data["freeformCriteria"] = self.freeform_criteria
        if self.top_k is not None:
            data["topK"] = self.top_k
        return data


class Stage(Enum):
    """Streamed pipeline stages. DONE and ERROR are terminal."""

    UNDERSTANDING = "understanding"
    FETCHING = "fetching"
    EXPLAINING = "explaining"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.DONE, Stage.ERROR)


@dataclass
class StreamEvent:
    """One newline-delimited record of the streamed response."""

    stage: Stage
    message: str | None = None
    answer: str | None = None
    viz_spec: dict[str, Any] | None = None
    include_viz: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.stage is Stage.DONE:
            data: dict[str, Any] = {"stage": "done", "answer": self.answer or ""}
            if self.include_viz:
                data["vizSpec"] = self.viz_spec
            return data
        if self.stage is Stage.ERROR:
            return {"stage": "error", "error": self.error or "Internal server error."}
        return {"stage": self.stage.value, "message": self.message or ""}

    def to_line(self) -> str:
        """Serialize as a single NDJSON line."""
        return json.dumps(self.to_dict(), default=str) + "\n"


CHART_TYPES = frozenset({"bar", "line", "pie", "scatter", "table"})


@dataclass
class AggregatedProfile:
    """Related records gathered for one resolved subject.

    Attributes:
        subject: The resolved subject record
        collections: Named sub-collections (attempts, results, ...)
        warnings: Sub-fetch failures, one "<key>: <reason>" entry each
    """

    subject: dict[str, Any]
    collections: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"subject": self.subject, **self.collections}
        if self.warnings:
            data["unavailable"] = list(self.warnings)
        return data


class DocumentStore(Protocol):
    """Read contract of the document store."""

    async def query(self, collection: str, pipeline: list[dict[str, Any]]) -> dict[str, Any]: ...


class GenerativeBackend(Protocol):
    """Contract of the generative language backend."""

    async def ask(self, prompt: str, variant: ModelVariant | str | None = None) -> str: ...
