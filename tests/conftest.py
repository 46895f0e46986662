"""Shared fixtures: in-memory document store, scripted backend, sample data."""

import copy
import os
import re
from typing import Any

import pytest

# prism.config builds Settings at import time
os.environ.setdefault("GEMINI_API_KEY", "test_gemini_key_1234567890")

from prism.clients.base import APIProviderError  # noqa: E402


# --- In-memory document store ---


def _get_path(doc: dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _match_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        if "$oid" in condition:
            return value == condition
        for op, arg in condition.items():
            if op == "$in":
                candidates = value if isinstance(value, list) else [value]
                if not any(c in arg for c in candidates):
                    return False
            elif op == "$ne":
                if value == arg:
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(arg, value, flags):
                    return False
            elif op == "$options":
                continue
            else:
                raise NotImplementedError(f"operator {op}")
        return True
    if isinstance(value, list) and not isinstance(condition, list):
        return condition in value
    return value == condition


def matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif not _match_value(_get_path(doc, key), condition):
            return False
    return True


def _sort_key(value: Any) -> tuple:
    if isinstance(value, dict) and len(value) == 1:
        value = next(iter(value.values()))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value))


def _sort(docs: list[dict[str, Any]], spec: dict[str, int]) -> list[dict[str, Any]]:
    for key, direction in reversed(list(spec.items())):
        present = [d for d in docs if _get_path(d, key) is not None]
        missing = [d for d in docs if _get_path(d, key) is None]
        present.sort(key=lambda d: _sort_key(_get_path(d, key)), reverse=direction == -1)
        docs = present + missing
    return docs


def _project(doc: dict[str, Any], spec: dict[str, int]) -> dict[str, Any]:
    include = {k for k, v in spec.items() if v and k != "_id"}
    if include:
        out = {k: doc[k] for k in include if k in doc}
        if spec.get("_id", 1) and "_id" in doc:
            out["_id"] = doc["_id"]
        return out
    return {k: v for k, v in doc.items() if spec.get(k, 1)}


class MemoryDocumentStore:
    """Evaluates the aggregation subset the pipeline emits over dict data.

    Supports $match ($or/$and/$in/$ne/$regex), $sort, $limit and $project.
    Records every call; collections listed in ``failing`` raise.
    """

    def __init__(self, data: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.data = copy.deepcopy(data or {})
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.failing: set[str] = set()

    def calls_to(self, collection: str) -> list[list[dict[str, Any]]]:
        return [pipeline for name, pipeline in self.calls if name == collection]

    async def query(self, collection: str, pipeline: list[dict[str, Any]]) -> dict[str, Any]:
        self.calls.append((collection, copy.deepcopy(pipeline)))
        if collection in self.failing:
            raise APIProviderError(f"API request failed: 503 ({collection})", status_code=503)
        docs = copy.deepcopy(self.data.get(collection, []))
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$match":
                docs = [d for d in docs if matches(d, arg)]
            elif op == "$sort":
                docs = _sort(docs, arg)
            elif op == "$limit":
                docs = docs[:arg]
            elif op == "$project":
                docs = [_project(d, arg) for d in docs]
            else:
                raise NotImplementedError(f"stage {op}")
        return {"rows": docs}


# --- Scripted generative backend ---


class ScriptedBackend:
    """Routes prompts to canned replies by prompt kind.

    Each reply may be a string or an Exception instance (raised).
    """

    def __init__(
        self,
        classify: Any = '{"intent": "generic"}',
        answer: Any = "Here is what the data shows.",
        viz: Any = "{}",
    ) -> None:
        self.replies = {"classify": classify, "answer": answer, "viz": viz}
        self.prompts: list[tuple[str, str, Any]] = []

    @staticmethod
    def kind(prompt: str) -> str:
        if "Allowed intents:" in prompt:
            return "classify"
        if "data visualization assistant" in prompt:
            return "viz"
        return "answer"

    def prompts_of(self, kind: str) -> list[str]:
        return [prompt for k, prompt, _ in self.prompts if k == kind]

    async def ask(self, prompt: str, variant: Any = None) -> str:
        kind = self.kind(prompt)
        self.prompts.append((kind, prompt, variant))
        reply = self.replies[kind]
        if isinstance(reply, Exception):
            raise reply
        return reply


# --- Sample data ---

JANE_ID = "64b7f0c2e4b0a1a2b3c4d5e6"
RAHUL_ID = "64b7f0c2e4b0a1a2b3c4d5e7"
PRIYA_ID = "64b7f0c2e4b0a1a2b3c4d5e8"
INTERVIEW_ID = "65a000000000000000000001"
Q1_ID = "66a000000000000000000001"
Q2_ID = "66a000000000000000000002"


def sample_data() -> dict[str, list[dict[str, Any]]]:
    return {
        "users": [
            {
                "_id": {"$oid": JANE_ID},
                "name": "Jane Doe",
                "firstName": "Jane",
                "lastName": "Doe",
                "email": "jane@example.com",
                "password": "$2b$10$hash",
            },
            {
                "_id": {"$oid": RAHUL_ID},
                "name": "Rahul Verma",
                "email": "rahul@example.com",
                "phone": "+91 98765 43210",
            },
            {
                "_id": {"$oid": PRIYA_ID},
                "name": "P. Shah",
                "email": "pshah@example.com",
            },
        ],
        "jrsattempts": [
            {
                "_id": {"$oid": "67a000000000000000000001"},
                "userId": JANE_ID,
                "createdAt": {"$date": "2025-03-01T10:00:00Z"},
                "answers": [
                    {"questionId": {"$oid": Q1_ID}, "score": 7},
                    {"questionId": Q2_ID, "score": 5},
                ],
            },
        ],
        "interview_results": [
            {
                "_id": {"$oid": "68a000000000000000000001"},
                "userId": {"$oid": JANE_ID},
                "interviewId": {"$oid": INTERVIEW_ID},
                "overallScore": 82,
                "technicalScore": 75,
                "communicationScore": 90,
                "createdAt": {"$date": "2025-03-02T10:00:00Z"},
            },
            {
                "_id": {"$oid": "68a000000000000000000002"},
                "userId": RAHUL_ID,
                "overallScore": 64,
                "technicalScore": 80,
                "communicationScore": 50,
                "createdAt": {"$date": "2025-03-03T10:00:00Z"},
            },
            {
                "_id": {"$oid": "68a000000000000000000003"},
                "userId": {"$oid": PRIYA_ID},
                "overallScore": 70,
                "technicalScore": 60,
                "communicationScore": 65,
                "createdAt": {"$date": "2025-03-04T10:00:00Z"},
            },
        ],
        "interviews": [
            {"_id": {"$oid": INTERVIEW_ID}, "role": "Backend Engineer", "company": "Acme"},
        ],
        "practicehistories": [
            {"_id": {"$oid": "69a000000000000000000001"}, "userId": JANE_ID, "questionId": Q1_ID},
        ],
        "progresstracks": [
            {"_id": {"$oid": "6aa000000000000000000001"}, "userId": JANE_ID, "course": "System Design", "percent": 40},
        ],
        "resumewithais": [
            {
                "_id": {"$oid": "6ba000000000000000000001"},
                "userId": PRIYA_ID,
                "candidateName": "Priya Shah",
                "resumeText": "very long text",
                "fileUrl": "https://files.example.com/cv.pdf",
            },
        ],
        "applications": [],
        "questions": [
            {"_id": {"$oid": Q1_ID}, "question": "Explain database indexing.", "category": "backend"},
            {"_id": {"$oid": Q2_ID}, "question": "Describe a conflict you resolved.", "category": "behavioral"},
        ],
    }


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore(sample_data())


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()
