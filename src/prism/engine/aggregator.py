"""Data aggregation: resolved subjects → bounded related-record profiles.

For every subject a fixed list of related-record fetches is issued
concurrently, each matched on both id representations and capped at fetch
time. Interview containers are then fetched by the ``interviewId`` values
found in the subject's results.

Failure policy: every fetch yields its own outcome. A failing fetch leaves
that sub-collection empty and records a warning on the profile; the rest
of the profile (and the request) carries on.

Ranking questions without a named subject are served from a bounded pool
of interview results instead (see ``prism.engine.scoring``).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from prism.engine.scoring import (
    CANDIDATE_WEIGHTS,
    PRIMARY_SCORE,
    RankedCandidate,
    rank_candidates,
    rank_leaderboard,
)
from prism.ids import RecordId, canonical_id, id_clause, unique_ids
from prism.models import AggregatedProfile, DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelatedFetch:
    """One related-record fetch issued per subject."""

    key: str
    collection: str
    link_field: str
    limit: int
    sort_field: str = "createdAt"


PROFILE_FETCHES = (
    RelatedFetch("attempts", "jrsattempts", "userId", 20),
    RelatedFetch("results", "interview_results", "userId", 20),
    RelatedFetch("applications", "applications", "userId", 10),
    RelatedFetch("practice", "practicehistories", "userId", 50),
    RelatedFetch("progress", "progresstracks", "userId", 10, sort_field="updatedAt"),
    RelatedFetch("resumes", "resumewithais", "userId", 5),
)

INTERVIEW_COLLECTION = "interviews"
INTERVIEW_LINK_FIELD = "interviewId"
INTERVIEW_LIMIT = 10

RESULT_COLLECTION = "interview_results"
MIN_POOL_SIZE = 50
POOL_MULTIPLIER = 5

CANDIDATE_FIELDS = {"_id": 1, "name": 1, "fullName": 1, "firstName": 1, "lastName": 1, "email": 1}


@dataclass
class FetchOutcome:
    """Per-field fetch result: rows on success, error text on failure."""

    key: str
    rows: list[dict[str, Any]]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def pool_size(top_k: int) -> int:
    """Size of the candidate pool scanned for a top-k ranking."""
    return max(top_k * POOL_MULTIPLIER, MIN_POOL_SIZE)


def display_name(user: dict[str, Any]) -> str | None:
    for key in ("fullName", "name"):
        if user.get(key):
            return str(user[key])
    parts = [str(user[k]) for k in ("firstName", "lastName") if user.get(k)]
    return " ".join(parts) or None


class DataAggregator:
    """Fetch bounded related records for resolved subjects.

    Args:
        store: Document store exposing ``query(collection, pipeline)``
        fetches: Related fetches issued per subject (default: PROFILE_FETCHES)
    """

    def __init__(
        self,
        store: DocumentStore,
        fetches: tuple[RelatedFetch, ...] = PROFILE_FETCHES,
    ) -> None:
        self.store = store
        self.fetches = fetches

    async def _fetch(
        self,
        key: str,
        collection: str,
        pipeline: list[dict[str, Any]],
    ) -> FetchOutcome:
        try:
            result = await self.store.query(collection, pipeline)
            return FetchOutcome(key=key, rows=list(result.get("rows", [])))
        except Exception as e:
            logger.warning("%s fetch from %s FAILED: %s", key, collection, e)
            return FetchOutcome(key=key, rows=[], error=str(e) or type(e).__name__)

    def _related_pipeline(self, spec: RelatedFetch, subject_id: RecordId) -> list[dict[str, Any]]:
        return [
            {"$match": id_clause(spec.link_field, [subject_id])},
            {"$sort": {spec.sort_field: -1}},
            {"$limit": spec.limit},
        ]

    async def build_profile(self, subject: dict[str, Any]) -> AggregatedProfile:
        """Gather every related sub-collection for one subject."""
        profile = AggregatedProfile(subject=subject)
        subject_id = RecordId.parse(subject.get("_id"))
        if subject_id is None:
            profile.warnings.append("subject: record has no usable _id")
            return profile

        outcomes = await asyncio.gather(*(
            self._fetch(spec.key, spec.collection, self._related_pipeline(spec, subject_id))
            for spec in self.fetches
        ))
        for outcome in outcomes:
            profile.collections[outcome.key] = outcome.rows
            if not outcome.ok:
                profile.warnings.append(f"{outcome.key}: {outcome.error}")

        interview_ids = unique_ids(
            row.get(INTERVIEW_LINK_FIELD) for row in profile.collections.get("results", [])
        )
        if interview_ids:
            outcome = await self._fetch(
                "interviews",
                INTERVIEW_COLLECTION,
                [{"$match": id_clause("_id", interview_ids)}, {"$limit": INTERVIEW_LIMIT}],
            )
            profile.collections["interviews"] = outcome.rows
            if not outcome.ok:
                profile.warnings.append(f"interviews: {outcome.error}")
        else:
            profile.collections["interviews"] = []

        fetched = sum(len(rows) for rows in profile.collections.values())
        logger.info(
            "%s: %d related records across %d collections (%d unavailable)",
            subject_id, fetched, len(profile.collections), len(profile.warnings),
        )
        return profile

    async def build_profiles(self, subjects: list[dict[str, Any]]) -> list[AggregatedProfile]:
        """One profile per subject, in resolver order."""
        return list(await asyncio.gather(*(self.build_profile(s) for s in subjects)))

    async def _score_pool(self, top_k: int, fields: list[str]) -> list[dict[str, Any]]:
        projection: dict[str, int] = {"userId": 1}
        projection.update({name: 1 for name in fields})
        result = await self.store.query(
            RESULT_COLLECTION,
            [
                {"$sort": {PRIMARY_SCORE: -1}},
                {"$limit": pool_size(top_k)},
                {"$project": projection},
            ],
        )
        return result.get("rows", [])

    async def _attach_candidates(self, ranked: list[RankedCandidate]) -> list[dict[str, Any]]:
        """Join ranked ids to user records in a single batched lookup."""
        if not ranked:
            return []
        result = await self.store.query(
            "users",
            [
                {"$match": id_clause("_id", [entry.user_id for entry in ranked])},
                {"$project": CANDIDATE_FIELDS},
                {"$limit": len(ranked)},
            ],
        )
        users = {canonical_id(u.get("_id")): u for u in result.get("rows", [])}
        rows = []
        for position, entry in enumerate(ranked, start=1):
            user = users.get(entry.user_id, {})
            rows.append({
                "rank": position,
                "name": display_name(user),
                "email": user.get("email"),
                **entry.to_dict(),
            })
        return rows

    async def build_candidate_pool(self, top_k: int) -> list[dict[str, Any]]:
        """Top-k candidates by weighted sub-scores (recommendation, no subject)."""
        fields = list(CANDIDATE_WEIGHTS)
        rows = await self._score_pool(top_k, fields)
        ranked = rank_candidates(rows, top_k)
        logger.info("Candidate pool: %d result rows -> %d ranked", len(rows), len(ranked))
        return await self._attach_candidates(ranked)

    async def build_leaderboard(self, top_k: int) -> list[dict[str, Any]]:
        """Top-k candidates by mean primary score (leaderboard, no subject)."""
        rows = await self._score_pool(top_k, [PRIMARY_SCORE])
        ranked = rank_leaderboard(rows, top_k)
        logger.info("Leaderboard: %d result rows -> %d ranked", len(rows), len(ranked))
        return await self._attach_candidates(ranked)
