"""Cross-reference hydration: question ids → question detail records.

Attempts and practice sessions reference questions by id. Hydration runs
once per request across ALL profiles:

    1. Scan every profile, collecting each referenced id (deduplicated by
       canonical form, so typed and string copies count once).
    2. Issue exactly one batched lookup covering every representation.
    3. Splice the detail record into each reference point on copies of the
       records. Unresolved references are left as they were.
"""

import copy
import logging
from typing import Any, Iterator

from prism.ids import RecordId, canonical_id, id_clause
from prism.models import AggregatedProfile, DocumentStore

logger = logging.getLogger(__name__)

REFERENCE_FIELDS = ("questionId",)
DETAIL_COLLECTION = "questions"
DETAIL_PROJECTION = {"_id": 1, "question": 1, "title": 1, "category": 1, "difficulty": 1, "skills": 1}


def _walk_references(node: Any, fields: tuple[str, ...]) -> Iterator[tuple[dict[str, Any], str]]:
    """Yield (container, key) for every reference field inside record lists."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key in fields and RecordId.parse(value) is not None:
                yield node, key
            elif isinstance(value, (dict, list)):
                yield from _walk_references(value, fields)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_references(item, fields)


class CrossReferenceHydrator:
    """Resolve embedded question references with one batched lookup.

    Args:
        store: Document store exposing ``query(collection, pipeline)``
        reference_fields: Keys holding foreign ids (default: questionId)
        collection: Collection the references point into
    """

    def __init__(
        self,
        store: DocumentStore,
        reference_fields: tuple[str, ...] = REFERENCE_FIELDS,
        collection: str = DETAIL_COLLECTION,
    ) -> None:
        self.store = store
        self.reference_fields = reference_fields
        self.collection = collection

    def collect_ids(self, profiles: list[AggregatedProfile]) -> list[RecordId]:
        """All referenced ids across every profile, deduplicated."""
        seen: dict[str, RecordId] = {}
        for profile in profiles:
            for container, key in _walk_references(profile.collections, self.reference_fields):
                rid = RecordId.parse(container[key])
                if rid is not None and rid.canonical not in seen:
                    seen[rid.canonical] = rid
        return list(seen.values())

    async def lookup(self, ids: list[RecordId]) -> dict[str, dict[str, Any]]:
        """Single batched lookup -> canonical id map."""
        result = await self.store.query(
            self.collection,
            [
                {"$match": id_clause("_id", ids)},
                {"$project": DETAIL_PROJECTION},
                {"$limit": len(ids)},
            ],
        )
        details: dict[str, dict[str, Any]] = {}
        for row in result.get("rows", []):
            key = canonical_id(row.get("_id"))
            if key is not None:
                details[key] = row
        return details

    async def hydrate(self, profiles: list[AggregatedProfile]) -> list[AggregatedProfile]:
        """Return copies of ``profiles`` with references replaced by details."""
        ids = self.collect_ids(profiles)
        if not ids:
            return profiles

        try:
            details = await self.lookup(ids)
        except Exception as e:
            logger.warning("Hydration lookup on %s FAILED: %s", self.collection, e)
            return [
                AggregatedProfile(
                    subject=p.subject,
                    collections=p.collections,
                    warnings=[*p.warnings, f"{self.collection}: {e}"],
                )
                for p in profiles
            ]
        logger.info(
            "Hydration: %d referenced ids across %d profiles, %d resolved",
            len(ids), len(profiles), len(details),
        )

        hydrated = []
        for profile in profiles:
            collections = copy.deepcopy(profile.collections)
            for container, key in list(_walk_references(collections, self.reference_fields)):
                detail = details.get(canonical_id(container[key]))
                if detail is not None:
                    container[key] = copy.deepcopy(detail)
            hydrated.append(
                AggregatedProfile(
                    subject=profile.subject,
                    collections=collections,
                    warnings=list(profile.warnings),
                )
            )
        return hydrated
