"""Entity resolution: question slots to candidate records.

Clauses are tried in order, stopping at the first non-empty result:

    1. Exact match on identifier fields (email / phone) when an identifier
       was extracted.
    2. Case-insensitive regex on name fields when a name was extracted.
       The name is ``re.escape``d so user text can never produce a
       malformed or catastrophic pattern.
    3. Fallback through the resume collection: match the same name or
       identifier there, collect the ``userId`` values it references and
       resolve ``users`` by those ids in both stored representations.

An empty result is a valid outcome, not an error.
"""

import logging
import re
from typing import Any

from prism.ids import canonical_id, id_clause, unique_ids
from prism.models import ClassifiedIntent, DocumentStore

logger = logging.getLogger(__name__)

SUBJECT_COLLECTION = "users"
LINK_COLLECTION = "resumewithais"

IDENTIFIER_FIELDS = ("email", "phone", "phoneNumber")
NAME_FIELDS = ("name", "fullName", "firstName", "lastName", "username")
LINK_NAME_FIELDS = ("name", "fullName", "candidateName")
LINK_IDENTIFIER_FIELDS = ("email", "phone")
LINK_FIELD = "userId"
LINK_SCAN_LIMIT = 50

# Never needed to identify a subject, and must not reach the backend
SUBJECT_PROJECTION = {"password": 0, "otp": 0, "refreshToken": 0, "resetToken": 0}


def name_regex(name: str) -> dict[str, str]:
    """Case-insensitive regex clause matching ``name`` literally."""
    return {"$regex": re.escape(name.strip()), "$options": "i"}


def identifier_values(identifier: str) -> list[str]:
    """Stored variants of an email/phone (as typed, lower-cased, digits-only)."""
    text = identifier.strip()
    values = [text]
    if text.lower() != text:
        values.append(text.lower())
    if "@" not in text:
        digits = re.sub(r"\D", "", text)
        if digits and digits != text:
            values.append(digits)
    return values


def name_clause(name: str, fields: tuple[str, ...]) -> dict[str, Any]:
    """``$or`` over ``fields`` for a (possibly multi-word) name."""
    regex = name_regex(name)
    clauses: list[dict[str, Any]] = [{f: regex} for f in fields]
    tokens = name.split()
    if len(tokens) > 1 and "firstName" in fields and "lastName" in fields:
        clauses.append({
            "$and": [
                {"firstName": name_regex(tokens[0])},
                {"lastName": name_regex(tokens[-1])},
            ]
        })
    return {"$or": clauses}


def identifier_clause(identifier: str, fields: tuple[str, ...]) -> dict[str, Any]:
    values = identifier_values(identifier)
    return {"$or": [{f: {"$in": values}} for f in fields]}


class EntityResolver:
    """Find the subject record(s) a classified question refers to.

    Args:
        store: Document store exposing ``query(collection, pipeline)``
        max_hits: Maximum subjects returned (default: 10)
    """

    def __init__(self, store: DocumentStore, max_hits: int = 10) -> None:
        self.store = store
        self.max_hits = max_hits

    async def _find_subjects(self, match: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        result = await self.store.query(
            SUBJECT_COLLECTION,
            [{"$match": match}, {"$project": SUBJECT_PROJECTION}, {"$limit": limit}],
        )
        return result.get("rows", [])

    def _dedupe(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[str] = set()
        unique: list[dict[str, Any]] = []
        for row in rows:
            key = canonical_id(row.get("_id"))
            if key is not None:
                if key in seen:
                    continue
                seen.add(key)
            unique.append(row)
            if len(unique) >= self.max_hits:
                break
        return unique

    async def resolve(self, intent: ClassifiedIntent) -> list[dict[str, Any]]:
        """Resolve the question's subject(s).

        Returns:
            Up to ``max_hits`` subject records, deduplicated by ``_id``;
            empty when nothing matches or no subject was named.
        """
        if not intent.names_subject:
            return []

        if intent.subject_identifier:
            rows = await self._find_subjects(
                identifier_clause(intent.subject_identifier, IDENTIFIER_FIELDS),
                self.max_hits,
            )
            if rows:
                logger.info("Resolved %d subject(s) by identifier", len(rows))
                return self._dedupe(rows)

        if intent.subject_name:
            rows = await self._find_subjects(
                name_clause(intent.subject_name, NAME_FIELDS),
                self.max_hits,
            )
            if rows:
                logger.info("Resolved %d subject(s) by name '%s'", len(rows), intent.subject_name)
                return self._dedupe(rows)

        rows = await self._resolve_via_links(intent)
        if rows:
            logger.info("Resolved %d subject(s) through %s", len(rows), LINK_COLLECTION)
        else:
            logger.info("No subject found for %s", intent.to_dict())
        return self._dedupe(rows)

    async def _resolve_via_links(self, intent: ClassifiedIntent) -> list[dict[str, Any]]:
        clauses: list[dict[str, Any]] = []
        if intent.subject_identifier:
            clauses.append(identifier_clause(intent.subject_identifier, LINK_IDENTIFIER_FIELDS))
        if intent.subject_name:
            clauses.append(name_clause(intent.subject_name, LINK_NAME_FIELDS))

        result = await self.store.query(
            LINK_COLLECTION,
            [
                {"$match": {"$or": clauses}},
                {"$project": {LINK_FIELD: 1}},
                {"$limit": LINK_SCAN_LIMIT},
            ],
        )
        linked = unique_ids(row.get(LINK_FIELD) for row in result.get("rows", []))
        if not linked:
            return []
        return await self._find_subjects(id_clause("_id", linked), self.max_hits)
