"""Polymorphic record identifiers.

The same logical id may be stored as a typed ObjectId (surfaced by the
document gateway as Extended JSON, ``{"$oid": "..."}``) or as a plain
string, depending on which collection wrote it. Every match clause in the
pipeline is generated from the canonical form defined here.

Usage:
    rid = RecordId.parse({"$oid": "64b7f0c2e4b0a1a2b3c4d5e6"})
    rid.canonical          # "64b7f0c2e4b0a1a2b3c4d5e6"
    rid.match_forms()      # [{"$oid": "64b7..."}, "64b7..."]
    id_clause("userId", [rid])
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


@dataclass(frozen=True)
class RecordId:
    """Tagged identifier with a comparable canonical form.

    Attributes:
        canonical: Lower-cased hex for ObjectIds, stripped text otherwise
        typed: True when the id has the 24-hex ObjectId shape
        original: Text as stored, when it differs from ``canonical``
    """

    canonical: str
    typed: bool
    original: str = field(default="", compare=False, repr=False)

    @classmethod
    def parse(cls, raw: Any) -> "RecordId | None":
        """Build a RecordId from any stored representation.

        Accepts ``{"$oid": hex}`` wrappers, hex strings, other non-empty
        strings and integers. Returns None for anything else.
        """
        if isinstance(raw, RecordId):
            return raw
        if isinstance(raw, dict):
            raw = raw.get("$oid")
        if isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            return cls(canonical=str(raw), typed=False)
        if not isinstance(raw, str):
            return None
        text = raw.strip()
        if not text:
            return None
        if _OBJECT_ID_RE.match(text):
            return cls(canonical=text.lower(), typed=True, original=text)
        return cls(canonical=text, typed=False)

    def match_forms(self) -> list[Any]:
        """All stored representations this id may appear under."""
        forms: list[Any] = [{"$oid": self.canonical}, self.canonical] if self.typed else [self.canonical]
        if self.original and self.original != self.canonical:
            # upper-case hex written as a plain string
            forms.append(self.original)
        return forms

    def __str__(self) -> str:
        return self.canonical


def canonical_id(raw: Any) -> str | None:
    """Canonical string for a raw id value, or None if it is not id-like."""
    rid = RecordId.parse(raw)
    return rid.canonical if rid else None


def unique_ids(values: Iterable[Any]) -> list[RecordId]:
    """Parse and deduplicate ids, keeping first-seen order."""
    seen: set[str] = set()
    out: list[RecordId] = []
    for value in values:
        rid = RecordId.parse(value)
        if rid is None or rid.canonical in seen:
            continue
        seen.add(rid.canonical)
        out.append(rid)
    return out


def id_clause(field: str, ids: Iterable[Any]) -> dict[str, Any]:
    """``$in`` match clause covering every representation of ``ids``."""
    forms: list[Any] = []
    for value in ids:
        rid = RecordId.parse(value)
        if rid is None:
            continue
        forms.extend(form for form in rid.match_forms() if form not in forms)
    return {field: {"$in": forms}}
