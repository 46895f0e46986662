"""Schema snapshot cache: explicit load / TTL / invalidate.

Holds the collection shapes produced by the offline introspection job
(a JSON list of ``{collection, count, empty, schema}`` entries). The
pipeline only uses them to give the backend a data dictionary.

Usage:
    cache = SchemaCache(path="dbcheck/schema.json", ttl_seconds=3600)
    cache.load()
    text = cache.format_for_prompt()
    cache.invalidate()   # next get() reloads from disk
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Collections described first in prompts, in this order
PRIORITY_COLLECTIONS = (
    "users",
    "jrsattempts",
    "interview_results",
    "interviews",
    "practicehistories",
    "progresstracks",
    "courses",
    "resumewithais",
)


@dataclass
class CollectionSchema:
    """Shape of one collection in the snapshot."""

    collection: str
    count: int
    empty: bool
    fields: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectionSchema":
        """Build from one snapshot entry.

        Raises:
            TypeError: If the entry or its ``schema`` is not a mapping
            ValueError: If ``collection`` is missing or ``count`` is not numeric
        """
        if not isinstance(data, dict):
            raise TypeError(f"entry must be an object, got {type(data).__name__}")
        if not data.get("collection"):
            raise ValueError("entry has no collection name")
        schema = data.get("schema") or {}
        if not isinstance(schema, dict):
            raise TypeError(f"schema must be an object, got {type(schema).__name__}")
        count = int(data.get("count") or 0)
        return cls(
            collection=str(data["collection"]),
            count=count,
            empty=bool(data.get("empty", count == 0)),
            fields={str(k): str(v) for k, v in schema.items()},
        )


class SchemaCache:
    """Lazily reloadable schema snapshot with an explicit invalidation contract.

    Args:
        path: Snapshot JSON path (None = no snapshot, always empty)
        ttl_seconds: Reload after this many seconds; None keeps the snapshot
            until ``invalidate()`` is called
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        path: str | Path | None,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.path = Path(path) if path else None
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._schemas: list[CollectionSchema] | None = None
        self._loaded_at: float | None = None

    @property
    def is_loaded(self) -> bool:
        return self._schemas is not None

    def load(self) -> list[CollectionSchema]:
        """Read the snapshot from disk, replacing any cached copy.

        A missing or malformed snapshot yields an empty schema list.
        """
        schemas: list[CollectionSchema] = []
        if self.path is not None:
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(raw, list):
                    raise ValueError(f"snapshot must be a list, got {type(raw).__name__}")
                for position, entry in enumerate(raw):
                    try:
                        schemas.append(CollectionSchema.from_dict(entry))
                    except (TypeError, ValueError) as e:
                        logger.warning("Skipping schema entry %d in %s: %s", position, self.path, e)
                logger.info("Loaded schema snapshot: %d collections from %s", len(schemas), self.path)
            except (OSError, ValueError, TypeError) as e:
                logger.error("Error loading schema snapshot %s: %s", self.path, e)
                schemas = []
        self._schemas = schemas
        self._loaded_at = self._clock()
        return schemas

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next ``get()`` reloads it."""
        self._schemas = None
        self._loaded_at = None

    def _expired(self) -> bool:
        if self._loaded_at is None or self.ttl_seconds is None:
            return False
        return self._clock() - self._loaded_at >= self.ttl_seconds

    def get(self) -> list[CollectionSchema]:
        """Current snapshot, loading or reloading when needed."""
        if self._schemas is None or self._expired():
            return self.load()
        return self._schemas

    def _ordered(self) -> list[tuple[int | None, CollectionSchema]]:
        by_name = {s.collection: s for s in self.get() if not s.empty and s.count > 0}
        ordered: list[tuple[int | None, CollectionSchema]] = []
        for index, name in enumerate(PRIORITY_COLLECTIONS, start=1):
            schema = by_name.pop(name, None)
            if schema:
                ordered.append((index, schema))
        ordered.extend((None, schema) for schema in by_name.values())
        return ordered

    def format_for_prompt(self) -> str:
        """Render non-empty collections as a data dictionary for prompts."""
        blocks = []
        for index, schema in self._ordered():
            fields = ",\n".join(f"    {key}: {kind}" for key, kind in schema.fields.items())
            prefix = f"{index}. " if index is not None else ""
            blocks.append(f"{prefix}{schema.collection} ({schema.count:,} documents)\n{fields}\n")
        return "\n\n".join(blocks)

    def collection_overview(self) -> list[dict[str, Any]]:
        """Collection names, document counts and field names."""
        return [
            {"collection": s.collection, "documents": s.count, "fields": sorted(s.fields)}
            for _, s in self._ordered()
        ]
