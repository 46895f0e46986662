"""Payload sanitization and bounding.

Everything that leaves the pipeline for the generative backend passes
through here:

    sanitize   recursively drop denylisted keys (credentials, large blobs,
               file URLs) and collapse Extended JSON wrappers
               ({"$oid": ...}, {"$date": ...}) to plain scalars
    bound      truncate every list independently to ``max_items``
    fit_to_budget
               re-bound with halving caps until the serialized payload fits
               a character budget

All functions are pure, deterministic and idempotent.
"""

import json
from typing import Any

DEFAULT_ARRAY_CAP = 40

DEFAULT_DENYLIST = frozenset({
    # credentials
    "password",
    "passwordHash",
    "salt",
    "otp",
    "token",
    "accessToken",
    "refreshToken",
    "resetToken",
    "apiKey",
    # large text / binary blobs
    "resumeText",
    "rawText",
    "extractedText",
    "transcript",
    "audio",
    "video",
    "embedding",
    "embeddings",
    "fileData",
    "base64",
    # file locations
    "fileUrl",
    "resumeUrl",
    "audioUrl",
    "videoUrl",
    "recordingUrl",
    # driver noise
    "__v",
})

_WRAPPER_KEYS = ("$oid", "$date", "$numberLong", "$numberDecimal", "$numberInt", "$numberDouble")


def _collapse_wrapper(value: dict[str, Any]) -> Any:
    """Plain scalar for a single-key Extended JSON wrapper, else the dict.

    Expects already-sanitized values, so a nested wrapper such as
    {"$date": {"$numberLong": "1700000000000"}} arrives here as
    {"$date": "1700000000000"}.
    """
    if len(value) != 1:
        return value
    key, inner = next(iter(value.items()))
    if key not in _WRAPPER_KEYS or isinstance(inner, (dict, list)):
        return value
    return inner


def sanitize(data: Any, denylist: frozenset[str] = DEFAULT_DENYLIST) -> Any:
    """Strip denylisted keys and collapse id/date wrappers, recursively."""
    if isinstance(data, dict):
        # Filter and clean children before the wrapper check
        return _collapse_wrapper({
            key: sanitize(value, denylist)
            for key, value in data.items()
            if key not in denylist
        })
    if isinstance(data, list):
        return [sanitize(item, denylist) for item in data]
    return data


def bound(data: Any, max_items: int = DEFAULT_ARRAY_CAP) -> Any:
    """Truncate every list (at any depth) to ``max_items`` items."""
    if max_items < 1:
        raise ValueError(f"max_items ({max_items}) must be >= 1")
    if isinstance(data, dict):
        return {key: bound(value, max_items) for key, value in data.items()}
    if isinstance(data, list):
        return [bound(item, max_items) for item in data[:max_items]]
    return data


def sanitize_and_bound(
    data: Any,
    max_items: int = DEFAULT_ARRAY_CAP,
    denylist: frozenset[str] = DEFAULT_DENYLIST,
) -> Any:
    """Sanitize, then bound."""
    return bound(sanitize(data, denylist), max_items)


def payload_size(data: Any) -> int:
    """Length of the compact JSON serialization."""
    return len(json.dumps(data, default=str, separators=(",", ":")))


def fit_to_budget(data: Any, max_chars: int, max_items: int = DEFAULT_ARRAY_CAP) -> Any:
    """Bound ``data``, halving the list cap until it serializes within ``max_chars``.

    Stops at a cap of 1 even if the budget is still exceeded; scalar content
    is never cut.
    """
    cap = max_items
    bounded = bound(data, cap)
    while cap > 1 and payload_size(bounded) > max_chars:
        cap = max(1, cap // 2)
        bounded = bound(bounded, cap)
    return bounded
