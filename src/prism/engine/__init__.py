"""Core question-answering engine for PRISM.

Modules:
    - classifier: Question → intent + slots
    - resolver: Slots → subject records
    - scoring: Leaderboard / candidate-pool ranking
    - aggregator: Subjects → bounded related-record profiles
    - hydrator: Batched question-reference resolution
    - sanitizer: Denylist stripping, wrapper collapse, array bounding
"""

from prism.engine.classifier import IntentClassifier
from prism.engine.resolver import EntityResolver
from prism.engine.scoring import (
    CANDIDATE_WEIGHTS,
    RankedCandidate,
    rank_candidates,
    rank_leaderboard,
)
from prism.engine.aggregator import DataAggregator, FetchOutcome, RelatedFetch
from prism.engine.hydrator import CrossReferenceHydrator
from prism.engine.sanitizer import (
    DEFAULT_DENYLIST,
    bound,
    fit_to_budget,
    sanitize,
    sanitize_and_bound,
)

__all__ = [
    "IntentClassifier",
    "EntityResolver",
    "CANDIDATE_WEIGHTS",
    "RankedCandidate",
    "rank_candidates",
    "rank_leaderboard",
    "DataAggregator",
    "FetchOutcome",
    "RelatedFetch",
    "CrossReferenceHydrator",
    "DEFAULT_DENYLIST",
    "bound",
    "fit_to_budget",
    "sanitize",
    "sanitize_and_bound",
]
