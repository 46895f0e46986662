"""Candidate scoring: per-candidate score means → weighted rank.

Used when a question asks for a ranking without naming anyone:
- Leaderboard: rank by mean primary score (``overallScore``)
- Recommendation pool: rank by weighted normalized sub-scores

    W = 0.4 × overall + 0.3 × technical + 0.3 × communication

Each sub-score is normalized to [0, 1] against a fixed scale (scores are
stored on a 0–100 scale). Missing sub-scores contribute 0; weights are NOT
renormalized, so incomplete candidates rank below complete ones with the
same marks.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from prism.ids import canonical_id

CANDIDATE_WEIGHTS = {
    "overallScore": 0.4,
    "technicalScore": 0.3,
    "communicationScore": 0.3,
}

PRIMARY_SCORE = "overallScore"
SCORE_SCALE = 100.0


@dataclass
class RankedCandidate:
    """One ranked entry of a leaderboard or candidate pool.

    Attributes:
        user_id: Canonical candidate id
        score: Ranking score (weighted in [0, 1], or mean primary score)
        sub_scores: Mean raw sub-scores used for the ranking
        sessions: Number of result rows contributing
    """

    user_id: str
    score: float
    sub_scores: dict[str, float | None]
    sessions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "score": round(self.score, 4),
            "subScores": {
                k: (round(v, 2) if v is not None else None) for k, v in self.sub_scores.items()
            },
            "sessions": self.sessions,
        }


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return np.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return np.nan


def _score_frame(rows: list[dict[str, Any]], fields: list[str]) -> pd.DataFrame:
    """Per-candidate mean of each score field, plus session counts."""
    records = []
    for row in rows:
        user_id = canonical_id(row.get("userId"))
        if user_id is None:
            continue
        record: dict[str, Any] = {"user_id": user_id}
        for name in fields:
            record[name] = _as_float(row.get(name))
        records.append(record)

    if not records:
        return pd.DataFrame(columns=["user_id", *fields, "sessions"])

    df = pd.DataFrame.from_records(records)
    grouped = df.groupby("user_id", sort=False)
    means = grouped[fields].mean()
    means["sessions"] = grouped.size()
    return means.reset_index()


def _to_ranked(df: pd.DataFrame, fields: list[str], top_k: int) -> list[RankedCandidate]:
    ranked = df.sort_values(["rank_score", "user_id"], ascending=[False, True]).head(top_k)
    out = []
    for _, row in ranked.iterrows():
        out.append(
            RankedCandidate(
                user_id=str(row["user_id"]),
                score=float(row["rank_score"]),
                sub_scores={
                    name: (None if pd.isna(row[name]) else float(row[name])) for name in fields
                },
                sessions=int(row["sessions"]),
            )
        )
    return out


def rank_candidates(
    rows: list[dict[str, Any]],
    top_k: int,
    weights: dict[str, float] | None = None,
    scale: float = SCORE_SCALE,
) -> list[RankedCandidate]:
    """Rank candidates by weighted normalized sub-scores.

    Args:
        rows: Result rows with ``userId`` and score fields
        top_k: Number of candidates to keep
        weights: Field -> weight (default: CANDIDATE_WEIGHTS)
        scale: Raw score scale used for normalization

    Returns:
        Top-k candidates, highest weighted score first (ties by id).
    """
    weights = weights if weights is not None else CANDIDATE_WEIGHTS
    fields = list(weights)
    df = _score_frame(rows, fields)
    if df.empty:
        return []

    normalized = (df[fields].astype(float) / scale).clip(lower=0.0, upper=1.0).fillna(0.0)
    df["rank_score"] = normalized.to_numpy() @ np.array([weights[f] for f in fields])
    return _to_ranked(df, fields, top_k)


def rank_leaderboard(
    rows: list[dict[str, Any]],
    top_k: int,
    field: str = PRIMARY_SCORE,
) -> list[RankedCandidate]:
    """Rank candidates by their mean primary score; unscored candidates are dropped."""
    df = _score_frame(rows, [field])
    if df.empty:
        return []
    df = df.dropna(subset=[field]).copy()
    if df.empty:
        return []
    df["rank_score"] = df[field].astype(float)
    return _to_ranked(df, [field], top_k)
