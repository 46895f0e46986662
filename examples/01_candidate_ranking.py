"""Example 1: Candidate Ranking

Shows the offline part of the pipeline: ranking candidates from interview
result rows and preparing the payload that would be sent to the
generative backend.

For demonstration purposes, this uses synthetic rows.
In production, the rows come from the document gateway.
"""

import json

import numpy as np

from prism.engine import fit_to_budget, rank_candidates, rank_leaderboard, sanitize


def generate_synthetic_results(n_candidates: int = 8, sessions: int = 3) -> list[dict]:
    """Generate interview result rows in the gateway's Extended JSON shape."""
    rng = np.random.default_rng(7)
    rows = []
    for i in range(n_candidates):
        user_id = f"64b7f0c2e4b0a1a2b3c4d{i:03x}"
        for _ in range(sessions):
            rows.append({
                "_id": {"$oid": f"68a0000000000000000{len(rows):05x}"},
                "userId": {"$oid": user_id} if i % 2 else user_id,
                "overallScore": int(rng.integers(40, 100)),
                "technicalScore": int(rng.integers(40, 100)),
                "communicationScore": int(rng.integers(40, 100)),
                "transcript": "long interview transcript ...",
            })
    return rows


def main():
    """Run candidate ranking example."""
    print("=" * 60)
    print("PRISM — Example 1: Candidate Ranking")
    print("=" * 60)
    print()

    rows = generate_synthetic_results()
    print(f"Step 1: {len(rows)} synthetic result rows")
    print()

    print("Step 2: Leaderboard (mean overallScore)")
    for position, entry in enumerate(rank_leaderboard(rows, top_k=3), start=1):
        print(f"  {position}. {entry.user_id}  {entry.score:.1f}  ({entry.sessions} sessions)")
    print()

    print("Step 3: Recommendation pool (0.4 / 0.3 / 0.3 weighted)")
    ranked = rank_candidates(rows, top_k=3)
    for position, entry in enumerate(ranked, start=1):
        print(f"  {position}. {entry.user_id}  {entry.score:.3f}")
    print()

    print("Step 4: Payload as the backend would see it")
    payload = fit_to_budget(sanitize({"results": rows}), max_chars=1_000, max_items=40)
    print(json.dumps(payload, indent=2)[:800])


if __name__ == "__main__":
    main()
