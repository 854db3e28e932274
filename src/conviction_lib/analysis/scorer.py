"""
Composite conviction score.

Each enabled factor contributes ``clamp(raw / norm, -cap, cap)`` where
``cap`` and ``norm`` come from the configuration's weight table.  The caps
of all enabled factors add up to 100, so the total lands in [-100, 100]
before the final clamp (which only guards float drift).

Usage:
    from conviction_lib.analysis.scorer import CompositeScorer

    scorer = CompositeScorer(config.weights)
    composite = scorer.score({"absorption": -42.0, "delta": 12.5})
    composite.value, composite.breakdown
"""

import math

from conviction_lib.analysis.rolling import clamp
from conviction_lib.core.config import FactorWeight
from conviction_lib.core.models import CompositeScore

MAX_SCORE = 100.0


class CompositeScorer:
    def __init__(self, weights: dict[str, FactorWeight]):
        self.weights = dict(weights)
        total_cap = sum(w.cap for w in self.weights.values())
        if abs(total_cap - MAX_SCORE) > 1e-6:
            raise ValueError(f"factor caps must sum to 100, got {total_cap:g}")

    def contribution(self, name: str, raw: float) -> float:
        w = self.weights[name]
        if not math.isfinite(raw):
            return 0.0
        return clamp(raw / w.norm, -w.cap, w.cap)

    def score(self, raw_scores: dict[str, float]) -> CompositeScore:
        """Combine raw factor scores; factors without a weight are ignored."""
        breakdown = {
            name: self.contribution(name, raw_scores.get(name, 0.0))
            for name in self.weights
        }
        total = clamp(sum(breakdown.values()), -MAX_SCORE, MAX_SCORE)
        return CompositeScore(value=total, breakdown=breakdown)
