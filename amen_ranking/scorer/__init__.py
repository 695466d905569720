"""AMEN Ranking — Scorer Package.

Weighted-sum models, their feature adapters, stable ranking, and the
ScoringEngine facade that ties them to moderation, notification and
discovery rules.
"""

from amen_ranking.scorer.scoring import ScoringEngine
from amen_ranking.scorer.weighted import WeightedSumModel, rank, score

__all__ = [
    "ScoringEngine",
    "WeightedSumModel",
    "rank",
    "score",
]
