"""AMEN Ranking — Weighted-Sum Scorer.

A WeightedSumModel pairs a validated weight table with feature values
produced by an adapter and returns a clamped 0-100 ScoreResult. rank()
orders any candidate collection by such results.
"""

from __future__ import annotations

import math
from typing import Callable, Hashable, Iterable, Mapping, Optional, Sequence, TypeVar

from amen_ranking.config import WEIGHT_TOLERANCE, validate_weights
from amen_ranking.errors import InvalidWeightsError, MissingFeatureError
from amen_ranking.models import RankedItem, RankedList, ScoreResult, WeightedFeature
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SCORE_MIN = 0.0
SCORE_MAX = 100.0


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def score(features: Iterable[WeightedFeature]) -> float:
    """Weighted sum of pre-normalized features, clamped to [0, 100]."""
    return clamp_score(math.fsum(f.value * f.weight for f in features))


class WeightedSumModel:
    """A named weight table validated once at construction.

    Attributes:
        name: Model name, used in logs and errors.
        weights: Feature name to weight, in breakdown order.
    """

    def __init__(
        self,
        name: str,
        weights: Mapping[str, float],
        features: Optional[Sequence[str]] = None,
        tolerance: float = WEIGHT_TOLERANCE,
    ) -> None:
        """Validate and store the weight table.

        Args:
            name: Model name.
            weights: Feature name to weight.
            features: Feature names the model's adapter emits. When given,
                the weight table must cover exactly these names and the
                breakdown follows this order.
            tolerance: Allowed deviation of the weight sum from 1.0.

        Raises:
            InvalidWeightsError: If the table is invalid or does not match
                ``features``.
        """
        validate_weights(name, weights, tolerance)

        if features is not None:
            missing = [f for f in features if f not in weights]
            extra = [w for w in weights if w not in features]
            if missing or extra:
                raise InvalidWeightsError(
                    name,
                    f"weight table does not match model features "
                    f"(missing: {missing or 'none'}, unexpected: {extra or 'none'})",
                )
            order = list(features)
        else:
            order = list(weights)

        self.name = name
        self.weights: dict[str, float] = {f: float(weights[f]) for f in order}

    def __repr__(self) -> str:
        return f"WeightedSumModel({self.name!r}, {self.weights!r})"

    def features(self, values: Mapping[str, float], subject_id: str = "?") -> tuple[WeightedFeature, ...]:
        """Attach weights to adapter values, in model order.

        Raises:
            MissingFeatureError: If the adapter produced no value for a
                weighted feature.
        """
        out = []
        for name, weight in self.weights.items():
            if name not in values:
                raise MissingFeatureError(name, subject_id)
            out.append(WeightedFeature(name=name, weight=weight, value=float(values[name])))
        return tuple(out)

    def evaluate(self, subject_id: str, values: Mapping[str, float]) -> ScoreResult:
        breakdown = self.features(values, subject_id)
        result = ScoreResult(subject_id=subject_id, score=score(breakdown), breakdown=breakdown)
        logger.debug("%s: %s → %.2f", self.name, subject_id, result.score)
        return result


def rank(
    candidates: Iterable[T],
    score_fn: Callable[[T], ScoreResult],
    tie_key: Optional[Callable[[T], Hashable]] = None,
) -> RankedList[T]:
    """Score every candidate and order them best-first.

    Equal scores keep their input order unless ``tie_key`` is given, in
    which case ties are ordered by it ascending. A candidate whose adapter
    raises MissingFeatureError is logged and listed in ``excluded``
    instead of failing the whole ranking. Truncation is left to the caller.

    Args:
        candidates: Items to rank.
        score_fn: Maps an item to its ScoreResult.
        tie_key: Optional deterministic secondary key.

    Returns:
        A RankedList sorted by descending score.
    """
    scored: list[RankedItem[T]] = []
    excluded: list[str] = []

    for candidate in candidates:
        try:
            result = score_fn(candidate)
        except MissingFeatureError as e:
            logger.warning("Excluding %s from ranking: %s", e.subject_id, e)
            excluded.append(e.subject_id)
            continue
        scored.append(RankedItem(item=candidate, result=result))

    if tie_key is None:
        ordered = sorted(scored, key=lambda entry: -entry.result.score)
    else:
        ordered = sorted(scored, key=lambda entry: (-entry.result.score, tie_key(entry.item)))

    if excluded:
        logger.info("Ranked %d candidates (%d excluded)", len(ordered), len(excluded))
    return RankedList(entries=tuple(ordered), excluded=tuple(excluded))
