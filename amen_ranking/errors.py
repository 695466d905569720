"""AMEN Ranking — Error Types.

Every exception raised by the engine derives from RankingError so callers
can catch the whole family at the integration boundary.
"""

from __future__ import annotations


class RankingError(Exception):
    """Base class for all ranking engine errors."""


class MissingFeatureError(RankingError):
    """Raised when an adapter cannot compute a required feature.

    This is a caller bug: supply a default or drop the record before
    scoring. Rankings convert it into a logged exclusion of that item.
    """

    def __init__(self, field: str, subject_id: str = "?") -> None:
        self.field = field
        self.subject_id = subject_id
        super().__init__(f"Missing required field '{field}' for subject '{subject_id}'")


class InvalidWeightsError(RankingError):
    """Raised when a model's weight table is misconfigured."""

    def __init__(self, model: str, detail: str) -> None:
        self.model = model
        self.detail = detail
        super().__init__(f"Invalid weights for model '{model}': {detail}")


class InvalidInputRangeError(RankingError):
    """A feature value fell outside its expected domain.

    Only raised when strict range checking is enabled; otherwise the value
    is clamped to the nearest bound and a warning is logged.
    """

    def __init__(self, feature: str, value: float, low: float, high: float) -> None:
        self.feature = feature
        self.value = value
        self.low = low
        self.high = high
        super().__init__(
            f"Feature '{feature}' value {value!r} outside [{low}, {high}]"
        )
