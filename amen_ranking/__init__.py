"""AMEN Ranking — multi-signal scoring and ranking engine for the AMEN app.

Typical use::

    from amen_ranking import ScoringEngine, load_config

    engine = ScoringEngine(load_config())
    ranked = engine.recommend_users(me, candidates)
"""

from amen_ranking.config import EngineConfig, build_config, load_config
from amen_ranking.errors import (
    InvalidInputRangeError,
    InvalidWeightsError,
    MissingFeatureError,
    RankingError,
)
from amen_ranking.models import (
    AuthorMeta,
    Batch,
    Conversation,
    Defer,
    DiscoveryPools,
    FlagKind,
    MatchProfile,
    ModerationResult,
    NotificationDecision,
    NotificationEvent,
    NotificationPriority,
    Post,
    PrayerRequest,
    RankedItem,
    RankedList,
    ScoreResult,
    SearchResult,
    Searcher,
    SendNow,
    UserProfile,
    UserState,
    WeightedFeature,
)
from amen_ranking.scorer import ScoringEngine

__version__ = "1.0.0"

__all__ = [
    "AuthorMeta",
    "Batch",
    "Conversation",
    "Defer",
    "DiscoveryPools",
    "EngineConfig",
    "FlagKind",
    "InvalidInputRangeError",
    "InvalidWeightsError",
    "MatchProfile",
    "MissingFeatureError",
    "ModerationResult",
    "NotificationDecision",
    "NotificationEvent",
    "NotificationPriority",
    "Post",
    "PrayerRequest",
    "RankedItem",
    "RankedList",
    "RankingError",
    "ScoreResult",
    "ScoringEngine",
    "SearchResult",
    "Searcher",
    "SendNow",
    "UserProfile",
    "UserState",
    "WeightedFeature",
    "build_config",
    "load_config",
]
