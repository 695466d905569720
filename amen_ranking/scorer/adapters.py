"""AMEN Ranking — Feature Adapters.

One pure function per weighted model, turning domain records into a
mapping of feature name to a 0-100 value. Raw inputs outside their
natural domain (negative counts, rates above 1, timestamps in the future)
are clamped and logged, or rejected when strict range checking is on.

Point-based recipes (match, search, prayer) are rescaled so that
``value × weight`` reproduces the documented point contribution; e.g. the
geo match feature is worth at most 5 points, so its weight is 0.05 and its
value is the points × 20.
"""

from __future__ import annotations

import difflib
import math
import re
from datetime import datetime, timezone
from typing import Optional

from amen_ranking.config import (
    CONVERSATION_PRIORITY,
    MATCH_COMPATIBILITY,
    PRAYER_URGENCY,
    SEARCH_RANKING,
    USER_RECOMMENDATION,
    MatchingConfig,
    PrayerConfig,
)
from amen_ranking.errors import InvalidInputRangeError, MissingFeatureError
from amen_ranking.models import (
    Conversation,
    MatchProfile,
    PrayerRequest,
    SearchResult,
    Searcher,
    UserProfile,
)
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_MILES = 3958.8
FUZZY_RATIO = 0.75

# Feature order per model; also the breakdown order of results.
MODEL_FEATURES: dict[str, tuple[str, ...]] = {
    CONVERSATION_PRIORITY: ("recency", "frequency", "response_rate", "relationship", "shared_topics"),
    MATCH_COMPATIBILITY: ("faith", "denomination", "values_overlap", "life_stage", "interests", "geo"),
    USER_RECOMMENDATION: ("shared_churches", "shared_interests", "mutual_connections", "geo", "engagement_match"),
    SEARCH_RANKING: ("relevance", "popularity", "recency", "connection", "quality"),
    PRAYER_URGENCY: ("urgent_keywords", "recency", "category_engagement", "rarity"),
}


# ═══════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════


def _in_range(
    feature: str,
    value: float,
    low: float = 0.0,
    high: float = math.inf,
    strict: bool = False,
) -> float:
    """Clamp a raw input into [low, high].

    Raises:
        InvalidInputRangeError: If strict and the value is out of range.
    """
    if low <= value <= high:
        return value
    if strict:
        raise InvalidInputRangeError(feature, value, low, high)
    clamped = max(low, min(high, value))
    logger.warning(
        "Input '%s'=%r outside [%s, %s], clamped to %r", feature, value, low, high, clamped,
    )
    return clamped


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (_as_utc(later) - _as_utc(earlier)).total_seconds() / 3600.0


def distance_miles(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle (haversine) distance between two (lat, lon) points."""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(h)))


def _distance(
    a: Optional[tuple[float, float]], b: Optional[tuple[float, float]]
) -> Optional[float]:
    if a is None or b is None:
        return None
    return distance_miles(a, b)


def _norm(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower().strip())


# ═══════════════════════════════════════════════════════════
# Conversation priority
# ═══════════════════════════════════════════════════════════


def conversation_features(
    conversation: Conversation, now: datetime, strict: bool = False
) -> dict[str, float]:
    """Inbox priority features for one conversation.

    Raises:
        MissingFeatureError: If ``last_message_at`` is unknown.
    """
    if conversation.last_message_at is None:
        raise MissingFeatureError("last_message_at", conversation.id)

    hours = _in_range("hours_since_last_message", _hours_between(conversation.last_message_at, now), strict=strict)
    count = _in_range("message_count_7d", conversation.message_count_7d, strict=strict)
    rate = _in_range("response_rate", conversation.response_rate, 0.0, 1.0, strict)
    mutual = _in_range("mutual_interactions", conversation.mutual_interactions, strict=strict)

    return {
        "recency": max(0.0, 100.0 - hours),
        "frequency": min(100.0, count * 10),
        "response_rate": rate * 100,
        "relationship": min(100.0, mutual * 5),
        "shared_topics": min(100.0, len(set(conversation.shared_topics)) * 10),
    }


# ═══════════════════════════════════════════════════════════
# Match compatibility
# ═══════════════════════════════════════════════════════════


def faith_score(a: int, b: int, strict: bool = False) -> float:
    """100 for equal 1-5 faith levels, minus 25 per step apart."""
    a = _in_range("faith_level", a, 1, 5, strict)
    b = _in_range("faith_level", b, 1, 5, strict)
    return 100.0 - 25.0 * abs(a - b)


def denomination_points(a: str, b: str, matching: MatchingConfig) -> float:
    """15 for the same denomination, 10 for the same family, else 0."""
    a, b = _norm(a), _norm(b)
    if not a or not b:
        return 0.0
    if a == b:
        return 15.0
    for family in matching.denomination_families:
        if a in family and b in family:
            return 10.0
    return 0.0


def life_stage_score(a: str, b: str, matching: MatchingConfig) -> float:
    """100 for the same stage, minus 50 per step along the configured order."""
    if a == b:
        return 100.0
    stages = matching.life_stages
    if a not in stages or b not in stages:
        return 0.0
    return max(0.0, 100.0 - 50.0 * abs(stages.index(a) - stages.index(b)))


def match_features(
    user: MatchProfile,
    candidate: MatchProfile,
    matching: MatchingConfig,
    strict: bool = False,
) -> dict[str, float]:
    """Compatibility features between a user and a candidate match.

    Raises:
        MissingFeatureError: If either side lacks a faith level or life stage.
    """
    for profile in (user, candidate):
        if profile.faith_level is None:
            raise MissingFeatureError("faith_level", profile.id)
        if profile.life_stage is None:
            raise MissingFeatureError("life_stage", profile.id)

    shared_values = len(user.values & candidate.values)
    shared_interests = len(user.interests & candidate.interests)
    miles = _distance(user.location, candidate.location)

    if miles is None:
        geo_points = 0.0
    else:
        geo_points = max(0.0, 5.0 - miles / 20.0)

    return {
        "faith": faith_score(user.faith_level, candidate.faith_level, strict),
        "denomination": denomination_points(user.denomination, candidate.denomination, matching) * 100 / 15,
        "values_overlap": min(25.0, shared_values * 5) * 100 / 25,
        "life_stage": life_stage_score(user.life_stage, candidate.life_stage, matching),
        "interests": min(15.0, shared_interests * 3) * 100 / 15,
        "geo": geo_points * 100 / 5,
    }


# ═══════════════════════════════════════════════════════════
# User recommendation
# ═══════════════════════════════════════════════════════════


def recommendation_features(user: UserProfile, candidate: UserProfile) -> dict[str, float]:
    """People-you-may-know features; a missing location scores 0 for geo."""
    miles = _distance(user.location, candidate.location)
    engagement_equal = bool(user.engagement_level) and user.engagement_level == candidate.engagement_level

    return {
        "shared_churches": min(100.0, len(user.church_ids & candidate.church_ids) * 20),
        "shared_interests": min(100.0, len(user.interests & candidate.interests) * 5),
        "mutual_connections": min(100.0, len(user.connection_ids & candidate.connection_ids) * 8),
        "geo": 0.0 if miles is None else max(0.0, (50.0 - miles) / 5),
        "engagement_match": 5.0 if engagement_equal else 0.0,
    }


# ═══════════════════════════════════════════════════════════
# Search ranking
# ═══════════════════════════════════════════════════════════


def match_quality(query: str, result: SearchResult) -> Optional[str]:
    """Classify how a result matches a query: exact, partial, fuzzy or None."""
    q = _norm(query).lstrip("@")
    if not q:
        return None
    title = _norm(result.title)
    subtitle = _norm(result.subtitle).lstrip("@")

    if q == title or q == subtitle:
        return "exact"
    if q in title or q in subtitle:
        return "partial"

    haystack = f"{title} {subtitle}"
    if all(token in haystack for token in q.split()):
        return "fuzzy"
    if difflib.SequenceMatcher(None, q, title).ratio() >= FUZZY_RATIO:
        return "fuzzy"
    return None


_RELEVANCE_POINTS = {"exact": 40.0, "partial": 30.0, "fuzzy": 20.0}


def search_features(
    query: str,
    result: SearchResult,
    searcher: Searcher,
    strict: bool = False,
) -> dict[str, float]:
    """Search ranking features for one result.

    Raises:
        MissingFeatureError: If ``days_since_active`` is unknown.
    """
    if result.days_since_active is None:
        raise MissingFeatureError("days_since_active", result.id)

    quality = match_quality(query, result)
    followers = _in_range("follower_count", result.follower_count, strict=strict)
    days = _in_range("days_since_active", result.days_since_active, strict=strict)
    engagement = _in_range("engagement_rate", result.engagement_rate, 0.0, 1.0, strict)

    if result.id in searcher.following_ids:
        connection_points = 15.0
    elif result.mutual_connections > 0:
        connection_points = 8.0
    else:
        connection_points = 0.0

    return {
        "relevance": _RELEVANCE_POINTS.get(quality, 0.0) * 100 / 40,
        "popularity": min(15.0, math.log(followers + 1) * 3) * 100 / 15,
        "recency": max(0.0, 20.0 - days) * 100 / 20,
        "connection": connection_points * 100 / 15,
        "quality": min(10.0, engagement * 100) * 100 / 10,
    }


# ═══════════════════════════════════════════════════════════
# Prayer urgency
# ═══════════════════════════════════════════════════════════


def has_urgent_keyword(text: str, keywords: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(kw)}\b", lowered) for kw in keywords)


def prayer_features(
    request: PrayerRequest,
    now: datetime,
    prayer: PrayerConfig,
    strict: bool = False,
) -> dict[str, float]:
    """Urgency features for one prayer request.

    Raises:
        MissingFeatureError: If ``posted_at`` is unknown.
    """
    if request.posted_at is None:
        raise MissingFeatureError("posted_at", request.id)

    hours = _in_range("hours_since_posted", _hours_between(request.posted_at, now), strict=strict)
    rate = _in_range("category_response_rate", request.category_response_rate, 0.0, 1.0, strict)
    rare = request.author_recent_posts <= prayer.rare_author_max_posts

    return {
        "urgent_keywords": 100.0 if has_urgent_keyword(request.content, prayer.urgent_keywords) else 0.0,
        "recency": max(0.0, 30.0 - hours * 2) * 100 / 30,
        "category_engagement": min(20.0, rate * 20) * 100 / 20,
        "rarity": 100.0 if rare else 0.0,
    }
