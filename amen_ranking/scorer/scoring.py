"""AMEN Ranking — Scoring Engine.

Single entry point for every scoring, ranking and decision operation the
app needs: inbox priority, match compatibility, moderation, people
recommendations, search ranking, notification delivery, prayer urgency
and the discovery feed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from amen_ranking.config import (
    CONVERSATION_PRIORITY,
    MATCH_COMPATIBILITY,
    PRAYER_URGENCY,
    SEARCH_RANKING,
    USER_RECOMMENDATION,
    EngineConfig,
)
from amen_ranking.discovery.blend import discover_content
from amen_ranking.errors import InvalidWeightsError
from amen_ranking.models import (
    AuthorMeta,
    Conversation,
    DiscoveryPools,
    MatchProfile,
    ModerationResult,
    NotificationDecision,
    NotificationEvent,
    Post,
    PrayerRequest,
    RankedList,
    ScoreResult,
    SearchResult,
    Searcher,
    UserProfile,
    UserState,
)
from amen_ranking.moderation.moderator import ContentModerator
from amen_ranking.notifier.gate import NotificationGate
from amen_ranking.scorer import adapters
from amen_ranking.scorer.weighted import WeightedSumModel, rank
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


class ScoringEngine:
    """Registry of weighted models plus the moderation and notification rules.

    Construct once at startup; the instance is read-only afterwards and
    safe to share between threads. To change weights, build a new engine
    and swap the reference.

    Attributes:
        config: EngineConfig the engine was built from.
        moderator: ContentModerator for text submissions.
        gate: NotificationGate for delivery decisions.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        """Register every configured model.

        Args:
            config: Engine configuration; defaults to the built-in tables.

        Raises:
            InvalidWeightsError: If any configured weight table is invalid.
        """
        self.config = config or EngineConfig()
        self._strict = self.config.scoring.strict_ranges
        self._models: dict[str, WeightedSumModel] = {}

        for name, weights in self.config.scoring.models.items():
            self.register_model(name, weights)

        for name in adapters.MODEL_FEATURES:
            if name not in self._models:
                raise InvalidWeightsError(name, "model is not configured")

        self.moderator = ContentModerator(self.config.moderation)
        self.gate = NotificationGate(self.config.notifications)

        logger.info(
            "ScoringEngine ready: models=%s", ", ".join(sorted(self._models)),
        )

    # ── Model registry ──────────────────────────────────

    def register_model(self, name: str, weights: Mapping[str, float]) -> WeightedSumModel:
        """Validate and register a weight table.

        Tables for built-in models must cover exactly that model's features.

        Raises:
            InvalidWeightsError: If the table is invalid.
        """
        model = WeightedSumModel(
            name,
            weights,
            features=adapters.MODEL_FEATURES.get(name),
            tolerance=self.config.scoring.tolerance,
        )
        self._models[name] = model
        return model

    def model(self, name: str) -> WeightedSumModel:
        """Registered model by name.

        Raises:
            KeyError: If no such model is registered.
        """
        return self._models[name]

    @property
    def model_names(self) -> list[str]:
        return sorted(self._models)

    # ── Conversations ───────────────────────────────────

    def score_conversation(
        self, conversation: Conversation, now: Optional[datetime] = None
    ) -> ScoreResult:
        """Inbox priority of one conversation.

        Raises:
            MissingFeatureError: If the conversation has no last message time.
        """
        values = adapters.conversation_features(conversation, _now(now), self._strict)
        return self._models[CONVERSATION_PRIORITY].evaluate(conversation.id, values)

    def rank_conversations(
        self, conversations: Iterable[Conversation], now: Optional[datetime] = None
    ) -> RankedList[Conversation]:
        now = _now(now)
        return rank(conversations, lambda c: self.score_conversation(c, now))

    # ── Matching ────────────────────────────────────────

    def score_match(self, user: MatchProfile, candidate: MatchProfile) -> ScoreResult:
        """Compatibility of ``candidate`` for ``user``, 0-100.

        Raises:
            MissingFeatureError: If either profile lacks faith level or life stage.
        """
        values = adapters.match_features(user, candidate, self.config.matching, self._strict)
        return self._models[MATCH_COMPATIBILITY].evaluate(candidate.id, values)

    def rank_matches(
        self, user: MatchProfile, candidates: Iterable[MatchProfile]
    ) -> RankedList[MatchProfile]:
        """Rank match candidates for a user, never including the user."""
        pool = (c for c in candidates if c.id != user.id)
        return rank(pool, lambda c: self.score_match(user, c))

    # ── Moderation ──────────────────────────────────────

    def moderate_content(
        self, text: Optional[str], author_meta: Optional[AuthorMeta] = None
    ) -> ModerationResult:
        """Moderate a text submission.

        Raises:
            MissingFeatureError: If the text is missing or blank.
        """
        return self.moderator.moderate(text, author_meta)

    # ── People recommendations ──────────────────────────

    def recommend_users(
        self,
        current_user: UserProfile,
        candidates: Iterable[UserProfile],
        limit: Optional[int] = None,
    ) -> RankedList[UserProfile]:
        """People-you-may-know, best first, at most ``limit`` entries.

        The current user, blocked users and (by default) users already
        followed are never recommended.

        Args:
            current_user: User receiving the recommendations.
            candidates: Candidate users.
            limit: Maximum entries; defaults to the configured limit (20).

        Returns:
            Ranked recommendations truncated to ``limit``.
        """
        cfg = self.config.recommendation
        limit = cfg.limit if limit is None else limit

        excluded_ids = {current_user.id} | set(current_user.blocked_ids)
        if cfg.exclude_connected:
            excluded_ids |= set(current_user.connection_ids)

        pool = (
            c for c in candidates
            if c.id not in excluded_ids and current_user.id not in c.blocked_ids
        )
        model = self._models[USER_RECOMMENDATION]
        ranked = rank(
            pool,
            lambda c: model.evaluate(c.id, adapters.recommendation_features(current_user, c)),
        )
        return ranked.top(limit)

    # ── Search ──────────────────────────────────────────

    def rank_search_results(
        self,
        query: str,
        results: Iterable[SearchResult],
        searcher: Searcher,
    ) -> RankedList[SearchResult]:
        """Order search hits for a searcher.

        Results missing ``days_since_active`` are excluded and logged.
        """
        model = self._models[SEARCH_RANKING]
        return rank(
            results,
            lambda r: model.evaluate(
                r.id, adapters.search_features(query, r, searcher, self._strict),
            ),
        )

    # ── Notifications ───────────────────────────────────

    def decide_notification(
        self, notification: NotificationEvent, user_state: UserState
    ) -> NotificationDecision:
        """SendNow, Batch or Defer for one notification."""
        return self.gate.decide(notification, user_state)

    def prioritize_notifications(
        self, notifications: Iterable[NotificationEvent]
    ) -> list[NotificationEvent]:
        """Order an inbox by tier, then newest first."""
        return self.gate.prioritize(notifications)

    # ── Prayer ──────────────────────────────────────────

    def score_prayer_request(
        self, request: PrayerRequest, now: Optional[datetime] = None
    ) -> ScoreResult:
        """Urgency of one prayer request.

        Raises:
            MissingFeatureError: If the request has no posting time.
        """
        values = adapters.prayer_features(request, _now(now), self.config.prayer, self._strict)
        return self._models[PRAYER_URGENCY].evaluate(request.id, values)

    def rank_prayer_requests(
        self, requests: Iterable[PrayerRequest], now: Optional[datetime] = None
    ) -> RankedList[PrayerRequest]:
        now = _now(now)
        return rank(requests, lambda r: self.score_prayer_request(r, now))

    # ── Discovery ───────────────────────────────────────

    def discover_content(self, pools: DiscoveryPools) -> list[Post]:
        """Blend the discovery pools into one de-duplicated feed."""
        return discover_content(pools, self.config.discovery)
