"""AMEN Ranking — Notification Gate.

Decides whether a notification is delivered now, folded into the next
batch, or deferred until the recipient's do-not-disturb window ends.
The gate is a pure function of the event and a snapshot of the
recipient's state; actually holding and delivering messages is the
caller's job.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from amen_ranking.config import NotificationConfig
from amen_ranking.errors import MissingFeatureError
from amen_ranking.models import (
    Batch,
    Defer,
    NotificationDecision,
    NotificationEvent,
    NotificationPriority,
    SendNow,
    UserState,
)
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class NotificationGate:
    """Rule-ordered delivery decisions for notification events.

    Attributes:
        config: NotificationConfig with category tiers and frequency limits.
    """

    def __init__(self, config: NotificationConfig) -> None:
        self.config = config
        self._tier_by_category: dict[str, NotificationPriority] = {}
        # Later tiers never override earlier ones: a category listed twice
        # keeps its most urgent tier.
        for priority in NotificationPriority:
            for category in config.tiers.get(priority.value, ()):
                self._tier_by_category.setdefault(category, priority)

    def priority_of(self, category: str) -> NotificationPriority:
        """Tier for a category; unknown categories are low priority."""
        return self._tier_by_category.get(category, NotificationPriority.LOW)

    def decide(self, event: NotificationEvent, state: UserState) -> NotificationDecision:
        """Decide delivery for one event.

        Rules (first match wins):
          a) recent count above the batch limit and not urgent → Batch
          b) inside do-not-disturb and not urgent → Defer(next_active_time)
          c) urgent, or active with few recent notifications → SendNow
          d) else → Batch

        Args:
            event: The notification being delivered.
            state: Recipient's delivery state at the time of the event.

        Returns:
            SendNow, Batch or Defer.

        Raises:
            MissingFeatureError: If a deferral is needed but the state has
                no ``next_active_time``.
        """
        cfg = self.config
        priority = self.priority_of(event.category)
        urgent = priority is NotificationPriority.URGENT
        recent = state.recent_notification_count

        if recent > cfg.batch_above_count and not urgent:
            decision: NotificationDecision = Batch(priority=priority)
        elif state.in_do_not_disturb and not urgent:
            if state.next_active_time is None:
                raise MissingFeatureError("next_active_time", state.user_id or "?")
            decision = Defer(priority=priority, until=state.next_active_time)
        elif urgent or (state.active_now and recent < cfg.send_now_below_count):
            decision = SendNow(priority=priority)
        else:
            decision = Batch(priority=priority)

        logger.debug(
            "Notification %s (%s/%s) for %s → %s",
            event.id, event.category, priority.value,
            state.user_id or "?", type(decision).__name__,
        )
        return decision

    def prioritize(self, events: Iterable[NotificationEvent]) -> list[NotificationEvent]:
        """Order an inbox: most urgent tier first, then newest first.

        Events without a timestamp sort after timestamped ones in their tier.
        """
        return sorted(
            events,
            key=lambda e: (
                self.priority_of(e.category).rank,
                -(e.created_at or _OLDEST).timestamp(),
            ),
        )
