from datetime import datetime, timedelta

import pytest

from amen_ranking import (
    Batch,
    Defer,
    MissingFeatureError,
    NotificationEvent,
    NotificationPriority,
    ScoringEngine,
    SendNow,
    UserState,
)
from amen_ranking.config import build_config


def event(category: str, created_at: datetime | None = None, id: str = "n1") -> NotificationEvent:
    return NotificationEvent(id=id, category=category, created_at=created_at)


def test_urgent_always_sends_now(engine: ScoringEngine, now: datetime) -> None:
    state = UserState(
        user_id="u1",
        recent_notification_count=25,
        in_do_not_disturb=True,
        next_active_time=now + timedelta(hours=8),
    )

    decision = engine.decide_notification(event("prayer_request"), state)

    assert isinstance(decision, SendNow)
    assert decision.priority is NotificationPriority.URGENT


def test_flooded_user_gets_batches(engine: ScoringEngine) -> None:
    state = UserState(user_id="u1", recent_notification_count=11, active_now=True)

    decision = engine.decide_notification(event("direct_message"), state)

    assert isinstance(decision, Batch)
    assert decision.priority is NotificationPriority.HIGH


def test_frequency_cap_wins_over_quiet_hours(engine: ScoringEngine, now: datetime) -> None:
    state = UserState(
        user_id="u1",
        recent_notification_count=12,
        in_do_not_disturb=True,
        next_active_time=now,
    )
    assert isinstance(engine.decide_notification(event("comment"), state), Batch)


def test_do_not_disturb_defers(engine: ScoringEngine, now: datetime) -> None:
    wake = now + timedelta(hours=7)
    state = UserState(
        user_id="u1",
        recent_notification_count=10,
        in_do_not_disturb=True,
        next_active_time=wake,
    )

    decision = engine.decide_notification(event("comment"), state)

    assert decision == Defer(priority=NotificationPriority.MEDIUM, until=wake)


def test_defer_without_wake_time_is_missing(engine: ScoringEngine) -> None:
    state = UserState(user_id="u1", in_do_not_disturb=True)

    with pytest.raises(MissingFeatureError) as excinfo:
        engine.decide_notification(event("post_like"), state)
    assert excinfo.value.field == "next_active_time"
    assert excinfo.value.subject_id == "u1"


@pytest.mark.parametrize(
    "active, recent, expected",
    [
        (True, 0, SendNow),
        (True, 4, SendNow),
        (True, 5, Batch),
        (False, 0, Batch),
        (False, 10, Batch),
    ],
)
def test_active_users_with_few_notifications(
    engine: ScoringEngine, active: bool, recent: int, expected: type,
) -> None:
    state = UserState(user_id="u1", recent_notification_count=recent, active_now=active)
    assert type(engine.decide_notification(event("mention"), state)) is expected


def test_unknown_category_is_low_priority(engine: ScoringEngine) -> None:
    assert engine.gate.priority_of("something_new") is NotificationPriority.LOW

    decision = engine.decide_notification(event("something_new"), UserState(active_now=True))
    assert decision == SendNow(priority=NotificationPriority.LOW)


def test_prioritize_by_tier_then_newest(engine: ScoringEngine, now: datetime) -> None:
    events = [
        event("post_like", now - timedelta(minutes=1), id="like"),
        event("comment", now - timedelta(minutes=30), id="old-comment"),
        event("prayer_request", now - timedelta(hours=2), id="prayer"),
        event("comment", now - timedelta(minutes=5), id="new-comment"),
        event("direct_message", None, id="dm-untimed"),
        event("direct_message", now - timedelta(hours=1), id="dm"),
    ]

    ordered = engine.prioritize_notifications(events)

    assert [e.id for e in ordered] == [
        "prayer", "dm", "dm-untimed", "new-comment", "old-comment", "like",
    ]


def test_configured_tiers() -> None:
    engine = ScoringEngine(build_config({
        "notifications": {"tiers": {"urgent": ["safety_alert", "post_like"]}},
    }))

    assert engine.gate.priority_of("post_like") is NotificationPriority.URGENT
    assert engine.gate.priority_of("prayer_request") is NotificationPriority.LOW


def test_notification_from_app_keys(now: datetime) -> None:
    state = UserState.from_dict({
        "userId": "u1",
        "recentNotificationCount": 3,
        "userActiveNow": True,
        "inDoNotDisturbWindow": False,
    })
    note = NotificationEvent.from_dict({"id": "n7", "type": "reply", "createdAt": now.isoformat()})

    assert state.recent_notification_count == 3
    assert state.active_now
    assert note.category == "reply"
    assert note.created_at == now


def test_priority_tiers_are_ordered_most_urgent_first() -> None:
    assert [p.rank for p in NotificationPriority] == [0, 1, 2, 3]
    assert NotificationPriority.URGENT.rank < NotificationPriority.LOW.rank
    assert NotificationPriority.__doc__
