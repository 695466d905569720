from datetime import datetime, timedelta, timezone

import pytest

from amen_ranking import (
    Conversation,
    EngineConfig,
    InvalidInputRangeError,
    MatchProfile,
    MissingFeatureError,
    PrayerRequest,
    ScoringEngine,
    SearchResult,
    Searcher,
    UserProfile,
)
from amen_ranking.config import ScoringConfig
from amen_ranking.scorer.adapters import distance_miles, match_quality

DALLAS = (32.7767, -96.7970)
FORT_WORTH = (32.7555, -97.3308)


def make_conversation(now: datetime, **kwargs: object) -> Conversation:
    defaults = {
        "id": "conv-1",
        "last_message_at": now - timedelta(hours=10),
        "message_count_7d": 5,
        "response_rate": 0.8,
        "mutual_interactions": 4,
        "shared_topics": ("worship", "bible study", "missions"),
    }
    defaults.update(kwargs)
    return Conversation(**defaults)


def make_match(**kwargs: object) -> MatchProfile:
    defaults = {
        "id": "u1",
        "faith_level": 5,
        "denomination": "Baptist",
        "values": frozenset({"honesty", "family", "service", "prayer", "humility"}),
        "life_stage": "young_professional",
        "interests": frozenset({"hiking", "worship", "reading", "cooking", "travel"}),
        "location": DALLAS,
    }
    defaults.update(kwargs)
    return MatchProfile(**defaults)


def make_user(**kwargs: object) -> UserProfile:
    defaults = {
        "id": "me",
        "church_ids": frozenset({"c1", "c2"}),
        "interests": frozenset({"worship", "youth", "missions"}),
        "connection_ids": frozenset({"friend-1", "friend-2"}),
        "engagement_level": "high",
        "location": DALLAS,
    }
    defaults.update(kwargs)
    return UserProfile(**defaults)


# ═══ Conversation priority ═══


def test_conversation_score_breakdown(engine: ScoringEngine, now: datetime) -> None:
    result = engine.score_conversation(make_conversation(now), now=now)

    values = {f.name: f.value for f in result.breakdown}
    assert values == pytest.approx({
        "recency": 90.0,
        "frequency": 50.0,
        "response_rate": 80.0,
        "relationship": 20.0,
        "shared_topics": 30.0,
    })
    assert result.score == pytest.approx(63.0)
    assert [f.name for f in result.breakdown] == [
        "recency", "frequency", "response_rate", "relationship", "shared_topics",
    ]


def test_conversation_caps_saturate(engine: ScoringEngine, now: datetime) -> None:
    conv = make_conversation(
        now,
        last_message_at=now,
        message_count_7d=400,
        response_rate=1.0,
        mutual_interactions=90,
        shared_topics=tuple(f"t{i}" for i in range(25)),
    )
    assert engine.score_conversation(conv, now=now).score == pytest.approx(100.0)


def test_conversation_missing_last_message(engine: ScoringEngine, now: datetime) -> None:
    with pytest.raises(MissingFeatureError) as excinfo:
        engine.score_conversation(make_conversation(now, last_message_at=None), now=now)
    assert excinfo.value.field == "last_message_at"
    assert excinfo.value.subject_id == "conv-1"


def test_conversation_future_timestamp_is_clamped(engine: ScoringEngine, now: datetime) -> None:
    conv = make_conversation(now, last_message_at=now + timedelta(hours=3), response_rate=1.7)

    result = engine.score_conversation(conv, now=now)

    assert result.feature("recency").value == 100.0
    assert result.feature("response_rate").value == 100.0


def test_strict_ranges_raise(now: datetime) -> None:
    engine = ScoringEngine(EngineConfig(scoring=ScoringConfig(strict_ranges=True)))
    conv = make_conversation(now, response_rate=-0.2)

    with pytest.raises(InvalidInputRangeError) as excinfo:
        engine.score_conversation(conv, now=now)
    assert excinfo.value.feature == "response_rate"


def test_scoring_is_idempotent(engine: ScoringEngine, now: datetime) -> None:
    conv = make_conversation(now)
    assert engine.score_conversation(conv, now=now) == engine.score_conversation(conv, now=now)


def test_rank_conversations_excludes_incomplete(engine: ScoringEngine, now: datetime) -> None:
    fresh = make_conversation(now, id="fresh", last_message_at=now - timedelta(hours=1))
    stale = make_conversation(now, id="stale", last_message_at=now - timedelta(hours=90))
    broken = make_conversation(now, id="broken", last_message_at=None)

    ranked = engine.rank_conversations([stale, broken, fresh], now=now)

    assert [c.id for c in ranked.items] == ["fresh", "stale"]
    assert ranked.excluded == ("broken",)


def test_conversation_from_dict_accepts_app_keys(now: datetime) -> None:
    conv = Conversation.from_dict({
        "id": "c9",
        "lastMessageDate": "2026-03-01T02:00:00Z",
        "messageCount7d": 3,
        "responseRate": 0.5,
        "sharedTopics": ["worship"],
    })
    assert conv.last_message_at == now - timedelta(hours=10)
    assert conv.message_count_7d == 3
    assert conv.shared_topics == ("worship",)


# ═══ Match compatibility ═══


def test_identical_profiles_score_full_marks(engine: ScoringEngine) -> None:
    result = engine.score_match(make_match(), make_match(id="u2"))
    assert result.score == pytest.approx(100.0)
    assert result.subject_id == "u2"


def test_match_point_contributions(engine: ScoringEngine) -> None:
    user = make_match()
    candidate = make_match(
        id="u2",
        faith_level=4,
        denomination="Methodist",
        values=frozenset({"honesty", "family"}),
        life_stage="established",
        interests=frozenset({"hiking"}),
        location=FORT_WORTH,
    )

    result = engine.score_match(user, candidate)
    points = {f.name: f.contribution for f in result.breakdown}

    miles = distance_miles(DALLAS, FORT_WORTH)
    assert points["faith"] == pytest.approx(0.30 * 75)
    assert points["denomination"] == pytest.approx(10.0)
    assert points["values_overlap"] == pytest.approx(10.0)
    assert points["life_stage"] == pytest.approx(5.0)
    assert points["interests"] == pytest.approx(3.0)
    assert points["geo"] == pytest.approx(max(0.0, 5 - miles / 20))
    assert result.score == pytest.approx(sum(points.values()))


def test_unrelated_denominations_score_zero(engine: ScoringEngine) -> None:
    result = engine.score_match(make_match(), make_match(id="u2", denomination="Catholic"))
    assert result.feature("denomination").value == 0.0


def test_missing_location_scores_no_geo(engine: ScoringEngine) -> None:
    result = engine.score_match(make_match(), make_match(id="u2", location=None))
    assert result.feature("geo").value == 0.0
    assert result.score == pytest.approx(95.0)


def test_match_requires_faith_level(engine: ScoringEngine) -> None:
    with pytest.raises(MissingFeatureError) as excinfo:
        engine.score_match(make_match(), make_match(id="u2", faith_level=None))
    assert excinfo.value.field == "faith_level"
    assert excinfo.value.subject_id == "u2"


def test_rank_matches_never_includes_user(engine: ScoringEngine) -> None:
    user = make_match()
    close = make_match(id="close")
    far = make_match(id="far", faith_level=1, denomination="Catholic")

    ranked = engine.rank_matches(user, [far, user, close])

    assert [m.id for m in ranked.items] == ["close", "far"]


# ═══ User recommendations ═══


def test_recommendations_never_include_current_user(engine: ScoringEngine) -> None:
    me = make_user()
    candidates = [make_user(id="me"), make_user(id="a"), make_user(id="b")]

    ranked = engine.recommend_users(me, candidates)

    assert "me" not in [u.id for u in ranked.items]
    assert len(ranked) == 2


def test_recommendations_skip_connected_and_blocked(engine: ScoringEngine) -> None:
    me = make_user(blocked_ids=frozenset({"troll"}))
    candidates = [
        make_user(id="friend-1"),
        make_user(id="troll"),
        make_user(id="blocker", blocked_ids=frozenset({"me"})),
        make_user(id="new"),
    ]

    ranked = engine.recommend_users(me, candidates)

    assert [u.id for u in ranked.items] == ["new"]


def test_recommendation_score_and_order(engine: ScoringEngine) -> None:
    me = make_user()
    strong = make_user(
        id="strong",
        church_ids=frozenset({"c1", "c2"}),
        interests=frozenset({"worship", "youth"}),
        connection_ids=frozenset({"friend-1"}),
        engagement_level="high",
        location=DALLAS,
    )
    weak = make_user(
        id="weak",
        church_ids=frozenset(),
        interests=frozenset({"worship"}),
        connection_ids=frozenset(),
        engagement_level="low",
        location=None,
    )

    ranked = engine.recommend_users(me, [weak, strong])

    assert [u.id for u in ranked.items] == ["strong", "weak"]
    # 40×0.40 + 10×0.25 + 8×0.20 + 10×0.10 + 5×0.05
    assert ranked[0].result.score == pytest.approx(21.35)
    assert ranked[1].result.score == pytest.approx(1.25)


def test_recommendations_respect_limit(engine: ScoringEngine) -> None:
    me = make_user()
    candidates = [make_user(id=f"user-{i}") for i in range(30)]

    assert len(engine.recommend_users(me, candidates)) == 20
    assert len(engine.recommend_users(me, candidates, limit=5)) == 5


# ═══ Search ═══


def test_match_quality_levels() -> None:
    result = SearchResult(id="1", title="Sarah Chen", subtitle="@sarahc")

    assert match_quality("sarah chen", result) == "exact"
    assert match_quality("@sarahc", result) == "exact"
    assert match_quality("sarah", result) == "partial"
    assert match_quality("chen sarah", result) == "fuzzy"
    assert match_quality("sarah chem", result) == "fuzzy"
    assert match_quality("pastor", result) is None
    assert match_quality("   ", result) is None


def test_search_ranking_orders_by_relevance(engine: ScoringEngine) -> None:
    searcher = Searcher(id="me")
    results = [
        SearchResult(id="partial", title="Sarah Chenoweth", follower_count=100, days_since_active=1),
        SearchResult(id="exact", title="Sarah Chen", follower_count=100, days_since_active=1),
        SearchResult(id="miss", title="Pastor Michael", follower_count=100, days_since_active=1),
    ]

    ranked = engine.rank_search_results("sarah chen", results, searcher)

    assert [r.id for r in ranked.items] == ["exact", "partial", "miss"]


def test_search_score_components(engine: ScoringEngine) -> None:
    searcher = Searcher(id="me", following_ids=frozenset({"s1"}))
    result = SearchResult(
        id="s1",
        title="Grace Church",
        follower_count=0,
        days_since_active=5,
        engagement_rate=0.05,
    )

    ranked = engine.rank_search_results("grace church", [result], searcher)
    points = {f.name: f.contribution for f in ranked[0].result.breakdown}

    assert points["relevance"] == pytest.approx(40.0)
    assert points["popularity"] == pytest.approx(0.0)
    assert points["recency"] == pytest.approx(15.0)
    assert points["connection"] == pytest.approx(15.0)
    assert points["quality"] == pytest.approx(5.0)


def test_search_mutual_connection_bonus(engine: ScoringEngine) -> None:
    result = SearchResult(id="s2", title="Grace", days_since_active=30, mutual_connections=2)

    ranked = engine.rank_search_results("nothing", [result], Searcher(id="me"))

    assert ranked[0].result.feature("connection").contribution == pytest.approx(8.0)


def test_search_excludes_results_without_activity(engine: ScoringEngine) -> None:
    results = [
        SearchResult(id="ok", title="Grace", days_since_active=2),
        SearchResult(id="unknown", title="Grace"),
    ]

    ranked = engine.rank_search_results("grace", results, Searcher(id="me"))

    assert [r.id for r in ranked.items] == ["ok"]
    assert ranked.excluded == ("unknown",)


# ═══ Prayer urgency ═══


def test_prayer_request_urgency(engine: ScoringEngine, now: datetime) -> None:
    request = PrayerRequest(
        id="p1",
        content="Please pray, my mom has surgery tomorrow",
        posted_at=now - timedelta(hours=1),
        category_response_rate=0.5,
        author_recent_posts=1,
    )

    result = engine.score_prayer_request(request, now=now)
    points = {f.name: f.contribution for f in result.breakdown}

    assert points["urgent_keywords"] == pytest.approx(40.0)
    assert points["recency"] == pytest.approx(28.0)
    assert points["category_engagement"] == pytest.approx(10.0)
    assert points["rarity"] == pytest.approx(10.0)
    assert result.score == pytest.approx(88.0)


def test_urgent_keywords_match_whole_words(engine: ScoringEngine, now: datetime) -> None:
    request = PrayerRequest(
        id="p2",
        content="Thankful for such a helpful small group",
        posted_at=now - timedelta(hours=20),
        author_recent_posts=9,
    )

    result = engine.score_prayer_request(request, now=now)

    assert result.score == 0.0


def test_prayer_requires_posting_time(engine: ScoringEngine, now: datetime) -> None:
    with pytest.raises(MissingFeatureError):
        engine.score_prayer_request(PrayerRequest(id="p3", content="help"), now=now)


def test_rank_prayer_requests(engine: ScoringEngine, now: datetime) -> None:
    calm = PrayerRequest(id="calm", content="Praying for peace", posted_at=now - timedelta(hours=5), author_recent_posts=5)
    urgent = PrayerRequest(id="urgent", content="Emergency at the hospital", posted_at=now - timedelta(hours=5), author_recent_posts=5)

    ranked = engine.rank_prayer_requests([calm, urgent], now=now)

    assert [r.id for r in ranked.items] == ["urgent", "calm"]


# ═══ Bounds ═══


def test_all_weighted_scores_within_bounds(engine: ScoringEngine, now: datetime) -> None:
    extreme = make_conversation(now, message_count_7d=10**6, mutual_interactions=10**6)
    assert 0 <= engine.score_conversation(extreme, now=now).score <= 100

    old = make_conversation(now, last_message_at=now - timedelta(days=400), response_rate=0.0,
                            message_count_7d=0, mutual_interactions=0, shared_topics=())
    assert engine.score_conversation(old, now=now).score == 0.0

    huge = SearchResult(id="x", title="x", follower_count=10**9, days_since_active=-4, engagement_rate=3.0)
    ranked = engine.rank_search_results("x", [huge], Searcher(id="me", following_ids=frozenset({"x"})))
    assert ranked[0].result.score == pytest.approx(100.0)


def test_naive_timestamps_are_treated_as_utc(engine: ScoringEngine) -> None:
    utc_now = datetime.now(timezone.utc)
    conv = make_conversation(utc_now, last_message_at=utc_now.replace(tzinfo=None) - timedelta(hours=1))

    result = engine.score_conversation(conv)

    assert result.feature("recency").value == pytest.approx(99.0, abs=0.1)


def test_naive_posting_time_does_not_abort_ranking(engine: ScoringEngine, now: datetime) -> None:
    naive = PrayerRequest(id="naive", content="help", posted_at=now.replace(tzinfo=None) - timedelta(hours=2))
    aware = PrayerRequest(id="aware", content="thanks", posted_at=now - timedelta(hours=2))

    ranked = engine.rank_prayer_requests([aware, naive], now=now)

    assert [r.id for r in ranked.items] == ["naive", "aware"]
    assert ranked.excluded == ()
