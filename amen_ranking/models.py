"""AMEN Ranking — Data Models.

Frozen dataclasses for everything that crosses the engine boundary:
the domain records callers hand in (conversations, profiles, posts,
notification events) and the results the engine hands back (scores,
moderation verdicts, notification decisions, ranked lists).

Domain records offer from_dict(), which accepts both snake_case keys and
the camelCase keys used by the app's documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Iterator, Optional, TypeVar

T = TypeVar("T")


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among several key spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _parse_time(value: Any) -> Optional[datetime]:
    """Coerce a datetime, ISO-8601 string, or epoch seconds to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _location(data: dict[str, Any]) -> Optional[tuple[float, float]]:
    loc = _pick(data, "location")
    if loc is not None:
        if isinstance(loc, dict):
            return float(_pick(loc, "latitude", "lat")), float(_pick(loc, "longitude", "lon", "lng"))
        return float(loc[0]), float(loc[1])
    lat = _pick(data, "latitude", "lat")
    lon = _pick(data, "longitude", "lon", "lng")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


# ═══════════════════════════════════════════════════════════
# Messaging
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Conversation:
    """Per-conversation statistics used to prioritize the inbox.

    Attributes:
        id: Conversation identifier.
        last_message_at: When the latest message was sent.
        message_count_7d: Messages exchanged in the last seven days.
        response_rate: Fraction (0-1) of messages the user answered.
        mutual_interactions: Likes/comments exchanged outside the chat.
        shared_topics: Topics both participants engage with.
    """

    id: str
    last_message_at: Optional[datetime] = None
    message_count_7d: int = 0
    response_rate: float = 0.0
    mutual_interactions: int = 0
    shared_topics: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        return cls(
            id=str(data["id"]),
            last_message_at=_parse_time(_pick(data, "last_message_at", "lastMessageDate", "lastMessageTimestamp")),
            message_count_7d=int(_pick(data, "message_count_7d", "messageCount7d", default=0)),
            response_rate=float(_pick(data, "response_rate", "responseRate", default=0.0)),
            mutual_interactions=int(_pick(data, "mutual_interactions", "mutualInteractions", default=0)),
            shared_topics=tuple(_pick(data, "shared_topics", "sharedTopics", default=())),
        )


# ═══════════════════════════════════════════════════════════
# People: matching & recommendations
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MatchProfile:
    """A connection-matching profile.

    Attributes:
        id: User identifier.
        faith_level: Self-reported importance of faith, 1-5.
        denomination: Denomination name (free text, compared case-insensitively).
        values: Core values the user selected.
        life_stage: One of the configured life stages.
        interests: Interests the user selected.
        location: (latitude, longitude) in degrees, if shared.
    """

    id: str
    faith_level: Optional[int] = None
    denomination: str = ""
    values: frozenset[str] = frozenset()
    life_stage: Optional[str] = None
    interests: frozenset[str] = frozenset()
    location: Optional[tuple[float, float]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchProfile":
        faith = _pick(data, "faith_level", "faithLevel")
        return cls(
            id=str(data["id"]),
            faith_level=int(faith) if faith is not None else None,
            denomination=str(_pick(data, "denomination", default="")),
            values=frozenset(_pick(data, "values", "coreValues", default=())),
            life_stage=_pick(data, "life_stage", "lifeStage"),
            interests=frozenset(_pick(data, "interests", default=())),
            location=_location(data),
        )


@dataclass(frozen=True)
class UserProfile:
    """A user as seen by the people-you-may-know recommender.

    Attributes:
        id: User identifier.
        church_ids: Churches the user attends or follows.
        interests: Interests the user selected.
        connection_ids: Users this user is connected to (follows).
        blocked_ids: Users this user has blocked.
        engagement_level: Coarse activity bucket ("low", "medium", "high").
        location: (latitude, longitude) in degrees, if shared.
    """

    id: str
    church_ids: frozenset[str] = frozenset()
    interests: frozenset[str] = frozenset()
    connection_ids: frozenset[str] = frozenset()
    blocked_ids: frozenset[str] = frozenset()
    engagement_level: str = ""
    location: Optional[tuple[float, float]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(data["id"]),
            church_ids=frozenset(_pick(data, "church_ids", "churchIds", default=())),
            interests=frozenset(_pick(data, "interests", default=())),
            connection_ids=frozenset(_pick(data, "connection_ids", "following", "followingIds", default=())),
            blocked_ids=frozenset(_pick(data, "blocked_ids", "blockedUsers", default=())),
            engagement_level=str(_pick(data, "engagement_level", "engagementLevel", default="")),
            location=_location(data),
        )


# ═══════════════════════════════════════════════════════════
# Search
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SearchResult:
    """A candidate search hit (typically a user profile).

    Attributes:
        id: Identifier of the result (user id for people results).
        title: Primary display text (display name).
        subtitle: Secondary text (username, bio line).
        follower_count: Number of followers.
        days_since_active: Days since the result's owner was last active.
        engagement_rate: Fraction (0-1) of followers engaging per post.
        mutual_connections: Connections shared with the searcher.
    """

    id: str
    title: str
    subtitle: str = ""
    follower_count: int = 0
    days_since_active: Optional[float] = None
    engagement_rate: float = 0.0
    mutual_connections: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchResult":
        days = _pick(data, "days_since_active", "daysSinceActive")
        return cls(
            id=str(data["id"]),
            title=str(_pick(data, "title", "displayName", default="")),
            subtitle=str(_pick(data, "subtitle", "username", default="")),
            follower_count=int(_pick(data, "follower_count", "followersCount", default=0)),
            days_since_active=float(days) if days is not None else None,
            engagement_rate=float(_pick(data, "engagement_rate", "engagementRate", default=0.0)),
            mutual_connections=int(_pick(data, "mutual_connections", "mutualConnections", default=0)),
        )


@dataclass(frozen=True)
class Searcher:
    """The user performing a search."""

    id: str
    following_ids: frozenset[str] = frozenset()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Searcher":
        return cls(
            id=str(data["id"]),
            following_ids=frozenset(_pick(data, "following_ids", "following", default=())),
        )


# ═══════════════════════════════════════════════════════════
# Moderation
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AuthorMeta:
    """Moderation-relevant facts about the author of a submission."""

    id: str = ""
    report_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuthorMeta":
        return cls(
            id=str(_pick(data, "id", "userId", default="")),
            report_count=int(_pick(data, "report_count", "reportCount", default=0)),
        )


class FlagKind(str, Enum):
    """Reasons a moderation detector fired."""

    PROFANITY = "profanity"
    HOSTILITY = "hostility"
    SPAM = "spam"
    REPORT_HISTORY = "report_history"
    SHOUTING = "shouting"


@dataclass(frozen=True)
class ModerationResult:
    """Outcome of moderating one submission.

    Attributes:
        is_allowed: Whether the content may be published immediately.
        flags: Detectors that fired.
        risk_score: Sum of fired detector points, clamped to 0-100.
        requires_review: Whether the content is held for a human moderator.
    """

    is_allowed: bool
    flags: frozenset[FlagKind]
    risk_score: float
    requires_review: bool

    @property
    def action(self) -> str:
        """One of 'allow', 'review', 'reject'."""
        if self.is_allowed:
            return "allow"
        return "review" if self.requires_review else "reject"


# ═══════════════════════════════════════════════════════════
# Notifications
# ═══════════════════════════════════════════════════════════


class NotificationPriority(str, Enum):
    """Delivery tiers, most urgent first."""

    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 for urgent up to 3 for low."""
        return list(NotificationPriority).index(self)


@dataclass(frozen=True)
class NotificationEvent:
    """A notification about to be delivered.

    Attributes:
        id: Notification identifier.
        category: Event category, e.g. "prayer_request" or "post_like".
        created_at: When the triggering event happened.
        actor_id: User who caused the event, if any.
    """

    id: str
    category: str
    created_at: Optional[datetime] = None
    actor_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationEvent":
        return cls(
            id=str(data["id"]),
            category=str(_pick(data, "category", "type", default="")),
            created_at=_parse_time(_pick(data, "created_at", "createdAt", "timestamp")),
            actor_id=str(_pick(data, "actor_id", "actorId", "fromUserId", default="")),
        )


@dataclass(frozen=True)
class UserState:
    """Snapshot of the recipient's delivery state when a notification fires.

    Attributes:
        user_id: Recipient identifier.
        recent_notification_count: Notifications delivered in the last 60 minutes.
        active_now: Whether the user currently has the app open.
        in_do_not_disturb: Whether the user is inside a do-not-disturb window.
        next_active_time: End of the do-not-disturb window.
    """

    user_id: str = ""
    recent_notification_count: int = 0
    active_now: bool = False
    in_do_not_disturb: bool = False
    next_active_time: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserState":
        return cls(
            user_id=str(_pick(data, "user_id", "userId", default="")),
            recent_notification_count=int(_pick(data, "recent_notification_count", "recentNotificationCount", default=0)),
            active_now=bool(_pick(data, "active_now", "userActiveNow", default=False)),
            in_do_not_disturb=bool(_pick(data, "in_do_not_disturb", "inDoNotDisturbWindow", default=False)),
            next_active_time=_parse_time(_pick(data, "next_active_time", "nextActiveTime")),
        )


@dataclass(frozen=True)
class NotificationDecision:
    """Base for the three delivery decisions."""

    priority: NotificationPriority = NotificationPriority.LOW


@dataclass(frozen=True)
class SendNow(NotificationDecision):
    """Deliver immediately."""


@dataclass(frozen=True)
class Batch(NotificationDecision):
    """Hold for the next digest batch."""


@dataclass(frozen=True)
class Defer(NotificationDecision):
    """Hold until the recipient's do-not-disturb window ends."""

    until: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════
# Prayer & content
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PrayerRequest:
    """A prayer request post.

    Attributes:
        id: Post identifier.
        content: Request text.
        posted_at: Creation time.
        category_response_rate: Average response rate (0-1) for the request's category.
        author_recent_posts: Prayer requests the author posted in the last 30 days.
    """

    id: str
    content: str = ""
    posted_at: Optional[datetime] = None
    category_response_rate: float = 0.0
    author_recent_posts: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PrayerRequest":
        return cls(
            id=str(data["id"]),
            content=str(_pick(data, "content", default="")),
            posted_at=_parse_time(_pick(data, "posted_at", "createdAt", "timestamp")),
            category_response_rate=float(_pick(data, "category_response_rate", "avgResponseRate", default=0.0)),
            author_recent_posts=int(_pick(data, "author_recent_posts", "authorRecentPosts", default=0)),
        )


@dataclass(frozen=True)
class Post:
    """A feed post as supplied by the discovery data sources."""

    id: str
    author_id: str = ""
    category: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Post":
        return cls(
            id=str(data["id"]),
            author_id=str(_pick(data, "author_id", "authorId", default="")),
            category=str(_pick(data, "category", default="")),
        )


@dataclass(frozen=True)
class DiscoveryPools:
    """Candidate pools for the discovery blend, each already ordered best-first."""

    collaborative: tuple[Post, ...] = ()
    trending: tuple[Post, ...] = ()
    serendipity: tuple[Post, ...] = ()
    rising_creators: tuple[Post, ...] = ()


# ═══════════════════════════════════════════════════════════
# Scoring results
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WeightedFeature:
    """One named, weighted, pre-normalized (0-100) input to a score."""

    name: str
    weight: float
    value: float

    @property
    def contribution(self) -> float:
        return self.value * self.weight


@dataclass(frozen=True)
class ScoreResult:
    """A clamped 0-100 score with the features that produced it, in order."""

    subject_id: str
    score: float
    breakdown: tuple[WeightedFeature, ...] = ()

    def feature(self, name: str) -> WeightedFeature:
        """Look up a breakdown entry by name.

        Raises:
            KeyError: If no feature with that name contributed.
        """
        for feat in self.breakdown:
            if feat.name == name:
                return feat
        raise KeyError(name)


@dataclass(frozen=True)
class RankedItem(Generic[T]):
    item: T
    result: ScoreResult


@dataclass(frozen=True)
class RankedList(Generic[T]):
    """Candidates ordered best-first.

    Attributes:
        entries: Ranked (item, result) pairs.
        excluded: Subject ids dropped because a required feature was missing.
    """

    entries: tuple[RankedItem[T], ...] = ()
    excluded: tuple[str, ...] = field(default=())

    def __iter__(self) -> Iterator[RankedItem[T]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> RankedItem[T]:
        return self.entries[index]

    @property
    def items(self) -> list[T]:
        return [entry.item for entry in self.entries]

    @property
    def scores(self) -> list[float]:
        return [entry.result.score for entry in self.entries]

    def top(self, n: int) -> "RankedList[T]":
        """Return the first n entries as a new list."""
        return RankedList(entries=self.entries[:max(0, n)], excluded=self.excluded)
