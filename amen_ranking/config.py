"""AMEN Ranking — Configuration Loader.

Loads engine configuration from a YAML settings file, resolving
${VAR_NAME} references from the environment (optionally populated from a
.env file). Every section has built-in defaults, so a settings file only
needs to carry what it changes. The result is a tree of frozen dataclasses
that the engine treats as read-only for its whole lifetime.
"""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from amen_ranking.errors import InvalidWeightsError
from amen_ranking.utils.logger import enable_file_logging, get_logger, set_log_level

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"
SETTINGS_ENV_VAR = "AMEN_RANKING_SETTINGS"

# ── Environment Variable Pattern ─────────────────────────
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)}")

WEIGHT_TOLERANCE = 1e-6

# Model names
CONVERSATION_PRIORITY = "conversation_priority"
MATCH_COMPATIBILITY = "match_compatibility"
USER_RECOMMENDATION = "user_recommendation"
SEARCH_RANKING = "search_ranking"
PRAYER_URGENCY = "prayer_urgency"


# ═══════════════════════════════════════════════════════════
# Default Tables
# ═══════════════════════════════════════════════════════════

# Point-based models (match, search, prayer) carry each feature's point cap
# divided by 100 as its weight, so weighted sums equal the point sums.
DEFAULT_MODEL_WEIGHTS: dict[str, dict[str, float]] = {
    CONVERSATION_PRIORITY: {
        "recency": 0.30,
        "frequency": 0.20,
        "response_rate": 0.25,
        "relationship": 0.15,
        "shared_topics": 0.10,
    },
    MATCH_COMPATIBILITY: {
        "faith": 0.30,
        "denomination": 0.15,
        "values_overlap": 0.25,
        "life_stage": 0.10,
        "interests": 0.15,
        "geo": 0.05,
    },
    USER_RECOMMENDATION: {
        "shared_churches": 0.40,
        "shared_interests": 0.25,
        "mutual_connections": 0.20,
        "geo": 0.10,
        "engagement_match": 0.05,
    },
    SEARCH_RANKING: {
        "relevance": 0.40,
        "popularity": 0.15,
        "recency": 0.20,
        "connection": 0.15,
        "quality": 0.10,
    },
    PRAYER_URGENCY: {
        "urgent_keywords": 0.40,
        "recency": 0.30,
        "category_engagement": 0.20,
        "rarity": 0.10,
    },
}

DEFAULT_PROFANITY = (
    "damn", "hell no", "crap", "bastard", "bitch", "shit", "fuck",
    "f***", "s***", "b****",
)

DEFAULT_HOSTILITY = (
    "death to", "i will kill", "kill yourself", "i hate you", "you're worthless",
    "you are worthless", "shut up", "go to hell", "idiot", "stupid",
    "loser", "pathetic",
)

DEFAULT_SPAM_PATTERNS = (
    r"https?://\S+",
    r"www\.\S+",
    r"\b(buy now|click here|free money|limited offer|act now|dm me for)\b",
    r"\b(earn|make) \$?\d+",
    r"(\S)\1{7,}",
)

DEFAULT_NOTIFICATION_TIERS: dict[str, tuple[str, ...]] = {
    "urgent": ("prayer_request", "urgent_prayer", "safety_alert"),
    "high": ("direct_message", "message_request", "mention", "match"),
    "medium": ("comment", "reply", "follow", "repost", "prayer_answered"),
    "low": ("post_like", "amen", "church_note_shared", "prayer_reminder"),
}

DEFAULT_URGENT_KEYWORDS = (
    "urgent", "emergency", "critical", "help", "hospital", "surgery", "crisis",
)

DEFAULT_DENOMINATION_FAMILIES: tuple[tuple[str, ...], ...] = (
    ("baptist", "methodist", "presbyterian", "lutheran", "non-denominational",
     "evangelical", "pentecostal", "assemblies of god", "church of christ"),
    ("catholic", "roman catholic", "eastern catholic"),
    ("orthodox", "eastern orthodox", "greek orthodox", "coptic"),
    ("anglican", "episcopal"),
)

DEFAULT_LIFE_STAGES = (
    "student", "young_professional", "established", "parent", "empty_nester", "retired",
)


def _freeze_models(
    models: Mapping[str, Mapping[str, float]],
) -> Mapping[str, Mapping[str, float]]:
    return MappingProxyType({k: MappingProxyType(dict(v)) for k, v in models.items()})


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScoringConfig:
    """Weight tables for the weighted-sum models."""

    models: Mapping[str, Mapping[str, float]] = field(
        default_factory=lambda: _freeze_models(DEFAULT_MODEL_WEIGHTS)
    )
    tolerance: float = WEIGHT_TOLERANCE
    strict_ranges: bool = False


@dataclass(frozen=True)
class ModerationConfig:
    """Detector vocabularies, point values and decision thresholds."""

    profanity_points: int = 30
    hostility_points: int = 40
    spam_points: int = 50
    report_history_points: int = 20
    shouting_points: int = 15
    report_count_threshold: int = 5
    shouting_min_length: int = 20
    allow_below: float = 50
    review_below: float = 80
    profanity_keywords: tuple[str, ...] = DEFAULT_PROFANITY
    hostility_phrases: tuple[str, ...] = DEFAULT_HOSTILITY
    spam_patterns: tuple[str, ...] = DEFAULT_SPAM_PATTERNS


@dataclass(frozen=True)
class NotificationConfig:
    """Category tiers and frequency limits for the notification gate."""

    tiers: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_NOTIFICATION_TIERS))
    )
    batch_above_count: int = 10
    send_now_below_count: int = 5


@dataclass(frozen=True)
class DiscoveryConfig:
    """How many picks the discovery blend takes from each pool."""

    collaborative: int = 5
    trending: int = 3
    serendipity: int = 1
    rising_creators: int = 2


@dataclass(frozen=True)
class PrayerConfig:
    urgent_keywords: tuple[str, ...] = DEFAULT_URGENT_KEYWORDS
    rare_author_max_posts: int = 2


@dataclass(frozen=True)
class MatchingConfig:
    denomination_families: tuple[tuple[str, ...], ...] = DEFAULT_DENOMINATION_FAMILIES
    life_stages: tuple[str, ...] = DEFAULT_LIFE_STAGES


@dataclass(frozen=True)
class RecommendationConfig:
    limit: int = 20
    exclude_connected: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration container."""

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    moderation: ModerationConfig = field(default_factory=ModerationConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    prayer: PrayerConfig = field(default_factory=PrayerConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    log_level: str = "INFO"
    log_dir: str | None = None


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """
    if isinstance(value, str):
        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '${{{var_name}}}' is required but not set. "
                    f"Add it to your .env file or export it in your shell."
                )
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the file is empty or not a mapping.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        raise ValueError(f"Configuration file is empty: {path}")
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


# ═══════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════


def validate_weights(
    model: str,
    weights: Mapping[str, float],
    tolerance: float = WEIGHT_TOLERANCE,
) -> None:
    """Check that a weight table is usable by the weighted-sum scorer.

    Args:
        model: Model name for error messages.
        weights: Feature name to weight.
        tolerance: Allowed deviation of the weight sum from 1.0.

    Raises:
        InvalidWeightsError: If the table is empty, a weight is outside
            [0, 1] or not finite, or the weights do not sum to 1.0.
    """
    if not weights:
        raise InvalidWeightsError(model, "no features configured")

    for name, weight in weights.items():
        if not isinstance(weight, (int, float)) or isinstance(weight, bool):
            raise InvalidWeightsError(model, f"weight for '{name}' is not a number: {weight!r}")
        if not math.isfinite(weight) or not 0.0 <= weight <= 1.0:
            raise InvalidWeightsError(model, f"weight for '{name}' outside [0, 1]: {weight}")

    total = math.fsum(weights.values())
    if abs(total - 1.0) > tolerance:
        raise InvalidWeightsError(
            model, f"weights must sum to 1.0, got {total:.8f} ({dict(weights)})"
        )


def _validate_keys(data: Mapping[str, Any], allowed: set[str], section: str) -> None:
    """Reject unknown keys so typos in settings do not pass silently.

    Raises:
        ValueError: If the section contains keys outside ``allowed``.
    """
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(
            f"Unknown configuration keys in '{section}': {', '.join(unknown)}"
        )


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    return value


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_scoring_config(data: dict[str, Any]) -> ScoringConfig:
    """Build a ScoringConfig, merging configured weight tables over the defaults.

    Raises:
        InvalidWeightsError: If any resulting table is invalid.
    """
    _validate_keys(data, {"models", "tolerance", "strict_ranges"}, "scoring")
    tolerance = float(data.get("tolerance", WEIGHT_TOLERANCE))

    models = {k: dict(v) for k, v in DEFAULT_MODEL_WEIGHTS.items()}
    for name, weights in (data.get("models") or {}).items():
        if not isinstance(weights, dict):
            raise InvalidWeightsError(name, "weights must be a mapping of feature to weight")
        models[name] = {str(k): v for k, v in weights.items()}

    for name, weights in models.items():
        validate_weights(name, weights, tolerance)

    return ScoringConfig(
        models=_freeze_models(models),
        tolerance=tolerance,
        strict_ranges=bool(data.get("strict_ranges", False)),
    )


def _build_moderation_config(data: dict[str, Any]) -> ModerationConfig:
    defaults = ModerationConfig()
    _validate_keys(data, set(ModerationConfig.__dataclass_fields__), "moderation")

    allow_below = float(data.get("allow_below", defaults.allow_below))
    review_below = float(data.get("review_below", defaults.review_below))
    if not 0 <= allow_below <= review_below <= 100:
        raise ValueError(
            f"Moderation thresholds must satisfy 0 <= allow_below <= review_below <= 100, "
            f"got {allow_below} / {review_below}"
        )

    patterns = tuple(data.get("spam_patterns", defaults.spam_patterns))
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid spam pattern {pattern!r}: {e}") from e

    return ModerationConfig(
        profanity_points=int(data.get("profanity_points", defaults.profanity_points)),
        hostility_points=int(data.get("hostility_points", defaults.hostility_points)),
        spam_points=int(data.get("spam_points", defaults.spam_points)),
        report_history_points=int(data.get("report_history_points", defaults.report_history_points)),
        shouting_points=int(data.get("shouting_points", defaults.shouting_points)),
        report_count_threshold=int(data.get("report_count_threshold", defaults.report_count_threshold)),
        shouting_min_length=int(data.get("shouting_min_length", defaults.shouting_min_length)),
        allow_below=allow_below,
        review_below=review_below,
        profanity_keywords=tuple(data.get("profanity_keywords", defaults.profanity_keywords)),
        hostility_phrases=tuple(data.get("hostility_phrases", defaults.hostility_phrases)),
        spam_patterns=patterns,
    )


def _build_notification_config(data: dict[str, Any]) -> NotificationConfig:
    defaults = NotificationConfig()
    _validate_keys(data, {"tiers", "batch_above_count", "send_now_below_count"}, "notifications")

    tiers = dict(defaults.tiers)
    for tier, categories in (data.get("tiers") or {}).items():
        if tier not in DEFAULT_NOTIFICATION_TIERS:
            raise ValueError(
                f"Unknown notification tier '{tier}' "
                f"(expected one of {', '.join(DEFAULT_NOTIFICATION_TIERS)})"
            )
        tiers[tier] = tuple(categories or ())

    return NotificationConfig(
        tiers=MappingProxyType(tiers),
        batch_above_count=int(data.get("batch_above_count", defaults.batch_above_count)),
        send_now_below_count=int(data.get("send_now_below_count", defaults.send_now_below_count)),
    )


def _build_discovery_config(data: dict[str, Any]) -> DiscoveryConfig:
    _validate_keys(data, set(DiscoveryConfig.__dataclass_fields__), "discovery")
    defaults = DiscoveryConfig()
    sizes = {
        name: int(data.get(name, getattr(defaults, name)))
        for name in DiscoveryConfig.__dataclass_fields__
    }
    negative = [name for name, size in sizes.items() if size < 0]
    if negative:
        raise ValueError(f"Discovery slice sizes must be >= 0: {', '.join(negative)}")
    return DiscoveryConfig(**sizes)


def _build_prayer_config(data: dict[str, Any]) -> PrayerConfig:
    _validate_keys(data, set(PrayerConfig.__dataclass_fields__), "prayer")
    defaults = PrayerConfig()
    return PrayerConfig(
        urgent_keywords=tuple(
            kw.lower() for kw in data.get("urgent_keywords", defaults.urgent_keywords)
        ),
        rare_author_max_posts=int(data.get("rare_author_max_posts", defaults.rare_author_max_posts)),
    )


def _build_matching_config(data: dict[str, Any]) -> MatchingConfig:
    _validate_keys(data, set(MatchingConfig.__dataclass_fields__), "matching")
    defaults = MatchingConfig()
    families = data.get("denomination_families", defaults.denomination_families)
    return MatchingConfig(
        denomination_families=tuple(
            tuple(name.lower() for name in family) for family in families
        ),
        life_stages=tuple(data.get("life_stages", defaults.life_stages)),
    )


def _build_recommendation_config(data: dict[str, Any]) -> RecommendationConfig:
    _validate_keys(data, set(RecommendationConfig.__dataclass_fields__), "recommendation")
    defaults = RecommendationConfig()
    return RecommendationConfig(
        limit=int(data.get("limit", defaults.limit)),
        exclude_connected=bool(data.get("exclude_connected", defaults.exclude_connected)),
    )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def build_config(settings: Mapping[str, Any]) -> EngineConfig:
    """Build a validated EngineConfig from an already-parsed settings mapping.

    Args:
        settings: Parsed settings; every section is optional.

    Returns:
        A fully validated EngineConfig.

    Raises:
        InvalidWeightsError: If a weight table is invalid.
        ValueError: If a section is malformed.
    """
    _validate_keys(
        settings,
        {"scoring", "moderation", "notifications", "discovery", "prayer",
         "matching", "recommendation", "logging"},
        "settings",
    )
    logging_section = _section(settings, "logging")
    _validate_keys(logging_section, {"level", "dir"}, "logging")
    log_dir = logging_section.get("dir")

    return EngineConfig(
        scoring=_build_scoring_config(_section(settings, "scoring")),
        moderation=_build_moderation_config(_section(settings, "moderation")),
        notifications=_build_notification_config(_section(settings, "notifications")),
        discovery=_build_discovery_config(_section(settings, "discovery")),
        prayer=_build_prayer_config(_section(settings, "prayer")),
        matching=_build_matching_config(_section(settings, "matching")),
        recommendation=_build_recommendation_config(_section(settings, "recommendation")),
        log_level=str(logging_section.get("level", "INFO")).upper(),
        log_dir=str(log_dir) if log_dir else None,
    )


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> EngineConfig:
    """Load the engine configuration.

    Resolution order for the settings file: the explicit ``settings_path``,
    then the AMEN_RANKING_SETTINGS environment variable, then
    config/settings.yaml. When no explicit path was requested and the file
    is absent, the built-in defaults are used.

    Args:
        settings_path: Override path to settings.yaml.
        env_path: Override path to the .env file. Defaults to project root .env.

    Returns:
        A fully validated EngineConfig instance.

    Raises:
        FileNotFoundError: If an explicitly requested settings file is missing.
        InvalidWeightsError: If a weight table is invalid.
        ValueError: If required env vars are unset or a section is malformed.
    """
    env_file = env_path or (PROJECT_ROOT / ".env")
    load_dotenv(env_file)
    logger.debug("Loaded environment from %s", env_file)

    explicit = settings_path or os.environ.get(SETTINGS_ENV_VAR)
    settings_file = Path(explicit) if explicit else SETTINGS_PATH

    if not explicit and not settings_file.exists():
        logger.warning("No settings file at %s, using built-in defaults", settings_file)
        raw_settings: dict[str, Any] = {}
    else:
        raw_settings = _load_yaml(settings_file)

    config = build_config(_resolve_env_vars(raw_settings))
    set_log_level(config.log_level)
    if config.log_dir:
        enable_file_logging(config.log_dir)

    logger.info("Configuration loaded: %d scoring models", len(config.scoring.models))
    logger.debug("Notification tiers: %s", {k: len(v) for k, v in config.notifications.tiers.items()})
    return config
