"""AMEN Ranking — Content Moderator.

Local, rule-based risk scoring for posts, comments and messages. Each
detector that fires adds its fixed points to the risk score; thresholds
then decide between publishing, holding for human review, and rejecting.
"""

from __future__ import annotations

import re
from typing import Optional

from amen_ranking.config import ModerationConfig
from amen_ranking.errors import MissingFeatureError
from amen_ranking.models import AuthorMeta, FlagKind, ModerationResult
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)

RISK_MAX = 100.0


def _normalize(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return re.sub(r"\s+", " ", text.lower().strip())


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    """Match a phrase only where it is not embedded in a longer word.

    Lookarounds are used instead of \\b so masked terms such as "f***"
    still match.
    """
    return re.compile(rf"(?<!\w){re.escape(_normalize(phrase))}(?!\w)")


def is_shouting(text: str, min_length: int) -> bool:
    """All cased characters uppercase and longer than ``min_length``."""
    stripped = text.strip()
    return (
        len(stripped) > min_length
        and stripped.upper() == stripped
        and stripped.lower() != stripped
    )


class ContentModerator:
    """Flat-additive moderation over a single text submission.

    Attributes:
        config: ModerationConfig with vocabularies, points and thresholds.
    """

    def __init__(self, config: ModerationConfig) -> None:
        """Pre-compile every detector vocabulary.

        Args:
            config: ModerationConfig from the engine configuration.
        """
        self.config = config
        self._profanity = [_phrase_pattern(kw) for kw in config.profanity_keywords]
        self._hostility = [_phrase_pattern(p) for p in config.hostility_phrases]
        self._spam = [re.compile(p, re.IGNORECASE) for p in config.spam_patterns]

        logger.debug(
            "ContentModerator initialized: %d profanity, %d hostility, %d spam rules",
            len(self._profanity), len(self._hostility), len(self._spam),
        )

    def moderate(self, text: Optional[str], author: Optional[AuthorMeta] = None) -> ModerationResult:
        """Score a submission and decide what happens to it.

        Risky content is a normal result, never an error.

        Args:
            text: Submitted text.
            author: Author metadata; report history adds risk on its own.

        Returns:
            A fresh ModerationResult.

        Raises:
            MissingFeatureError: If the text is missing or blank.
        """
        author = author or AuthorMeta()
        if text is None or not text.strip():
            raise MissingFeatureError("text", author.id or "?")

        fired = self._detect(text, author)
        flags = frozenset(kind for kind, _, _ in fired)
        risk = min(RISK_MAX, float(sum(points for _, points, _ in fired)))

        cfg = self.config
        is_allowed = risk < cfg.allow_below
        requires_review = cfg.allow_below <= risk < cfg.review_below

        result = ModerationResult(
            is_allowed=is_allowed,
            flags=flags,
            risk_score=risk,
            requires_review=requires_review,
        )

        if fired:
            logger.info(
                "Moderation for %s: risk=%.0f → %s (%s)",
                author.id or "anonymous", risk, result.action,
                "; ".join(reason for _, _, reason in fired),
            )
        else:
            logger.debug("Moderation for %s: clean", author.id or "anonymous")
        return result

    def _detect(self, text: str, author: AuthorMeta) -> list[tuple[FlagKind, int, str]]:
        """Run every detector once.

        Returns:
            List of (flag, points, explanation) for detectors that fired.
            Each detector contributes at most once however often it matches.
        """
        cfg = self.config
        normalized = _normalize(text)
        fired: list[tuple[FlagKind, int, str]] = []

        hit = next((p for p in self._profanity if p.search(normalized)), None)
        if hit:
            fired.append((FlagKind.PROFANITY, cfg.profanity_points, "profanity keyword"))

        hit = next((p for p in self._hostility if p.search(normalized)), None)
        if hit:
            fired.append((FlagKind.HOSTILITY, cfg.hostility_points, "hostile language"))

        hit = next((p for p in self._spam if p.search(text)), None)
        if hit:
            fired.append((FlagKind.SPAM, cfg.spam_points, f"spam pattern {hit.pattern!r}"))

        if is_shouting(text, cfg.shouting_min_length):
            fired.append((FlagKind.SHOUTING, cfg.shouting_points, "all caps"))

        if author.report_count > cfg.report_count_threshold:
            fired.append((
                FlagKind.REPORT_HISTORY, cfg.report_history_points,
                f"author reported {author.report_count} times",
            ))

        return fired
